"""
The two-tier variable environment exchanged with a Compiled Script.

A ScriptContext holds a *global* Bindings map, shared by every script an
engine compiles, and a *session* Bindings map local to one evaluation
context. Around each invocation the environment is:

  merged   global entries overlaid with session entries (session wins)
  pushed   every merged entry is written to the attribute of the same name
  pulled   every attribute is read back; a name only the global map holds
           goes back to the global map, everything else to the session map

None of this is synchronized. Concurrent evaluations touching the same
instance or the same global names need a lock held by the caller.
"""

from __future__ import annotations

import logging
from collections import UserDict
from typing import Any, Dict, Mapping, Optional

from clasp.clasp_datatypes import BindingError, type_display_name
from clasp.clasp_loader import CompiledType
from clasp.clasp_matcher import is_compatible

logger = logging.getLogger(__name__)

SESSION_SCOPE = "session"
GLOBAL_SCOPE = "global"
SCOPES = (SESSION_SCOPE, GLOBAL_SCOPE)


class Bindings(UserDict):
    """A name -> value map. Names are attribute names, so they must be strings."""

    def __setitem__(self, key: Any, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Bindings key must be a str, not {type(key).__name__}")
        self.data[key] = value

    def __repr__(self) -> str:
        return f"<Bindings {self.data!r}>"


def _check_scope(scope: str) -> str:
    if scope not in SCOPES:
        raise ValueError(f"Unknown scope {scope!r}; expected one of {SCOPES}")
    return scope


class ScriptContext:
    """Global and session bindings seen by an evaluation."""

    def __init__(
        self,
        global_bindings: Optional[Mapping[str, Any]] = None,
        session_bindings: Optional[Mapping[str, Any]] = None,
    ):
        self.global_bindings = _as_bindings(global_bindings)
        self.session_bindings = _as_bindings(session_bindings)

    def get_bindings(self, scope: str) -> Bindings:
        if _check_scope(scope) == GLOBAL_SCOPE:
            return self.global_bindings
        return self.session_bindings

    def set_bindings(self, bindings: Mapping[str, Any], scope: str) -> None:
        if _check_scope(scope) == GLOBAL_SCOPE:
            self.global_bindings = _as_bindings(bindings)
        else:
            if bindings is None:
                raise ValueError("Session bindings can't be None")
            self.session_bindings = _as_bindings(bindings)

    def find_owner(self, name: str) -> Optional[Bindings]:
        """The bindings that hold `name`, looking at the session before the global map."""
        if name in self.session_bindings:
            return self.session_bindings
        if name in self.global_bindings:
            return self.global_bindings
        return None

    def attributes_scope(self, name: str) -> Optional[str]:
        owner = self.find_owner(name)
        if owner is None:
            return None
        return SESSION_SCOPE if owner is self.session_bindings else GLOBAL_SCOPE

    def get_attribute(self, name: str, default: Any = None) -> Any:
        owner = self.find_owner(name)
        return owner[name] if owner is not None else default

    def write_target(self, name: str) -> Bindings:
        """Where a pulled value goes: global only if the name lives there and not in the session."""
        if name not in self.session_bindings and name in self.global_bindings:
            return self.global_bindings
        return self.session_bindings

    def __repr__(self) -> str:
        return f"<ScriptContext global={list(self.global_bindings)} session={list(self.session_bindings)}>"


def _as_bindings(values: Optional[Mapping[str, Any]]) -> Bindings:
    # Bindings and plain dicts are shared, not copied.
    if isinstance(values, Bindings):
        return values
    b = Bindings()
    if isinstance(values, dict):
        for key in values:
            if not isinstance(key, str):
                raise TypeError(f"Bindings key must be a str, not {type(key).__name__}")
        b.data = values
    elif values:
        b.update(values)
    return b


def merge_bindings(*bindings: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Flatten several maps into one; later maps win on key collisions."""
    merged: Dict[str, Any] = {}
    for b in bindings:
        if b is not None:
            merged.update(b)
    return merged


def push_variables(compiled_type: CompiledType, instance: Any, context: ScriptContext) -> Dict[str, Any]:
    """Write every merged environment entry into the attribute of the same name.

    Entries are processed in merged-map iteration order (global keys first,
    then session-only keys). The first failing entry raises BindingError;
    attributes already written keep their new values.
    """
    merged = merge_bindings(context.global_bindings, context.session_bindings)
    for name, value in merged.items():
        desc = compiled_type.attribute(name)
        if desc is None:
            raise BindingError(f"{compiled_type.name} has no public attribute {name!r}", name=name)
        if not is_compatible(desc.type, value):
            raise BindingError(
                f"Cannot assign {type(value).__name__} to {compiled_type.name}.{name} "
                f"declared as {type_display_name(desc.type)}",
                name=name,
            )
        try:
            compiled_type.set_attribute(instance, name, value)
        except Exception as e:
            raise BindingError(
                f"Setting {compiled_type.name}.{name} failed: {type(e).__name__}: {e}", name=name
            ) from e
    if merged:
        logger.debug("Pushed %s into %s", list(merged), compiled_type.name)
    return merged


def read_attributes(compiled_type: CompiledType, instance: Any) -> Dict[str, Any]:
    """Current values of every public attribute that has one."""
    values: Dict[str, Any] = {}
    for desc in compiled_type.attributes:
        try:
            values[desc.name] = compiled_type.get_attribute(instance, desc.name)
        except AttributeError:
            # Annotated but never assigned.
            continue
    return values


def pull_variables(compiled_type: CompiledType, instance: Any, context: ScriptContext) -> Dict[str, Any]:
    """Write every attribute back into the environment, scope-resolved per name."""
    values = read_attributes(compiled_type, instance)
    for name, value in values.items():
        context.write_target(name)[name] = value
    if values:
        logger.debug("Pulled %s from %s", list(values), compiled_type.name)
    return values

