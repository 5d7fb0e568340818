"""
Loader service: executes a compiled artifact and reflects over its class.

The loaded class is described by a CompiledType:
- constructors: `__init__`, or each of its `typing.overload` declarations
- methods: public functions, static methods and class methods over the MRO
- attributes: annotated names, public class-level values and `__slots__`

CompiledType also carries the capability set the rest of the runtime uses
(construct / invoke / get_attribute / set_attribute), so no other module
needs to reflect over Python objects.
"""

from __future__ import annotations

import inspect
import linecache
import logging
import sys
import types
import typing
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from clasp.clasp_datatypes import (
    CLASS, INSTANCE, STATIC,
    Artifact, AttributeDescriptor, InvocationError, LoadError,
    MethodDescriptor, Parameter, Signature,
)

logger = logging.getLogger(__name__)

DEFAULT_TYPE_NAME = "Script"


class CompiledType:
    """Immutable description of a loaded class plus the operations to drive it."""

    def __init__(
        self,
        cls: type,
        constructors: Sequence[Signature],
        methods: Sequence[MethodDescriptor],
        attributes: Sequence[AttributeDescriptor],
        call_operator: Optional[MethodDescriptor] = None,
        module_name: Optional[str] = None,
    ):
        self._cls = cls
        self._constructors = tuple(constructors)
        self._methods = tuple(methods)
        self._attributes = tuple(attributes)
        self._attributes_by_name = {a.name: a for a in self._attributes}
        self._call_operator = call_operator
        self._module_name = module_name

    @property
    def cls(self) -> type:
        return self._cls

    @property
    def name(self) -> str:
        return self._cls.__name__

    @property
    def module_name(self) -> Optional[str]:
        return self._module_name

    @property
    def constructors(self) -> Tuple[Signature, ...]:
        return self._constructors

    @property
    def methods(self) -> Tuple[MethodDescriptor, ...]:
        return self._methods

    @property
    def attributes(self) -> Tuple[AttributeDescriptor, ...]:
        return self._attributes

    @property
    def call_operator(self) -> Optional[MethodDescriptor]:
        """`__call__` when the class itself declares one."""
        return self._call_operator

    def declared_methods(self) -> Tuple[MethodDescriptor, ...]:
        """Public operations declared on the class itself (not inherited)."""
        return tuple(m for m in self._methods if m.declared)

    def methods_named(self, name: str) -> Tuple[MethodDescriptor, ...]:
        if name == "__call__" and self._call_operator is not None:
            return (self._call_operator,)
        return tuple(m for m in self._methods if m.name == name)

    def attribute(self, name: str) -> Optional[AttributeDescriptor]:
        return self._attributes_by_name.get(name)

    def is_static_only(self) -> bool:
        """True if every declared public operation can run without an instance."""
        declared = self.declared_methods()
        return bool(declared) and all(m.is_static for m in declared)

    # -- capability set ------------------------------------------------

    def construct(self, args: Sequence[Any] = ()) -> Any:
        return self._cls(*args)

    def invoke(self, method: MethodDescriptor, instance: Any, args: Sequence[Any] = ()) -> Any:
        if method.is_static:
            target = self._cls
        elif instance is None:
            raise InvocationError(
                f"Method {method.name} of {self.name} requires an instance, but the script has none"
            )
        else:
            target = instance
        return getattr(target, method.name)(*args)

    def _attribute_target(self, instance: Any, name: str) -> Any:
        desc = self._attributes_by_name.get(name)
        if instance is None or (desc is not None and desc.is_static):
            return self._cls
        return instance

    def get_attribute(self, instance: Any, name: str) -> Any:
        return getattr(self._attribute_target(instance, name), name)

    def set_attribute(self, instance: Any, name: str, value: Any) -> None:
        setattr(self._attribute_target(instance, name), name, value)

    def __repr__(self) -> str:
        return (
            f"<CompiledType {self.name} constructors={len(self._constructors)} "
            f"methods={[m.name for m in self._methods]} "
            f"attributes={[a.name for a in self._attributes]}>"
        )


class Loader(ABC):
    """The external loader collaborator."""

    @abstractmethod
    def load(self, artifact: Artifact) -> CompiledType:
        """Load `artifact`, raising LoadError if it can't be resolved to a class."""
        raise NotImplementedError

    def unload(self, compiled_type: CompiledType) -> None:
        """Release whatever the loader keeps for `compiled_type`."""
        return None


# =================================================================
# Reflection helpers
# =================================================================

def _type_hints(obj: Any, where: str) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(obj)
    except Exception as e:
        raise LoadError(f"Could not resolve annotations of {where}: {type(e).__name__}: {e}") from e


def signature_of(fn: Any, skip_first: bool, where: str) -> Optional[Signature]:
    """Positional signature of `fn`, or None if it can't be called positionally."""
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return None
    hints = _type_hints(fn, where)
    items = list(sig.parameters.values())
    if skip_first and items and items[0].kind in (
        inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD
    ):
        items = items[1:]

    params: List[Parameter] = []
    for p in items:
        if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        if p.kind is inspect.Parameter.KEYWORD_ONLY:
            if p.default is inspect.Parameter.empty:
                return None
            continue
        params.append(Parameter(
            name=p.name,
            type=hints.get(p.name, object),
            has_default=p.default is not inspect.Parameter.empty,
        ))
    return Signature(tuple(params))


def _overloads_or_self(fn: Any) -> List[Any]:
    return list(typing.get_overloads(fn)) or [fn]


def reflect_constructors(cls: type) -> List[Signature]:
    init = inspect.getattr_static(cls, "__init__")
    if init is object.__init__ or not inspect.isfunction(init):
        # Builtin or inherited slot wrapper: only the default constructor is known.
        return [Signature()]
    out = []
    for fn in _overloads_or_self(init):
        sig = signature_of(fn, skip_first=True, where=f"{cls.__name__}.__init__")
        if sig is not None:
            out.append(sig)
    return out


def _unwrap_routine(raw: Any) -> Tuple[Optional[str], Any]:
    if isinstance(raw, staticmethod):
        return STATIC, raw.__func__
    if isinstance(raw, classmethod):
        return CLASS, raw.__func__
    if inspect.isfunction(raw):
        return INSTANCE, raw
    return None, None


def _method_descriptors(cls: type, klass: type, name: str, raw: Any) -> List[MethodDescriptor]:
    kind, fn = _unwrap_routine(raw)
    if kind is None:
        return []
    out = []
    for f in _overloads_or_self(fn):
        sig = signature_of(f, skip_first=kind != STATIC, where=f"{klass.__name__}.{name}")
        if sig is None:
            continue
        out.append(MethodDescriptor(
            name=name, signature=sig, kind=kind, declared=klass is cls, owner=klass.__name__,
        ))
    return out


def reflect_methods(cls: type) -> List[MethodDescriptor]:
    seen = set()
    methods: List[MethodDescriptor] = []
    for klass in cls.__mro__:
        if klass is object:
            continue
        for name, raw in vars(klass).items():
            if name.startswith("_") or name in seen:
                continue
            seen.add(name)
            methods.extend(_method_descriptors(cls, klass, name, raw))
    return methods


def reflect_call_operator(cls: type) -> Optional[MethodDescriptor]:
    raw = vars(cls).get("__call__")
    if raw is None:
        return None
    found = _method_descriptors(cls, cls, "__call__", raw)
    return found[0] if found else None


def _slot_names(klass: type) -> List[str]:
    slots = vars(klass).get("__slots__", ())
    if isinstance(slots, str):
        slots = (slots,)
    return [s for s in slots if not s.startswith("_")]


def reflect_attributes(cls: type) -> List[AttributeDescriptor]:
    hints = _type_hints(cls, cls.__name__)
    attrs: Dict[str, AttributeDescriptor] = {}

    for name, hint in hints.items():
        if name.startswith("_"):
            continue
        if typing.get_origin(hint) is typing.ClassVar:
            args = typing.get_args(hint)
            attrs[name] = AttributeDescriptor(name, args[0] if args else object, is_static=True)
        else:
            attrs[name] = AttributeDescriptor(name, hint)

    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name in _slot_names(klass):
            attrs.setdefault(name, AttributeDescriptor(name, object))
        for name, value in vars(klass).items():
            if name.startswith("_") or name in attrs:
                continue
            if callable(value) or isinstance(value, (staticmethod, classmethod, property)):
                continue
            if inspect.isdatadescriptor(value) or inspect.ismethoddescriptor(value):
                continue
            attrs[name] = AttributeDescriptor(name, object)

    return list(attrs.values())


def reflect(cls: type, module_name: Optional[str] = None) -> CompiledType:
    """Build the CompiledType for an already loaded class."""
    return CompiledType(
        cls=cls,
        constructors=reflect_constructors(cls),
        methods=reflect_methods(cls),
        attributes=reflect_attributes(cls),
        call_operator=reflect_call_operator(cls),
        module_name=module_name,
    )


# =================================================================
# Python loader
# =================================================================

def find_class(module: types.ModuleType, type_name: Optional[str]) -> type:
    """Locate the script class in an executed module.

    With no explicit name: the single class the module defines, else a class
    named `Script`.
    """
    namespace = vars(module)
    if type_name:
        obj = namespace.get(type_name)
        if obj is None:
            raise LoadError(f"Class {type_name!r} not found in compiled source")
        if not inspect.isclass(obj):
            raise LoadError(f"{type_name!r} is a {type(obj).__name__}, not a class")
        return obj

    defined = [
        v for v in namespace.values()
        if inspect.isclass(v) and v.__module__ == module.__name__
    ]
    if len(defined) == 1:
        return defined[0]
    fallback = namespace.get(DEFAULT_TYPE_NAME)
    if inspect.isclass(fallback):
        return fallback
    if not defined:
        raise LoadError("Compiled source defines no class")
    raise LoadError(
        f"Compiled source defines {len(defined)} classes "
        f"({', '.join(c.__name__ for c in defined)}); name the one to load"
    )


class PythonLoader(Loader):
    """Executes the artifact in a fresh module registered in `sys.modules`.

    Registration is needed for annotation resolution and for dataclasses;
    `unload` removes it again.
    """

    def load(self, artifact: Artifact) -> CompiledType:
        source = artifact.source
        filename = artifact.filename
        module = types.ModuleType(artifact.module_name)
        module.__file__ = filename
        sys.modules[artifact.module_name] = module
        linecache.cache[filename] = (
            len(source.text), None, source.text.splitlines(True), filename,
        )

        try:
            exec(artifact.code, vars(module))
        except Exception as e:
            self._forget(artifact.module_name, filename)
            raise LoadError(f"Failed to load {filename}: {type(e).__name__}: {e}") from e

        try:
            cls = find_class(module, source.type_name)
            compiled = reflect(cls, module_name=artifact.module_name)
        except LoadError:
            self._forget(artifact.module_name, filename)
            raise

        logger.debug("Loaded %r from %s", compiled, filename)
        return compiled

    def unload(self, compiled_type: CompiledType) -> None:
        name = compiled_type.module_name
        if name is None:
            return
        module = sys.modules.get(name)
        filename = getattr(module, "__file__", None)
        self._forget(name, filename)

    def _forget(self, module_name: str, filename: Optional[str]) -> None:
        sys.modules.pop(module_name, None)
        if filename is not None:
            linecache.cache.pop(filename, None)
