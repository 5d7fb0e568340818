"""
Defines the core data types for the clasp runtime.

This module provides the error hierarchy, the source/artifact records that
travel between the compiler and the loader, and the descriptors that make up
a Compiled Type (constructor signatures, methods, public attributes).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import CodeType
from typing import Any, Dict, Optional, Tuple


# =================================================================
# Errors
# =================================================================

class ClaspError(Exception):
    """Base exception for everything raised by clasp."""
    pass


class CompilationError(ClaspError):
    """Raised when the compiler service rejects the source."""
    def __init__(self, diagnostics: str):
        super().__init__(diagnostics)
        self.diagnostics = diagnostics


class LoadError(ClaspError):
    """Raised when a compiled artifact can't be turned into a Compiled Type."""
    pass


class ConstructionError(ClaspError):
    """Raised when no constructor matches or the constructor itself raised."""
    pass


class InvocationFactoryError(ClaspError):
    """Raised when a deferred invocation strategy can't resolve against a type."""
    pass


class InvocationError(ClaspError):
    """Raised when no operation matches or the invoked operation raised."""
    pass


class BindingError(ClaspError):
    """Raised when an environment variable can't be pushed into an attribute."""
    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class NoMatchError(ClaspError):
    """Raised by the signature matcher when no candidate accepts the arguments."""
    pass


class AmbiguousMatchError(NoMatchError):
    """Raised by strict matching when several candidates tie for the best score."""
    def __init__(self, message: str, candidates: Tuple[Any, ...] = ()):
        super().__init__(message)
        self.candidates = candidates


class ConfigError(ClaspError):
    """Raised for an invalid engine configuration."""
    pass


# =================================================================
# Source and artifact
# =================================================================

@dataclass(frozen=True)
class SourceUnit:
    """Source text plus the name of the class it is expected to define."""
    text: str
    type_name: Optional[str] = None
    filename: Optional[str] = None


@dataclass(frozen=True)
class Artifact:
    """What the compiler hands to the loader: a code object and where it came from."""
    source: SourceUnit
    code: CodeType
    module_name: str
    filename: str


# =================================================================
# Descriptors
# =================================================================

@dataclass(frozen=True)
class Parameter:
    name: str
    type: Any = object
    has_default: bool = False

    def __repr__(self) -> str:
        return f"{self.name}: {type_display_name(self.type)}{' = ...' if self.has_default else ''}"


@dataclass(frozen=True)
class Signature:
    """An ordered list of positional parameters."""
    parameters: Tuple[Parameter, ...] = ()

    @property
    def parameter_types(self) -> Tuple[Any, ...]:
        return tuple(p.type for p in self.parameters)

    @property
    def required_count(self) -> int:
        return sum(1 for p in self.parameters if not p.has_default)

    def accepts(self, count: int) -> bool:
        """True if this signature can be called with `count` positional arguments."""
        return self.required_count <= count <= len(self.parameters)

    def __repr__(self) -> str:
        return "(" + ", ".join(repr(p) for p in self.parameters) + ")"


INSTANCE = "instance"
STATIC = "static"
CLASS = "class"


@dataclass(frozen=True)
class MethodDescriptor:
    """A public operation of a Compiled Type.

    Overloads declared with `typing.overload` share a name and produce one
    descriptor each; they all dispatch to the same implementation.
    """
    name: str
    signature: Signature
    kind: str = INSTANCE
    declared: bool = True
    owner: str = ""

    @property
    def is_static(self) -> bool:
        return self.kind in (STATIC, CLASS)

    @property
    def parameter_types(self) -> Tuple[Any, ...]:
        return self.signature.parameter_types

    def __repr__(self) -> str:
        prefix = "" if self.kind == INSTANCE else f"{self.kind} "
        return f"<Method {prefix}{self.owner + '.' if self.owner else ''}{self.name}{self.signature!r}>"


@dataclass(frozen=True)
class AttributeDescriptor:
    """A public attribute. Static attributes (`ClassVar`) live on the class."""
    name: str
    type: Any = object
    is_static: bool = False

    def __repr__(self) -> str:
        prefix = "static " if self.is_static else ""
        return f"<Attribute {prefix}{self.name}: {type_display_name(self.type)}>"


def type_display_name(tp: Any) -> str:
    if tp is None or tp is type(None):
        return "None"
    if isinstance(tp, type):
        return tp.__qualname__
    return repr(tp).replace("typing.", "")


# =================================================================
# Result helpers
# =================================================================

@dataclass
class EvaluationRecord:
    """What a single evaluation did, kept on the Compiled Script for introspection."""
    pushed: Dict[str, Any] = field(default_factory=dict)
    pulled: Dict[str, Any] = field(default_factory=dict)
    result: Any = None
