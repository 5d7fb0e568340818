"""
Invocation strategies: which operation a Compiled Script runs, and with what.

A strategy is bound to a Compiled Type and executed against the script's
instance (None for static-only scripts). Because auto-detection needs the
type's operation list before any instance exists, the engine holds an
InvocationStrategyFactory and resolves it once per compile.

Overloads declared with `typing.overload` are descriptors only: every
overload of a name runs the same implementation function. Choosing
`op(str, int)` over `op(object, int)` decides which descriptor (and so
which arity and argument check) applies; the implementation itself must
branch on its arguments if the overloads are meant to behave differently.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence, Tuple

from clasp.clasp_datatypes import (
    ClaspError, InvocationError, InvocationFactoryError, MethodDescriptor, NoMatchError,
)
from clasp.clasp_loader import CompiledType
from clasp.clasp_matcher import best_match, exact_types

logger = logging.getLogger(__name__)


class InvocationStrategy(ABC):
    """Runs one operation of a Compiled Type and returns its result."""

    def __init__(self, compiled_type: CompiledType, args: Sequence[Any] = ()):
        self.compiled_type = compiled_type
        self.args = tuple(args)

    @abstractmethod
    def resolve_method(self) -> MethodDescriptor:
        """The operation this strategy will call. Raises InvocationError if there is none."""
        raise NotImplementedError

    def execute(self, instance: Any) -> Any:
        method = self.resolve_method()
        logger.debug("Invoking %r with %d argument(s)", method, len(self.args))
        try:
            return self.compiled_type.invoke(method, instance, self.args)
        except ClaspError:
            raise
        except Exception as e:
            raise InvocationError(
                f"Invocation failed for {self.compiled_type.name}.{method.name}: {type(e).__name__}: {e}"
            ) from e


class AutoDetect(InvocationStrategy):
    """Bind to the only public operation the class declares itself.

    A class with no public operation of its own but a `__call__` is bound to
    `__call__`. Anything else can't be auto-detected.
    """

    def __init__(self, compiled_type: CompiledType):
        super().__init__(compiled_type)
        self.method = self._detect(compiled_type)

    @staticmethod
    def _detect(compiled_type: CompiledType) -> MethodDescriptor:
        declared = compiled_type.declared_methods()
        names = sorted({m.name for m in declared})
        if len(declared) == 1:
            return declared[0]
        if not declared:
            if compiled_type.call_operator is not None:
                return compiled_type.call_operator
            raise InvocationFactoryError(
                f"Cannot auto-detect the method to call: {compiled_type.name} declares no public methods"
            )
        raise InvocationFactoryError(
            f"Cannot auto-detect the method to call: {compiled_type.name} declares "
            f"{len(declared)} public methods ({', '.join(names)})"
        )

    def resolve_method(self) -> MethodDescriptor:
        return self.method

    def __repr__(self) -> str:
        return f"AutoDetect({self.method!r})"


class ByName(InvocationStrategy):
    """The operation called `name`: its zero-argument form, else its only form."""

    def __init__(self, compiled_type: CompiledType, name: str):
        super().__init__(compiled_type)
        self.name = name

    def resolve_method(self) -> MethodDescriptor:
        candidates = self.compiled_type.methods_named(self.name)
        if not candidates:
            raise InvocationError(f"{self.compiled_type.name} has no method {self.name!r}")
        for m in candidates:
            if m.signature.accepts(0):
                return m
        if len(candidates) == 1:
            return candidates[0]
        raise InvocationError(
            f"{self.compiled_type.name}.{self.name} has {len(candidates)} overloads and none takes no arguments"
        )

    def __repr__(self) -> str:
        return f"ByName({self.name!r})"


class ByMatchingArguments(InvocationStrategy):
    """Most specific operation for the arguments, optionally restricted to one name."""

    def __init__(
        self,
        compiled_type: CompiledType,
        *args: Any,
        name: Optional[str] = None,
        strict: bool = False,
    ):
        super().__init__(compiled_type, args)
        self.name = name
        self.strict = strict

    def _candidates(self) -> Tuple[MethodDescriptor, ...]:
        if self.name is None:
            return self.compiled_type.methods
        return self.compiled_type.methods_named(self.name)

    def resolve_method(self) -> MethodDescriptor:
        try:
            return best_match(self._candidates(), self.args, strict=self.strict)
        except NoMatchError as e:
            target = f"{self.compiled_type.name}.{self.name}" if self.name else self.compiled_type.name
            raise InvocationError(f"No method of {target} matches: {e}") from e

    def __repr__(self) -> str:
        return f"ByMatchingArguments({self.name!r}, *{self.args!r})"


class ByArgumentTypes(InvocationStrategy):
    """The overload of `name` declaring exactly `parameter_types`."""

    def __init__(self, compiled_type: CompiledType, name: str, parameter_types: Sequence[Any], *args: Any):
        super().__init__(compiled_type, args)
        self.name = name
        self.parameter_types = tuple(parameter_types)

    def resolve_method(self) -> MethodDescriptor:
        try:
            return exact_types(self.compiled_type.methods_named(self.name), self.parameter_types)
        except NoMatchError as e:
            raise InvocationError(f"{self.compiled_type.name}.{self.name}: {e}") from e

    def __repr__(self) -> str:
        return f"ByArgumentTypes({self.name!r}, {self.parameter_types!r}, *{self.args!r})"


class BoundMethod(InvocationStrategy):
    """A method chosen by the caller, called with fixed arguments."""

    def __init__(self, compiled_type: CompiledType, method: MethodDescriptor, *args: Any):
        super().__init__(compiled_type, args)
        self.method = method

    def resolve_method(self) -> MethodDescriptor:
        return self.method

    def __repr__(self) -> str:
        return f"BoundMethod({self.method!r}, *{self.args!r})"


# =================================================================
# Factories
# =================================================================

class InvocationStrategyFactory(ABC):
    """Produces the invocation strategy for a freshly compiled type."""

    @abstractmethod
    def resolve(self, compiled_type: CompiledType) -> InvocationStrategy:
        raise NotImplementedError


class AutoDetectFactory(InvocationStrategyFactory):
    def resolve(self, compiled_type: CompiledType) -> InvocationStrategy:
        return AutoDetect(compiled_type)

    def __repr__(self) -> str:
        return "AutoDetectFactory()"


class CallableFactory(InvocationStrategyFactory):
    """Adapts a plain function `CompiledType -> InvocationStrategy`."""

    def __init__(self, fn: Callable[[CompiledType], InvocationStrategy]):
        self.fn = fn

    def resolve(self, compiled_type: CompiledType) -> InvocationStrategy:
        return self.fn(compiled_type)

    def __repr__(self) -> str:
        return f"CallableFactory({getattr(self.fn, '__name__', self.fn)!r})"


def as_factory(value: Any) -> InvocationStrategyFactory:
    """Accept a factory or a plain callable wherever a factory is expected."""
    if isinstance(value, InvocationStrategyFactory):
        return value
    if callable(value):
        return CallableFactory(value)
    raise TypeError(f"Expected an InvocationStrategyFactory or callable, got {type(value).__name__}")


def resolve_strategy(factory: InvocationStrategyFactory, compiled_type: CompiledType) -> InvocationStrategy:
    """Run `factory` against `compiled_type`, reporting any failure as InvocationFactoryError."""
    try:
        strategy = factory.resolve(compiled_type)
    except InvocationFactoryError:
        raise
    except Exception as e:
        raise InvocationFactoryError(
            f"Could not create invocation strategy for {compiled_type.name}: {type(e).__name__}: {e}"
        ) from e
    if not isinstance(strategy, InvocationStrategy):
        raise InvocationFactoryError(
            f"{factory!r} returned {type(strategy).__name__}, not an InvocationStrategy"
        )
    logger.debug("Resolved %r for %s", strategy, compiled_type.name)
    return strategy


def auto_detect() -> InvocationStrategyFactory:
    return AutoDetectFactory()


def by_name(name: str) -> InvocationStrategyFactory:
    return CallableFactory(lambda ct: ByName(ct, name))


def by_matching_arguments(*args: Any, name: Optional[str] = None, strict: bool = False) -> InvocationStrategyFactory:
    return CallableFactory(lambda ct: ByMatchingArguments(ct, *args, name=name, strict=strict))


def by_argument_types(name: str, parameter_types: Sequence[Any], *args: Any) -> InvocationStrategyFactory:
    return CallableFactory(lambda ct: ByArgumentTypes(ct, name, parameter_types, *args))
