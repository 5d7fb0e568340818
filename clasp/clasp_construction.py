"""
Construction strategies: how a Compiled Type becomes the script's instance.

A strategy returns the new instance, or None when the script runs in
static-only mode. Strategies hold nothing but their configured arguments,
so one strategy can serve any number of compiles.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence

from clasp.clasp_datatypes import ClaspError, ConstructionError, NoMatchError, Signature
from clasp.clasp_loader import CompiledType
from clasp.clasp_matcher import best_match, exact_types, first_compatible

logger = logging.getLogger(__name__)


class ConstructionStrategy(ABC):

    @abstractmethod
    def construct(self, compiled_type: CompiledType) -> Any:
        """Return a new instance of `compiled_type`, or None for static-only use."""
        raise NotImplementedError

    @staticmethod
    def no_args() -> 'NoArgs':
        return NoArgs()

    @staticmethod
    def static_only() -> 'StaticOnly':
        return StaticOnly()

    @staticmethod
    def explicit_arguments(*args: Any) -> 'ExplicitArguments':
        return ExplicitArguments(*args)

    @staticmethod
    def by_matching_arguments(*args: Any, strict: bool = False) -> 'ByMatchingArguments':
        return ByMatchingArguments(*args, strict=strict)

    @staticmethod
    def by_argument_types(parameter_types: Sequence[Any], *args: Any) -> 'ByArgumentTypes':
        return ByArgumentTypes(parameter_types, *args)


def _instantiate(compiled_type: CompiledType, constructor: Signature, args: Sequence[Any]) -> Any:
    logger.debug("Constructing %s%r with %d argument(s)", compiled_type.name, constructor, len(args))
    try:
        return compiled_type.construct(args)
    except ClaspError:
        raise
    except Exception as e:
        raise ConstructionError(
            f"Constructor failed for {compiled_type.name}: {type(e).__name__}: {e}"
        ) from e


class NoArgs(ConstructionStrategy):
    """Use the zero-argument constructor; fall back to static-only for static types."""

    def construct(self, compiled_type: CompiledType) -> Any:
        for ctor in compiled_type.constructors:
            if ctor.accepts(0):
                return _instantiate(compiled_type, ctor, ())
        if compiled_type.is_static_only():
            logger.debug("%s has no zero-argument constructor; running static-only", compiled_type.name)
            return None
        raise ConstructionError(
            f"{compiled_type.name} has no constructor without arguments "
            f"(declared: {list(compiled_type.constructors)!r})"
        )

    def __repr__(self) -> str:
        return "NoArgs()"


class StaticOnly(ConstructionStrategy):
    """Never construct; only static operations and class attributes are used."""

    def construct(self, compiled_type: CompiledType) -> Any:
        return None

    def __repr__(self) -> str:
        return "StaticOnly()"


class ExplicitArguments(ConstructionStrategy):
    """First declared constructor that accepts the arguments, without ranking."""

    def __init__(self, *args: Any):
        self.args = tuple(args)

    def construct(self, compiled_type: CompiledType) -> Any:
        try:
            ctor = first_compatible(compiled_type.constructors, self.args)
        except NoMatchError as e:
            raise ConstructionError(f"No constructor of {compiled_type.name} accepts the arguments: {e}") from e
        return _instantiate(compiled_type, ctor, self.args)

    def __repr__(self) -> str:
        return f"ExplicitArguments{self.args!r}"


class ByMatchingArguments(ConstructionStrategy):
    """Most specific constructor for the arguments, per the signature matcher."""

    def __init__(self, *args: Any, strict: bool = False):
        self.args = tuple(args)
        self.strict = strict

    def construct(self, compiled_type: CompiledType) -> Any:
        try:
            ctor = best_match(compiled_type.constructors, self.args, strict=self.strict)
        except NoMatchError as e:
            raise ConstructionError(f"No constructor of {compiled_type.name} matches: {e}") from e
        return _instantiate(compiled_type, ctor, self.args)

    def __repr__(self) -> str:
        return f"ByMatchingArguments{self.args!r}"


class ByArgumentTypes(ConstructionStrategy):
    """The constructor declaring exactly `parameter_types`."""

    def __init__(self, parameter_types: Sequence[Any], *args: Any):
        self.parameter_types = tuple(parameter_types)
        self.args = tuple(args)

    def construct(self, compiled_type: CompiledType) -> Any:
        try:
            ctor = exact_types(compiled_type.constructors, self.parameter_types)
        except NoMatchError as e:
            raise ConstructionError(f"{compiled_type.name}: {e}") from e
        return _instantiate(compiled_type, ctor, self.args)

    def __repr__(self) -> str:
        return f"ByArgumentTypes({self.parameter_types!r}, *{self.args!r})"
