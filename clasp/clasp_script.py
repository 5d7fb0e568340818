"""
The compiled script: a Compiled Type, its single instance and the strategy
that drives it.

A CompiledScript is reusable. Every evaluation runs against the same
instance, so state held in attributes survives between evaluations unless
the environment overwrites it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from clasp.clasp_bindings import ScriptContext, pull_variables, push_variables, read_attributes
from clasp.clasp_datatypes import EvaluationRecord
from clasp.clasp_invocation import InvocationStrategy, InvocationStrategyFactory, resolve_strategy
from clasp.clasp_loader import CompiledType

if TYPE_CHECKING:
    from clasp.clasp_engine import Engine

logger = logging.getLogger(__name__)


class CompiledScript:
    """Result of `Engine.compile`."""

    def __init__(
        self,
        compiled_type: CompiledType,
        instance: Any,
        invocation_strategy: InvocationStrategy,
        engine: Optional['Engine'] = None,
    ):
        self._compiled_type = compiled_type
        self._instance = instance
        self.invocation_strategy = invocation_strategy
        self._engine = engine
        self.last_evaluation: Optional[EvaluationRecord] = None

    @property
    def engine(self) -> Optional['Engine']:
        return self._engine

    @property
    def compiled_type(self) -> CompiledType:
        return self._compiled_type

    @property
    def instance(self) -> Any:
        """The script object, or None if only static operations are used."""
        return self._instance

    @property
    def invocation_strategy(self) -> InvocationStrategy:
        return self._invocation_strategy

    @invocation_strategy.setter
    def invocation_strategy(self, strategy: InvocationStrategy) -> None:
        if not isinstance(strategy, InvocationStrategy):
            raise TypeError(f"Expected an InvocationStrategy, got {type(strategy).__name__}")
        self._invocation_strategy = strategy

    def evaluate(
        self,
        bindings: Optional[Mapping[str, Any]] = None,
        context: Optional[ScriptContext] = None,
    ) -> Any:
        """Push the environment, run the invocation strategy, pull the environment back.

        Args:
            bindings: Session variables; the engine's global variables still apply
            context: A complete context to use instead (can't be combined with bindings)

        Returns:
            Whatever the invoked operation returned

        Raises:
            BindingError: An environment name has no matching attribute (nothing was invoked)
            InvocationError: No operation matched, or the operation raised
        """
        return self._run(self._invocation_strategy, self._context_for(bindings, context))

    def invoke(
        self,
        strategy: Union[InvocationStrategy, InvocationStrategyFactory],
        bindings: Optional[Mapping[str, Any]] = None,
        context: Optional[ScriptContext] = None,
    ) -> Any:
        """Evaluate once with another strategy, leaving the script's own strategy alone."""
        if isinstance(strategy, InvocationStrategyFactory):
            strategy = resolve_strategy(strategy, self._compiled_type)
        elif not isinstance(strategy, InvocationStrategy):
            raise TypeError(f"Expected an InvocationStrategy, got {type(strategy).__name__}")
        return self._run(strategy, self._context_for(bindings, context))

    def close(self) -> None:
        """Release the loaded module. The instance and class objects stay usable."""
        if self._engine is not None:
            self._engine.loader.unload(self._compiled_type)

    def __enter__(self) -> 'CompiledScript':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get_variables(self) -> Dict[str, Any]:
        """Current values of the script's public attributes."""
        return read_attributes(self._compiled_type, self._instance)

    def _context_for(
        self,
        bindings: Optional[Mapping[str, Any]],
        context: Optional[ScriptContext],
    ) -> ScriptContext:
        if context is not None:
            if bindings is not None:
                raise ValueError("Pass either bindings or a context, not both")
            return context
        if self._engine is None:
            return ScriptContext(session_bindings=bindings)
        if bindings is None:
            return self._engine.context
        return ScriptContext(
            global_bindings=self._engine.context.global_bindings,
            session_bindings=bindings,
        )

    def _run(self, strategy: InvocationStrategy, context: ScriptContext) -> Any:
        pushed = push_variables(self._compiled_type, self._instance, context)
        result = strategy.execute(self._instance)
        pulled = pull_variables(self._compiled_type, self._instance, context)
        self.last_evaluation = EvaluationRecord(pushed=pushed, pulled=pulled, result=result)
        logger.debug("Evaluated %s -> %r", self._compiled_type.name, result)
        return result

    def __repr__(self) -> str:
        mode = "static" if self._instance is None else "instance"
        return f"<CompiledScript {self._compiled_type.name} ({mode}) {self._invocation_strategy!r}>"
