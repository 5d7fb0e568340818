"""
The engine: compiles class source into CompiledScripts and owns the
environment they share.

    engine = Engine()
    script = engine.compile(source)
    script.evaluate()                      # engine's own context
    script.evaluate({"name": "World"})     # fresh session, engine's global map

Everything runs synchronously on the caller's thread. Compilation is the only
slow step; callers who need concurrency run `compile` / `evaluate` on their
own threads and lock around evaluations that share an instance or global
names.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Any, Callable, Mapping, Optional, Union

from clasp.clasp_bindings import GLOBAL_SCOPE, SESSION_SCOPE, Bindings, ScriptContext
from clasp.clasp_compiler import Compiler, PythonCompiler
from clasp.clasp_construction import ConstructionStrategy, NoArgs
from clasp.clasp_datatypes import ClaspError, ConstructionError, LoadError, SourceUnit
from clasp.clasp_invocation import (
    AutoDetectFactory, InvocationStrategy, InvocationStrategyFactory, as_factory, resolve_strategy,
)
from clasp.clasp_loader import CompiledType, Loader, PythonLoader
from clasp.clasp_script import CompiledScript

logger = logging.getLogger(__name__)

Source = Union[str, IO[str]]


def read_script(source: Source) -> str:
    if isinstance(source, str):
        return source
    read = getattr(source, "read", None)
    if read is None:
        raise TypeError(f"Expected source text or a readable stream, got {type(source).__name__}")
    text = read()
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return text


class Engine:
    """Compiles script classes and evaluates them against a shared environment."""

    def __init__(
        self,
        construction_strategy: Optional[ConstructionStrategy] = None,
        invocation_strategy_factory: Optional[
            Union[InvocationStrategyFactory, Callable[[CompiledType], InvocationStrategy]]
        ] = None,
        type_name: Optional[str] = None,
        compiler: Optional[Compiler] = None,
        loader: Optional[Loader] = None,
        context: Optional[ScriptContext] = None,
    ):
        self.construction_strategy = construction_strategy or NoArgs()
        self.invocation_strategy_factory = invocation_strategy_factory or AutoDetectFactory()
        self.type_name = type_name
        self.compiler = compiler or PythonCompiler()
        self.loader = loader or PythonLoader()
        self.context = context or ScriptContext()

    @classmethod
    def from_config(cls, config: Any) -> 'Engine':
        """Build an engine from an EngineConfig, a mapping, or YAML text."""
        from clasp.clasp_config import EngineConfig
        if not isinstance(config, EngineConfig):
            config = EngineConfig.from_value(config)
        return config.create_engine(cls)

    # -- strategies ----------------------------------------------------

    @property
    def construction_strategy(self) -> ConstructionStrategy:
        return self._construction_strategy

    @construction_strategy.setter
    def construction_strategy(self, strategy: ConstructionStrategy) -> None:
        if not isinstance(strategy, ConstructionStrategy):
            raise TypeError(f"Expected a ConstructionStrategy, got {type(strategy).__name__}")
        self._construction_strategy = strategy

    @property
    def invocation_strategy_factory(self) -> InvocationStrategyFactory:
        return self._invocation_strategy_factory

    @invocation_strategy_factory.setter
    def invocation_strategy_factory(self, factory: Any) -> None:
        self._invocation_strategy_factory = as_factory(factory)

    # -- environment ---------------------------------------------------

    @property
    def context(self) -> ScriptContext:
        return self._context

    @context.setter
    def context(self, context: ScriptContext) -> None:
        if not isinstance(context, ScriptContext):
            raise TypeError(f"Expected a ScriptContext, got {type(context).__name__}")
        self._context = context

    def create_bindings(self) -> Bindings:
        return Bindings()

    def get_bindings(self, scope: str = SESSION_SCOPE) -> Bindings:
        return self._context.get_bindings(scope)

    def set_bindings(self, bindings: Mapping[str, Any], scope: str = SESSION_SCOPE) -> None:
        self._context.set_bindings(bindings, scope)

    def put(self, name: str, value: Any) -> None:
        """Set a session variable of the engine's own context."""
        self._context.session_bindings[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self._context.session_bindings.get(name, default)

    def put_global(self, name: str, value: Any) -> None:
        self._context.global_bindings[name] = value

    def get_global(self, name: str, default: Any = None) -> Any:
        return self._context.global_bindings.get(name, default)

    # -- compile / evaluate --------------------------------------------

    def compile(self, source: Source, type_name: Optional[str] = None, filename: Optional[str] = None) -> CompiledScript:
        """Compile `source`, load its class, build the instance and resolve the strategy.

        Raises:
            CompilationError: The compiler rejected the source (diagnostics attached)
            LoadError: The compiled code could not be executed or the class not found
            ConstructionError: No constructor matched, or it raised
            InvocationFactoryError: The invocation strategy could not be resolved
        """
        unit = SourceUnit(
            text=read_script(source),
            type_name=type_name or self.type_name,
            filename=filename,
        )
        artifact = self.compiler.compile(unit)
        compiled_type = self._load(artifact)
        try:
            instance = self._construct(compiled_type)
            strategy = resolve_strategy(self._invocation_strategy_factory, compiled_type)
        except ClaspError:
            self.loader.unload(compiled_type)
            raise

        logger.info(
            "Compiled %s (%s, %s)",
            compiled_type.name, "static-only" if instance is None else "instance", strategy,
        )
        return CompiledScript(compiled_type, instance, strategy, engine=self)

    def compile_file(self, path: Union[str, Path], type_name: Optional[str] = None) -> CompiledScript:
        path = Path(path)
        return self.compile(path.read_text(encoding="utf-8"), type_name=type_name, filename=str(path))

    def evaluate(
        self,
        source: Source,
        bindings: Optional[Mapping[str, Any]] = None,
        context: Optional[ScriptContext] = None,
    ) -> Any:
        """Compile and evaluate once. Every call builds a fresh instance and unloads it afterwards."""
        with self.compile(source) as script:
            return script.evaluate(bindings=bindings, context=context)

    def evaluate_file(
        self,
        path: Union[str, Path],
        bindings: Optional[Mapping[str, Any]] = None,
        context: Optional[ScriptContext] = None,
    ) -> Any:
        with self.compile_file(path) as script:
            return script.evaluate(bindings=bindings, context=context)

    def _load(self, artifact) -> CompiledType:
        try:
            return self.loader.load(artifact)
        except LoadError:
            raise
        except Exception as e:
            raise LoadError(f"Failed to load {artifact.filename}: {type(e).__name__}: {e}") from e

    def _construct(self, compiled_type: CompiledType) -> Any:
        try:
            return self._construction_strategy.construct(compiled_type)
        except ClaspError:
            raise
        except Exception as e:
            raise ConstructionError(
                f"Construction failed for {compiled_type.name}: {type(e).__name__}: {e}"
            ) from e

    def __repr__(self) -> str:
        return (
            f"<Engine construction={self._construction_strategy!r} "
            f"invocation={self._invocation_strategy_factory!r} {self._context!r}>"
        )


__all__ = ["Engine", "read_script", "GLOBAL_SCOPE", "SESSION_SCOPE"]
