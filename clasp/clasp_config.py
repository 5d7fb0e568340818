"""
Engine configuration, loadable from YAML.

    type_name: Script
    construction:
      strategy: matching_arguments
      arguments: ["Hello", 42]
    invocation:
      strategy: by_name
      name: get_message
    globals:
      message: Counting
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from clasp.clasp_bindings import ScriptContext
from clasp.clasp_construction import (
    ByMatchingArguments, ConstructionStrategy, ExplicitArguments, NoArgs, StaticOnly,
)
from clasp.clasp_datatypes import ConfigError
from clasp.clasp_invocation import (
    AutoDetectFactory, InvocationStrategyFactory, by_matching_arguments, by_name,
)

CONSTRUCTION_STRATEGIES = ("no_args", "static_only", "explicit_arguments", "matching_arguments")
INVOCATION_STRATEGIES = ("auto", "by_name", "matching_arguments")

_KNOWN_KEYS = {"type_name", "construction", "invocation", "globals"}


def _section(value: Any, name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        return {"strategy": value}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be a mapping or a strategy name, not {type(value).__name__}")
    return dict(value)


def _arguments(section: Dict[str, Any], name: str) -> list:
    args = section.get("arguments") or []
    if not isinstance(args, list):
        raise ConfigError(f"'{name}.arguments' must be a list")
    return args


@dataclass
class EngineConfig:
    type_name: Optional[str] = None
    construction: Dict[str, Any] = field(default_factory=dict)
    invocation: Dict[str, Any] = field(default_factory=dict)
    globals: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'EngineConfig':
        data = dict(data or {})
        unknown = set(data) - _KNOWN_KEYS
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        type_name = data.get("type_name")
        if type_name is not None and not isinstance(type_name, str):
            raise ConfigError("'type_name' must be a string")
        globals_ = data.get("globals") or {}
        if not isinstance(globals_, Mapping) or not all(isinstance(k, str) for k in globals_):
            raise ConfigError("'globals' must be a mapping of names to values")
        config = cls(
            type_name=type_name,
            construction=_section(data.get("construction"), "construction"),
            invocation=_section(data.get("invocation"), "invocation"),
            globals=dict(globals_),
        )
        # Validate strategy names now.
        config.construction_strategy()
        config.invocation_strategy_factory()
        return config

    @classmethod
    def from_yaml(cls, text: str) -> 'EngineConfig':
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML configuration: {e}") from e
        if data is not None and not isinstance(data, Mapping):
            raise ConfigError("Configuration must be a YAML mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'EngineConfig':
        return cls.from_yaml(Path(path).read_text(encoding="utf-8"))

    @classmethod
    def from_value(cls, value: Any) -> 'EngineConfig':
        if isinstance(value, EngineConfig):
            return value
        if isinstance(value, str):
            return cls.from_yaml(value)
        if isinstance(value, Mapping):
            return cls.from_mapping(value)
        raise ConfigError(f"Cannot build a configuration from {type(value).__name__}")

    def construction_strategy(self) -> ConstructionStrategy:
        section = self.construction
        name = section.get("strategy", "no_args")
        args = _arguments(section, "construction")
        match name:
            case "no_args":
                return NoArgs()
            case "static_only":
                return StaticOnly()
            case "explicit_arguments":
                return ExplicitArguments(*args)
            case "matching_arguments":
                return ByMatchingArguments(*args, strict=bool(section.get("strict", False)))
            case _:
                raise ConfigError(
                    f"Unknown construction strategy {name!r}; expected one of {CONSTRUCTION_STRATEGIES}"
                )

    def invocation_strategy_factory(self) -> InvocationStrategyFactory:
        section = self.invocation
        name = section.get("strategy", "auto")
        method = section.get("name")
        match name:
            case "auto":
                return AutoDetectFactory()
            case "by_name":
                if not method:
                    raise ConfigError("Invocation strategy 'by_name' needs a 'name'")
                return by_name(method)
            case "matching_arguments":
                return by_matching_arguments(
                    *_arguments(section, "invocation"),
                    name=method,
                    strict=bool(section.get("strict", False)),
                )
            case _:
                raise ConfigError(
                    f"Unknown invocation strategy {name!r}; expected one of {INVOCATION_STRATEGIES}"
                )

    def create_engine(self, engine_cls=None):
        if engine_cls is None:
            from clasp.clasp_engine import Engine as engine_cls
        return engine_cls(
            construction_strategy=self.construction_strategy(),
            invocation_strategy_factory=self.invocation_strategy_factory(),
            type_name=self.type_name,
            context=ScriptContext(global_bindings=dict(self.globals)),
        )
