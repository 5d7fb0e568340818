import logging

from clasp.clasp_bindings import GLOBAL_SCOPE, SESSION_SCOPE, Bindings, ScriptContext
from clasp.clasp_compiler import Compiler, PythonCompiler
from clasp.clasp_config import EngineConfig
from clasp.clasp_construction import (
    ByArgumentTypes, ByMatchingArguments, ConstructionStrategy, ExplicitArguments, NoArgs, StaticOnly,
)
from clasp.clasp_datatypes import (
    AmbiguousMatchError, AttributeDescriptor, BindingError, ClaspError, CompilationError,
    ConfigError, ConstructionError, InvocationError, InvocationFactoryError, LoadError,
    MethodDescriptor, NoMatchError, Parameter, Signature, SourceUnit,
)
from clasp.clasp_engine import Engine
from clasp.clasp_invocation import (
    AutoDetect, AutoDetectFactory, BoundMethod, ByName, CallableFactory, InvocationStrategy,
    InvocationStrategyFactory, auto_detect, by_argument_types, by_matching_arguments, by_name,
)
from clasp.clasp_loader import CompiledType, Loader, PythonLoader
from clasp.clasp_script import CompiledScript

logging.getLogger(__name__).addHandler(logging.NullHandler())
