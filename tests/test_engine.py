import io
import sys

import pytest

from clasp.clasp_bindings import GLOBAL_SCOPE, ScriptContext
from clasp.clasp_construction import ByMatchingArguments, StaticOnly
from clasp.clasp_datatypes import (
    BindingError, CompilationError, ConstructionError, InvocationError, InvocationFactoryError,
)
from clasp.clasp_engine import Engine, read_script
from clasp.clasp_invocation import ByName, by_name

COUNTING = """
class Script:
    message: str = "Counting"
    counter: int = 1

    def run(self) -> str:
        out = f"{self.message} #{self.counter}"
        self.counter += 1
        return out
"""

SHARED = """
class Accumulator:
    total: int = 0
    note: str = ""

    def run(self) -> str:
        self.total += 1
        return f"{self.total} {self.note}".strip()
"""


def script_modules():
    return {name for name in sys.modules if name.startswith("clasp_script_")}


def test_counting_end_to_end():
    engine = Engine()
    script = engine.compile(COUNTING)
    assert script.evaluate() == "Counting #1"
    assert script.evaluate() == "Counting #2"
    assert engine.get("counter") == 3
    assert engine.get("message") == "Counting"


def test_reused_script_keeps_instance_state_with_fresh_sessions():
    engine = Engine()
    script = engine.compile(COUNTING)
    assert script.evaluate({}) == "Counting #1"
    assert script.evaluate({}) == "Counting #2"
    assert script.evaluate({}) == "Counting #3"


def test_global_message_is_pushed_and_kept():
    engine = Engine()
    engine.put_global("message", "Hello")
    script = engine.compile(COUNTING)
    session = {}
    assert script.evaluate(session) == "Hello #1"
    assert engine.get_global("message") == "Hello"
    assert session == {"counter": 2}


def test_engine_evaluate_builds_fresh_instance_each_time():
    engine = Engine()
    assert engine.evaluate(COUNTING) == "Counting #1"
    assert engine.evaluate(COUNTING) == "Counting #1"


def test_global_writes_visible_to_other_scripts_sessions_are_not():
    engine = Engine()
    engine.put_global("total", 10)
    first = engine.compile(SHARED)
    second = engine.compile(SHARED)

    assert first.evaluate({"note": "first"}) == "11 first"
    assert engine.get_global("total") == 11
    assert engine.get_global("note") is None

    session = {}
    assert second.evaluate(session) == "12"
    assert engine.get_global("total") == 12
    assert session == {"note": ""}


def test_unknown_variable_stops_before_invocation():
    engine = Engine()
    script = engine.compile(COUNTING)
    with pytest.raises(BindingError, match="no public attribute 'bogus'"):
        script.evaluate({"bogus": 1})
    assert script.instance.counter == 1


def test_static_only_script_uses_class_attributes():
    src = """
from typing import ClassVar

class Tool:
    total: ClassVar[int] = 0

    def __init__(self, size: int):
        self.size = size

    @classmethod
    def run(cls) -> int:
        cls.total += 1
        return cls.total
"""
    engine = Engine()
    engine.put_global("total", 5)
    script = engine.compile(src)
    assert script.instance is None
    assert script.evaluate({}) == 6
    assert engine.get_global("total") == 6


def test_configured_strategies():
    src = """
from typing import overload

class Greeter:
    @overload
    def __init__(self, text: object, count: int) -> None: ...
    @overload
    def __init__(self, text: str, count: int) -> None: ...
    def __init__(self, text, count):
        self.text = text
        self.count = count

    def get_message(self) -> str:
        return f"{self.text} x{self.count}"

    def shout(self) -> str:
        return self.get_message().upper()
"""
    engine = Engine(
        construction_strategy=ByMatchingArguments("Hello", 42),
        invocation_strategy_factory=by_name("get_message"),
    )
    script = engine.compile(src)
    assert script.evaluate() == "Hello x42"
    assert script.invoke(by_name("shout")) == "HELLO X42"
    assert isinstance(script.invocation_strategy, ByName)
    assert script.invocation_strategy.name == "get_message"


def test_plain_callable_as_invocation_factory():
    engine = Engine(invocation_strategy_factory=lambda ct: ByName(ct, "run"))
    assert engine.evaluate(COUNTING) == "Counting #1"


def test_invocation_strategy_can_be_replaced():
    src = "class Two:\n    def a(self):\n        return 'a'\n\n    def b(self):\n        return 'b'\n"
    engine = Engine(invocation_strategy_factory=by_name("a"))
    script = engine.compile(src)
    script.invocation_strategy = ByName(script.compiled_type, "b")
    assert script.evaluate() == "b"
    with pytest.raises(TypeError):
        script.invocation_strategy = "b"


def test_compile_failures_unload_module():
    before = script_modules()
    with pytest.raises(InvocationFactoryError):
        Engine().compile("class Two:\n    def a(self):\n        pass\n\n    def b(self):\n        pass\n")
    src = "class NeedsArg:\n    def __init__(self, x: int):\n        pass\n\n    def run(self):\n        pass\n"
    with pytest.raises(ConstructionError):
        Engine().compile(src)
    assert script_modules() == before


def test_one_shot_evaluate_unloads_module(tmp_path):
    path = tmp_path / "counting.py"
    path.write_text(COUNTING, encoding="utf-8")
    engine = Engine()
    before = script_modules()
    for _ in range(20):
        assert engine.evaluate(COUNTING) == "Counting #1"
    assert engine.evaluate_file(path) == "Counting #1"
    src = "class Boom:\n    def run(self):\n        raise KeyError('k')\n"
    with pytest.raises(InvocationError):
        engine.evaluate(src)
    assert script_modules() == before


def test_script_as_context_manager():
    engine = Engine()
    with engine.compile(COUNTING) as script:
        module_name = script.compiled_type.module_name
        assert module_name in sys.modules
        assert script.evaluate() == "Counting #1"
    assert module_name not in sys.modules
    assert script.evaluate() == "Counting #2"


def test_script_reusable_after_invocation_error():
    src = """
class Flaky:
    calls: int = 0

    def run(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("first call fails")
        return self.calls
"""
    script = Engine().compile(src)
    with pytest.raises(InvocationError, match="RuntimeError: first call fails"):
        script.evaluate({})
    assert script.evaluate({}) == 2
    assert script.instance.calls == 2


def test_compilation_error_from_engine():
    with pytest.raises(CompilationError, match="line 1"):
        Engine().compile("class (:\n")


def test_invocation_error_from_evaluate():
    src = "class Boom:\n    def run(self):\n        raise KeyError('k')\n"
    with pytest.raises(InvocationError, match="Boom.run: KeyError"):
        Engine().evaluate(src)


def test_static_only_strategy_with_instance_method():
    engine = Engine(construction_strategy=StaticOnly())
    with pytest.raises(InvocationError, match="requires an instance"):
        engine.evaluate(COUNTING)


def test_explicit_type_name():
    src = "class Helper:\n    pass\n\nclass Main:\n    def run(self):\n        return 'main'\n"
    assert Engine(type_name="Main").evaluate(src) == "main"
    assert Engine().compile(src, type_name="Main").compiled_type.name == "Main"


def test_compile_file(tmp_path):
    path = tmp_path / "counting.py"
    path.write_text(COUNTING, encoding="utf-8")
    engine = Engine()
    assert engine.evaluate_file(path) == "Counting #1"
    script = engine.compile_file(str(path))
    assert script.compiled_type.name == "Script"


def test_source_from_stream():
    assert Engine().evaluate(io.StringIO(COUNTING)) == "Counting #1"
    assert read_script(io.BytesIO(b"x = 1")) == "x = 1"
    with pytest.raises(TypeError):
        read_script(42)


def test_explicit_context():
    engine = Engine()
    script = engine.compile(COUNTING)
    ctx = ScriptContext({"message": "Ctx"}, {})
    assert script.evaluate(context=ctx) == "Ctx #1"
    assert ctx.session_bindings["counter"] == 2
    assert engine.get("counter") is None
    with pytest.raises(ValueError):
        script.evaluate({}, context=ctx)


def test_last_evaluation_and_variables():
    script = Engine().compile(COUNTING)
    script.evaluate({"counter": 5})
    record = script.last_evaluation
    assert record.pushed == {"counter": 5}
    assert record.pulled == {"message": "Counting", "counter": 6}
    assert record.result == "Counting #5"
    assert script.get_variables() == {"message": "Counting", "counter": 6}


def test_bindings_accessors():
    engine = Engine()
    engine.set_bindings({"message": "Set"}, GLOBAL_SCOPE)
    assert engine.get_bindings(GLOBAL_SCOPE)["message"] == "Set"
    assert len(engine.create_bindings()) == 0
    assert engine.evaluate(COUNTING) == "Set #1"


def test_setters_type_check():
    engine = Engine()
    with pytest.raises(TypeError):
        engine.construction_strategy = "no_args"
    with pytest.raises(TypeError):
        engine.context = {}
