import pytest

from nodescript.compiler.errors import CompileError, ErrorKind
from nodescript.core import NodeSchema as ns
from nodescript.core.GraphPrimitives import Parameter
from nodescript.core.Types import ValueType
from nodescript.noderegistry.FunctionRegistry import FunctionRegistry

from sample_graphs import ADD_PARAMS, N, add_function, caller_function, calls_add, empty_program


class TestRegistration:
    def setup_method(self):
        self.registry = FunctionRegistry()

    def test_register_and_lookup(self):
        fn = add_function()
        self.registry.register(fn)
        assert self.registry.lookup("add") is fn
        assert "add" in self.registry
        assert self.registry.names() == ["add"]

    def test_duplicate_name(self):
        self.registry.register(add_function())
        with pytest.raises(CompileError) as exc:
            self.registry.register(add_function())
        assert exc.value.kind == ErrorKind.DUPLICATE_FUNCTION

    def test_replace_returns_previous(self):
        first = add_function()
        self.registry.register(first)
        assert self.registry.replace(add_function()) is first
        assert self.registry.replace(caller_function("ping", "add")) is None
        assert self.registry.names() == ["add", "ping"]

    def test_remove(self):
        self.registry.register(add_function())
        self.registry.remove("add")
        assert self.registry.lookup("add") is None
        with pytest.raises(CompileError) as exc:
            self.registry.remove("add")
        assert exc.value.kind == ErrorKind.UNKNOWN_FUNCTION

    def test_snapshot_is_read_only_and_detached(self):
        self.registry.register(add_function())
        snapshot = self.registry.snapshot()
        with pytest.raises(TypeError):
            snapshot["other"] = add_function()
        self.registry.remove("add")
        assert "add" in snapshot


class TestCallChecks:
    def setup_method(self):
        self.registry = FunctionRegistry([add_function()])

    def test_matching_call(self):
        assert self.registry.check_calls(calls_add().build()) == []

    def test_unknown_function(self):
        b = empty_program()
        b.add(ns.function_call("call", "mul", ADD_PARAMS, N, {"a": 1, "b": 2}))
        b.sequence("enter", "call")
        [error] = self.registry.check_calls(b.build())
        assert error.kind == ErrorKind.UNKNOWN_FUNCTION
        assert error.node_ids == ("call",)

    def test_wrong_argument_count(self):
        b = empty_program()
        b.add(ns.function_call("call", "add", ADD_PARAMS[:1], N, {"a": 1}))
        b.sequence("enter", "call")
        [error] = self.registry.check_calls(b.build())
        assert error.kind == ErrorKind.ARITY_MISMATCH

    def test_wrong_argument_type(self):
        params = (Parameter("a", N), Parameter("b", ValueType.STRING))
        b = empty_program()
        b.add(ns.function_call("call", "add", params, N, {"a": 1, "b": "2"}))
        b.sequence("enter", "call")
        [error] = self.registry.check_calls(b.build())
        assert error.kind == ErrorKind.ARITY_MISMATCH
        assert "'b: string'" in error.message

    def test_result_slot_must_match_return_type(self):
        b = empty_program()
        b.add(ns.function_call("call", "add", ADD_PARAMS, None, {"a": 1, "b": 2}))
        b.sequence("enter", "call")
        [error] = self.registry.check_calls(b.build())
        assert error.kind == ErrorKind.ARITY_MISMATCH


class TestCallGraph:
    def test_callees_come_first(self):
        registry = FunctionRegistry([
            caller_function("main_loop", "step"),
            caller_function("step", "add"),
            add_function(),
            caller_function("alpha", "add"),
        ])
        assert registry.emission_order() == ["add", "alpha", "step", "main_loop"]
        assert registry.check_call_cycles() == []

    def test_self_recursion_is_allowed(self):
        registry = FunctionRegistry([caller_function("spin", "spin")])
        assert registry.check_call_cycles() == []
        assert registry.emission_order() == ["spin"]

    def test_mutual_recursion_is_rejected(self):
        registry = FunctionRegistry([caller_function("ping", "pong"), caller_function("pong", "ping")])
        [error] = registry.check_call_cycles()
        assert error.kind == ErrorKind.CALL_CYCLE
        assert "ping -> pong" in error.message
        assert error.node_ids == ("call", "call")
        assert sorted(registry.emission_order()) == ["ping", "pong"]
