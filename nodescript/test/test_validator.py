import pytest

from nodescript.compiler.errors import ErrorKind, GraphError
from nodescript.compiler.validator import loop_back_edges, strongly_connected, validate, validate_function
from nodescript.core import NodeSchema as ns
from nodescript.core.GraphPrimitives import Function, GraphBuilder, Parameter
from nodescript.core.Types import ExecLabel, ValueType, VariableScope

from sample_graphs import add_function, counter, empty_program, greeting, yes_no


def kinds(errors):
    return [e.kind for e in errors]


class TestValidGraphs:
    @pytest.mark.parametrize("builder", [greeting, yes_no, counter, empty_program])
    def test_sample_programs_are_clean(self, builder):
        assert validate(builder().build()) == []

    def test_function_body_is_clean(self):
        assert validate_function(add_function()) == []

    def test_loop_back_edge_is_detected(self):
        graph = counter().build()
        back = loop_back_edges(graph)
        assert [e.id for e in graph.exec_edges if e.id in back] == [
            e.id for e in graph.exec_edges if e.from_node_id == "set_i"
        ]


class TestEntry:
    def test_missing_entry(self):
        b = GraphBuilder("main")
        b.add(ns.print_node("p", "x"))
        assert kinds(validate(b.build())) == [ErrorKind.MISSING_ENTRY]

    def test_two_entries_are_reported_together(self):
        b = empty_program()
        b.add(ns.entry("enter2"))
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.MULTIPLE_ENTRIES]
        assert errors[0].node_ids == ("enter", "enter2")

    def test_entry_node_inside_function_body(self):
        b = GraphBuilder("f_body", "f")
        b.add(ns.function_definition("def", "f", ()))
        b.add(ns.entry("stray"))
        b.add(ns.return_node("ret"))
        b.sequence("def", "ret")
        errors = validate_function(Function("f", (), b.build()))
        assert kinds(errors) == [ErrorKind.MISPLACED_ENTRY]
        assert errors[0].node_ids == ("stray",)


class TestEdges:
    def test_dangling_edges(self):
        b = empty_program()
        b.add(ns.print_node("p", "x"))
        b.connect("ghost", "value", "p", "value")
        b.chain("enter", "nowhere")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.DANGLING_EDGE, ErrorKind.DANGLING_EDGE]

    def test_two_edges_into_one_input(self):
        b = greeting()
        b.add(ns.literal("extra", "!"))
        b.connect("extra", "value", "cat", "a")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.MULTIPLE_DATA_EDGES]
        assert errors[0].node_ids == ("cat",)

    def test_label_not_allowed_for_kind(self):
        b = empty_program()
        b.add(ns.print_node("p", "x"))
        b.chain("enter", "p", ExecLabel.THEN)
        assert kinds(validate(b.build())) == [ErrorKind.INVALID_EXEC_LABEL]

    def test_duplicate_label(self):
        b = empty_program()
        b.add(ns.print_node("p", "x"))
        b.add(ns.print_node("q", "y"))
        b.chain("enter", "p")
        b.chain("enter", "q")
        assert kinds(validate(b.build())) == [ErrorKind.DUPLICATE_EXEC_LABEL]

    def test_exec_edge_back_into_entry(self):
        b = empty_program()
        b.add(ns.print_node("p", "x"))
        b.sequence("enter", "p", "enter")
        assert ErrorKind.EXEC_INTO_ENTRY in kinds(validate(b.build()))


class TestConnections:
    def test_unconnected_input_without_default(self):
        b = empty_program()
        b.add(ns.print_node("p"))
        b.sequence("enter", "p")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.MISSING_CONNECTION]
        assert errors[0].node_ids == ("p",)

    def test_branch_without_else(self):
        b = yes_no()
        b.exec_edges = [e for e in b.exec_edges if e.label != ExecLabel.ELSE]
        graph = b.build()
        errors = validate(graph)
        assert kinds(errors) == [ErrorKind.MISSING_EXEC_EDGE]
        assert errors[0].node_ids == ("if",)


class TestCycles:
    def test_data_cycle_names_the_node_set(self):
        b = empty_program()
        b.add(ns.operator("x", "add", {"b": 1}))
        b.add(ns.operator("y", "add", {"b": 2}))
        b.add(ns.print_node("p"))
        b.connect("x", "result", "y", "a")
        b.connect("y", "result", "x", "a")
        b.connect("y", "result", "p", "value")
        b.sequence("enter", "p")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.DATA_CYCLE]
        assert isinstance(errors[0], GraphError)
        assert errors[0].node_ids == ("x", "y")
        assert sorted(errors[0].edge_ids) == ["d1", "d2"]

    def test_exec_cycle_outside_a_loop(self):
        b = empty_program()
        b.add(ns.print_node("p", "a"))
        b.add(ns.print_node("q", "b"))
        b.sequence("enter", "p", "q", "p")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.ILLEGAL_EXEC_CYCLE]
        assert errors[0].node_ids == ("p", "q")

    def test_edge_into_loop_from_before_it_is_not_a_back_edge(self):
        b = empty_program()
        b.add(ns.print_node("before", "x"))
        b.add(ns.loop("while", True))
        b.add(ns.print_node("done", "y"))
        b.sequence("enter", "before", "while")
        b.chain("while", "before", ExecLabel.BODY)
        b.chain("while", "done", ExecLabel.EXIT)
        graph = b.build()
        assert loop_back_edges(graph) == set()
        errors = validate(graph)
        assert kinds(errors) == [ErrorKind.ILLEGAL_EXEC_CYCLE]
        assert errors[0].node_ids == ("before", "while")

    def test_strongly_connected_components(self):
        succ = {"a": ["b"], "b": ["a", "c"], "c": []}
        components = strongly_connected(succ, lambda n: succ[n])
        assert sorted(sorted(c) for c in components) == [["a", "b"], ["c"]]


class TestTypes:
    def test_mismatched_slot_types(self):
        b = empty_program()
        b.add(ns.literal("t", True))
        b.add(ns.operator("plus", "add", {"b": 1}))
        b.add(ns.print_node("p"))
        b.connect("t", "value", "plus", "a")
        b.connect("plus", "result", "p", "value")
        b.sequence("enter", "p")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.TYPE_MISMATCH]
        assert errors[0].edge_ids == ("d1",)

    def test_number_feeds_string_slot(self):
        b = empty_program()
        b.add(ns.literal("n", 42))
        b.add(ns.operator("cat", "concat", {"b": "!"}))
        b.add(ns.print_node("p"))
        b.connect("n", "value", "cat", "a")
        b.connect("cat", "result", "p", "value")
        b.sequence("enter", "p")
        assert validate(b.build()) == []

    def test_literal_value_must_match_declared_type(self):
        b = empty_program()
        b.add(ns.literal("bad", "seven", ValueType.NUMBER))
        assert kinds(validate(b.build())) == [ErrorKind.INVALID_LITERAL]

    @pytest.mark.parametrize("value", [[1, 2], {"a": 1}])
    def test_any_literal_must_be_a_scalar(self, value):
        b = empty_program()
        b.add(ns.literal("lst", value, ValueType.ANY))
        b.add(ns.print_node("p"))
        b.connect("lst", "value", "p", "value")
        b.sequence("enter", "p")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.INVALID_LITERAL]
        assert errors[0].node_ids == ("lst",)

    def test_any_default_must_be_a_scalar(self):
        b = empty_program()
        b.add(ns.print_node("p", [1, 2]))
        b.sequence("enter", "p")
        assert kinds(validate(b.build())) == [ErrorKind.INVALID_LITERAL]

    def test_global_initial_value_must_be_a_scalar(self):
        b = empty_program()
        b.declare("g", ValueType.ANY, [1, 2], VariableScope.GLOBAL)
        assert kinds(validate(b.build())) == [ErrorKind.INVALID_LITERAL]

    def test_strings_must_encode_as_utf8(self):
        b = empty_program()
        b.add(ns.literal("s", "\ud800"))
        b.add(ns.print_node("p", "ok \udfff"))
        b.add(ns.print_node("q"))
        b.connect("s", "value", "q", "value")
        b.sequence("enter", "p", "q")
        b.declare("name", ValueType.STRING, "\ud83d")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.INVALID_LITERAL] * 3
        assert [e.node_ids for e in errors] == [("s",), ("p",), ()]

    def test_ordinary_unicode_is_fine(self):
        b = empty_program()
        b.add(ns.print_node("p", "héllo \U0001F600"))
        b.sequence("enter", "p")
        assert validate(b.build()) == []

    def test_unknown_operator(self):
        b = empty_program()
        b.add(ns.operator("op", "power"))
        assert kinds(validate(b.build())) == [ErrorKind.UNKNOWN_OPERATOR]


class TestSideEffectsAndVariables:
    def test_unsequenced_input_feeding_data(self):
        b = empty_program()
        b.add(ns.input_node("ask", "name? "))
        b.add(ns.print_node("p"))
        b.connect("ask", "answer", "p", "value")
        b.sequence("enter", "p")
        errors = validate(b.build())
        assert kinds(errors) == [ErrorKind.UNSEQUENCED_SIDE_EFFECT]
        assert errors[0].node_ids == ("ask", "p")

    def test_duplicate_variable(self):
        b = empty_program()
        b.declare("x", ValueType.NUMBER, 1)
        b.declare("x", ValueType.NUMBER, 2)
        assert kinds(validate(b.build())) == [ErrorKind.DUPLICATE_VARIABLE]

    def test_global_variable_in_function(self):
        params = (Parameter("a", ValueType.NUMBER),)
        b = GraphBuilder("f_body", "f")
        b.declare("g", ValueType.NUMBER, 0, VariableScope.GLOBAL)
        b.add(ns.function_definition("def", "f", params))
        b.add(ns.return_node("ret"))
        b.sequence("def", "ret")
        errors = validate_function(Function("f", params, b.build()))
        assert kinds(errors) == [ErrorKind.INVALID_SCOPE]

    def test_return_type_disagrees_with_signature(self):
        fn = add_function()
        wrong = Function("add", fn.parameters, fn.body, ValueType.STRING)
        assert ErrorKind.SIGNATURE_MISMATCH in kinds(validate_function(wrong))


class TestCollectsEverything:
    def test_errors_from_several_checks_are_all_reported(self):
        b = GraphBuilder("main")
        b.add(ns.print_node("p"))
        b.add(ns.operator("op", "power"))
        b.declare("x", ValueType.NUMBER, "one")
        errors = validate(b.build())
        assert kinds(errors) == [
            ErrorKind.UNKNOWN_OPERATOR,
            ErrorKind.MISSING_ENTRY,
            ErrorKind.MISSING_CONNECTION,
            ErrorKind.INVALID_LITERAL,
        ]

    def test_same_graph_same_errors(self):
        b = GraphBuilder("main")
        b.add(ns.print_node("p"))
        graph = b.build()
        assert [str(e) for e in validate(graph)] == [str(e) for e in validate(graph)]
