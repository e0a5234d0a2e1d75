import pytest

from nodescript.compiler.emitter import UnitEmitter, emit_globals, emit_unit, program_namer
from nodescript.compiler.errors import CodeGenError, ErrorKind
from nodescript.compiler.ir import Arg, Block, Const, Declare, IfBlock, NodeStmt, Op, Ref, Symbol, UnitIR, WhileBlock
from nodescript.compiler.naming import Namer, sanitize
from nodescript.compiler.resolver import resolve_function, resolve_program
from nodescript.compiler.templates import CodeWriter, render_literal
from nodescript.core import NodeSchema as ns
from nodescript.core.Types import NodeKind, ValueType

from sample_graphs import N, S, add_function, counter, empty_program, factorial_function, yes_no

B = ValueType.BOOLEAN


def emit(unit, functions=()):
    signatures = {fn.name: fn for fn in functions}
    return emit_unit(unit, program_namer((), sorted(signatures)), signatures)


def print_stmt_expr(node_id, expr):
    return NodeStmt(node_id, NodeKind.PRINT, (Arg("value", ValueType.ANY, expr),))


def print_stmt(node_id, value):
    return print_stmt_expr(node_id, Const(value, ValueType.infer(value)))


class TestNaming:
    def test_sanitize(self):
        assert sanitize("total") == "total"
        assert sanitize("my var") == "my_var"
        assert sanitize("2nd") == "_2nd"
        assert sanitize("") == "_"

    @pytest.mark.parametrize("word", ["end", "else", "elseif", "local", "fn", "nil", "print", "while"])
    def test_reserved_words_get_an_underscore(self, word):
        assert sanitize(word) == word + "_"

    def test_collisions_are_suffixed_in_order(self):
        namer = Namer()
        names = [namer.name(Symbol("var", key, "my var")) for key in ("a", "b", "c")]
        assert names == ["my_var", "my_var_2", "my_var_3"]

    def test_same_symbol_same_name(self):
        namer = Namer()
        symbol = Symbol("temp", "n1.result", "result")
        assert namer.name(symbol) == namer.name(symbol) == "result"

    def test_child_namer_avoids_parent_names(self):
        parent = Namer()
        parent.name(Symbol("function", "total", "total"))
        child = parent.child()
        assert child.name(Symbol("var", "x", "total")) == "total_2"
        assert child.name(Symbol("function", "total", "total")) == "total"


class TestLiterals:
    @pytest.mark.parametrize("value, text", [
        (True, "true"),
        (False, "false"),
        (None, "nil"),
        (42, "42"),
        (-1.5, "-1.5"),
        ("say \"hi\"\n", '"say \\"hi\\"\\n"'),
        ("a\\b", '"a\\\\b"'),
    ])
    def test_render_literal(self, value, text):
        assert render_literal(value) == text

    def test_infinity(self):
        assert render_literal(float("inf")) == "(/ 1 0)"


class TestCodeWriter:
    def test_close_appends_to_last_line(self):
        w = CodeWriter()
        w.writeln("(while x").push().writeln("(print x)").pop().close()
        assert w.result() == "(while x\n  (print x))"


class TestStatements:
    def test_branch_with_single_statement_arms(self):
        text = emit(resolve_program(yes_no().build()))
        assert text == '(var flag true)\n(if flag\n  (print "yes")\n  (print "no"))'

    def test_loop(self):
        text = emit(resolve_program(counter().build()))
        assert text == (
            "(var i 0)\n"
            "(while (< i 3)\n"
            "  (print i)\n"
            "  (set i (+ i 1)))\n"
            '(print "done")'
        )

    def test_then_only_uses_when(self):
        unit = UnitIR("main", Block((IfBlock("if", Const(True, B), Block((print_stmt("p", 1),)), Block()),)))
        assert emit(unit) == "(when true\n  (print 1))"

    def test_else_only_negates(self):
        unit = UnitIR("main", Block((IfBlock("if", Const(True, B), Block(), Block((print_stmt("p", 1),))),)))
        assert emit(unit) == "(when (not true)\n  (print 1))"

    def test_multi_statement_arm_uses_do(self):
        arm = Block((print_stmt("p", 1), print_stmt("q", 2)))
        unit = UnitIR("main", Block((IfBlock("if", Const(False, B), arm, Block((print_stmt("r", 3),))),)))
        assert emit(unit) == "(if false\n  (do\n    (print 1)\n    (print 2))\n  (print 3))"

    def test_empty_loop_body(self):
        unit = UnitIR("main", Block((WhileBlock("w", Const(False, B), Block()),)))
        assert emit(unit) == "(while false nil)"

    def test_number_into_string_slot_is_converted(self):
        op = Op("concat", "..", (Const(7, N), Const("!", S)), S)
        unit = UnitIR("main", Block((print_stmt_expr("p", op),)))
        assert emit(unit) == '(print (.. (tostring 7) "!"))'

    def test_define_alone_in_an_arm_keeps_its_scope(self):
        b = yes_no()
        b.nodes[3] = ns.variable_define("yes", "x", N, 5)
        assert emit(resolve_program(b.build())) == (
            "(var flag true)\n"
            "(if flag\n"
            "  (do\n"
            "    (var x 5))\n"
            '  (print "no"))'
        )


class TestInput:
    def test_prompt_then_bound_answer(self):
        b = empty_program()
        b.add(ns.input_node("ask", "Name? "))
        b.add(ns.print_node("echo"))
        b.connect("ask", "answer", "echo", "value")
        b.sequence("enter", "ask", "echo")
        assert emit(resolve_program(b.build())) == '(io.write "Name? ")\n(local answer (io.read))\n(print answer)'

    def test_unused_answer_without_prompt(self):
        b = empty_program()
        b.add(ns.input_node("ask"))
        b.sequence("enter", "ask")
        assert emit(resolve_program(b.build())) == "(io.read)"


class TestFunctions:
    def test_two_parameter_function_returns_the_sum(self):
        fn = add_function()
        assert emit(resolve_function(fn), [fn]) == "(fn add [a b]\n  (+ a b))"

    def test_recursive_function(self):
        fn = factorial_function()
        assert emit(resolve_function(fn), [fn]) == (
            "(fn fact [n]\n"
            "  (if (<= n 1)\n"
            "    1\n"
            "    (do\n"
            "      (local result (fact (- n 1)))\n"
            "      (* n result))))"
        )


class TestFailures:
    def test_kind_without_template(self):
        unit = UnitIR("main", Block((NodeStmt("lit", NodeKind.LITERAL),)))
        with pytest.raises(CodeGenError) as exc:
            emit(unit)
        assert exc.value.kind == ErrorKind.UNSUPPORTED_NODE_KIND
        assert exc.value.node_ids == ("lit",)

    def test_type_mismatch_reaching_codegen(self):
        op = Op("add", "+", (Const("x", S), Const(1, N)), N)
        unit = UnitIR("main", Block((print_stmt_expr("p", op),)))
        with pytest.raises(CodeGenError) as exc:
            emit(unit)
        assert exc.value.kind == ErrorKind.INTERNAL_ERROR

    def test_call_to_unregistered_function(self):
        unit = UnitIR("main", Block((NodeStmt("c", NodeKind.FUNCTION_CALL, function="ghost"),)))
        with pytest.raises(CodeGenError) as exc:
            UnitEmitter(unit, Namer(), {}).emit()
        assert exc.value.kind == ErrorKind.INTERNAL_ERROR

    def test_ref_renders_the_allocated_name(self):
        symbol = Symbol("var", "main:x", "x")
        unit = UnitIR("main", Block((print_stmt_expr("p", Ref(symbol, N)),)))
        assert emit(unit) == "(print x)"

    def test_global_without_literal_syntax(self):
        decl = Declare(Symbol("global", "g", "g"), Const([1, 2], ValueType.ANY))
        with pytest.raises(CodeGenError) as exc:
            emit_globals([decl], Namer(), "Main")
        assert exc.value.kind == ErrorKind.INTERNAL_ERROR
        assert exc.value.unit == "Main"


class TestGlobals:
    def test_globals_use_the_program_namer(self):
        decls = [
            Declare(Symbol("global", "end", "end"), Const(1, N)),
            Declare(Symbol("global", "msg", "msg"), Const("hi", S)),
        ]
        namer = program_namer(decls, [])
        assert emit_globals(decls, namer) == '(var end_ 1)\n(var msg "hi")'
