"""Small graphs shared by the compiler tests."""

from nodescript.core import NodeSchema as ns
from nodescript.core.GraphPrimitives import Function, GraphBuilder, Parameter
from nodescript.core.Types import ExecLabel, ValueType, VariableScope

N = ValueType.NUMBER
S = ValueType.STRING
B = ValueType.BOOLEAN


def greeting(scope=VariableScope.LOCAL):
    """Print "Hello, " .. name."""
    b = GraphBuilder("main", "Scenario A")
    b.declare("name", S, "World", scope)
    b.add(ns.entry("enter"))
    b.add(ns.literal("hello", "Hello, "))
    b.add(ns.variable_get("who", "name", S))
    b.add(ns.operator("cat", "concat"))
    b.add(ns.print_node("out"))
    b.connect("hello", "value", "cat", "a")
    b.connect("who", "value", "cat", "b")
    b.connect("cat", "result", "out", "value")
    b.sequence("enter", "out")
    return b


def yes_no(join=False):
    """Branch on `flag`, printing yes or no; optionally both arms rejoin at "done"."""
    b = GraphBuilder("main", "Scenario B")
    b.declare("flag", B, True)
    b.add(ns.entry("enter"))
    b.add(ns.variable_get("flag", "flag", B))
    b.add(ns.branch("if"))
    b.add(ns.print_node("yes", "yes"))
    b.add(ns.print_node("no", "no"))
    b.connect("flag", "value", "if", "condition")
    b.sequence("enter", "if")
    b.chain("if", "yes", ExecLabel.THEN)
    b.chain("if", "no", ExecLabel.ELSE)
    if join:
        b.add(ns.print_node("done", "done"))
        b.chain("yes", "done")
        b.chain("no", "done")
    return b


def counter():
    """i = 0; while i < 3: print(i); i = i + 1; then print "done"."""
    b = GraphBuilder("main", "Counter")
    b.declare("i", N, 0)
    b.add(ns.entry("enter"))
    b.add(ns.variable_get("get_i", "i", N))
    b.add(ns.operator("lt", "less", {"b": 3}))
    b.add(ns.loop("while"))
    b.add(ns.print_node("show"))
    b.add(ns.operator("inc", "add", {"b": 1}))
    b.add(ns.variable_set("set_i", "i", N))
    b.add(ns.print_node("done", "done"))
    b.connect("get_i", "value", "lt", "a")
    b.connect("lt", "result", "while", "condition")
    b.connect("get_i", "value", "show", "value")
    b.connect("get_i", "value", "inc", "a")
    b.connect("inc", "result", "set_i", "value")
    b.sequence("enter", "while")
    b.chain("while", "show", ExecLabel.BODY)
    b.sequence("show", "set_i", "while")
    b.chain("while", "done", ExecLabel.EXIT)
    return b


ADD_PARAMS = (Parameter("a", N), Parameter("b", N))


def add_function(with_return=True):
    """add(a: number, b: number) -> number: return a + b."""
    b = GraphBuilder("add_body", "add")
    b.add(ns.function_definition("def", "add", ADD_PARAMS))
    b.add(ns.operator("sum", "add"))
    b.connect("def", "a", "sum", "a")
    b.connect("def", "b", "sum", "b")
    if with_return:
        b.add(ns.return_node("ret", N))
        b.connect("sum", "result", "ret", "value")
        b.sequence("def", "ret")
    return Function("add", ADD_PARAMS, b.build(), N)


def factorial_function():
    """fact(n) = 1 if n <= 1 else n * fact(n - 1)."""
    params = (Parameter("n", N),)
    b = GraphBuilder("fact_body", "fact")
    b.add(ns.function_definition("def", "fact", params))
    b.add(ns.operator("small", "less_equal", {"b": 1}))
    b.add(ns.branch("if"))
    b.add(ns.return_node("base", N, 1))
    b.add(ns.operator("dec", "subtract", {"b": 1}))
    b.add(ns.function_call("recurse", "fact", params, N))
    b.add(ns.operator("mul", "multiply"))
    b.add(ns.return_node("step", N))
    b.connect("def", "n", "small", "a")
    b.connect("small", "result", "if", "condition")
    b.connect("def", "n", "dec", "a")
    b.connect("dec", "result", "recurse", "n")
    b.connect("def", "n", "mul", "a")
    b.connect("recurse", "result", "mul", "b")
    b.connect("mul", "result", "step", "value")
    b.sequence("def", "if")
    b.chain("if", "base", ExecLabel.THEN)
    b.chain("if", "recurse", ExecLabel.ELSE)
    b.sequence("recurse", "step")
    return Function("fact", params, b.build(), N)


def calls_add(first=1, second=2):
    """print(add(first, second)), wiring the literals to `b` before `a`."""
    b = GraphBuilder("main", "Calls")
    b.add(ns.entry("enter"))
    b.add(ns.literal("two", second))
    b.add(ns.literal("one", first))
    b.add(ns.function_call("call", "add", ADD_PARAMS, N))
    b.add(ns.print_node("out"))
    b.connect("two", "value", "call", "b")
    b.connect("one", "value", "call", "a")
    b.connect("call", "result", "out", "value")
    b.sequence("enter", "call", "out")
    return b


def caller_function(name, callee):
    """name() -> nothing: callee(); return."""
    b = GraphBuilder(f"{name}_body", name)
    b.add(ns.function_definition("def", name, ()))
    b.add(ns.function_call("call", callee, ()))
    b.add(ns.return_node("ret"))
    b.sequence("def", "call", "ret")
    return Function(name, (), b.build())


def empty_program(name="Empty"):
    b = GraphBuilder("main", name)
    b.add(ns.entry("enter"))
    return b
