"""
NodeScript Compiler — Execution Order Resolver
==============================================
Maps a validated Graph → UnitIR: a nested block structure the emitter can
translate form-by-form.

Control edges
-------------
Starting at the entry node the resolver follows the single "next" chain.

  BRANCH  "then" and "else" are resolved as independent sub-blocks.  Both
          stop at the join node (the unique nearest node reachable from both
          arms); without one they run to the end of the unit.
  LOOP    "body" is resolved as a sub-block that stops when it reaches the
          loop node again (the back-edge); "exit" continues after the loop.
  RETURN  ends the chain.

Every node is emitted at most once per unit.  A node that would be emitted
twice, or two candidate joins for one branch, is irreducible control flow
and is rejected.

Data edges
----------
Inputs are resolved in slot order.  Pure producers (literal, operator,
variable_get, parameter outputs of the definition node) are inlined as
expressions.  Sequenced side-effecting producers (function_call, input) bind
their consumed outputs to temporaries when they run; consumers reference the
temporary, which is only visible in the lexical block that produced it.

Fall-through context
--------------------
Each block knows what happens when its chain ends without a Return:

    TAIL  the unit ends         (function: MISSING_RETURN)
    LOOP  control goes back to the loop condition
    JOIN  a sibling arm continues at a join this arm never reaches
          (IRREDUCIBLE_CONTROL_FLOW)

Returns are only legal in TAIL context since the target language has no
early return.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..core.GraphPrimitives import Function, Graph, Node, Variable
from ..core.NodeSchema import OPERATORS
from ..core.Types import (
    ENTRY_KINDS,
    ExecLabel,
    NodeKind,
    PURE_KINDS,
    SIDE_EFFECT_PRODUCERS,
    ValueType,
    VariableScope,
)
from .errors import CompileError, ErrorKind, GraphError
from .ir import (
    Arg,
    Block,
    Const,
    Declare,
    Expr,
    IfBlock,
    NodeStmt,
    Op,
    Ref,
    ReturnStmt,
    Statement,
    Symbol,
    UnitIR,
    WhileBlock,
)
from .validator import find_entry

logger = logging.getLogger(__name__)


class FallThrough(Enum):
    TAIL = "tail"
    LOOP = "loop"
    JOIN = "join"


_ZERO_VALUES = {
    ValueType.NUMBER: 0,
    ValueType.STRING: "",
    ValueType.BOOLEAN: False,
    ValueType.ANY: None,
}


def _types_agree(declared: ValueType, used: ValueType) -> bool:
    return declared == used or ValueType.ANY in (declared, used)


def global_symbol(name: str) -> Symbol:
    return Symbol("global", name, name)


def function_symbol(name: str) -> Symbol:
    return Symbol("function", name, name)


def declare_variable(symbol: Symbol, variable: Variable) -> Declare:
    default = variable.default if variable.default is not None else _ZERO_VALUES[variable.value_type]
    return Declare(symbol, Const(default, variable.value_type))


def global_declarations(program: Graph) -> Tuple[Declare, ...]:
    """Declarations for the program's GLOBAL variables, visible to every unit."""
    return tuple(
        declare_variable(global_symbol(v.name), v)
        for v in program.variables
        if v.scope == VariableScope.GLOBAL
    )


# ── Lexical scope ────────────────────────────────────────────────────────────

class Scope:
    def __init__(self, parent: Optional["Scope"] = None):
        self.parent = parent
        self.variables: Dict[str, Tuple[Symbol, ValueType]] = {}
        self.values: Dict[Tuple[str, str], Ref] = {}

    def child(self) -> "Scope":
        return Scope(self)

    def define(self, name: str, symbol: Symbol, value_type: ValueType) -> None:
        self.variables[name] = (symbol, value_type)

    def lookup(self, name: str) -> Optional[Tuple[Symbol, ValueType]]:
        scope = self
        while scope is not None:
            if name in scope.variables:
                return scope.variables[name]
            scope = scope.parent
        return None

    def bind(self, node_id: str, slot: str, ref: Ref) -> None:
        self.values[(node_id, slot)] = ref

    def bound(self, node_id: str, slot: str) -> Optional[Ref]:
        scope = self
        while scope is not None:
            if (node_id, slot) in scope.values:
                return scope.values[(node_id, slot)]
            scope = scope.parent
        return None


# ── Resolver ─────────────────────────────────────────────────────────────────

class Resolver:
    def __init__(
        self,
        graph: Graph,
        function: Optional[Function] = None,
        globals_: Iterable[Variable] = (),
    ):
        self.graph = graph
        self.function = function
        self.globals = tuple(globals_)
        self.unit = function.name if function else graph.name

        self._emitted: Set[str] = set()
        self._calls: List[str] = []
        self._reach_cache: Dict[Tuple[str, FrozenSet[str]], FrozenSet[str]] = {}

    def _fail(self, kind: ErrorKind, message: str, node_ids=(), edge_ids=()) -> CompileError:
        return CompileError(kind, message, node_ids, edge_ids, unit=self.unit)

    # ── Data resolution ────────────────────────────────────────────────────

    def _input_expr(self, node: Node, slot_name: str, scope: Scope, visiting: FrozenSet[str] = frozenset()) -> Expr:
        slot = node.input(slot_name)
        edge = self.graph.get_data_source(node.id, slot_name)
        if edge is None:
            if slot is None or not slot.has_default:
                raise self._fail(ErrorKind.UNRESOLVED_VALUE,
                                 f"input '{slot_name}' of {node.label} has no value", [node.id])
            return Const(slot.default, slot.value_type)

        source = self.graph.get_node(edge.from_node_id)
        out_slot = source.output(edge.from_slot) if source else None
        if source is None or out_slot is None:
            raise self._fail(ErrorKind.UNRESOLVED_VALUE, f"input '{slot_name}' of {node.label} is dangling",
                             [node.id], [edge.id])
        return self._output_expr(source, out_slot.name, scope, visiting, edge.id)

    def _output_expr(self, source: Node, slot_name: str, scope: Scope,
                     visiting: FrozenSet[str], edge_id: str) -> Expr:
        value_type = source.output(slot_name).value_type

        if source.kind == NodeKind.LITERAL:
            return Const(source.value, value_type)

        if source.kind == NodeKind.OPERATOR:
            if source.id in visiting:
                raise GraphError(ErrorKind.DATA_CYCLE, "data dependency loops back on itself",
                                 sorted(visiting | {source.id}), [edge_id], unit=self.unit)
            spec = OPERATORS[source.operator]
            inner = visiting | {source.id}
            args = tuple(self._input_expr(source, s.name, scope, inner) for s in source.inputs)
            return Op(source.operator, spec.symbol, args, value_type)

        if source.kind == NodeKind.VARIABLE_GET:
            symbol, declared = self._variable(source, scope)
            if not _types_agree(declared, value_type):
                raise self._fail(ErrorKind.TYPE_MISMATCH,
                                 f"variable '{source.variable}' is {declared.value}, "
                                 f"read as {value_type.value}", [source.id])
            return Ref(symbol, value_type)

        if source.kind == NodeKind.FUNCTION_DEFINITION and self.function is not None:
            return Ref(Symbol("param", slot_name, slot_name), value_type)

        if source.kind in SIDE_EFFECT_PRODUCERS:
            ref = scope.bound(source.id, slot_name)
            if ref is None:
                raise self._fail(ErrorKind.UNRESOLVED_VALUE,
                                 f"output '{slot_name}' of {source.label} is used outside the block that "
                                 f"produced it", [source.id], [edge_id])
            return ref

        raise self._fail(ErrorKind.UNRESOLVED_VALUE,
                         f"{source.kind.value} node {source.label} cannot provide a value", [source.id], [edge_id])

    def _variable(self, node: Node, scope: Scope) -> Tuple[Symbol, ValueType]:
        found = scope.lookup(node.variable)
        if found is None:
            raise self._fail(ErrorKind.UNKNOWN_VARIABLE, f"variable '{node.variable}' is not in scope", [node.id])
        return found

    def _args(self, node: Node, scope: Scope) -> Tuple[Arg, ...]:
        return tuple(Arg(s.name, s.value_type, self._input_expr(node, s.name, scope)) for s in node.inputs)

    # ── Statements ─────────────────────────────────────────────────────────

    def _statement(self, node: Node, scope: Scope) -> NodeStmt:
        args = self._args(node, scope)

        if node.kind == NodeKind.VARIABLE_DEFINE:
            symbol = Symbol("var", node.id, node.variable or node.id)
            # defined after its value is resolved so `x = x + 1` reads the outer x
            scope.define(node.variable, symbol, node.input("value").value_type)
            return NodeStmt(node.id, node.kind, args, target=symbol)

        if node.kind == NodeKind.VARIABLE_SET:
            symbol, declared = self._variable(node, scope)
            written = node.input("value").value_type
            if not _types_agree(declared, written):
                raise self._fail(ErrorKind.TYPE_MISMATCH,
                                 f"variable '{node.variable}' is {declared.value}, "
                                 f"assigned {written.value}", [node.id])
            return NodeStmt(node.id, node.kind, args, target=symbol)

        bindings = []
        if node.kind in SIDE_EFFECT_PRODUCERS:
            consumed = {e.from_slot for e in self.graph.get_outgoing_data(node.id)}
            for slot in node.outputs:
                if slot.name in consumed:
                    symbol = Symbol("temp", f"{node.id}.{slot.name}", slot.name)
                    scope.bind(node.id, slot.name, Ref(symbol, slot.value_type))
                    bindings.append((slot.name, symbol))

        if node.kind == NodeKind.FUNCTION_CALL:
            self._calls.append(node.function)

        return NodeStmt(node.id, node.kind, args, tuple(bindings), function=node.function)

    def _return(self, node: Node, scope: Scope, context: FallThrough) -> ReturnStmt:
        if self.function is None:
            raise self._fail(ErrorKind.RETURN_OUTSIDE_FUNCTION, "return node outside of a function", [node.id])
        if context == FallThrough.LOOP:
            raise self._fail(ErrorKind.UNSTRUCTURED_RETURN, "return inside a loop body cannot be expressed",
                             [node.id])
        if context == FallThrough.JOIN:
            raise self._fail(ErrorKind.UNSTRUCTURED_RETURN,
                             "return inside a branch that rejoins later cannot be expressed", [node.id])
        slot = node.input("value")
        value = self._input_expr(node, "value", scope) if slot else None
        return ReturnStmt(node.id, value, slot.value_type if slot else None)

    # ── Join detection ─────────────────────────────────────────────────────

    def _forward(self, node_id: str) -> List[str]:
        node = self.graph.get_node(node_id)
        if node is None:
            return []
        if node.kind == NodeKind.BRANCH:
            labels = (ExecLabel.THEN, ExecLabel.ELSE)
        elif node.kind == NodeKind.LOOP:
            labels = (ExecLabel.EXIT,)
        else:
            labels = (ExecLabel.NEXT,)
        return [nid for label in labels if (nid := self.graph.successor(node_id, label)) is not None]

    def _reach(self, start: str, stops: FrozenSet[str]) -> FrozenSet[str]:
        key = (start, stops)
        if key not in self._reach_cache:
            seen: Set[str] = set()
            pending = [start]
            while pending:
                nid = pending.pop()
                if nid in seen:
                    continue
                seen.add(nid)
                if nid not in stops:
                    pending.extend(self._forward(nid))
            self._reach_cache[key] = frozenset(seen)
        return self._reach_cache[key]

    def _find_join(self, branch: Node, then_start: str, else_start: str, stops: FrozenSet[str]) -> Optional[str]:
        common = self._reach(then_start, stops) & self._reach(else_start, stops)
        if not common:
            return None
        candidates = [
            c for c in common
            if not any(c in self._reach(d, stops) for d in common if d != c and d not in stops)
        ]
        if len(candidates) != 1:
            claimants = sorted(candidates or common)
            raise self._fail(ErrorKind.IRREDUCIBLE_CONTROL_FLOW,
                             f"branches of {branch.label} rejoin at more than one node",
                             [branch.id] + claimants)
        return candidates[0]

    # ── Control flow ───────────────────────────────────────────────────────

    def _branch(self, node: Node, scope: Scope, stops: FrozenSet[str],
                context: FallThrough) -> Tuple[IfBlock, Optional[str]]:
        then_start = self.graph.successor(node.id, ExecLabel.THEN)
        else_start = self.graph.successor(node.id, ExecLabel.ELSE)
        missing = [label for label, start in ((ExecLabel.THEN, then_start), (ExecLabel.ELSE, else_start))
                   if start is None]
        if missing:
            raise self._fail(ErrorKind.INCOMPLETE_BRANCH,
                             f"branch {node.label} has no '{missing[0]}' edge", [node.id])

        condition = self._input_expr(node, "condition", scope)
        join = self._find_join(node, then_start, else_start, stops)
        inner = stops | {join} if join is not None else stops
        arm_context = FallThrough.JOIN if join is not None and join not in stops else context

        then_block = self._block(then_start, scope.child(), inner, arm_context)
        else_block = self._block(else_start, scope.child(), inner, arm_context)
        logger.debug(f"branch '{node.id}': join={join}, then={len(then_block)}, else={len(else_block)}")
        return IfBlock(node.id, condition, then_block, else_block), join

    def _loop(self, node: Node, scope: Scope, stops: FrozenSet[str]) -> WhileBlock:
        body_start = self.graph.successor(node.id, ExecLabel.BODY)
        if body_start is None:
            raise self._fail(ErrorKind.INCOMPLETE_BRANCH, f"loop {node.label} has no 'body' edge", [node.id])

        condition = self._input_expr(node, "condition", scope)
        body = self._block(body_start, scope.child(), stops | {node.id}, FallThrough.LOOP)
        return WhileBlock(node.id, condition, body)

    def _block(self, start: Optional[str], scope: Scope, stops: FrozenSet[str], context: FallThrough) -> Block:
        statements: List[Statement] = []
        current = start
        last_id: Optional[str] = None
        finished = False  # chain ended in a return or a join-less branch

        while current is not None and current not in stops:
            if current in self._emitted:
                raise self._fail(ErrorKind.IRREDUCIBLE_CONTROL_FLOW,
                                 "node is reached along more than one structured path", [current])
            node = self.graph.get_node(current)
            if node is None:
                raise self._fail(ErrorKind.IRREDUCIBLE_CONTROL_FLOW, f"exec edge leads to missing node '{current}'",
                                 [last_id] if last_id else [])
            self._emitted.add(current)
            last_id = current

            if node.kind == NodeKind.BRANCH:
                stmt, join = self._branch(node, scope, stops, context)
                statements.append(stmt)
                current = join
                finished = join is None
            elif node.kind == NodeKind.LOOP:
                statements.append(self._loop(node, scope, stops))
                current = self.graph.successor(node.id, ExecLabel.EXIT)
            elif node.kind == NodeKind.RETURN:
                statements.append(self._return(node, scope, context))
                current = None
                finished = True
            else:
                statements.append(self._statement(node, scope))
                current = self.graph.successor(node.id, ExecLabel.NEXT)

        if current is None and not finished:
            self._fell_through(context, last_id or start)
        return Block(tuple(statements))

    def _fell_through(self, context: FallThrough, node_id: Optional[str]) -> None:
        anchors = [node_id] if node_id else []
        if context == FallThrough.JOIN:
            raise self._fail(ErrorKind.IRREDUCIBLE_CONTROL_FLOW,
                             "branch arm ends while its sibling continues at a join", anchors)
        if context == FallThrough.TAIL and self.function is not None:
            raise self._fail(ErrorKind.MISSING_RETURN,
                             f"a path through '{self.function.name}' ends without a return", anchors)

    # ── Entry points ───────────────────────────────────────────────────────

    def _root_scope(self) -> Tuple[Scope, Tuple[Declare, ...]]:
        scope = Scope()
        for variable in self.globals:
            scope.define(variable.name, global_symbol(variable.name), variable.value_type)

        declarations = []
        for variable in self.graph.variables:
            if self.function is None and variable.scope == VariableScope.GLOBAL:
                continue
            symbol = Symbol("var", f"{self.graph.id}:{variable.name}", variable.name)
            scope.define(variable.name, symbol, variable.value_type)
            declarations.append(declare_variable(symbol, variable))
        return scope, tuple(declarations)

    def resolve(self) -> UnitIR:
        entry = find_entry(self.graph)
        if entry is None or entry.kind not in ENTRY_KINDS:
            raise GraphError(ErrorKind.MISSING_ENTRY, f"'{self.unit}' has no entry node", unit=self.unit)

        scope, declarations = self._root_scope()
        self._emitted.add(entry.id)
        start = self.graph.successor(entry.id, ExecLabel.NEXT)
        body = self._block(start, scope, frozenset(), FallThrough.TAIL)

        dropped = [n.id for n in self.graph.nodes
                   if n.id not in self._emitted and n.kind not in PURE_KINDS]
        if dropped:
            logger.warning(f"unit '{self.unit}': unreachable nodes dropped: {', '.join(dropped)}")

        if self.function is None:
            return UnitIR(name=self.unit, body=body, declarations=declarations, calls=tuple(self._calls))

        fn = self.function
        return UnitIR(
            name=fn.name,
            body=body,
            declarations=declarations,
            symbol=function_symbol(fn.name),
            params=tuple((Symbol("param", p.name, p.name), p.value_type) for p in fn.parameters),
            return_type=fn.return_type,
            calls=tuple(self._calls),
        )


def resolve_program(program: Graph) -> UnitIR:
    """Resolve the top-level program graph into its entry unit."""
    globals_ = [v for v in program.variables if v.scope == VariableScope.GLOBAL]
    return Resolver(program, globals_=globals_).resolve()


def resolve_function(function: Function, program: Optional[Graph] = None) -> UnitIR:
    """Resolve a function body; GLOBAL variables of `program` are in scope."""
    globals_ = [v for v in program.variables if v.scope == VariableScope.GLOBAL] if program else []
    return Resolver(function.body, function, globals_).resolve()


__all__ = ["Resolver", "Scope", "FallThrough", "resolve_program", "resolve_function",
           "global_declarations", "global_symbol", "function_symbol"]
