"""
NodeScript Compiler — Fennel Source Emitter
===========================================
Converts resolved UnitIRs into Fennel source text.

Output structure
----------------
    ;; Compiled from node graph: <program name>

    (var <global> <init>)          ; program-level GLOBAL variables
    …

    (fn <callee> [<params>]        ; functions, callees first
      (var <local> <init>)
      <body>
      <return value>)              ; tail position
    …

    (var <program local> <init>)   ; entry unit
    <body>

Statement forms
---------------
    if/else      (if c a b)   single non-binding arms are not wrapped
                 (if c (do …) (do …))
    then only    (when c …)
    else only    (when (not c) …)
    while        (while c …)

The header carries no timestamp: the same IR and naming always produce
byte-identical text.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, Optional, Sequence

from ..core.GraphPrimitives import Function
from ..core.NodeSchema import OPERATORS
from ..core.Types import ValueType, is_convertible
from .errors import CodeGenError, ErrorKind
from .ir import (
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
from .naming import Namer
from .resolver import function_symbol
from .templates import CodeWriter, get_template, render_literal

logger = logging.getLogger(__name__)


# ── File header ───────────────────────────────────────────────────────────────

def header(program_name: str) -> List[str]:
    name = " ".join(program_name.split())
    return [f";; Compiled from node graph: {name}"]


# ── Naming ────────────────────────────────────────────────────────────────────

def program_namer(globals_: Iterable[Declare], function_names: Iterable[str]) -> Namer:
    """
    Top-level namer shared by every unit.  Globals are named first, then
    functions in emission order; unit namers are children of this one.
    """
    namer = Namer()
    namer.reserve(d.symbol for d in globals_)
    namer.reserve(function_symbol(name) for name in function_names)
    return namer


# ── Unit emitter ──────────────────────────────────────────────────────────────

class UnitEmitter:
    """
    Emits one UnitIR.  Implements the context protocol templates use to
    render arguments and identifiers.
    """

    def __init__(self, unit: UnitIR, namer: Namer, signatures: Mapping[str, Function]):
        self.unit = unit
        self.namer = namer
        self.signatures = signatures

    def _fail(self, kind: ErrorKind, message: str, node_ids: Sequence[str] = ()) -> CodeGenError:
        return CodeGenError(kind, message, node_ids, unit=self.unit.name)

    # ── Expressions ────────────────────────────────────────────────────────

    def expr(self, expr: Expr, node_id: Optional[str] = None) -> str:
        if isinstance(expr, Const):
            try:
                return render_literal(expr.value)
            except TypeError as exc:
                raise self._fail(ErrorKind.INTERNAL_ERROR, str(exc), [node_id] if node_id else [])
        if isinstance(expr, Ref):
            return self.namer.name(expr.symbol)
        if isinstance(expr, Op):
            spec = OPERATORS.get(expr.operator)
            if spec is None or len(spec.operand_types) != len(expr.args):
                raise self._fail(ErrorKind.INTERNAL_ERROR, f"malformed operator '{expr.operator}'",
                                 [node_id] if node_id else [])
            operands = [self.coerce(a, t, node_id) for a, t in zip(expr.args, spec.operand_types)]
            return f"({expr.symbol} {' '.join(operands)})"
        raise self._fail(ErrorKind.INTERNAL_ERROR, f"unknown expression {type(expr).__name__}",
                         [node_id] if node_id else [])

    def coerce(self, expr: Expr, expected: Optional[ValueType], node_id: Optional[str] = None) -> str:
        """Render `expr` for a slot of type `expected`, converting number → string."""
        text = self.expr(expr, node_id)
        if expected is None:
            return text
        if not is_convertible(expr.value_type, expected):
            raise self._fail(ErrorKind.INTERNAL_ERROR,
                             f"{expr.value_type.value} value reached a {expected.value} slot",
                             [node_id] if node_id else [])
        if expr.value_type == ValueType.NUMBER and expected == ValueType.STRING:
            return f"(tostring {text})"
        return text

    # ── Template context ───────────────────────────────────────────────────

    def arg(self, stmt: NodeStmt, slot: str) -> str:
        for a in stmt.args:
            if a.slot == slot:
                return self.coerce(a.expr, a.expected, stmt.node_id)
        raise self._fail(ErrorKind.INTERNAL_ERROR, f"statement has no '{slot}' argument", [stmt.node_id])

    def args(self, stmt: NodeStmt) -> List[str]:
        fn = self.signatures.get(stmt.function) if stmt.function else None
        if fn is None:
            raise self._fail(ErrorKind.INTERNAL_ERROR,
                             f"call to unregistered function '{stmt.function}' reached code generation",
                             [stmt.node_id])
        if len(stmt.args) != fn.arity:
            raise self._fail(ErrorKind.INTERNAL_ERROR,
                             f"call passes {len(stmt.args)} argument(s) to '{fn.name}' of arity {fn.arity}",
                             [stmt.node_id])
        return [self.arg(stmt, p.name) for p in fn.parameters]

    def name(self, symbol: Symbol) -> str:
        return self.namer.name(symbol)

    def callee(self, function: str) -> str:
        return self.namer.name(function_symbol(function))

    # ── Statements ─────────────────────────────────────────────────────────

    def _template(self, stmt: NodeStmt):
        template = get_template(stmt.kind)
        if template is None:
            raise self._fail(ErrorKind.UNSUPPORTED_NODE_KIND,
                             f"{stmt.kind.value} node cannot be executed as a statement", [stmt.node_id])
        return template

    def _needs_scope(self, stmt: Statement) -> bool:
        if isinstance(stmt, Declare):
            return True
        if isinstance(stmt, NodeStmt):
            return self._template(stmt).needs_scope(stmt)
        return False

    def _declare(self, decl: Declare, writer: CodeWriter) -> None:
        writer.writeln(f"(var {self.name(decl.symbol)} {self.expr(decl.value)})")

    def _arm(self, block: Block, writer: CodeWriter) -> None:
        if len(block) == 1 and not self._needs_scope(block.statements[0]):
            self._statement(block.statements[0], writer)
            return
        writer.writeln("(do")
        writer.push()
        self._block(block, writer)
        writer.pop()
        writer.close()

    def _if(self, stmt: IfBlock, writer: CodeWriter) -> None:
        condition = self.coerce(stmt.condition, ValueType.BOOLEAN, stmt.node_id)
        then_block, else_block = stmt.then_block, stmt.else_block

        if then_block and else_block:
            writer.writeln(f"(if {condition}")
            writer.push()
            self._arm(then_block, writer)
            self._arm(else_block, writer)
        elif then_block or else_block:
            head = condition if then_block else f"(not {condition})"
            writer.writeln(f"(when {head}")
            writer.push()
            self._block(then_block or else_block, writer)
        else:
            writer.writeln(f"(if {condition} nil)")
            return
        writer.pop()
        writer.close()

    def _while(self, stmt: WhileBlock, writer: CodeWriter) -> None:
        condition = self.coerce(stmt.condition, ValueType.BOOLEAN, stmt.node_id)
        if not stmt.body:
            writer.writeln(f"(while {condition} nil)")
            return
        writer.writeln(f"(while {condition}")
        writer.push()
        self._block(stmt.body, writer)
        writer.pop()
        writer.close()

    def _return(self, stmt: ReturnStmt, writer: CodeWriter) -> None:
        if stmt.value is None:
            writer.writeln("nil")
        else:
            writer.writeln(self.coerce(stmt.value, stmt.expected, stmt.node_id))

    def _statement(self, stmt: Statement, writer: CodeWriter) -> None:
        if isinstance(stmt, NodeStmt):
            self._template(stmt).emit(stmt, self, writer)
        elif isinstance(stmt, IfBlock):
            self._if(stmt, writer)
        elif isinstance(stmt, WhileBlock):
            self._while(stmt, writer)
        elif isinstance(stmt, ReturnStmt):
            self._return(stmt, writer)
        elif isinstance(stmt, Declare):
            self._declare(stmt, writer)
        else:
            raise self._fail(ErrorKind.INTERNAL_ERROR, f"unknown statement {type(stmt).__name__}")

    def _block(self, block: Block, writer: CodeWriter) -> None:
        for stmt in block.statements:
            self._statement(stmt, writer)

    # ── Units ──────────────────────────────────────────────────────────────

    def emit(self) -> str:
        unit = self.unit
        w = CodeWriter()
        if unit.is_function:
            params = " ".join(self.name(symbol) for symbol, _ in unit.params)
            w.writeln(f"(fn {self.name(unit.symbol)} [{params}]")
            w.push()
            for decl in unit.declarations:
                self._declare(decl, w)
            self._block(unit.body, w)
            if not unit.body:
                w.writeln("nil")
            w.pop()
            w.close()
        else:
            for decl in unit.declarations:
                self._declare(decl, w)
            self._block(unit.body, w)
        logger.debug(f"emitted unit '{unit.name}': {len(w.lines())} line(s)")
        return w.result()


# ── Public API ────────────────────────────────────────────────────────────────

def emit_unit(unit: UnitIR, namer: Namer, signatures: Mapping[str, Function]) -> str:
    """Emit one unit with a fresh child namer of the program-wide `namer`."""
    return UnitEmitter(unit, namer.child(), signatures).emit()


def emit_globals(declarations: Iterable[Declare], namer: Namer, unit_name: str = "") -> str:
    """Top-level `var` forms for GLOBAL variables, named by `namer` itself."""
    unit = UnitIR(unit_name, Block(), tuple(declarations))
    return UnitEmitter(unit, namer, {}).emit()


def assemble(program_name: str, globals_text: str, function_texts: Iterable[str], entry_text: str) -> str:
    """
    Join the emitted sections into one source file.

    Args:
        program_name:   Embedded in the header comment.
        globals_text:   Output of emit_globals().
        function_texts: Function units, already in emission order.
        entry_text:     The program's entry unit.

    Returns:
        Fennel source ending in a single newline.
    """
    sections: List[str] = ["\n".join(header(program_name))]
    sections.extend(s for s in [globals_text, *function_texts, entry_text] if s)
    return "\n\n".join(sections) + "\n"


__all__ = ["UnitEmitter", "emit_unit", "emit_globals", "assemble", "program_namer", "header"]
