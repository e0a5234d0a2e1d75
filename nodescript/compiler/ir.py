"""
NodeScript Compiler — Intermediate Representation
=================================================
The resolver turns an unordered node/edge graph into this nested,
structured form; the emitter turns it into text.

    Graph  →  [validator]  →  Graph (checked)
    Graph  →  [resolver]   →  UnitIR
    UnitIR →  [emitter]    →  Fennel source str

Design goals:
  - No references back into the Graph snapshot beyond node ids (kept only
    for error anchoring).
  - Identifiers are symbolic (Symbol); concrete names are chosen by the
    emitter so naming stays a single, deterministic pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

from ..core.Types import NodeKind, ValueType


# ── Symbols ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Symbol:
    kind: str    # "global" | "var" | "param" | "temp" | "function"
    key: str     # unique within kind for one compile
    hint: str    # preferred spelling before sanitizing


# ── Expressions ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Const:
    value: Any
    value_type: ValueType


@dataclass(frozen=True)
class Ref:
    symbol: Symbol
    value_type: ValueType


@dataclass(frozen=True)
class Op:
    operator: str
    symbol: str          # target-language head, e.g. "+" or ".."
    args: Tuple["Expr", ...]
    value_type: ValueType


Expr = Union[Const, Ref, Op]


@dataclass(frozen=True)
class Arg:
    slot: str
    expected: ValueType
    expr: Expr


# ── Statements ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Declare:
    """A graph-level variable declaration (not tied to a node)."""
    symbol: Symbol
    value: Expr


@dataclass(frozen=True)
class NodeStmt:
    """
    One sequenced node executed for its effect.  The emitter picks a template
    by `kind`; kinds without a template are rejected there.
    """
    node_id: str
    kind: NodeKind
    args: Tuple[Arg, ...] = ()
    # output slot name → symbol the produced value is bound to
    bindings: Tuple[Tuple[str, Symbol], ...] = ()
    target: Optional[Symbol] = None     # variable written by define/set
    function: Optional[str] = None      # callee name for calls


@dataclass(frozen=True)
class ReturnStmt:
    node_id: str
    value: Optional[Expr] = None
    expected: Optional[ValueType] = None


@dataclass(frozen=True)
class Block:
    statements: Tuple["Statement", ...] = ()

    def __len__(self) -> int:
        return len(self.statements)


@dataclass(frozen=True)
class IfBlock:
    node_id: str
    condition: Expr
    then_block: Block
    else_block: Block


@dataclass(frozen=True)
class WhileBlock:
    node_id: str
    condition: Expr
    body: Block


Statement = Union[Declare, NodeStmt, ReturnStmt, IfBlock, WhileBlock]


# ── Compile units ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class UnitIR:
    name: str
    body: Block
    declarations: Tuple[Declare, ...] = ()
    # Present only for function units.
    symbol: Optional[Symbol] = None
    params: Tuple[Tuple[Symbol, ValueType], ...] = ()
    return_type: Optional[ValueType] = None
    calls: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_function(self) -> bool:
        return self.symbol is not None


def walk(block: Block):
    """Yield every statement in `block`, depth first, in emission order."""
    for stmt in block.statements:
        yield stmt
        if isinstance(stmt, IfBlock):
            yield from walk(stmt.then_block)
            yield from walk(stmt.else_block)
        elif isinstance(stmt, WhileBlock):
            yield from walk(stmt.body)
