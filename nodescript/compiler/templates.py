"""
NodeScript Compiler — Statement Templates
=========================================
A NodeTemplate turns one sequenced NodeStmt into Fennel forms:

  emit(stmt, ctx, writer)
      Writes the forms for `stmt` at the writer's current indent.  `ctx`
      renders argument expressions and resolves Symbols to identifiers.

  needs_scope(stmt)
      True when the output introduces a binding or spans several forms, so
      a lone statement in an `if` arm must still be wrapped in `(do …)`.

Adding a new statement kind
---------------------------
1. Subclass NodeTemplate.
2. Override emit() (and needs_scope() if it binds a name).
3. Register: TEMPLATE_REGISTRY[NodeKind.MY_KIND] = MyTemplate()

Kinds without a template are rejected by the emitter with
UNSUPPORTED_NODE_KIND; there is no silent fallback.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Protocol

from ..core.Types import NodeKind
from .ir import NodeStmt, Symbol


# ── Code writer ───────────────────────────────────────────────────────────────

class CodeWriter:
    """Indented line accumulator for s-expression output."""

    INDENT = "  "

    def __init__(self, indent: int = 0):
        self._lines: List[str] = []
        self._indent = indent

    def writeln(self, line: str = "") -> "CodeWriter":
        if line:
            self._lines.append(self.INDENT * self._indent + line)
        else:
            self._lines.append("")
        return self

    def push(self) -> "CodeWriter":
        self._indent += 1
        return self

    def pop(self) -> "CodeWriter":
        self._indent = max(0, self._indent - 1)
        return self

    def close(self, count: int = 1) -> "CodeWriter":
        """Close the innermost open form(s) on the last written line."""
        for i in range(len(self._lines) - 1, -1, -1):
            if self._lines[i].strip():
                self._lines[i] += ")" * count
                break
        return self

    def lines(self) -> List[str]:
        return self._lines

    def result(self) -> str:
        return "\n".join(self._lines)


# ── Literal syntax ────────────────────────────────────────────────────────────

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def render_string(value: str) -> str:
    out = []
    for ch in value:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\{ord(ch):03d}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def render_number(value) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "(/ 0 0)"
    if math.isinf(value):
        return "(/ 1 0)" if value > 0 else "(- (/ 1 0))"
    return repr(float(value))


def render_literal(value: Any) -> str:
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return render_number(value)
    if isinstance(value, str):
        return render_string(value)
    raise TypeError(f"no literal syntax for {type(value).__name__}")


# ── Base template ─────────────────────────────────────────────────────────────

class EmitContext(Protocol):
    def arg(self, stmt: NodeStmt, slot: str) -> str: ...
    def args(self, stmt: NodeStmt) -> List[str]: ...
    def name(self, symbol: Symbol) -> str: ...
    def callee(self, function: str) -> str: ...


class NodeTemplate:
    def emit(self, stmt: NodeStmt, ctx: EmitContext, writer: CodeWriter) -> None:
        raise NotImplementedError(type(self).__name__)

    def needs_scope(self, stmt: NodeStmt) -> bool:
        return bool(stmt.bindings)


def _binding(stmt: NodeStmt, slot: str) -> Optional[Symbol]:
    return next((symbol for name, symbol in stmt.bindings if name == slot), None)


# ── Print ─────────────────────────────────────────────────────────────────────

class PrintTemplate(NodeTemplate):
    def emit(self, stmt, ctx, writer):
        writer.writeln(f"(print {ctx.arg(stmt, 'value')})")


# ── Input ─────────────────────────────────────────────────────────────────────

class InputTemplate(NodeTemplate):
    """Writes the prompt without a newline, then reads one line."""

    def _has_prompt(self, stmt: NodeStmt) -> bool:
        prompt = next((a for a in stmt.args if a.slot == "prompt"), None)
        return prompt is not None and getattr(prompt.expr, "value", None) != ""

    def emit(self, stmt, ctx, writer):
        if self._has_prompt(stmt):
            writer.writeln(f"(io.write {ctx.arg(stmt, 'prompt')})")
        answer = _binding(stmt, "answer")
        if answer is not None:
            writer.writeln(f"(local {ctx.name(answer)} (io.read))")
        else:
            writer.writeln("(io.read)")

    def needs_scope(self, stmt):
        return bool(stmt.bindings) or self._has_prompt(stmt)


# ── Variables ─────────────────────────────────────────────────────────────────

class VariableDefineTemplate(NodeTemplate):
    def emit(self, stmt, ctx, writer):
        writer.writeln(f"(var {ctx.name(stmt.target)} {ctx.arg(stmt, 'value')})")

    def needs_scope(self, stmt):
        return True


class VariableSetTemplate(NodeTemplate):
    def emit(self, stmt, ctx, writer):
        writer.writeln(f"(set {ctx.name(stmt.target)} {ctx.arg(stmt, 'value')})")


# ── Function call ─────────────────────────────────────────────────────────────

class FunctionCallTemplate(NodeTemplate):
    """`(f a b)`, or `(local result (f a b))` when the result is consumed."""

    def emit(self, stmt, ctx, writer):
        parts = [ctx.callee(stmt.function)] + ctx.args(stmt)
        call = "(" + " ".join(parts) + ")"
        result = _binding(stmt, "result")
        if result is not None:
            writer.writeln(f"(local {ctx.name(result)} {call})")
        else:
            writer.writeln(call)


# ── Registry ──────────────────────────────────────────────────────────────────

TEMPLATE_REGISTRY: Dict[NodeKind, NodeTemplate] = {
    NodeKind.PRINT:           PrintTemplate(),
    NodeKind.INPUT:           InputTemplate(),
    NodeKind.VARIABLE_DEFINE: VariableDefineTemplate(),
    NodeKind.VARIABLE_SET:    VariableSetTemplate(),
    NodeKind.FUNCTION_CALL:   FunctionCallTemplate(),
}


def get_template(kind: NodeKind) -> Optional[NodeTemplate]:
    """Return the template for `kind`, or None when the kind has no statement form."""
    return TEMPLATE_REGISTRY.get(kind)


__all__ = [
    "CodeWriter", "NodeTemplate", "TEMPLATE_REGISTRY", "get_template",
    "render_literal", "render_string", "render_number",
]
