"""
Compiler error taxonomy.

Each pipeline stage reports problems as instances of one of three classes so
the editor can tell structural problems from resolution or generation ones:

    GraphError    — Validator: missing connection, type mismatch, cycles …
    CompileError  — Resolver/Registry: incomplete branch, unknown function …
    CodeGenError  — Emitter: unsupported node kind, internal invariant

All of them are exceptions (the resolver and emitter raise them to abandon a
single unit) but the validator and the compile driver only ever collect them
into lists.  Every error names the node and edge ids it is anchored to.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


class ErrorKind(str, Enum):
    # Graph (structural)
    MISSING_ENTRY = "missing_entry"
    MULTIPLE_ENTRIES = "multiple_entries"
    MISPLACED_ENTRY = "misplaced_entry"
    DUPLICATE_NODE = "duplicate_node"
    DANGLING_EDGE = "dangling_edge"
    MULTIPLE_DATA_EDGES = "multiple_data_edges"
    DUPLICATE_EXEC_LABEL = "duplicate_exec_label"
    INVALID_EXEC_LABEL = "invalid_exec_label"
    EXEC_INTO_ENTRY = "exec_into_entry"
    MISSING_CONNECTION = "missing_connection"
    MISSING_EXEC_EDGE = "missing_exec_edge"
    ILLEGAL_EXEC_CYCLE = "illegal_exec_cycle"
    DATA_CYCLE = "data_cycle"
    TYPE_MISMATCH = "type_mismatch"
    INVALID_LITERAL = "invalid_literal"
    UNKNOWN_OPERATOR = "unknown_operator"
    UNSEQUENCED_SIDE_EFFECT = "unsequenced_side_effect"
    DUPLICATE_VARIABLE = "duplicate_variable"
    INVALID_SCOPE = "invalid_scope"
    SIGNATURE_MISMATCH = "signature_mismatch"

    # Compile (resolution)
    INCOMPLETE_BRANCH = "incomplete_branch"
    IRREDUCIBLE_CONTROL_FLOW = "irreducible_control_flow"
    MISSING_RETURN = "missing_return"
    RETURN_OUTSIDE_FUNCTION = "return_outside_function"
    UNSTRUCTURED_RETURN = "unstructured_return"
    UNKNOWN_VARIABLE = "unknown_variable"
    UNRESOLVED_VALUE = "unresolved_value"
    UNKNOWN_FUNCTION = "unknown_function"
    ARITY_MISMATCH = "arity_mismatch"
    DUPLICATE_FUNCTION = "duplicate_function"
    CALL_CYCLE = "call_cycle"

    # Code generation
    UNSUPPORTED_NODE_KIND = "unsupported_node_kind"
    INTERNAL_ERROR = "internal_error"


class NodeScriptError(Exception):
    """Base class for every error record the compiler produces."""

    category = "error"

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        node_ids: Iterable[str] = (),
        edge_ids: Iterable[str] = (),
        unit: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.node_ids: Tuple[str, ...] = tuple(node_ids)
        self.edge_ids: Tuple[str, ...] = tuple(edge_ids)
        self.unit = unit

    def in_unit(self, unit: str) -> "NodeScriptError":
        if self.unit is None:
            self.unit = unit
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "kind": self.kind.value,
            "message": self.message,
            "nodeIds": list(self.node_ids),
            "edgeIds": list(self.edge_ids),
            "unit": self.unit,
        }

    def __str__(self) -> str:
        where = f"[{self.unit}] " if self.unit else ""
        anchors = ", ".join(self.node_ids + self.edge_ids)
        suffix = f" ({anchors})" if anchors else ""
        return f"{where}{self.category} {self.kind.value}: {self.message}{suffix}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}, nodes={list(self.node_ids)}, edges={list(self.edge_ids)})"


class GraphError(NodeScriptError):
    category = "graph"


class CompileError(NodeScriptError):
    category = "compile"


class CodeGenError(NodeScriptError):
    category = "codegen"


class CompilationFailed(Exception):
    """Raised by compile_to_source() when any stage reported errors."""

    def __init__(self, errors: List[NodeScriptError]):
        self.errors = list(errors)
        super().__init__(
            f"compilation failed with {len(self.errors)} error(s):\n"
            + "\n".join(f"  {e}" for e in self.errors)
        )
