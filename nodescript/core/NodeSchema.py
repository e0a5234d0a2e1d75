"""
Node slot schema and factories
==============================
Every node kind has a fixed slot layout. The factories below are the only
place that layout is spelled out; the serializer and the tests build nodes
through them so a snapshot can never disagree with the compiler about which
slots a kind has.

    kind                 inputs                       outputs
    ───────────────────  ───────────────────────────  ─────────────────────
    entry                -                            -
    literal              -                            value
    variable_define      value                        -
    variable_get         -                            value
    variable_set         value                        -
    operator             a [, b]                      result
    branch               condition                    -
    loop                 condition                    -
    function_call        one per parameter            result (if typed)
    function_definition  -                            one per parameter
    return               value (if typed)             -
    print                value                        -
    input                prompt                       answer

Exec labels each kind may emit are listed in EXEC_LABELS.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, NamedTuple, Optional, Tuple

from .GraphPrimitives import Node, Parameter, Slot
from .Types import ExecLabel, NodeKind, PortDirection, ValueType


N = ValueType.NUMBER
S = ValueType.STRING
B = ValueType.BOOLEAN
A = ValueType.ANY


# ── Operators ─────────────────────────────────────────────────────────────────

class OperatorSpec(NamedTuple):
    symbol: str                        # head of the emitted prefix form
    operand_types: Tuple[ValueType, ...]
    result_type: ValueType


OPERATORS: Dict[str, OperatorSpec] = {
    "add":           OperatorSpec("+",        (N, N), N),
    "subtract":      OperatorSpec("-",        (N, N), N),
    "multiply":      OperatorSpec("*",        (N, N), N),
    "divide":        OperatorSpec("/",        (N, N), N),
    "modulo":        OperatorSpec("%",        (N, N), N),
    "negate":        OperatorSpec("-",        (N,),   N),
    "concat":        OperatorSpec("..",       (S, S), S),
    "equals":        OperatorSpec("=",        (A, A), B),
    "not_equals":    OperatorSpec("not=",     (A, A), B),
    "less":          OperatorSpec("<",        (N, N), B),
    "less_equal":    OperatorSpec("<=",       (N, N), B),
    "greater":       OperatorSpec(">",        (N, N), B),
    "greater_equal": OperatorSpec(">=",       (N, N), B),
    "and":           OperatorSpec("and",      (B, B), B),
    "or":            OperatorSpec("or",       (B, B), B),
    "not":           OperatorSpec("not",      (B,),   B),
    "to_string":     OperatorSpec("tostring", (A,),   S),
    "to_number":     OperatorSpec("tonumber", (S,),   N),
}

OPERAND_SLOTS = ("a", "b")


# ── Exec labels ───────────────────────────────────────────────────────────────

EXEC_LABELS: Dict[NodeKind, Tuple[str, ...]] = {
    NodeKind.ENTRY:               (ExecLabel.NEXT,),
    NodeKind.LITERAL:             (),
    NodeKind.VARIABLE_DEFINE:     (ExecLabel.NEXT,),
    NodeKind.VARIABLE_GET:        (),
    NodeKind.VARIABLE_SET:        (ExecLabel.NEXT,),
    NodeKind.OPERATOR:            (),
    NodeKind.BRANCH:              (ExecLabel.THEN, ExecLabel.ELSE),
    NodeKind.LOOP:                (ExecLabel.BODY, ExecLabel.EXIT),
    NodeKind.FUNCTION_CALL:       (ExecLabel.NEXT,),
    NodeKind.FUNCTION_DEFINITION: (ExecLabel.NEXT,),
    NodeKind.RETURN:              (),
    NodeKind.PRINT:               (ExecLabel.NEXT,),
    NodeKind.INPUT:               (ExecLabel.NEXT,),
}

# Labels that must be present for the kind to be structurally complete.
REQUIRED_EXEC_LABELS: Dict[NodeKind, Tuple[str, ...]] = {
    NodeKind.BRANCH: (ExecLabel.THEN, ExecLabel.ELSE),
    NodeKind.LOOP:   (ExecLabel.BODY,),
}


def _in(name: str, value_type: ValueType, default: Any = None) -> Slot:
    return Slot(name, value_type, PortDirection.INPUT, default)


def _out(name: str, value_type: ValueType) -> Slot:
    return Slot(name, value_type, PortDirection.OUTPUT)


# ── Factories ─────────────────────────────────────────────────────────────────

def entry(node_id: str, name: str = "Enter") -> Node:
    return Node(node_id, NodeKind.ENTRY, name=name)


def literal(node_id: str, value: Any, value_type: Optional[ValueType] = None, name: str = "") -> Node:
    value_type = value_type or ValueType.infer(value)
    return Node(node_id, NodeKind.LITERAL, outputs=(_out("value", value_type),), name=name, value=value)


def variable_define(node_id: str, variable: str, value_type: ValueType,
                    default: Any = None, name: str = "") -> Node:
    return Node(node_id, NodeKind.VARIABLE_DEFINE, inputs=(_in("value", value_type, default),),
                name=name, variable=variable)


def variable_get(node_id: str, variable: str, value_type: ValueType, name: str = "") -> Node:
    return Node(node_id, NodeKind.VARIABLE_GET, outputs=(_out("value", value_type),),
                name=name, variable=variable)


def variable_set(node_id: str, variable: str, value_type: ValueType,
                 default: Any = None, name: str = "") -> Node:
    return Node(node_id, NodeKind.VARIABLE_SET, inputs=(_in("value", value_type, default),),
                name=name, variable=variable)


def operator(node_id: str, op: str, defaults: Optional[Dict[str, Any]] = None, name: str = "") -> Node:
    """Build an operator node. Unknown operators get no slots; the validator reports them."""
    spec = OPERATORS.get(op)
    if spec is None:
        return Node(node_id, NodeKind.OPERATOR, name=name, operator=op)
    defaults = defaults or {}
    inputs = tuple(
        _in(slot, value_type, defaults.get(slot))
        for slot, value_type in zip(OPERAND_SLOTS, spec.operand_types)
    )
    return Node(node_id, NodeKind.OPERATOR, inputs=inputs, outputs=(_out("result", spec.result_type),),
                name=name, operator=op)


def branch(node_id: str, condition: Optional[bool] = None, name: str = "") -> Node:
    return Node(node_id, NodeKind.BRANCH, inputs=(_in("condition", B, condition),), name=name)


def loop(node_id: str, condition: Optional[bool] = None, name: str = "") -> Node:
    return Node(node_id, NodeKind.LOOP, inputs=(_in("condition", B, condition),), name=name)


def function_call(node_id: str, function: str, parameters: Iterable[Parameter],
                  return_type: Optional[ValueType] = None,
                  defaults: Optional[Dict[str, Any]] = None, name: str = "") -> Node:
    defaults = defaults or {}
    inputs = tuple(_in(p.name, p.value_type, defaults.get(p.name)) for p in parameters)
    outputs = (_out("result", return_type),) if return_type is not None else ()
    return Node(node_id, NodeKind.FUNCTION_CALL, inputs=inputs, outputs=outputs,
                name=name, function=function)


def function_definition(node_id: str, function: str, parameters: Iterable[Parameter], name: str = "") -> Node:
    outputs = tuple(_out(p.name, p.value_type) for p in parameters)
    return Node(node_id, NodeKind.FUNCTION_DEFINITION, outputs=outputs, name=name, function=function)


def return_node(node_id: str, value_type: Optional[ValueType] = None,
                default: Any = None, name: str = "") -> Node:
    inputs = (_in("value", value_type, default),) if value_type is not None else ()
    return Node(node_id, NodeKind.RETURN, inputs=inputs, name=name)


def print_node(node_id: str, default: Any = None, name: str = "") -> Node:
    return Node(node_id, NodeKind.PRINT, inputs=(_in("value", A, default),), name=name)


def input_node(node_id: str, prompt: str = "", name: str = "") -> Node:
    return Node(node_id, NodeKind.INPUT, inputs=(_in("prompt", S, prompt),),
                outputs=(_out("answer", S),), name=name)


__all__ = [
    "OPERATORS", "OperatorSpec", "EXEC_LABELS", "REQUIRED_EXEC_LABELS",
    "entry", "literal", "variable_define", "variable_get", "variable_set",
    "operator", "branch", "loop", "function_call", "function_definition",
    "return_node", "print_node", "input_node",
]
