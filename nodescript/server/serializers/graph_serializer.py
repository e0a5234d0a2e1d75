"""
Graph serializer
================
Converts between the editor's JSON wire shape and Graph Model snapshots.

The wire shape only carries each node's kind, its per-kind attributes and
any input defaults; slot layouts are always rebuilt from the slot schema
(core/NodeSchema.py) so a payload can never invent slots.

Wire shape
----------

    {
      "id":   "main",                                  // graph id (str, required)
      "name": "Main",                                  // label (str, optional → id)
      "entry": "enter",                                // entry node id (optional)
      "nodes": [
        {"id": "enter", "kind": "entry"},
        {"id": "hi",    "kind": "literal", "value": "Hello, "},
        {"id": "who",   "kind": "variable_get", "variable": "name", "valueType": "string"},
        {"id": "cat",   "kind": "operator", "operator": "concat"},
        {"id": "out",   "kind": "print", "defaults": {"value": "?"},
         "position": {"x": 120, "y": 40}}             // UI only, dropped
      ],
      "dataEdges": [
        {"id": "d1", "from": "hi", "fromSlot": "value", "to": "cat", "toSlot": "a"}
      ],
      "execEdges": [
        {"id": "x1", "from": "enter", "to": "out", "label": "next"}
      ],
      "variables": [
        {"name": "name", "type": "string", "default": "World", "scope": "global"}
      ]
    }

A function adds a signature around its body graph:

    {"name": "add", "parameters": [{"name": "a", "type": "number"}, …],
     "returnType": "number", "body": { …graph… }}

Its function_definition node and Return nodes may omit the signature; it is
filled in from the enclosing function.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nodescript.core import NodeSchema
from nodescript.core.GraphPrimitives import DataEdge, ExecEdge, Function, Graph, Node, Parameter, Variable
from nodescript.core.Types import ExecLabel, NodeKind, ValueType, VariableScope

logger = logging.getLogger(__name__)


class SchemaError(ValueError):
    """Raised when a graph payload does not match the wire shape."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []


# ── Wire models ───────────────────────────────────────────────────────────────

class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ParameterBody(_WireModel):
    name: str
    type: ValueType


class NodeBody(_WireModel):
    id: str
    kind: NodeKind
    name: str = ""
    value: Any = None
    value_type: Optional[ValueType] = Field(default=None, alias="valueType")
    variable: Optional[str] = None
    operator: Optional[str] = None
    function: Optional[str] = None
    parameters: Optional[List[ParameterBody]] = None
    return_type: Optional[ValueType] = Field(default=None, alias="returnType")
    defaults: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Dict[str, float]] = None


class DataEdgeBody(_WireModel):
    id: Optional[str] = None
    from_node: str = Field(alias="from")
    from_slot: str = Field(alias="fromSlot")
    to_node: str = Field(alias="to")
    to_slot: str = Field(alias="toSlot")


class ExecEdgeBody(_WireModel):
    id: Optional[str] = None
    from_node: str = Field(alias="from")
    to_node: str = Field(alias="to")
    label: str = ExecLabel.NEXT


class VariableBody(_WireModel):
    name: str
    type: ValueType
    default: Any = None
    scope: VariableScope = VariableScope.LOCAL


class GraphBody(_WireModel):
    id: str
    name: Optional[str] = None
    entry: Optional[str] = None
    nodes: List[NodeBody] = Field(default_factory=list)
    data_edges: List[DataEdgeBody] = Field(default_factory=list, alias="dataEdges")
    exec_edges: List[ExecEdgeBody] = Field(default_factory=list, alias="execEdges")
    variables: List[VariableBody] = Field(default_factory=list)


class FunctionBody(_WireModel):
    name: str
    parameters: List[ParameterBody] = Field(default_factory=list)
    return_type: Optional[ValueType] = Field(default=None, alias="returnType")
    body: GraphBody


class ProgramBody(_WireModel):
    program: GraphBody
    functions: List[FunctionBody] = Field(default_factory=list)


def _parse(model, data: Any, what: str):
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise SchemaError(f"invalid {what}: {exc.error_count()} problem(s)",
                          [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]) from exc


# ── Wire → model ──────────────────────────────────────────────────────────────

def _require(body: NodeBody, attribute: str) -> Any:
    value = getattr(body, attribute)
    if value is None:
        raise SchemaError(f"node '{body.id}' ({body.kind.value}) needs '{attribute}'")
    return value


def _parameters(items: Optional[List[ParameterBody]]) -> Tuple[Parameter, ...]:
    return tuple(Parameter(p.name, p.type) for p in items or ())


def _build_node(body: NodeBody, signature: Optional[FunctionBody] = None) -> Node:
    kind, d = body.kind, body.defaults
    if kind == NodeKind.ENTRY:
        return NodeSchema.entry(body.id, body.name or "Enter")
    if kind == NodeKind.LITERAL:
        return NodeSchema.literal(body.id, body.value, body.value_type, name=body.name)
    if kind == NodeKind.VARIABLE_DEFINE:
        return NodeSchema.variable_define(body.id, _require(body, "variable"), _require(body, "value_type"),
                                          d.get("value"), name=body.name)
    if kind == NodeKind.VARIABLE_GET:
        return NodeSchema.variable_get(body.id, _require(body, "variable"), _require(body, "value_type"),
                                       name=body.name)
    if kind == NodeKind.VARIABLE_SET:
        return NodeSchema.variable_set(body.id, _require(body, "variable"), _require(body, "value_type"),
                                       d.get("value"), name=body.name)
    if kind == NodeKind.OPERATOR:
        return NodeSchema.operator(body.id, _require(body, "operator"), d, name=body.name)
    if kind == NodeKind.BRANCH:
        return NodeSchema.branch(body.id, d.get("condition"), name=body.name)
    if kind == NodeKind.LOOP:
        return NodeSchema.loop(body.id, d.get("condition"), name=body.name)
    if kind == NodeKind.FUNCTION_CALL:
        return NodeSchema.function_call(body.id, _require(body, "function"), _parameters(body.parameters),
                                        body.return_type, d, name=body.name)
    if kind == NodeKind.FUNCTION_DEFINITION:
        if signature is not None:
            params = body.parameters if body.parameters is not None else signature.parameters
            return NodeSchema.function_definition(body.id, body.function or signature.name,
                                                  _parameters(params), name=body.name)
        return NodeSchema.function_definition(body.id, body.function or "", _parameters(body.parameters),
                                              name=body.name)
    if kind == NodeKind.RETURN:
        value_type = body.value_type
        if value_type is None and signature is not None:
            value_type = signature.return_type
        return NodeSchema.return_node(body.id, value_type, d.get("value"), name=body.name)
    if kind == NodeKind.PRINT:
        return NodeSchema.print_node(body.id, d.get("value"), name=body.name)
    if kind == NodeKind.INPUT:
        return NodeSchema.input_node(body.id, d.get("prompt", ""), name=body.name)
    raise SchemaError(f"node '{body.id}' has unsupported kind '{kind.value}'")


def _build_graph(body: GraphBody, signature: Optional[FunctionBody] = None) -> Graph:
    nodes = tuple(_build_node(n, signature) for n in body.nodes)
    entry_id = body.entry
    if entry_id is None:
        entry_kind = NodeKind.FUNCTION_DEFINITION if signature else NodeKind.ENTRY
        entry_id = next((n.id for n in nodes if n.kind == entry_kind), None)

    return Graph(
        id=body.id,
        name=body.name or body.id,
        nodes=nodes,
        data_edges=tuple(
            DataEdge(e.id or f"d{i}", e.from_node, e.from_slot, e.to_node, e.to_slot)
            for i, e in enumerate(body.data_edges, 1)
        ),
        exec_edges=tuple(
            ExecEdge(e.id or f"x{i}", e.from_node, e.to_node, e.label)
            for i, e in enumerate(body.exec_edges, 1)
        ),
        variables=tuple(Variable(v.name, v.type, v.default, v.scope) for v in body.variables),
        entry_id=entry_id,
    )


def graph_from_dict(data: Dict[str, Any]) -> Graph:
    """Build a program (or any standalone) Graph snapshot from its wire dict."""
    return _build_graph(_parse(GraphBody, data, "graph"))


def _build_function(body: FunctionBody) -> Function:
    return Function(
        name=body.name,
        parameters=_parameters(body.parameters),
        body=_build_graph(body.body, body),
        return_type=body.return_type,
    )


def function_from_dict(data: Dict[str, Any]) -> Function:
    """Build a Function (signature + body graph) from its wire dict."""
    return _build_function(_parse(FunctionBody, data, "function"))


def program_from_dict(data: Dict[str, Any]) -> Tuple[Graph, List[Function]]:
    """
    Accept either a bare program graph or {"program": …, "functions": […]}.
    """
    if isinstance(data, dict) and "program" in data:
        body = _parse(ProgramBody, data, "program")
        functions = [_build_function(f) for f in body.functions]
        logger.debug(f"loaded program '{body.program.id}' with {len(functions)} function(s)")
        return _build_graph(body.program), functions
    return graph_from_dict(data), []


# ── Model → wire ──────────────────────────────────────────────────────────────

def _node_to_dict(node: Node) -> Dict[str, Any]:
    out: Dict[str, Any] = {"id": node.id, "kind": node.kind.value}
    if node.name:
        out["name"] = node.name
    kind = node.kind

    if kind == NodeKind.LITERAL:
        out["value"] = node.value
        out["valueType"] = node.outputs[0].value_type.value
    elif kind in (NodeKind.VARIABLE_DEFINE, NodeKind.VARIABLE_SET):
        out["variable"] = node.variable
        out["valueType"] = node.inputs[0].value_type.value
    elif kind == NodeKind.VARIABLE_GET:
        out["variable"] = node.variable
        out["valueType"] = node.outputs[0].value_type.value
    elif kind == NodeKind.OPERATOR:
        out["operator"] = node.operator
    elif kind == NodeKind.FUNCTION_CALL:
        out["function"] = node.function
        out["parameters"] = [{"name": s.name, "type": s.value_type.value} for s in node.inputs]
        result = node.output("result")
        out["returnType"] = result.value_type.value if result else None
    elif kind == NodeKind.FUNCTION_DEFINITION:
        out["function"] = node.function
        out["parameters"] = [{"name": s.name, "type": s.value_type.value} for s in node.outputs]
    elif kind == NodeKind.RETURN:
        value = node.input("value")
        out["valueType"] = value.value_type.value if value else None

    defaults = {s.name: s.default for s in node.inputs if s.has_default}
    if defaults:
        out["defaults"] = defaults
    return out


def graph_to_dict(graph: Graph) -> Dict[str, Any]:
    """Serialise a Graph snapshot back to the wire shape (positions are not kept)."""
    return {
        "id": graph.id,
        "name": graph.name,
        "entry": graph.entry_id,
        "nodes": [_node_to_dict(n) for n in graph.nodes],
        "dataEdges": [
            {"id": e.id, "from": e.from_node_id, "fromSlot": e.from_slot, "to": e.to_node_id, "toSlot": e.to_slot}
            for e in graph.data_edges
        ],
        "execEdges": [
            {"id": e.id, "from": e.from_node_id, "to": e.to_node_id, "label": e.label}
            for e in graph.exec_edges
        ],
        "variables": [
            {"name": v.name, "type": v.value_type.value, "default": v.default, "scope": v.scope.value}
            for v in graph.variables
        ],
    }


def function_to_dict(function: Function) -> Dict[str, Any]:
    return {
        "name": function.name,
        "parameters": [{"name": p.name, "type": p.value_type.value} for p in function.parameters],
        "returnType": function.return_type.value if function.return_type else None,
        "body": graph_to_dict(function.body),
    }


__all__ = [
    "SchemaError", "GraphBody", "FunctionBody", "ProgramBody",
    "graph_from_dict", "function_from_dict", "program_from_dict",
    "graph_to_dict", "function_to_dict",
]
