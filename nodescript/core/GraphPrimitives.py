from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

from .Types import ExecLabel, NodeKind, PortDirection, ValueType, VariableScope


# Slots and edges are plain NamedTuples: immutable and hashable.
class Slot(NamedTuple):
    name: str
    value_type: ValueType
    direction: PortDirection
    # Used when an input slot has no incoming DataEdge.
    default: Any = None

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def __repr__(self):
        return f"Slot({self.direction.value}:{self.name}:{self.value_type.value})"


class DataEdge(NamedTuple):
    id: str
    from_node_id: str
    from_slot: str
    to_node_id: str
    to_slot: str

    def __repr__(self):
        return f"DataEdge({self.from_node_id}.{self.from_slot} -> {self.to_node_id}.{self.to_slot})"


class ExecEdge(NamedTuple):
    id: str
    from_node_id: str
    to_node_id: str
    label: str = ExecLabel.NEXT

    def __repr__(self):
        return f"ExecEdge({self.from_node_id} -[{self.label}]-> {self.to_node_id})"


@dataclass(frozen=True)
class Node:
    id: str
    kind: NodeKind
    inputs: Tuple[Slot, ...] = ()
    outputs: Tuple[Slot, ...] = ()
    name: str = ""

    # Per-kind attributes; unused ones stay None.
    value: Any = None              # LITERAL
    variable: Optional[str] = None  # VARIABLE_DEFINE / VARIABLE_GET / VARIABLE_SET
    operator: Optional[str] = None  # OPERATOR
    function: Optional[str] = None  # FUNCTION_CALL / FUNCTION_DEFINITION

    def input(self, name: str) -> Optional[Slot]:
        return next((s for s in self.inputs if s.name == name), None)

    def output(self, name: str) -> Optional[Slot]:
        return next((s for s in self.outputs if s.name == name), None)

    @property
    def label(self) -> str:
        return self.name or f"{self.kind.value}:{self.id}"


@dataclass(frozen=True)
class Variable:
    name: str
    value_type: ValueType
    default: Any = None
    scope: VariableScope = VariableScope.LOCAL


@dataclass(frozen=True)
class Parameter:
    name: str
    value_type: ValueType


@dataclass(frozen=True)
class Graph:
    """
    Immutable snapshot of one compile unit.

    Nodes live in an arena keyed by id; every edge refers to nodes by id only.
    Node order is the order given by the editor and is the only iteration
    order the compiler relies on.
    """
    id: str
    name: str
    nodes: Tuple[Node, ...] = ()
    data_edges: Tuple[DataEdge, ...] = ()
    exec_edges: Tuple[ExecEdge, ...] = ()
    variables: Tuple[Variable, ...] = ()
    entry_id: Optional[str] = None

    _by_id: Mapping[str, Node] = field(init=False, repr=False, compare=False)
    _incoming: Mapping[Tuple[str, str], Tuple[DataEdge, ...]] = field(init=False, repr=False, compare=False)
    _outgoing: Mapping[Tuple[str, str], Tuple[ExecEdge, ...]] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        # Coerce lists from callers into tuples so the snapshot stays frozen.
        for name in ("nodes", "data_edges", "exec_edges", "variables"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

        by_id: Dict[str, Node] = {}
        for node in self.nodes:
            by_id.setdefault(node.id, node)

        incoming: Dict[Tuple[str, str], List[DataEdge]] = defaultdict(list)
        for edge in self.data_edges:
            incoming[(edge.to_node_id, edge.to_slot)].append(edge)

        outgoing: Dict[Tuple[str, str], List[ExecEdge]] = defaultdict(list)
        for edge in self.exec_edges:
            outgoing[(edge.from_node_id, edge.label)].append(edge)

        object.__setattr__(self, "_by_id", MappingProxyType(by_id))
        object.__setattr__(self, "_incoming", MappingProxyType({k: tuple(v) for k, v in incoming.items()}))
        object.__setattr__(self, "_outgoing", MappingProxyType({k: tuple(v) for k, v in outgoing.items()}))

    # ── Queries ────────────────────────────────────────────────────────────

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._by_id.get(node_id)

    def get_incoming_data(self, node_id: str, slot: str) -> Tuple[DataEdge, ...]:
        return self._incoming.get((node_id, slot), ())

    def get_data_source(self, node_id: str, slot: str) -> Optional[DataEdge]:
        edges = self.get_incoming_data(node_id, slot)
        return edges[0] if edges else None

    def get_outgoing_data(self, node_id: str) -> Tuple[DataEdge, ...]:
        return tuple(e for e in self.data_edges if e.from_node_id == node_id)

    def get_outgoing_exec(self, node_id: str, label: str) -> Tuple[ExecEdge, ...]:
        return self._outgoing.get((node_id, label), ())

    def get_all_outgoing_exec(self, node_id: str) -> Tuple[ExecEdge, ...]:
        return tuple(e for e in self.exec_edges if e.from_node_id == node_id)

    def successor(self, node_id: str, label: str = ExecLabel.NEXT) -> Optional[str]:
        edges = self.get_outgoing_exec(node_id, label)
        return edges[0].to_node_id if edges else None


@dataclass(frozen=True)
class Function:
    name: str
    parameters: Tuple[Parameter, ...]
    body: Graph
    return_type: Optional[ValueType] = None

    def __post_init__(self):
        object.__setattr__(self, "parameters", tuple(self.parameters))

    @property
    def arity(self) -> int:
        return len(self.parameters)


class GraphBuilder:
    """
    Mutable, editor-side accumulator that produces immutable Graph snapshots.

    Edge ids are allocated sequentially (d1, d2, ... / x1, x2, ...) unless
    given explicitly, so a builder replayed in the same order always yields
    the same snapshot.
    """

    def __init__(self, graph_id: str, name: Optional[str] = None):
        self.graph_id = graph_id
        self.name = name or graph_id
        self.nodes: List[Node] = []
        self.data_edges: List[DataEdge] = []
        self.exec_edges: List[ExecEdge] = []
        self.variables: List[Variable] = []
        self.entry_id: Optional[str] = None

    def add(self, node: Node) -> Node:
        self.nodes.append(node)
        if node.kind in (NodeKind.ENTRY, NodeKind.FUNCTION_DEFINITION) and self.entry_id is None:
            self.entry_id = node.id
        return node

    def connect(self, from_node: str, from_slot: str, to_node: str, to_slot: str,
                edge_id: Optional[str] = None) -> DataEdge:
        edge = DataEdge(edge_id or f"d{len(self.data_edges) + 1}", from_node, from_slot, to_node, to_slot)
        self.data_edges.append(edge)
        return edge

    def chain(self, from_node: str, to_node: str, label: str = ExecLabel.NEXT,
              edge_id: Optional[str] = None) -> ExecEdge:
        edge = ExecEdge(edge_id or f"x{len(self.exec_edges) + 1}", from_node, to_node, label)
        self.exec_edges.append(edge)
        return edge

    def sequence(self, *node_ids: str) -> None:
        """Link consecutive nodes with `next` edges."""
        for a, b in zip(node_ids, node_ids[1:]):
            self.chain(a, b)

    def declare(self, name: str, value_type: ValueType, default: Any = None,
                scope: VariableScope = VariableScope.LOCAL) -> Variable:
        variable = Variable(name, value_type, default, scope)
        self.variables.append(variable)
        return variable

    def build(self) -> Graph:
        return Graph(
            id=self.graph_id,
            name=self.name,
            nodes=tuple(self.nodes),
            data_edges=tuple(self.data_edges),
            exec_edges=tuple(self.exec_edges),
            variables=tuple(self.variables),
            entry_id=self.entry_id,
        )
