"""
NodeScript Compiler — Graph Validator
=====================================
Structural and type checks over one Graph snapshot, run before any
resolution is attempted.

The validator never stops at the first problem: every check runs and all
GraphErrors are returned in a fixed order (check order, then node order,
then edge order) so the same graph always yields the same list.

Loop back-edges
---------------
An ExecEdge X → L is a back-edge when L is a LOOP node, X is reachable
from L's "body" successor without passing through L, and L dominates X
(the entry cannot reach X without passing through L).  Back-edges are the
only place an exec cycle may appear; they are removed before the cycle
check.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..core.GraphPrimitives import Function, Graph, Node
from ..core.NodeSchema import EXEC_LABELS, OPERATORS, REQUIRED_EXEC_LABELS
from ..core.Types import (
    ExecLabel,
    NodeKind,
    SIDE_EFFECT_PRODUCERS,
    ValueType,
    VariableScope,
    is_convertible,
)
from .errors import ErrorKind, GraphError

logger = logging.getLogger(__name__)


# ── Graph helpers shared with the resolver ────────────────────────────────────

def find_entry(graph: Graph) -> Optional[Node]:
    """The explicit entry node, or the single entry-kind node if none is set."""
    if graph.entry_id is not None:
        return graph.get_node(graph.entry_id)
    candidates = [n for n in graph.nodes if n.kind in (NodeKind.ENTRY, NodeKind.FUNCTION_DEFINITION)]
    return candidates[0] if len(candidates) == 1 else None


def loop_back_edges(graph: Graph) -> Set[str]:
    """Ids of every ExecEdge that closes a loop body back onto its LOOP node."""
    back: Set[str] = set()
    entry = find_entry(graph)
    for node in graph.nodes:
        if node.kind != NodeKind.LOOP:
            continue
        body_start = graph.successor(node.id, ExecLabel.BODY)
        if body_start is None:
            continue
        in_body = _reach(graph, body_start, stop=node.id)
        # the loop must dominate the edge's source: nodes the entry reaches
        # around the loop node sit before it, not inside its body
        if entry is not None and entry.id != node.id:
            in_body -= _reach(graph, entry.id, stop=node.id)
        for edge in graph.exec_edges:
            if edge.to_node_id == node.id and (edge.from_node_id in in_body or edge.label == ExecLabel.BODY
                                               and edge.from_node_id == node.id):
                back.add(edge.id)
    return back


def _reach(graph: Graph, start: str, stop: str) -> Set[str]:
    seen: Set[str] = set()
    pending = [start]
    while pending:
        nid = pending.pop()
        if nid == stop or nid in seen or graph.get_node(nid) is None:
            continue
        seen.add(nid)
        pending.extend(e.to_node_id for e in graph.get_all_outgoing_exec(nid))
    return seen


def strongly_connected(node_ids: Iterable[str], successors: Callable[[str], Iterable[str]]) -> List[List[str]]:
    """Iterative Tarjan SCC; components come out in discovery order."""
    index: Dict[str, int] = {}
    low: Dict[str, int] = {}
    stack: List[str] = []
    on_stack: Set[str] = set()
    components: List[List[str]] = []
    counter = 0

    for root in node_ids:
        if root in index:
            continue
        index[root] = low[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(successors(root)))]

        while work:
            v, children = work[-1]
            descended = False
            for w in children:
                if w not in index:
                    index[w] = low[w] = counter
                    counter += 1
                    stack.append(w)
                    on_stack.add(w)
                    work.append((w, iter(successors(w))))
                    descended = True
                    break
                if w in on_stack:
                    low[v] = min(low[v], index[w])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[v])
            if low[v] == index[v]:
                component = []
                while True:
                    w = stack.pop()
                    on_stack.discard(w)
                    component.append(w)
                    if w == v:
                        break
                components.append(component)

    return components


# ── Validator ────────────────────────────────────────────────────────────────

class Validator:
    def __init__(self, graph: Graph, function: Optional[Function] = None):
        self.graph = graph
        self.function = function
        self.errors: List[GraphError] = []
        self._order = {n.id: i for i, n in reversed(list(enumerate(graph.nodes)))}

    def _error(self, kind: ErrorKind, message: str, node_ids=(), edge_ids=()) -> None:
        self.errors.append(GraphError(kind, message, node_ids, edge_ids, unit=self.graph.name))

    def _sorted(self, node_ids: Iterable[str]) -> List[str]:
        return sorted(node_ids, key=lambda nid: self._order.get(nid, len(self._order)))

    # ── Nodes & entry ──────────────────────────────────────────────────────

    def _check_nodes(self) -> None:
        counts = Counter(n.id for n in self.graph.nodes)
        for node_id, count in counts.items():
            if count > 1:
                self._error(ErrorKind.DUPLICATE_NODE, f"node id '{node_id}' used {count} times", [node_id])

        for node in self.graph.nodes:
            if node.kind == NodeKind.OPERATOR and node.operator not in OPERATORS:
                self._error(ErrorKind.UNKNOWN_OPERATOR, f"unknown operator '{node.operator}'", [node.id])
            if node.kind == NodeKind.LITERAL:
                slot = node.output("value")
                if slot is None or not ValueType.validate(node.value, slot.value_type):
                    expected = slot.value_type.value if slot else "a value slot"
                    self._error(ErrorKind.INVALID_LITERAL,
                                f"literal {node.value!r} does not match {expected}", [node.id])
            for slot in node.inputs:
                if slot.has_default and not ValueType.validate(slot.default, slot.value_type):
                    self._error(ErrorKind.INVALID_LITERAL,
                                f"default {slot.default!r} of slot '{slot.name}' does not match "
                                f"{slot.value_type.value}", [node.id])

    def _check_entry(self) -> None:
        wanted = NodeKind.FUNCTION_DEFINITION if self.function else NodeKind.ENTRY
        misplaced = NodeKind.ENTRY if self.function else NodeKind.FUNCTION_DEFINITION

        for node in self.graph.nodes:
            if node.kind == misplaced:
                where = "a function body" if self.function else "the program graph"
                self._error(ErrorKind.MISPLACED_ENTRY, f"{node.kind.value} node is not allowed in {where}",
                            [node.id])

        entries = [n for n in self.graph.nodes if n.kind == wanted]
        if not entries:
            self._error(ErrorKind.MISSING_ENTRY, f"graph has no {wanted.value} node")
        elif len(entries) > 1:
            self._error(ErrorKind.MULTIPLE_ENTRIES, f"graph has {len(entries)} {wanted.value} nodes",
                        [n.id for n in entries])
        elif self.graph.entry_id is not None and self.graph.entry_id != entries[0].id:
            self._error(ErrorKind.MISSING_ENTRY,
                        f"entry id '{self.graph.entry_id}' is not the {wanted.value} node", [entries[0].id])

    # ── Edges ──────────────────────────────────────────────────────────────

    def _check_edges(self) -> None:
        g = self.graph
        self._valid_data = []
        for edge in g.data_edges:
            src, dst = g.get_node(edge.from_node_id), g.get_node(edge.to_node_id)
            if src is None or dst is None:
                self._error(ErrorKind.DANGLING_EDGE, "data edge references a missing node",
                            [nid for nid, n in ((edge.from_node_id, src), (edge.to_node_id, dst)) if n],
                            [edge.id])
                continue
            if src.output(edge.from_slot) is None or dst.input(edge.to_slot) is None:
                self._error(ErrorKind.DANGLING_EDGE,
                            f"data edge {edge.from_slot} -> {edge.to_slot} references a missing slot",
                            [src.id, dst.id], [edge.id])
                continue
            self._valid_data.append(edge)

        for node in g.nodes:
            for slot in node.inputs:
                incoming = g.get_incoming_data(node.id, slot.name)
                if len(incoming) > 1:
                    self._error(ErrorKind.MULTIPLE_DATA_EDGES,
                                f"input '{slot.name}' has {len(incoming)} incoming data edges",
                                [node.id], [e.id for e in incoming])

        entry = find_entry(g)
        self._valid_exec = []
        for edge in g.exec_edges:
            src, dst = g.get_node(edge.from_node_id), g.get_node(edge.to_node_id)
            if src is None or dst is None:
                self._error(ErrorKind.DANGLING_EDGE, "exec edge references a missing node",
                            [nid for nid, n in ((edge.from_node_id, src), (edge.to_node_id, dst)) if n],
                            [edge.id])
                continue
            if edge.label not in EXEC_LABELS[src.kind]:
                self._error(ErrorKind.INVALID_EXEC_LABEL,
                            f"{src.kind.value} node has no '{edge.label}' exec output", [src.id], [edge.id])
                continue
            if entry is not None and dst.id == entry.id:
                self._error(ErrorKind.EXEC_INTO_ENTRY, "exec edge leads into the entry node",
                            [src.id, dst.id], [edge.id])
                continue
            self._valid_exec.append(edge)

        for node in g.nodes:
            for label in EXEC_LABELS[node.kind]:
                outgoing = g.get_outgoing_exec(node.id, label)
                if len(outgoing) > 1:
                    self._error(ErrorKind.DUPLICATE_EXEC_LABEL,
                                f"{len(outgoing)} exec edges leave through '{label}'",
                                [node.id], [e.id for e in outgoing])

    # ── Connections ────────────────────────────────────────────────────────

    def _check_connections(self) -> None:
        g = self.graph
        for node in g.nodes:
            for slot in node.inputs:
                if not g.get_incoming_data(node.id, slot.name) and not slot.has_default:
                    self._error(ErrorKind.MISSING_CONNECTION,
                                f"input '{slot.name}' of {node.label} is not connected and has no default",
                                [node.id])
            for label in REQUIRED_EXEC_LABELS.get(node.kind, ()):
                if not g.get_outgoing_exec(node.id, label):
                    self._error(ErrorKind.MISSING_EXEC_EDGE,
                                f"{node.kind.value} node {node.label} has no '{label}' exec edge", [node.id])

    # ── Cycles ─────────────────────────────────────────────────────────────

    def _check_exec_cycles(self) -> None:
        back = loop_back_edges(self.graph)
        successors: Dict[str, List[str]] = {n.id: [] for n in self.graph.nodes}
        edges_by_pair: Dict[tuple, List[str]] = {}
        for edge in self._valid_exec:
            if edge.id in back:
                continue
            successors[edge.from_node_id].append(edge.to_node_id)
            edges_by_pair.setdefault((edge.from_node_id, edge.to_node_id), []).append(edge.id)

        for component in strongly_connected(successors, lambda nid: successors[nid]):
            members = set(component)
            if len(component) == 1 and component[0] not in successors[component[0]]:
                continue
            edge_ids = [eid for (a, b), ids in edges_by_pair.items() if a in members and b in members
                        for eid in ids]
            self._error(ErrorKind.ILLEGAL_EXEC_CYCLE,
                        "exec edges form a cycle that is not a loop back-edge",
                        self._sorted(members), edge_ids)

    def _check_data_cycles(self) -> None:
        successors: Dict[str, List[str]] = {n.id: [] for n in self.graph.nodes}
        for edge in self._valid_data:
            successors[edge.from_node_id].append(edge.to_node_id)

        for component in strongly_connected(successors, lambda nid: successors[nid]):
            members = set(component)
            if len(component) == 1 and component[0] not in successors[component[0]]:
                continue
            edge_ids = [e.id for e in self._valid_data if e.from_node_id in members and e.to_node_id in members]
            self._error(ErrorKind.DATA_CYCLE,
                        f"data edges form a cycle through {len(members)} node(s)",
                        self._sorted(members), edge_ids)

    # ── Types ──────────────────────────────────────────────────────────────

    def _check_types(self) -> None:
        g = self.graph
        for edge in self._valid_data:
            src_slot = g.get_node(edge.from_node_id).output(edge.from_slot)
            dst_slot = g.get_node(edge.to_node_id).input(edge.to_slot)
            if not is_convertible(src_slot.value_type, dst_slot.value_type):
                self._error(ErrorKind.TYPE_MISMATCH,
                            f"cannot connect {src_slot.value_type.value} output '{src_slot.name}' "
                            f"to {dst_slot.value_type.value} input '{dst_slot.name}'",
                            [edge.from_node_id, edge.to_node_id], [edge.id])

    # ── Side effects ───────────────────────────────────────────────────────

    def _check_side_effects(self) -> None:
        g = self.graph
        sequenced = {e.to_node_id for e in self._valid_exec}
        for node in g.nodes:
            if node.kind not in SIDE_EFFECT_PRODUCERS or node.id in sequenced:
                continue
            consumers = [e for e in self._valid_data if e.from_node_id == node.id]
            if consumers:
                self._error(ErrorKind.UNSEQUENCED_SIDE_EFFECT,
                            f"{node.kind.value} node {node.label} feeds data but is never executed",
                            [node.id] + [e.to_node_id for e in consumers], [e.id for e in consumers])
            else:
                logger.warning(f"{node.kind.value} node '{node.id}' is not reachable and will be dropped")

    # ── Variables & signature ──────────────────────────────────────────────

    def _check_variables(self) -> None:
        counts = Counter(v.name for v in self.graph.variables)
        for name, count in counts.items():
            if count > 1:
                self._error(ErrorKind.DUPLICATE_VARIABLE, f"variable '{name}' declared {count} times")
        for variable in self.graph.variables:
            if self.function is not None and variable.scope == VariableScope.GLOBAL:
                self._error(ErrorKind.INVALID_SCOPE,
                            f"function '{self.function.name}' cannot declare global variable '{variable.name}'")
            if variable.default is not None and not ValueType.validate(variable.default, variable.value_type):
                self._error(ErrorKind.INVALID_LITERAL,
                            f"initial value {variable.default!r} of '{variable.name}' does not match "
                            f"{variable.value_type.value}")

    def _check_signature(self) -> None:
        fn = self.function
        if fn is None:
            return
        for node in self.graph.nodes:
            if node.kind == NodeKind.FUNCTION_DEFINITION:
                declared = [(p.name, p.value_type) for p in fn.parameters]
                exposed = [(s.name, s.value_type) for s in node.outputs]
                if declared != exposed or (node.function and node.function != fn.name):
                    self._error(ErrorKind.SIGNATURE_MISMATCH,
                                f"definition node does not match the signature of '{fn.name}'", [node.id])
            elif node.kind == NodeKind.RETURN:
                slot = node.input("value")
                actual = slot.value_type if slot else None
                if actual != fn.return_type:
                    expected = fn.return_type.value if fn.return_type else "no value"
                    self._error(ErrorKind.SIGNATURE_MISMATCH,
                                f"return node must return {expected} in '{fn.name}'", [node.id])

    def run(self) -> List[GraphError]:
        self._check_nodes()
        self._check_entry()
        self._check_edges()
        self._check_connections()
        self._check_exec_cycles()
        self._check_data_cycles()
        self._check_types()
        self._check_side_effects()
        self._check_variables()
        self._check_signature()
        logger.debug(f"validated graph '{self.graph.name}': {len(self.errors)} error(s)")
        return self.errors


def validate(graph: Graph, function: Optional[Function] = None) -> List[GraphError]:
    """
    Validate a graph snapshot.

    Args:
        graph:    The program graph, or a function body.
        function: The owning Function when `graph` is a function body.

    Returns:
        Every GraphError found, empty when the graph is structurally sound.
    """
    return Validator(graph, function).run()


def validate_function(function: Function) -> List[GraphError]:
    return validate(function.body, function)


__all__ = ["validate", "validate_function", "find_entry", "loop_back_edges", "strongly_connected", "Validator"]
