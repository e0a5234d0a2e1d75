from __future__ import annotations

import heapq
import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Set

from ..compiler.errors import CompileError, ErrorKind
from ..compiler.validator import strongly_connected
from ..core.GraphPrimitives import Function, Graph, Node
from ..core.Types import NodeKind

logger = logging.getLogger(__name__)


# =========================================================================================
# FUNCTION REGISTRY
#
# User-defined functions persist here between compiles.  The editor is the single
# writer (register / replace / remove); a compile only ever sees snapshot(), a
# read-only view taken once at the start of the run.
#
# Before code generation every function_call node is checked against the registry:
#   - the callee must be registered                       (UNKNOWN_FUNCTION)
#   - parameter count, names and types must match         (ARITY_MISMATCH)
#   - a `result` slot exists exactly when a value returns (ARITY_MISMATCH)
# Calls between distinct functions must not form a cycle  (CALL_CYCLE)
# =========================================================================================

class FunctionRegistry:
    def __init__(self, functions: Iterable[Function] = ()):
        self._functions: Dict[str, Function] = {}
        for fn in functions:
            self.register(fn)

    # ── Editing ────────────────────────────────────────────────────────────

    def register(self, function: Function) -> Function:
        if function.name in self._functions:
            raise CompileError(ErrorKind.DUPLICATE_FUNCTION,
                               f"function '{function.name}' is already registered", unit=function.name)
        self._functions[function.name] = function
        logger.debug(f"registered function '{function.name}' (arity {function.arity})")
        return function

    def replace(self, function: Function) -> Optional[Function]:
        """Register `function`, overwriting any definition with the same name. Returns the old one."""
        previous = self._functions.get(function.name)
        self._functions[function.name] = function
        return previous

    def remove(self, name: str) -> Function:
        try:
            function = self._functions.pop(name)
        except KeyError:
            raise CompileError(ErrorKind.UNKNOWN_FUNCTION, f"function '{name}' is not registered") from None
        logger.debug(f"removed function '{name}'")
        return function

    # ── Queries ────────────────────────────────────────────────────────────

    def lookup(self, name: str) -> Optional[Function]:
        return self._functions.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def names(self) -> List[str]:
        return sorted(self._functions)

    def snapshot(self) -> Mapping[str, Function]:
        return MappingProxyType(dict(self._functions))

    # ── Call checks ────────────────────────────────────────────────────────

    def check_call(self, node: Node, unit: Optional[str] = None) -> List[CompileError]:
        fn = self.lookup(node.function) if node.function else None
        if fn is None:
            return [CompileError(ErrorKind.UNKNOWN_FUNCTION,
                                 f"call to unknown function '{node.function}'", [node.id], unit=unit)]

        errors: List[CompileError] = []
        if len(node.inputs) != fn.arity:
            errors.append(CompileError(ErrorKind.ARITY_MISMATCH,
                                       f"'{fn.name}' takes {fn.arity} argument(s), call passes {len(node.inputs)}",
                                       [node.id], unit=unit))
        else:
            for slot, param in zip(node.inputs, fn.parameters):
                if slot.name != param.name or slot.value_type != param.value_type:
                    errors.append(CompileError(
                        ErrorKind.ARITY_MISMATCH,
                        f"argument '{slot.name}: {slot.value_type.value}' does not match parameter "
                        f"'{param.name}: {param.value_type.value}' of '{fn.name}'", [node.id], unit=unit))

        result = node.output("result")
        if (result is None) != (fn.return_type is None) or (result and result.value_type != fn.return_type):
            expected = fn.return_type.value if fn.return_type else "nothing"
            errors.append(CompileError(ErrorKind.ARITY_MISMATCH,
                                       f"'{fn.name}' returns {expected}, call site disagrees", [node.id], unit=unit))
        return errors

    def check_calls(self, graph: Graph, unit: Optional[str] = None) -> List[CompileError]:
        """Check every function_call node in `graph`, in node order."""
        errors: List[CompileError] = []
        for node in graph.nodes:
            if node.kind == NodeKind.FUNCTION_CALL:
                errors.extend(self.check_call(node, unit or graph.name))
        return errors

    # ── Call graph ─────────────────────────────────────────────────────────

    def call_graph(self) -> Dict[str, List[str]]:
        """Registered function → sorted registered callees (self-calls excluded)."""
        graph: Dict[str, List[str]] = {}
        for name in self.names():
            callees: Set[str] = {
                n.function for n in self._functions[name].body.nodes
                if n.kind == NodeKind.FUNCTION_CALL and n.function in self._functions and n.function != name
            }
            graph[name] = sorted(callees)
        return graph

    def check_call_cycles(self) -> List[CompileError]:
        calls = self.call_graph()
        errors = []
        for component in strongly_connected(calls, lambda name: calls[name]):
            if len(component) > 1:
                members = sorted(component)
                # the call nodes that close the cycle, member by member
                call_ids = [
                    n.id for name in members for n in self._functions[name].body.nodes
                    if n.kind == NodeKind.FUNCTION_CALL and n.function in component and n.function != name
                ]
                errors.append(CompileError(ErrorKind.CALL_CYCLE,
                                           f"functions call each other in a cycle: {' -> '.join(members)}",
                                           call_ids, unit=members[0]))
        return errors

    def emission_order(self) -> List[str]:
        """
        Callees before callers, ties broken by name.

        Functions caught in a call cycle are appended by name at the end;
        check_call_cycles() reports them.
        """
        calls = self.call_graph()
        waiting = {name: set(callees) for name, callees in calls.items()}
        callers: Dict[str, List[str]] = {name: [] for name in calls}
        for name, callees in calls.items():
            for callee in callees:
                callers[callee].append(name)

        ready = [name for name, deps in waiting.items() if not deps]
        heapq.heapify(ready)
        order: List[str] = []
        while ready:
            name = heapq.heappop(ready)
            order.append(name)
            for caller in callers[name]:
                waiting[caller].discard(name)
                if not waiting[caller]:
                    heapq.heappush(ready, caller)

        order.extend(sorted(set(calls) - set(order)))
        return order


__all__ = ["FunctionRegistry"]
