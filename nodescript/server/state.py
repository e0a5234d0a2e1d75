"""
CompilerState — the compile service's long-lived state.

The service owns one FunctionRegistry.  The editor is its only writer (through
the /api/functions routes); each compile reads a snapshot of it.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from nodescript.compiler import CompileResult, compile_graph
from nodescript.core.GraphPrimitives import Function, Graph
from nodescript.noderegistry.FunctionRegistry import FunctionRegistry

logger = logging.getLogger(__name__)


class CompilerState:
    """Holds the function registry shared by every request."""

    def __init__(self) -> None:
        self.registry = FunctionRegistry()

    def put_function(self, function: Function) -> bool:
        """Register or replace `function`. Returns True when it was new."""
        previous = self.registry.replace(function)
        logger.info(f"function '{function.name}' {'replaced' if previous else 'registered'}")
        return previous is None

    def remove_function(self, name: str) -> Optional[Function]:
        if name not in self.registry:
            return None
        return self.registry.remove(name)

    def function_names(self) -> List[str]:
        return self.registry.names()

    def compile(self, program: Graph, extra: List[Function] = ()) -> CompileResult:
        """
        Compile `program` against the registry.  Functions in `extra` take
        precedence over registered ones for this compile only.
        """
        registry = self.registry
        if extra:
            registry = FunctionRegistry(self.registry.snapshot().values())
            for function in extra:
                registry.replace(function)
        return compile_graph(program, registry)

    def reset(self) -> None:
        self.registry = FunctionRegistry()


# Module-level singleton, mirroring the editor's single compile session
compiler_state = CompilerState()
