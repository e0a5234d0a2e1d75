"""
NodeScript Compiler
===================
Compiles a node graph snapshot plus the registered functions into Fennel
source text.

Pipeline:
    Graph     →  [validator]  →  List[GraphError]          (all units)
    Registry  →  [call check] →  List[CompileError]
    Graph     →  [resolver]   →  UnitIR                    (per unit)
    UnitIR    →  [emitter]    →  Fennel source str         (per unit)

Each stage runs over every unit and collects its errors.  Validation must
come back clean before anything else runs.  Call checks and resolution are
per unit: a unit with broken calls is not resolved, every other unit still
is, and their errors are reported together.  Emission runs only when no
error is left, so a failed compile never returns partial source.

Public API
----------
    from nodescript.compiler import compile_graph, compile_to_source

    result = compile_graph(program, registry)
    if result.ok:
        print(result.source)
    else:
        for error in result.errors:
            print(error)

    # or, raising CompilationFailed:
    source = compile_to_source(program, registry)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, TYPE_CHECKING

from .emitter import assemble, emit_globals, emit_unit, program_namer
from .errors import CompilationFailed, NodeScriptError
from .resolver import global_declarations, resolve_function, resolve_program
from .validator import validate, validate_function

if TYPE_CHECKING:
    from ..core.GraphPrimitives import Graph
    from ..noderegistry.FunctionRegistry import FunctionRegistry

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    errors: List[NodeScriptError] = field(default_factory=list)
    entry: str = ""
    # function name → emitted unit, in emission order
    functions: Dict[str, str] = field(default_factory=dict)
    source: str = ""

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        if not self.ok:
            return {"ok": False, "errors": [e.to_dict() for e in self.errors]}
        return {"ok": True, "source": self.source, "entry": self.entry, "functions": dict(self.functions)}


def _failed(errors: List[NodeScriptError], stage: str) -> CompileResult:
    logger.info(f"compile failed during {stage}: {len(errors)} error(s)")
    return CompileResult(errors=list(errors))


def compile_graph(program: "Graph", registry: Optional["FunctionRegistry"] = None) -> CompileResult:
    """
    Compile the program graph together with every registered function.

    Args:
        program:  The top-level program graph (entry node of kind `entry`).
        registry: Registered user functions.  Defaults to an empty registry.

    Returns:
        A CompileResult carrying either all emitted units or the non-empty,
        ordered error list.
    """
    if registry is None:
        from ..noderegistry.FunctionRegistry import FunctionRegistry
        registry = FunctionRegistry()

    functions = registry.snapshot()

    # ── 1. structure ────────────────────────────────────────────────────
    errors: List[NodeScriptError] = list(validate(program))
    for name in sorted(functions):
        errors.extend(validate_function(functions[name]))
    if errors:
        return _failed(errors, "validation")

    # ── 2. calls ────────────────────────────────────────────────────────
    # A unit whose own calls are broken is not resolved; the others still
    # are, so independent failures all surface in one run.
    program_calls = registry.check_calls(program)
    errors.extend(program_calls)
    broken = set()
    for name in sorted(functions):
        unit_calls = registry.check_calls(functions[name].body, unit=name)
        if unit_calls:
            broken.add(name)
        errors.extend(unit_calls)
    errors.extend(registry.check_call_cycles())

    # ── 3. resolution ───────────────────────────────────────────────────
    order = registry.emission_order()
    units = {}
    for name in order:
        if name in broken:
            continue
        try:
            units[name] = resolve_function(functions[name], program)
        except NodeScriptError as exc:
            errors.append(exc.in_unit(name))
    if not program_calls:
        try:
            entry_unit = resolve_program(program)
        except NodeScriptError as exc:
            errors.append(exc.in_unit(program.name))
    if errors:
        return _failed(errors, "call checking and resolution")

    # ── 4. emission ─────────────────────────────────────────────────────
    declarations = global_declarations(program)
    namer = program_namer(declarations, order)
    try:
        globals_text = emit_globals(declarations, namer, program.name)
    except NodeScriptError as exc:
        errors.append(exc.in_unit(program.name))
    emitted: Dict[str, str] = {}
    for name in order:
        try:
            emitted[name] = emit_unit(units[name], namer, functions)
        except NodeScriptError as exc:
            errors.append(exc.in_unit(name))
    try:
        entry = emit_unit(entry_unit, namer, functions)
    except NodeScriptError as exc:
        errors.append(exc.in_unit(program.name))
    if errors:
        return _failed(errors, "code generation")

    source = assemble(program.name, globals_text, emitted.values(), entry)
    logger.info(f"compiled '{program.name}': {len(emitted)} function(s), {source.count(chr(10))} line(s)")
    return CompileResult(entry=entry, functions=emitted, source=source)


def compile_to_source(program: "Graph", registry: Optional["FunctionRegistry"] = None) -> str:
    """Like compile_graph() but returns the source or raises CompilationFailed."""
    result = compile_graph(program, registry)
    if not result.ok:
        raise CompilationFailed(result.errors)
    return result.source


__all__ = ["compile_graph", "compile_to_source", "CompileResult", "CompilationFailed"]
