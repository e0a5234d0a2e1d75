"""
compile_from_json.py — CLI for the NodeScript compiler
======================================================
Compiles a serialised graph JSON file into a Fennel source file.

Usage
-----
    python -m nodescript.compile_from_json <graph.json> [options]

Options
-------
    --out     <dir>     Output directory (default: $NODESCRIPT_OUT_DIR or compiled/)
    --print             Print the generated source to stdout instead of writing a file

Input
-----
Either a bare program graph, or a program bundled with its functions:

    {"program": { …graph… }, "functions": [ { …function… }, … ]}

See nodescript/server/serializers/graph_serializer.py for the wire shape.

Examples
--------
    python -m nodescript.compile_from_json examples/greeting.json
    python -m nodescript.compile_from_json examples/countdown.json --print
"""

from __future__ import annotations

import argparse
import json
import re
import sys
from pathlib import Path

from nodescript.compiler import compile_graph
from nodescript.compiler.errors import CompileError
from nodescript.config import Settings, load_env
from nodescript.noderegistry.FunctionRegistry import FunctionRegistry
from nodescript.server.serializers.graph_serializer import SchemaError, program_from_dict


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="compile_from_json",
        description="Compile a NodeScript JSON graph to Fennel source.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    p.add_argument(
        "graph_json",
        metavar="graph.json",
        help="Path to the graph JSON file to compile.",
    )
    p.add_argument(
        "--out",
        metavar="DIR",
        default=settings.out_dir,
        help=f"Output directory for the compiled .fnl file (default: {settings.out_dir}/).",
    )
    p.add_argument(
        "--print",
        dest="print_only",
        action="store_true",
        help="Print generated source to stdout instead of writing a file.",
    )
    return p


def _graph_name_to_filename(graph_name: str) -> str:
    """Turn 'Hello World!' → 'hello_world.fnl'."""
    safe = re.sub(r"[^a-z0-9]+", "_", graph_name.lower()).strip("_") or "program"
    return f"{safe}.fnl"


def main(argv=None) -> int:
    load_env()
    settings = Settings.from_env()
    args = _build_parser(settings).parse_args(argv)

    json_path = Path(args.graph_json)
    if not json_path.exists():
        print(f"[error] File not found: {json_path}", file=sys.stderr)
        return 1

    # ── Load JSON → snapshot ─────────────────────────────────────────────────
    try:
        data = json.loads(json_path.read_text(encoding="utf-8"))
        program, functions = program_from_dict(data)
    except json.JSONDecodeError as exc:
        print(f"[error] Invalid JSON: {exc}", file=sys.stderr)
        return 1
    except SchemaError as exc:
        print(f"[error] Schema validation failed: {exc}", file=sys.stderr)
        for detail in exc.details:
            print(f"        {'.'.join(str(p) for p in detail['loc'])}: {detail['msg']}", file=sys.stderr)
        return 1

    # Progress goes to stderr when stdout carries the source.
    status = sys.stderr if args.print_only else sys.stdout
    print(f"[compile_from_json] graph     : {program.name}", file=status)
    print(f"[compile_from_json] nodes     : {len(program.nodes)}", file=status)
    print(f"[compile_from_json] functions : {len(functions)}", file=status)

    # ── Compile ──────────────────────────────────────────────────────────────
    registry = FunctionRegistry()
    try:
        for function in functions:
            registry.register(function)
    except CompileError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    result = compile_graph(program, registry)
    if not result.ok:
        for error in result.errors:
            print(f"[error] {error}", file=sys.stderr)
        return 1

    # ── Output ───────────────────────────────────────────────────────────────
    if args.print_only:
        sys.stdout.write(result.source)
        return 0

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / _graph_name_to_filename(program.name)
    out_path.write_text(result.source, encoding="utf-8")

    print(f"[compile_from_json] wrote     : {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
