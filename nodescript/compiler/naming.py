"""
Identifier allocation for emitted Fennel.

Every Symbol the resolver produces is mapped to a concrete identifier here,
exactly once per compile.  Names are sanitized against Fennel special forms,
Lua keywords and the handful of globals the emitted code relies on, then
disambiguated with numeric suffixes:

    total, total_2, total_3 …

Allocation is first-come-first-served in emission order, so the same unit
always gets the same names.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, Optional, Set, Tuple

from .ir import Symbol


RESERVED_WORDS = frozenset({
    # Fennel special forms and macros
    "fn", "lambda", "λ", "let", "local", "var", "set", "global", "if", "when",
    "each", "for", "while", "do", "and", "or", "not", "not=", "values",
    "quote", "macro", "macros", "import-macros", "require-macros",
    "eval-compiler", "match", "case", "collect", "icollect", "accumulate",
    "hashfn", "length", "doto", "partial", "pick-values", "tset", "lua",
    # Lua keywords
    "true", "false", "nil", "end", "then", "else", "elseif", "repeat", "until",
    "return", "break", "goto", "function", "in",
    # Globals the generated code calls
    "print", "io", "tostring", "tonumber", "string", "table", "math",
    "_G", "_ENV", "arg",
})

_INVALID = re.compile(r"[^A-Za-z0-9_]")


def sanitize(hint: str) -> str:
    """
    Turn an arbitrary editor label into a plain identifier.

    >>> sanitize("my var")
    'my_var'
    >>> sanitize("2nd")
    '_2nd'
    """
    name = _INVALID.sub("_", hint.strip()) or "_"
    if name[0].isdigit():
        name = "_" + name
    if name in RESERVED_WORDS:
        name = name + "_"
    return name


class Namer:
    """
    Maps Symbols to identifiers, unique within this namer and its parents.

    A function unit gets a child namer of the program-wide namer so global
    variables and function names stay reserved inside every body.
    """

    def __init__(self, parent: Optional["Namer"] = None):
        self.parent = parent
        self._names: Dict[Tuple[str, str], str] = {}
        self._taken: Set[str] = set()

    def child(self) -> "Namer":
        return Namer(self)

    def _is_taken(self, name: str) -> bool:
        namer = self
        while namer is not None:
            if name in namer._taken:
                return True
            namer = namer.parent
        return False

    def _lookup(self, key: Tuple[str, str]) -> Optional[str]:
        namer = self
        while namer is not None:
            if key in namer._names:
                return namer._names[key]
            namer = namer.parent
        return None

    def name(self, symbol: Symbol) -> str:
        key = (symbol.kind, symbol.key)
        existing = self._lookup(key)
        if existing is not None:
            return existing

        base = sanitize(symbol.hint)
        candidate, suffix = base, 2
        while self._is_taken(candidate):
            candidate = f"{base}_{suffix}"
            suffix += 1

        self._names[key] = candidate
        self._taken.add(candidate)
        return candidate

    def reserve(self, symbols: Iterable[Symbol]) -> None:
        for symbol in symbols:
            self.name(symbol)


__all__ = ["Namer", "sanitize", "RESERVED_WORDS"]
