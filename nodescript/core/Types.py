from enum import Enum
from typing import Any


def _encodable(text: str) -> bool:
    # lone surrogates survive JSON decoding but cannot be written out as UTF-8
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class PortDirection(Enum):
    INPUT = "input"
    OUTPUT = "output"


class ValueType(Enum):
    ANY = "any"
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"

    @staticmethod
    def validate(value: Any, data_type: 'ValueType') -> bool:
        """Check a literal/default value against a declared slot type."""
        if isinstance(value, str) and not _encodable(value):
            return False
        if data_type == ValueType.ANY:
            return isinstance(value, (bool, int, float, str))
        if data_type == ValueType.NUMBER:
            # bool is an int subclass, reject it explicitly
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        elif data_type == ValueType.STRING:
            return isinstance(value, str)
        elif data_type == ValueType.BOOLEAN:
            return isinstance(value, bool)

        return False

    @staticmethod
    def infer(value: Any) -> 'ValueType':
        if isinstance(value, bool):
            return ValueType.BOOLEAN
        if isinstance(value, (int, float)):
            return ValueType.NUMBER
        if isinstance(value, str):
            return ValueType.STRING
        return ValueType.ANY


# Directed pairs (source, target) that may be connected without identical types.
# ANY on either side is always accepted.
CONVERTIBLE_TYPES = frozenset({
    (ValueType.NUMBER, ValueType.STRING),
})


def is_convertible(source: ValueType, target: ValueType) -> bool:
    if source == target:
        return True
    if source == ValueType.ANY or target == ValueType.ANY:
        return True
    return (source, target) in CONVERTIBLE_TYPES


class NodeKind(Enum):
    ENTRY = "entry"
    LITERAL = "literal"
    VARIABLE_DEFINE = "variable_define"
    VARIABLE_GET = "variable_get"
    VARIABLE_SET = "variable_set"
    OPERATOR = "operator"
    BRANCH = "branch"
    LOOP = "loop"
    FUNCTION_CALL = "function_call"
    FUNCTION_DEFINITION = "function_definition"
    RETURN = "return"
    PRINT = "print"
    INPUT = "input"


# Kinds whose outputs are pure values and may be inlined as expressions.
PURE_KINDS = frozenset({
    NodeKind.LITERAL,
    NodeKind.OPERATOR,
    NodeKind.VARIABLE_GET,
})

# Kinds that only make sense as entry points of a compile unit.
ENTRY_KINDS = frozenset({
    NodeKind.ENTRY,
    NodeKind.FUNCTION_DEFINITION,
})

# Kinds that produce values but must run in sequence to do so.
SIDE_EFFECT_PRODUCERS = frozenset({
    NodeKind.FUNCTION_CALL,
    NodeKind.INPUT,
})


class ExecLabel:
    NEXT = "next"
    THEN = "then"
    ELSE = "else"
    BODY = "body"
    EXIT = "exit"


class VariableScope(Enum):
    GLOBAL = "global"
    LOCAL = "local"
