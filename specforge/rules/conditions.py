"""
Condition phrase parsing and literal coercion.

Natural-language operator phrases map to symbolic operators. Longer phrases
are tried first so that ``does not equal`` never resolves as ``equals`` and
``is greater than or equal to`` never resolves as ``is greater than``.
"""

from __future__ import annotations

import re
from typing import Any

from specforge.core.errors import RuleCompileError
from .feature_parser import DataTable
from .ir import Condition

# Phrase -> symbol, longest first
OPERATOR_PHRASES: list[tuple[str, str]] = sorted(
    [
        ("does not equal", "!="),
        ("is not equal to", "!="),
        ("is greater than or equal to", ">="),
        ("is less than or equal to", "<="),
        ("is greater than", ">"),
        ("is less than", "<"),
        ("is at least", ">="),
        ("is at most", "<="),
        ("is equal to", "=="),
        ("equals", "=="),
    ],
    key=lambda item: len(item[0]),
    reverse=True,
)

OPERATOR_SYMBOLS = frozenset({"==", "!=", ">", "<", ">=", "<="})

_PHRASE_TO_SYMBOL = dict(OPERATOR_PHRASES)
_ALTERNATION = "|".join(re.escape(phrase) for phrase, _ in OPERATOR_PHRASES)

# field <phrase> "quoted value"  |  field <phrase> bare_value
SIMPLE_CONDITION = re.compile(
    rf'^(\w+)\s+({_ALTERNATION})\s+(?:"([^"]*)"|(\S+))$'
)

_INTEGER = re.compile(r"^-?\d+$")
_FLOAT = re.compile(r"^-?\d+\.\d+$")


def coerce_value(raw: str) -> Any:
    """Heuristic literal typing.

    ``"x"`` -> str, ``42`` -> int, ``4.5`` -> float, ``true``/``false`` -> bool,
    anything else -> str.
    """
    raw = raw.strip()
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        return raw[1:-1]
    if _INTEGER.match(raw):
        return int(raw)
    if _FLOAT.match(raw):
        return float(raw)
    if raw in ("true", "false"):
        return raw == "true"
    return raw


def resolve_operator(text: str) -> str:
    """Symbol for an operator given as a symbol or a phrase."""
    text = " ".join(text.split())
    if text in OPERATOR_SYMBOLS:
        return text
    symbol = _PHRASE_TO_SYMBOL.get(text.lower())
    if symbol is None:
        raise RuleCompileError(f"Unknown operator '{text}'")
    return symbol


def parse_condition_phrase(text: str) -> Condition:
    """
    Parse ``<field> <operator phrase> <value>``.

    Examples:
        ``age is at least 18``
        ``role_id equals "Manager"``

    Raises:
        RuleCompileError: If no operator phrase matches
    """
    match = SIMPLE_CONDITION.match(" ".join(text.split()))
    if not match:
        raise RuleCompileError(f"Could not parse condition: {text!r}")
    field, phrase, quoted, bare = match.groups()
    value = quoted if quoted is not None else coerce_value(bare)
    return Condition(field=field, operator=_PHRASE_TO_SYMBOL[phrase], value=value)


def parse_condition_table(table: DataTable) -> tuple[Condition, ...]:
    """Turn a ``| field | operator | value |`` table into conditions.

    The first row is a header and is skipped.
    """
    if len(table.header) < 3:
        raise RuleCompileError(
            f"Condition table at line {table.line} needs field, operator and value columns"
        )
    conditions = []
    for row in table.body:
        field, operator, raw = row[0], row[1], row[2]
        if not field:
            raise RuleCompileError(f"Condition table at line {table.line} has a row without a field")
        conditions.append(
            Condition(field=field, operator=resolve_operator(operator), value=coerce_value(raw))
        )
    return tuple(conditions)
