"""
Leaf and compound specifications.

Comparison semantics:
- Numbers (int, float, Decimal; never bool) compare by numeric value
- Booleans and strings compare exactly
- ``==``/``!=`` across type families compare canonical string forms
  (booleans render as ``true``/``false``)
- Ordering operators are defined for numbers only; anything else raises
  OperatorTypeError
- A missing (None) actual value is never equal and never ordered
- NaN is never equal; ordering it raises OperatorTypeError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Literal, Union

from specforge.core.errors import OperatorTypeError
from specforge.rules.ir import CompoundExpression, Condition
from .accessors import FieldAccessor, accessor_for

logger = logging.getLogger(__name__)


def _unwrap(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _as_number(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None
    return None


def _canonical(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    number = _as_number(value)
    if number is not None:
        return str(number)
    return str(value)


def _equals(actual: Any, expected: Any) -> bool:
    actual, expected = _unwrap(actual), _unwrap(expected)
    if actual is None or expected is None:
        return False
    a, e = _as_number(actual), _as_number(expected)
    if a is not None and e is not None:
        if a.is_nan() or e.is_nan():
            return False
        return a == e
    if type(actual) is type(expected) or (isinstance(actual, str) and isinstance(expected, str)):
        return actual == expected
    return _canonical(actual) == _canonical(expected)


def _ordered(operator: str, actual: Any, expected: Any) -> tuple[Decimal, Decimal] | None:
    """Numeric pair for an ordering comparison, or None when actual is missing."""
    actual, expected = _unwrap(actual), _unwrap(expected)
    if actual is None:
        return None
    a, e = _as_number(actual), _as_number(expected)
    if a is None or e is None or a.is_nan() or e.is_nan():
        raise OperatorTypeError(operator, actual, expected)
    return a, e


# Operator implementations
def _eval_eq(actual: Any, expected: Any) -> bool:
    """Evaluate equality check."""
    return _equals(actual, expected)


def _eval_ne(actual: Any, expected: Any) -> bool:
    """Evaluate not-equal check. A missing actual value is never equal."""
    return not _equals(actual, expected)


def _eval_gt(actual: Any, expected: Any) -> bool:
    """Evaluate greater-than check."""
    pair = _ordered(">", actual, expected)
    return pair is not None and pair[0] > pair[1]


def _eval_lt(actual: Any, expected: Any) -> bool:
    """Evaluate less-than check."""
    pair = _ordered("<", actual, expected)
    return pair is not None and pair[0] < pair[1]


def _eval_gte(actual: Any, expected: Any) -> bool:
    """Evaluate greater-than-or-equal check."""
    pair = _ordered(">=", actual, expected)
    return pair is not None and pair[0] >= pair[1]


def _eval_lte(actual: Any, expected: Any) -> bool:
    """Evaluate less-than-or-equal check."""
    pair = _ordered("<=", actual, expected)
    return pair is not None and pair[0] <= pair[1]


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": _eval_eq,
    "!=": _eval_ne,
    ">": _eval_gt,
    "<": _eval_lt,
    ">=": _eval_gte,
    "<=": _eval_lte,
}


@dataclass(frozen=True)
class Specification:
    """A leaf predicate ``field <operator> value`` over a target.

    Args:
        field: Field name read from the target
        operator: One of ``==``, ``!=``, ``>``, ``<``, ``>=``, ``<=``
        value: Literal to compare against
        accessor: Fixed field accessor; chosen per target when omitted
    """

    field: str
    operator: str
    value: Any
    accessor: FieldAccessor | None = None

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported operator '{self.operator}'")

    @classmethod
    def from_condition(cls, condition: Condition) -> "Specification":
        return cls(condition.field, condition.operator, condition.value)

    def is_satisfied_by(self, target: Any) -> bool:
        """
        Raises:
            FieldResolutionError: If the target lacks the field
            OperatorTypeError: On an ordering operator over non-numeric values
        """
        accessor = self.accessor or accessor_for(target)
        actual = accessor.get(target, self.field)
        result = OPERATORS[self.operator](actual, self.value)
        logger.debug("%s %s %r (actual %r) -> %s", self.field, self.operator, self.value, actual, result)
        return result

    def __str__(self) -> str:
        return f"{self.field} {self.operator} {self.value!r}"


@dataclass(frozen=True, init=False)
class CompoundSpecification:
    """AND/OR composition of specifications, evaluated with short-circuit."""

    logic: Literal["AND", "OR"]
    specifications: tuple[Specification, ...]

    def __init__(self, logic: str, specifications):
        logic = logic.upper()
        if logic not in ("AND", "OR"):
            raise ValueError(f"Unsupported logic '{logic}', expected AND or OR")
        specifications = tuple(specifications)
        if not specifications:
            raise ValueError(f"{logic} needs at least one specification")
        object.__setattr__(self, "logic", logic)
        object.__setattr__(self, "specifications", specifications)

    @classmethod
    def from_expression(cls, expression: CompoundExpression) -> "CompoundSpecification":
        return cls(expression.operator, (Specification.from_condition(c) for c in expression.clauses))

    def is_satisfied_by(self, target: Any) -> bool:
        if self.logic == "AND":
            return all(spec.is_satisfied_by(target) for spec in self.specifications)
        return any(spec.is_satisfied_by(target) for spec in self.specifications)

    def __str__(self) -> str:
        joiner = f" {self.logic} "
        return "(" + joiner.join(str(s) for s in self.specifications) + ")"


Predicate = Union[Specification, CompoundSpecification]


def build_predicate(conditions: tuple[Condition, ...] | CompoundExpression) -> Predicate:
    """Main predicate of a compiled rule.

    A single condition becomes a Specification; a flat list becomes an AND.
    """
    if isinstance(conditions, CompoundExpression):
        return CompoundSpecification.from_expression(conditions)
    if len(conditions) == 1:
        return Specification.from_condition(conditions[0])
    return CompoundSpecification("AND", (Specification.from_condition(c) for c in conditions))
