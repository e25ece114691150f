"""Condition evaluator — tests a declarative AND-only condition tree against facts.

Pure Python, no state. A condition tree looks like::

    {"all": [{"fact": "line_item.quantity", "operator": "greater_than", "value": 5}]}

Facts are nested mappings addressed by dot path. A missing fact, an
unparseable number or an unknown operator makes the condition fail; nothing
here raises on bad rule data.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, assert_never

from src.schemas.coercion import parse_decimal
from src.schemas.pricing import Condition, ConditionSet, lenient_condition_set

logger = logging.getLogger(__name__)

_MISSING = object()


class Operator(str, Enum):
    """Supported comparison operators."""

    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IN = "in"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    BETWEEN = "between"


# ── Fact resolution ──────────────────────────────────────────────────


def resolve_fact(facts: Mapping[str, Any], path: str) -> Any:
    """Walk a dot path through nested mappings.

    Returns the module-private ``_MISSING`` sentinel when any step is absent
    or None.
    """
    value: Any = facts
    for key in path.split("."):
        if value is None:
            return _MISSING
        if isinstance(value, Mapping):
            value = value.get(key, _MISSING)
        else:
            value = getattr(value, key, _MISSING)
        if value is _MISSING:
            return _MISSING
    return _MISSING if value is None else value


# ── Value helpers ────────────────────────────────────────────────────


def _as_text(value: Any) -> str:
    """Render a fact the way rule authors type it ("true", "12", "12.5")."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return _as_text(value.value)
    if isinstance(value, (int, float, Decimal)):
        number = parse_decimal(value)
        if number is None:
            return str(value)
        return format(number.normalize(), "f") if number != 0 else "0"
    if isinstance(value, (list, tuple)):
        return ",".join(_as_text(v) for v in value)
    return str(value)


def _strict_number(value: Any) -> Decimal | None:
    """Whole-string numeric conversion used by loose equality ("" → 0)."""
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float, Decimal)):
        return parse_decimal(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return Decimal("0")
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def _loose_equal(left: Any, right: Any) -> bool:
    """Equality with string/number coercion: ``"5" == 5``, ``True == 1``."""
    if isinstance(left, Enum):
        left = left.value
    if isinstance(right, Enum):
        right = right.value
    if left == right and type(left) is type(right):
        return True
    if isinstance(left, bool) or isinstance(right, bool):
        return _loose_equal(
            int(left) if isinstance(left, bool) else left,
            int(right) if isinstance(right, bool) else right,
        )
    numeric = (int, float, Decimal)
    if isinstance(left, numeric) or isinstance(right, numeric):
        a, b = _strict_number(left), _strict_number(right)
        return a is not None and b is not None and a == b
    if left is None or right is None:
        return left is None and right is None
    return _as_text(left) == _as_text(right)


def _compare(fact_value: Any, expected: Any, operator: Operator) -> bool:
    a, b = parse_decimal(fact_value), parse_decimal(expected)
    if a is None or b is None:
        return False
    if operator == Operator.GREATER_THAN:
        return a > b
    if operator == Operator.LESS_THAN:
        return a < b
    if operator == Operator.GREATER_THAN_OR_EQUAL:
        return a >= b
    return a <= b


def _in_list(fact_value: Any, expected: Any) -> bool:
    if isinstance(expected, (list, tuple, set, frozenset)):
        options = [_as_text(v) for v in expected]
    else:
        options = [part.strip() for part in _as_text(expected).split(",")]
    return _as_text(fact_value) in options


def _between(fact_value: Any, expected: Any) -> bool:
    if not isinstance(expected, (list, tuple)) or len(expected) < 2:
        return False
    low, high, value = parse_decimal(expected[0]), parse_decimal(expected[1]), parse_decimal(fact_value)
    if low is None or high is None or value is None:
        return False
    return low <= value <= high


# ── Public API ───────────────────────────────────────────────────────


def evaluate_condition(condition: Condition, facts: Mapping[str, Any]) -> bool:
    """Evaluate a single condition. Unknown operators fail closed."""
    fact_value = resolve_fact(facts, condition.fact)
    if fact_value is _MISSING:
        return False

    try:
        operator = Operator(condition.operator)
    except ValueError:
        logger.warning("Unknown condition operator %r on fact %s — treated as no match", condition.operator, condition.fact)
        return False

    expected = condition.value

    match operator:
        case Operator.EQUAL:
            return _loose_equal(fact_value, expected)
        case Operator.NOT_EQUAL:
            return not _loose_equal(fact_value, expected)
        case (
            Operator.GREATER_THAN
            | Operator.LESS_THAN
            | Operator.GREATER_THAN_OR_EQUAL
            | Operator.LESS_THAN_OR_EQUAL
        ):
            return _compare(fact_value, expected, operator)
        case Operator.IN:
            return _in_list(fact_value, expected)
        case Operator.CONTAINS:
            return _as_text(expected) in _as_text(fact_value)
        case Operator.STARTS_WITH:
            return _as_text(fact_value).startswith(_as_text(expected))
        case Operator.BETWEEN:
            return _between(fact_value, expected)
        case _:
            assert_never(operator)


def evaluate_conditions(
    conditions: ConditionSet | Mapping[str, Any] | None,
    facts: Mapping[str, Any],
) -> bool:
    """Return True when every condition in ``conditions["all"]`` holds.

    An empty or missing tree always matches; a malformed one never does.
    """
    conditions = lenient_condition_set(conditions)
    if conditions is None:
        return True
    if conditions.malformed:
        return False
    if not conditions.all:
        return True
    return all(evaluate_condition(c, facts) for c in conditions.all)
