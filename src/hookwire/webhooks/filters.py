"""Payload filter evaluation.

Conditions are evaluated in order and combined with logical AND. A field
path that walks through a missing key or a null intermediate resolves to
MISSING, and MISSING fails every operator.

Configuration mistakes (an unknown operator, an invalid regex) fail closed:
the condition evaluates to False and a warning is logged, so one broken
subscriber never interrupts fan-out to the others.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from hookwire.logging import get_logger

if TYPE_CHECKING:
    from hookwire.models import FilterCondition, FilterConfig

logger = get_logger(__name__)


class _Missing:
    """Sentinel for a dot-path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing()


def resolve_path(payload: Any, path: str) -> Any:
    """Resolve a dot-path against a JSON-like structure.

    Dict keys are looked up by name; list elements by integer index.

    Args:
        payload: Decoded JSON value.
        path: Dot separated path such as "order.items.0.sku".

    Returns:
        The resolved value (possibly None for an explicit null), or MISSING.
    """
    current = payload
    for key in path.split("."):
        if isinstance(current, dict):
            if key not in current:
                return MISSING
            current = current[key]
        elif isinstance(current, list):
            try:
                current = current[int(key)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def stringify(value: Any) -> str:
    """Coerce a JSON value to text for the string operators."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, dict | list):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def _strict_equals(left: Any, right: Any) -> bool:
    # bool is an int subclass; True must not equal 1
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return bool(left == right)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def evaluate_condition(condition: FilterCondition, payload: Any) -> bool:
    """Evaluate a single filter condition against a payload."""
    value = resolve_path(payload, condition.field)
    if value is MISSING:
        return False

    operator = condition.operator
    if operator == "equals":
        return _strict_equals(value, condition.value)

    text = stringify(value)
    operand = stringify(condition.value)

    if operator == "contains":
        return operand in text
    if operator == "starts_with":
        return text.startswith(operand)
    if operator == "ends_with":
        return text.endswith(operand)
    if operator == "regex":
        try:
            return _compile(operand).search(text) is not None
        except re.error as e:
            logger.warning(
                "Invalid filter regex, condition fails closed",
                field=condition.field,
                pattern=operand,
                error=str(e),
            )
            return False

    logger.warning(
        "Unknown filter operator, condition fails closed",
        field=condition.field,
        operator=operator,
    )
    return False


def matches(conditions: list[FilterCondition], payload: Any) -> bool:
    """Check whether every condition passes, short-circuiting on failure."""
    return all(evaluate_condition(condition, payload) for condition in conditions)


def matches_filters(filters: FilterConfig, payload: Any) -> bool:
    """Apply a subscriber's filter configuration.

    Disabled filtering always matches.
    """
    if not filters.enabled:
        return True
    return matches(filters.conditions, payload)
