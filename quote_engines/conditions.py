"""
quote_engines.conditions -- Workflow condition evaluation.

Responsibility:
    Evaluate a single ``(field, operator, value)`` condition against a
    quotation snapshot.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import quote_kernel/domain/ types and quote_kernel.exceptions.

Invariants enforced:
    - Closed operator set: dispatch is a table over ``ConditionOperator``;
      there is no expression parsing.
    - Fail closed: a missing field, a non-numeric operand for an ordering
      operator, or a malformed condition never matches.
    - Ordering operators also accept strings that parse as a finite
      decimal (``"150000.00"``).  Booleans are never numbers.
    - Strict equality: ``eq``/``ne``/``in``/``nin`` compare without
      coercion.  Numbers compare by value (``1 == 1.0``), booleans only
      equal booleans, strings only equal strings.

Failure modes:
    - ``evaluate_condition`` raises ConfigurationError for an unknown
      operator, a field that is not a non-empty string, or a
      non-collection ``in``/``nin`` value.
    - ``matches`` catches that ConfigurationError, logs it and returns False.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from quote_kernel.domain.approval import (
    ApprovalCondition,
    ConditionOperator,
    QuotationSnapshot,
)
from quote_kernel.exceptions import ConfigurationError
from quote_kernel.logging_config import get_logger

logger = get_logger("engines.conditions")

_MISSING = object()


def resolve_field(snapshot: QuotationSnapshot, field_path: str) -> Any:
    """Resolve a dotted field path against a snapshot.

    ``customer.customerType`` -> snapshot["customer"]["customerType"].
    Returns the ``_MISSING`` sentinel when any segment is absent; an explicit
    ``None`` value is returned as ``None``.
    """
    current: Any = snapshot
    for part in field_path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return Decimal(str(left)) == Decimal(str(right))
    if type(left) is not type(right):
        return False
    return left == right


def _as_collection(value: Any) -> tuple[Any, ...]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    raise ConfigurationError(
        f"'in'/'nin' conditions need a list value, got {type(value).__name__}"
    )


def _to_decimal(value: Any) -> Decimal | None:
    """Numeric operand as a finite Decimal, or None when it is not one."""
    if _is_number(value):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    return number if number.is_finite() else None


def _ordered(compare: Callable[[Decimal, Decimal], bool]) -> Callable[[Any, Any], bool]:
    def _op(actual: Any, expected: Any) -> bool:
        left, right = _to_decimal(actual), _to_decimal(expected)
        if left is None or right is None:
            return False
        return compare(left, right)
    return _op


def _member(actual: Any, expected: Any) -> bool:
    return any(_strict_equals(actual, candidate) for candidate in _as_collection(expected))


_OPERATORS: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQ: _strict_equals,
    ConditionOperator.NE: lambda a, e: not _strict_equals(a, e),
    ConditionOperator.GT: _ordered(lambda a, e: a > e),
    ConditionOperator.GTE: _ordered(lambda a, e: a >= e),
    ConditionOperator.LT: _ordered(lambda a, e: a < e),
    ConditionOperator.LTE: _ordered(lambda a, e: a <= e),
    ConditionOperator.IN: _member,
    ConditionOperator.NIN: lambda a, e: not _member(a, e),
}


def evaluate_condition(condition: ApprovalCondition, snapshot: QuotationSnapshot) -> bool:
    """Evaluate one condition, raising on a malformed definition.

    Raises:
        ConfigurationError: unknown operator, a field that is not a
            non-empty string, or non-list value for in/nin.
    """
    if not isinstance(condition.field, str) or not condition.field.strip():
        raise ConfigurationError(
            f"Condition field must be a non-empty string, got {condition.field!r}"
        )
    operator = ConditionOperator.parse(condition.operator)
    if operator in (ConditionOperator.IN, ConditionOperator.NIN):
        _as_collection(condition.value)

    actual = resolve_field(snapshot, condition.field)
    if actual is _MISSING:
        return False
    return _OPERATORS[operator](actual, condition.value)


def matches(
    condition: ApprovalCondition,
    snapshot: QuotationSnapshot,
    workflow_id: str | None = None,
) -> bool:
    """Evaluate one condition; a malformed condition is logged and does not match."""
    try:
        return evaluate_condition(condition, snapshot)
    except ConfigurationError as exc:
        logger.warning(
            "condition_configuration_error",
            extra={
                "workflow_id": workflow_id,
                "field": condition.field,
                "operator": str(condition.operator),
                "reason": exc.reason,
            },
        )
        return False


def matches_all(
    conditions: tuple[ApprovalCondition, ...],
    snapshot: QuotationSnapshot,
    workflow_id: str | None = None,
) -> bool:
    """AND across conditions.  An empty tuple matches every quotation."""
    return all(matches(c, snapshot, workflow_id) for c in conditions)
