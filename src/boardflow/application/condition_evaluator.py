"""Condition evaluator for automation rules.

Interprets a rule's ``{field, operator, value}`` clauses against a trigger
context. Evaluation is total: a missing field or a type mismatch yields
False. The one error is a clause that cannot be interpreted at all (unknown
operator, empty field path), reported as InvalidRuleDefinition so that the
rule author sees it in the execution log.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

import structlog

from boardflow.core.domain.automation_rule import AutomationRule, Condition, ConditionOperator
from boardflow.core.domain.errors import InvalidRuleDefinition
from boardflow.core.domain.trigger_context import TriggerContext
from boardflow.core.utils.time import parse_datetime, utc_now

logger = structlog.get_logger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


class _Missing:
    """Marker for a field that is absent from the context."""

    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()


def _snake(segment: str) -> str:
    return _CAMEL_RE.sub("_", segment).lower()


def _camel(segment: str) -> str:
    head, *rest = segment.split("_")
    return head + "".join(part.title() for part in rest)


def _step(value: Any, segment: str) -> Any:
    """Descend one path segment into a mapping or sequence."""
    if isinstance(value, Mapping):
        for key in (segment, _snake(segment), _camel(segment)):
            if key in value:
                return value[key]
        return MISSING
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        if segment.isdigit():
            index = int(segment)
            return value[index] if index < len(value) else MISSING
        # Project the segment over the items: task.labels.name -> names.
        projected = [_step(item, segment) for item in value]
        present = tuple(v for v in projected if v is not MISSING)
        if value and not present:
            return MISSING
        return present
    return MISSING


def resolve_field(path: str, context: TriggerContext) -> Any:
    """Resolve a dotted field path against a context.

    The root segment must be one of the fields populated for the context's
    trigger type (see CONTEXT_FIELDS); otherwise the field is absent.

    Returns:
        The value, or MISSING.
    """
    segments = [s for s in path.split(".") if s]
    if not segments:
        return MISSING
    root = _snake(segments[0])
    if root not in context.available_fields:
        return MISSING
    value = getattr(context, root, None)
    if value is None:
        return MISSING
    for segment in segments[1:]:
        value = _step(value, segment)
        if value is MISSING:
            return MISSING
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> float | None:
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, str) and value.strip().lower() == "now":
        return utc_now()
    return parse_datetime(value)


def _compare(actual: Any, expected: Any) -> int | None:
    """Three-way compare numbers or dates; None on type mismatch."""
    if _is_number(actual):
        other = _as_number(expected)
        if other is None:
            return None
        return (actual > other) - (actual < other)
    if isinstance(actual, (datetime, date, str)):
        left = parse_datetime(actual)
        right = _as_datetime(expected)
        if left is None or right is None:
            return None
        return (left > right) - (left < right)
    return None


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (datetime, date)):
        return _compare(actual, expected) == 0
    # True == 1 in Python; a flag never equals a number here.
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    if _is_sequence(actual) and _is_sequence(expected):
        return len(actual) == len(expected) and all(
            _equals(a, e) for a, e in zip(actual, expected)
        )
    if isinstance(actual, Mapping) and isinstance(expected, Mapping):
        return actual.keys() == expected.keys() and all(
            _equals(actual[key], expected[key]) for key in actual
        )
    return actual == expected


def _item_matches(item: Any, expected: Any) -> bool:
    if isinstance(item, Mapping):
        if item.get("id") == expected:
            return True
        name = item.get("name")
        return (
            isinstance(name, str)
            and isinstance(expected, str)
            and name.lower() == expected.lower()
        )
    if isinstance(item, str) and isinstance(expected, str):
        return item.lower() == expected.lower()
    return item == expected


def _contains(actual: Any, expected: Any) -> bool | None:
    """Substring or membership test; None on type mismatch."""
    if expected is None:
        return None
    if isinstance(actual, str):
        return str(expected).lower() in actual.lower()
    if isinstance(actual, Mapping):
        try:
            return expected in actual
        except TypeError:
            return None
    if _is_sequence(actual):
        return any(_item_matches(item, expected) for item in actual)
    return None


def _is_empty(actual: Any) -> bool:
    if actual is None:
        return True
    if isinstance(actual, (str, Mapping, Sequence)):
        return len(actual) == 0
    return False


def _apply(operator: ConditionOperator, actual: Any, expected: Any) -> bool:
    if operator == ConditionOperator.EQUALS:
        return _equals(actual, expected)
    if operator == ConditionOperator.NOT_EQUALS:
        return not _equals(actual, expected)
    if operator == ConditionOperator.CONTAINS:
        return _contains(actual, expected) is True
    if operator == ConditionOperator.NOT_CONTAINS:
        return _contains(actual, expected) is False
    if operator == ConditionOperator.GREATER_THAN:
        return _compare(actual, expected) == 1
    if operator == ConditionOperator.LESS_THAN:
        return _compare(actual, expected) == -1
    if operator == ConditionOperator.IS_EMPTY:
        return _is_empty(actual)
    if operator == ConditionOperator.IS_NOT_EMPTY:
        return not _is_empty(actual)
    return False


def validate_conditions(
    conditions: Sequence[Condition], *, rule_id: str | None = None
) -> list[tuple[Condition, ConditionOperator]]:
    """Parse every clause's operator up front.

    Raises:
        InvalidRuleDefinition: On an unknown operator or an empty field path.
    """
    parsed: list[tuple[Condition, ConditionOperator]] = []
    for index, condition in enumerate(conditions):
        if not condition.field.strip():
            raise InvalidRuleDefinition(
                f"Condition {index} has no field",
                rule_id=rule_id,
                details={"condition_index": index},
            )
        try:
            operator = ConditionOperator(condition.operator)
        except ValueError as exc:
            raise InvalidRuleDefinition(
                f"Unknown condition operator: {condition.operator!r}",
                rule_id=rule_id,
                details={"condition_index": index, "operator": condition.operator},
            ) from exc
        parsed.append((condition, operator))
    return parsed


def evaluate(
    conditions: Sequence[Condition],
    context: TriggerContext,
    *,
    rule_id: str | None = None,
) -> bool:
    """Evaluate clauses with implicit AND.

    Args:
        conditions: Clauses of one rule; empty means always true.
        context: Context to evaluate against.
        rule_id: Reported in errors and debug logs.

    Returns:
        True if every clause holds.

    Raises:
        InvalidRuleDefinition: If any clause is malformed, even one that
            would not be reached after an earlier False.
    """
    for condition, operator in validate_conditions(conditions, rule_id=rule_id):
        actual = resolve_field(condition.field, context)
        if actual is MISSING:
            logger.debug(
                "condition_evaluator.field_absent",
                rule_id=rule_id,
                field=condition.field,
                trigger_type=context.trigger_type.value,
            )
            return False
        if not _apply(operator, actual, condition.value):
            return False
    return True


def matches_trigger_filter(rule: AutomationRule, context: TriggerContext) -> bool:
    """Apply a rule's optional list/label/member narrowing."""
    if rule.trigger_filter.is_empty():
        return True
    return rule.trigger_filter.matches(context)
