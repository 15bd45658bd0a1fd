"""Automation rule domain models.

Defines the "when X, if Y, then Z" configuration owned by a board. Rules are
declarative: the dispatcher interprets them, it never executes code stored
in them. Operators and action types are stored as raw strings so that a
rule with an unknown operator still loads and can be reported back to its
author as an invalid definition.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from boardflow.core.domain.context_builder import parse_trigger_type
from boardflow.core.domain.errors import InvalidRuleDefinition, MalformedContext
from boardflow.core.domain.trigger_context import TriggerContext, TriggerType
from boardflow.core.utils.time import parse_datetime, utc_now


class ConditionOperator(str, Enum):
    """Operators understood by the condition evaluator."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class ActionType(str, Enum):
    """Side effects an automation rule can request."""

    MOVE_TASK = "move_task"
    ASSIGN_MEMBER = "assign_member"
    UNASSIGN_MEMBER = "unassign_member"
    ADD_LABEL = "add_label"
    REMOVE_LABEL = "remove_label"
    SET_DUE_DATE = "set_due_date"
    POST_COMMENT = "post_comment"
    SEND_WEBHOOK = "send_webhook"
    CREATE_CHECKLIST_ITEM = "create_checklist_item"
    ARCHIVE_TASK = "archive_task"
    SEND_NOTIFICATION = "send_notification"


@dataclass(frozen=True)
class Condition:
    """One ``{field, operator, value}`` clause.

    Attributes:
        field: Dotted path into the trigger context (``label.name``).
        operator: Operator name, see ConditionOperator.
        value: Operand; ignored by ``is_empty``/``is_not_empty``.
    """

    field: str
    operator: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {"field": self.field, "operator": self.operator, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        """Deserialize from stored dict."""
        return cls(
            field=str(data.get("field", "")),
            operator=str(data.get("operator", "")),
            value=data.get("value"),
        )


@dataclass(frozen=True)
class ActionSpec:
    """One declared action and its parameters."""

    action_type: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {"action_type": self.action_type, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionSpec:
        """Deserialize from stored dict.

        Accepts ``{"type": ..., **params}`` as written by the board UI as
        well as ``{"action_type": ..., "params": {...}}``.
        """
        action_type = data.get("action_type", data.get("actionType", data.get("type", "")))
        if "params" in data or "parameters" in data:
            params = dict(data.get("params", data.get("parameters")) or {})
        else:
            params = {
                k: v
                for k, v in data.items()
                if k not in ("action_type", "actionType", "type")
            }
        return cls(action_type=str(action_type), params=params)


@dataclass(frozen=True)
class TriggerFilter:
    """Optional narrowing of a trigger type.

    Attributes:
        from_list_id: ``task_moved`` only when leaving this list.
        to_list_id: ``task_moved`` only when entering this list.
        label_id: Label triggers only for this label.
        member_id: ``member_assigned`` only for this member.
    """

    from_list_id: str | None = None
    to_list_id: str | None = None
    label_id: str | None = None
    member_id: str | None = None

    def is_empty(self) -> bool:
        return not any((self.from_list_id, self.to_list_id, self.label_id, self.member_id))

    def matches(self, context: TriggerContext) -> bool:
        """Check the filter against a context of any trigger type."""
        if context.trigger_type == TriggerType.TASK_MOVED:
            if self.from_list_id and self.from_list_id != context.from_list_id:
                return False
            if self.to_list_id and self.to_list_id != context.to_list_id:
                return False
        elif context.trigger_type in (TriggerType.LABEL_ADDED, TriggerType.LABEL_REMOVED):
            if self.label_id and self.label_id != context.label_id:
                return False
        elif context.trigger_type == TriggerType.MEMBER_ASSIGNED:
            if self.member_id and self.member_id != context.member_id:
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Serialize non-empty entries for storage."""
        return {
            key: value
            for key, value in (
                ("from_list_id", self.from_list_id),
                ("to_list_id", self.to_list_id),
                ("label_id", self.label_id),
                ("member_id", self.member_id),
            )
            if value
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TriggerFilter:
        """Deserialize from stored dict (snake_case or camelCase keys)."""
        data = data or {}

        def _get(snake: str, camel: str) -> str | None:
            value = data.get(snake, data.get(camel))
            return str(value) if value else None

        return cls(
            from_list_id=_get("from_list_id", "fromListId"),
            to_list_id=_get("to_list_id", "toListId"),
            label_id=_get("label_id", "labelId"),
            member_id=_get("member_id", "memberId"),
        )


def _optional_count(value: Any, name: str, rule_id: str) -> int | None:
    if value is None:
        return None
    try:
        count = int(value)
    except (TypeError, ValueError):
        count = -1
    if isinstance(value, bool) or count < 0:
        raise InvalidRuleDefinition(
            f"{name} must be a non-negative integer, got {value!r}", rule_id=rule_id
        )
    return count


@dataclass(frozen=True)
class AutomationRule:
    """A board-owned automation rule.

    Attributes:
        rule_id: Unique identifier.
        board_id: Owning board, fixed at creation.
        trigger_type: Event kind the rule listens to.
        name: Human-readable rule name.
        description: What the rule does, for documentation.
        conditions: Clauses combined with AND; empty means always match.
        actions: Ordered actions; a rule without actions is inert.
        active: Inactive rules are never matched.
        trigger_filter: Optional narrowing of the trigger type.
        created_by: Author, provenance only.
        created_at: Creation time; defines the stable execution order.
        max_executions: Cap on recorded executions; None or 0 means no cap.
        execution_count: Executions recorded so far (dry runs excluded).
    """

    board_id: str
    trigger_type: TriggerType
    rule_id: str = field(default_factory=lambda: uuid4().hex)
    name: str = ""
    description: str = ""
    conditions: tuple[Condition, ...] = ()
    actions: tuple[ActionSpec, ...] = ()
    active: bool = True
    trigger_filter: TriggerFilter = field(default_factory=TriggerFilter)
    created_by: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    max_executions: int | None = None
    execution_count: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "conditions", tuple(self.conditions))
        object.__setattr__(self, "actions", tuple(self.actions))

    @property
    def is_inert(self) -> bool:
        """Rules without actions are skipped, not failed."""
        return not self.actions

    @property
    def execution_cap_reached(self) -> bool:
        return bool(self.max_executions) and self.execution_count >= self.max_executions

    def with_execution_recorded(self) -> AutomationRule:
        """Copy with the execution counter advanced by one."""
        return replace(self, execution_count=self.execution_count + 1)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        data: dict[str, Any] = {
            "rule_id": self.rule_id,
            "board_id": self.board_id,
            "trigger_type": self.trigger_type.value,
            "name": self.name,
            "description": self.description,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "active": self.active,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "max_executions": self.max_executions,
            "execution_count": self.execution_count,
        }
        if not self.trigger_filter.is_empty():
            data["trigger_filter"] = self.trigger_filter.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutomationRule:
        """Deserialize from a stored dict or a hand-written YAML rule."""
        rule_id = str(data.get("rule_id") or data.get("id") or uuid4().hex)
        try:
            trigger_type = parse_trigger_type(
                data.get("trigger_type", data.get("triggerType"))
            )
        except MalformedContext as exc:
            raise InvalidRuleDefinition(exc.message, rule_id=rule_id) from exc
        created_at = parse_datetime(data.get("created_at", data.get("createdAt")))
        active = data.get("active", data.get("enabled", True))
        max_executions = _optional_count(
            data.get("max_executions", data.get("maxExecutions")), "max_executions", rule_id
        )
        execution_count = _optional_count(
            data.get("execution_count", data.get("executionCount")), "execution_count", rule_id
        )
        return cls(
            rule_id=rule_id,
            board_id=str(data.get("board_id", data.get("boardId", ""))),
            trigger_type=trigger_type,
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            conditions=tuple(Condition.from_dict(c) for c in data.get("conditions") or []),
            actions=tuple(ActionSpec.from_dict(a) for a in data.get("actions") or []),
            active=bool(active),
            trigger_filter=TriggerFilter.from_dict(
                data.get("trigger_filter", data.get("triggerConfig"))
            ),
            created_by=data.get("created_by", data.get("createdBy")),
            created_at=created_at or utc_now(),
            max_executions=max_executions or None,
            execution_count=execution_count or 0,
        )
