"""Trigger context domain model.

A ``TriggerContext`` is the immutable snapshot of one domain event ("a label
was added to task X by user Y"). The dispatcher evaluates rules against it
and execution logs store its serialized form, so it must never change once
built. Chained actions derive new contexts instead of editing the original.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any


class TriggerType(str, Enum):
    """Domain events that can activate automation rules."""

    TASK_CREATED = "task_created"
    TASK_MOVED = "task_moved"
    TASK_COMPLETED = "task_completed"
    DUE_DATE_APPROACHING = "due_date_approaching"
    DUE_DATE_PASSED = "due_date_passed"
    LABEL_ADDED = "label_added"
    LABEL_REMOVED = "label_removed"
    MEMBER_ASSIGNED = "member_assigned"
    COMMENT_ADDED = "comment_added"
    CHECKLIST_COMPLETED = "checklist_completed"


# Context fields present for every trigger type.
_COMMON_FIELDS = frozenset(
    {"board_id", "trigger_type", "user_id", "user", "metadata"}
)
_TASK_FIELDS = frozenset({"task_id", "task", "list_id"})

# Static lookup table: which context fields a condition may reference for a
# given trigger type. Anything outside the table resolves as absent.
CONTEXT_FIELDS: dict[TriggerType, frozenset[str]] = {
    TriggerType.TASK_CREATED: _COMMON_FIELDS | _TASK_FIELDS,
    TriggerType.TASK_MOVED: _COMMON_FIELDS
    | _TASK_FIELDS
    | {"from_list_id", "to_list_id"},
    TriggerType.TASK_COMPLETED: _COMMON_FIELDS | _TASK_FIELDS,
    TriggerType.DUE_DATE_APPROACHING: _COMMON_FIELDS | _TASK_FIELDS | {"due_date"},
    TriggerType.DUE_DATE_PASSED: _COMMON_FIELDS | _TASK_FIELDS | {"due_date"},
    TriggerType.LABEL_ADDED: _COMMON_FIELDS | _TASK_FIELDS | {"label_id", "label"},
    TriggerType.LABEL_REMOVED: _COMMON_FIELDS | _TASK_FIELDS | {"label_id", "label"},
    TriggerType.MEMBER_ASSIGNED: _COMMON_FIELDS
    | _TASK_FIELDS
    | {"member_id", "member"},
    TriggerType.COMMENT_ADDED: _COMMON_FIELDS
    | _TASK_FIELDS
    | {"comment_id", "comment"},
    TriggerType.CHECKLIST_COMPLETED: _COMMON_FIELDS
    | _TASK_FIELDS
    | {"checklist_id", "checklist"},
}


def freeze(value: Any) -> Any:
    """Return a read-only deep copy of mappings and sequences."""
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): freeze(v) for k, v in value.items()})
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Convert frozen values back into plain JSON-ready structures."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (tuple, list)):
        return [thaw(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class TriggerContext:
    """Snapshot of what happened, as seen by the automation engine.

    Attributes:
        board_id: Board on which the event occurred.
        trigger_type: Kind of event.
        task_id / task: Affected task and its resolved representation
            (labels, checklist, assignee already expanded by the producer).
        list_id: List the task currently sits in.
        label_id / label: Label involved in label triggers.
        user_id / user: Actor who caused the event.
        member_id / member: Member assigned in ``member_assigned``.
        comment_id / comment: Comment created in ``comment_added``.
        checklist_id / checklist: Checklist finished in ``checklist_completed``.
        due_date: Due date for due-date triggers.
        from_list_id / to_list_id: Source and destination of a move.
        metadata: Producer-specific extras (e.g. ``hours_until_due``).
    """

    board_id: str
    trigger_type: TriggerType
    task_id: str | None = None
    task: Mapping[str, Any] | None = None
    list_id: str | None = None
    label_id: str | None = None
    label: Mapping[str, Any] | None = None
    user_id: str | None = None
    user: Mapping[str, Any] | None = None
    member_id: str | None = None
    member: Mapping[str, Any] | None = None
    comment_id: str | None = None
    comment: Mapping[str, Any] | None = None
    checklist_id: str | None = None
    checklist: Mapping[str, Any] | None = None
    due_date: datetime | None = None
    from_list_id: str | None = None
    to_list_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        for name in ("task", "label", "user", "member", "comment", "checklist", "metadata"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, freeze(value))

    @property
    def available_fields(self) -> frozenset[str]:
        """Fields a condition may reference for this trigger type."""
        return CONTEXT_FIELDS[self.trigger_type]

    def derive(self, trigger_type: TriggerType, **changes: Any) -> TriggerContext:
        """Build a follow-on context for a chained trigger.

        Trigger-specific fields of the current event (label, comment, move
        endpoints, ...) are dropped; board, task and actor carry over.
        """
        base = TriggerContext(
            board_id=self.board_id,
            trigger_type=trigger_type,
            task_id=self.task_id,
            task=self.task,
            list_id=self.list_id,
            user_id=self.user_id,
            user=self.user,
            metadata=self.metadata,
        )
        return dataclasses.replace(base, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize populated fields for logs and templates."""
        data: dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = thaw(value)
        return data
