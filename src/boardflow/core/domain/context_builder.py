"""Context builder.

Turns the raw field bag handed over by a mutation handler into a validated
``TriggerContext``. The caller has already resolved entities (task, label,
user, ...) so no I/O happens here.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from boardflow.core.domain.errors import MalformedContext
from boardflow.core.domain.trigger_context import TriggerContext, TriggerType
from boardflow.core.utils.time import parse_datetime

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

_ID_FIELDS = (
    "task_id",
    "list_id",
    "label_id",
    "user_id",
    "member_id",
    "comment_id",
    "checklist_id",
    "from_list_id",
    "to_list_id",
)

# Entity field -> id field derived from the entity's ``id`` key.
_ENTITY_FIELDS = {
    "task": "task_id",
    "label": "label_id",
    "user": "user_id",
    "member": "member_id",
    "comment": "comment_id",
    "checklist": "checklist_id",
}

# Producer-side names that predate the current vocabulary.
_ALIASES = {
    "previous_list_id": "from_list_id",
    "assignee_id": "member_id",
    "assignee": "member",
}


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def parse_trigger_type(value: Any) -> TriggerType:
    """Resolve a trigger type, raising MalformedContext for unknown values."""
    if isinstance(value, TriggerType):
        return value
    if not value:
        raise MalformedContext("trigger_type is required")
    try:
        return TriggerType(str(value))
    except ValueError as exc:
        raise MalformedContext(
            f"Unknown trigger type: {value}", details={"trigger_type": str(value)}
        ) from exc


def build_context(
    trigger_type: TriggerType | str | None,
    raw_fields: Mapping[str, Any] | None = None,
) -> TriggerContext:
    """Assemble and validate a TriggerContext.

    Args:
        trigger_type: The event kind. Falls back to ``raw_fields["trigger_type"]``.
        raw_fields: Event fields in snake_case or camelCase. Keys that are not
            context fields are kept under ``metadata``.

    Returns:
        An immutable TriggerContext.

    Raises:
        MalformedContext: If board_id or trigger_type is missing, the trigger
            type is unknown, or an entity field is not a mapping.
    """
    fields: dict[str, Any] = {}
    metadata: dict[str, Any] = {}
    for key, value in (raw_fields or {}).items():
        name = _snake(str(key))
        name = _ALIASES.get(name, name)
        if name == "metadata":
            if value is None:
                continue
            if not isinstance(value, Mapping):
                raise MalformedContext("metadata must be a mapping")
            metadata.update(value)
        elif name in _ID_FIELDS or name in _ENTITY_FIELDS or name in (
            "board_id",
            "trigger_type",
            "due_date",
        ):
            fields[name] = value
        else:
            metadata[name] = value

    if trigger_type is None:
        trigger_type = fields.get("trigger_type")
    resolved_type = parse_trigger_type(trigger_type)
    fields.pop("trigger_type", None)

    board_id = fields.pop("board_id", None)
    if not board_id:
        raise MalformedContext(
            "board_id is required", details={"trigger_type": resolved_type.value}
        )

    for entity, id_field in _ENTITY_FIELDS.items():
        value = fields.get(entity)
        if value is None:
            continue
        if not isinstance(value, Mapping):
            raise MalformedContext(
                f"{entity} must be a mapping", details={"field": entity}
            )
        if not fields.get(id_field) and value.get("id") is not None:
            fields[id_field] = str(value["id"])

    if fields.get("list_id") is None and isinstance(fields.get("task"), Mapping):
        list_id = fields["task"].get("list_id", fields["task"].get("listId"))
        if list_id is not None:
            fields["list_id"] = str(list_id)

    for id_field in _ID_FIELDS:
        if fields.get(id_field) is not None:
            fields[id_field] = str(fields[id_field])

    if fields.get("due_date") is not None:
        due = parse_datetime(fields["due_date"])
        if due is None:
            raise MalformedContext(
                "due_date is not a valid date",
                details={"due_date": str(fields["due_date"])},
            )
        fields["due_date"] = due
    elif resolved_type in (TriggerType.DUE_DATE_APPROACHING, TriggerType.DUE_DATE_PASSED):
        task = fields.get("task")
        if isinstance(task, Mapping):
            due = parse_datetime(task.get("due_date", task.get("dueDate")))
            if due is not None:
                fields["due_date"] = due

    return TriggerContext(
        board_id=str(board_id),
        trigger_type=resolved_type,
        metadata=metadata,
        **fields,
    )
