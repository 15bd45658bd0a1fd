"""
Action Parameter Schemas

Pydantic models describing the parameters of each action type. Rule
authoring validates parameters when a rule is saved; the executor validates
again at run time because stored rules can drift from the schema. A
mismatch is reported as InvalidActionParameters for that one action.

Keys are accepted in snake_case or camelCase (``target_list_id`` or
``targetListId``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from boardflow.core.domain.automation_rule import ActionType
from boardflow.core.domain.errors import InvalidActionParameters


class ActionParams(BaseModel):
    """Base for action parameter models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class MoveTaskParams(ActionParams):
    target_list_id: str = Field(..., min_length=1)


class AssignMemberParams(ActionParams):
    user_id: Optional[str] = Field(None, min_length=1)
    assign_actor: bool = Field(
        False,
        validation_alias=AliasChoices("assign_actor", "assignActor", "assignCreator"),
        description="Assign the user who caused the trigger",
    )

    @model_validator(mode="after")
    def require_target(self) -> "AssignMemberParams":
        if not self.user_id and not self.assign_actor:
            raise ValueError("user_id or assign_actor is required")
        return self


class UnassignMemberParams(ActionParams):
    pass


class LabelParams(ActionParams):
    label_id: Optional[str] = Field(None, min_length=1)
    label_name: Optional[str] = Field(None, min_length=1)
    create_if_missing: bool = Field(
        False, description="add_label only: create a board label named label_name"
    )

    @model_validator(mode="after")
    def require_label(self) -> "LabelParams":
        if not self.label_id and not self.label_name:
            raise ValueError("label_id or label_name is required")
        return self


class SetDueDateParams(ActionParams):
    due_date: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("date", "due_date", "dueDate")
    )
    offset_days: Optional[int] = Field(
        None, validation_alias=AliasChoices("offset_days", "offsetDays", "dueDateOffset")
    )
    hour: Optional[int] = Field(
        None, ge=0, le=23, validation_alias=AliasChoices("hour", "dueDateHour")
    )

    @model_validator(mode="after")
    def require_date(self) -> "SetDueDateParams":
        if self.due_date is None and self.offset_days is None:
            raise ValueError("date or offset_days is required")
        return self


class PostCommentParams(ActionParams):
    text: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("text", "content", "commentContent"),
    )


class SendWebhookParams(ActionParams):
    url: str = Field(
        ...,
        pattern=r"^https?://",
        validation_alias=AliasChoices("url", "webhookUrl"),
    )
    payload: Optional[dict[str, Any] | str] = Field(
        None, validation_alias=AliasChoices("payload", "webhookPayload")
    )
    method: Literal["GET", "POST", "PUT"] = Field(
        "POST", validation_alias=AliasChoices("method", "webhookMethod")
    )
    headers: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("headers", "webhookHeaders")
    )


class CreateChecklistItemParams(ActionParams):
    content: str = Field(..., min_length=1)
    checklist_name: Optional[str] = None


class ArchiveTaskParams(ActionParams):
    pass


_NOTIFY_ALIASES = {"creator": "actor", "user": "specific"}


class SendNotificationParams(ActionParams):
    notify: Literal["specific", "assignee", "actor", "board_members"] = Field(
        "specific", validation_alias=AliasChoices("notify", "notifyType")
    )
    user_ids: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("user_ids", "userIds", "notifyUserIds")
    )
    title: str = Field(
        "Automation alert", validation_alias=AliasChoices("title", "notificationTitle")
    )
    message: str = Field("", validation_alias=AliasChoices("message", "notificationMessage"))

    @field_validator("notify", mode="before")
    @classmethod
    def normalize_notify(cls, value: Any) -> Any:
        # Board UI names: "creator" is whoever caused the trigger, "user" a
        # fixed list of ids.
        return _NOTIFY_ALIASES.get(value, value) if isinstance(value, str) else value


ACTION_PARAM_MODELS: dict[ActionType, type[ActionParams]] = {
    ActionType.MOVE_TASK: MoveTaskParams,
    ActionType.ASSIGN_MEMBER: AssignMemberParams,
    ActionType.UNASSIGN_MEMBER: UnassignMemberParams,
    ActionType.ADD_LABEL: LabelParams,
    ActionType.REMOVE_LABEL: LabelParams,
    ActionType.SET_DUE_DATE: SetDueDateParams,
    ActionType.POST_COMMENT: PostCommentParams,
    ActionType.SEND_WEBHOOK: SendWebhookParams,
    ActionType.CREATE_CHECKLIST_ITEM: CreateChecklistItemParams,
    ActionType.ARCHIVE_TASK: ArchiveTaskParams,
    ActionType.SEND_NOTIFICATION: SendNotificationParams,
}


def parse_action_params(action_type: ActionType, params: dict[str, Any]) -> ActionParams:
    """Validate raw parameters for an action type.

    Raises:
        InvalidActionParameters: If the parameters do not fit the schema.
    """
    model = ACTION_PARAM_MODELS[action_type]
    try:
        return model.model_validate(params or {})
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<params>'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidActionParameters(
            f"Invalid parameters for {action_type.value}: {problems}",
            action_type=action_type.value,
        ) from exc
