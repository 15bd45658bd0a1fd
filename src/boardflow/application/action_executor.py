"""Action executor.

Runs a rule's ordered action list against a trigger context. Each action is
validated, rendered and handed to a mutation collaborator. Execution is
best-effort: a failing action is recorded and the next one still runs
against the same original context.

Some successful actions are themselves trigger events (a label added by a
rule is still a label added). For those the executor derives a follow-on
context and hands it to the ``reenter`` callback supplied by the
dispatcher, which processes the chain synchronously and enforces the
recursion limit.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import timedelta
from typing import Any

import structlog

from boardflow.application.templating import render_text, render_value
from boardflow.core.domain.action_params import (
    AssignMemberParams,
    CreateChecklistItemParams,
    LabelParams,
    MoveTaskParams,
    PostCommentParams,
    SendNotificationParams,
    SendWebhookParams,
    SetDueDateParams,
    parse_action_params,
)
from boardflow.core.domain.automation_log import ActionOutcome, ProcessResult
from boardflow.core.domain.automation_rule import ActionSpec, ActionType
from boardflow.core.domain.errors import (
    ActionFailure,
    BoardflowError,
    CollaboratorUnavailable,
    InvalidActionParameters,
    InvalidRuleDefinition,
)
from boardflow.core.domain.trigger_context import TriggerContext, TriggerType, thaw
from boardflow.core.interfaces.collaborators import (
    NotifierProtocol,
    TaskServiceProtocol,
    WebhookSenderProtocol,
)
from boardflow.core.utils.time import ensure_aware, utc_now

logger = structlog.get_logger(__name__)

ReenterCallback = Callable[[TriggerContext], Awaitable[ProcessResult]]
CancelCheck = Callable[[], bool]

# (result recorded in the outcome, follow-on context or None)
_Performed = tuple[dict[str, Any], TriggerContext | None]


def validate_actions(actions: Sequence[ActionSpec], *, rule_id: str | None = None) -> None:
    """Reject rules that declare unknown action types.

    Raises:
        InvalidRuleDefinition: On the first unknown action type.
    """
    for index, spec in enumerate(actions):
        try:
            ActionType(spec.action_type)
        except ValueError as exc:
            raise InvalidRuleDefinition(
                f"Unknown action type: {spec.action_type!r}",
                rule_id=rule_id,
                details={"action_index": index, "action_type": spec.action_type},
            ) from exc


def _chain_summary(trigger_type: TriggerType, result: ProcessResult) -> dict[str, Any]:
    return {
        "trigger_type": trigger_type.value,
        "rules_matched": result.rules_matched,
        "rules_executed": result.rules_executed,
        "log_ids": [r.log_id for r in result.per_rule_results if r.log_id],
    }


class ActionExecutor:
    """Executes declared actions through injected collaborators.

    Args:
        task_service: Mutations on tasks (move, assign, labels, ...).
        webhook_sender: Outgoing HTTP calls for ``send_webhook``.
        notifier: In-app notifications for ``send_notification``.
    """

    def __init__(
        self,
        task_service: TaskServiceProtocol,
        webhook_sender: WebhookSenderProtocol | None = None,
        notifier: NotifierProtocol | None = None,
    ) -> None:
        self._task_service = task_service
        self._webhook_sender = webhook_sender
        self._notifier = notifier
        self._handlers: dict[
            ActionType, Callable[[Any, TriggerContext], Awaitable[_Performed]]
        ] = {
            ActionType.MOVE_TASK: self._move_task,
            ActionType.ASSIGN_MEMBER: self._assign_member,
            ActionType.UNASSIGN_MEMBER: self._unassign_member,
            ActionType.ADD_LABEL: self._add_label,
            ActionType.REMOVE_LABEL: self._remove_label,
            ActionType.SET_DUE_DATE: self._set_due_date,
            ActionType.POST_COMMENT: self._post_comment,
            ActionType.SEND_WEBHOOK: self._send_webhook,
            ActionType.CREATE_CHECKLIST_ITEM: self._create_checklist_item,
            ActionType.ARCHIVE_TASK: self._archive_task,
            ActionType.SEND_NOTIFICATION: self._send_notification,
        }

    @property
    def task_service(self) -> TaskServiceProtocol:
        return self._task_service

    def with_task_service(self, task_service: TaskServiceProtocol) -> ActionExecutor:
        """Return an executor sharing the other collaborators."""
        return ActionExecutor(
            task_service, webhook_sender=self._webhook_sender, notifier=self._notifier
        )

    async def execute(
        self,
        actions: Sequence[ActionSpec],
        context: TriggerContext,
        *,
        reenter: ReenterCallback | None = None,
        is_cancelled: CancelCheck | None = None,
    ) -> list[ActionOutcome]:
        """Run actions in declared order.

        Args:
            actions: Actions of one rule.
            context: Context every action runs against.
            reenter: Callback processing follow-on triggers.
            is_cancelled: Polled before each action; once it returns True
                the remaining actions are recorded as cancelled.

        Returns:
            One outcome per declared action, in order.
        """
        outcomes: list[ActionOutcome] = []
        for index, spec in enumerate(actions):
            if is_cancelled is not None and is_cancelled():
                remaining = actions[index:]
                logger.info(
                    "action_executor.cancelled",
                    board_id=context.board_id,
                    remaining=len(remaining),
                )
                outcomes.extend(ActionOutcome.cancelled(a.action_type) for a in remaining)
                break
            outcomes.append(await self._run(spec, context, reenter))
        return outcomes

    async def _run(
        self,
        spec: ActionSpec,
        context: TriggerContext,
        reenter: ReenterCallback | None,
    ) -> ActionOutcome:
        """Run one action and capture its outcome without raising."""
        try:
            action_type = ActionType(spec.action_type)
        except ValueError:
            return ActionOutcome.failure(
                spec.action_type,
                f"Unknown action type: {spec.action_type!r}",
                InvalidRuleDefinition.__name__,
            )

        try:
            params = parse_action_params(action_type, spec.params)
            result, follow_up = await self._handlers[action_type](params, context)
        except ActionFailure as exc:
            logger.warning(
                "action_executor.action_failed",
                action_type=spec.action_type,
                board_id=context.board_id,
                task_id=context.task_id,
                error_kind=exc.kind,
                error=exc.message,
            )
            return ActionOutcome.failure(spec.action_type, exc.message, exc.kind)
        except Exception as exc:
            logger.error(
                "action_executor.action_error",
                action_type=spec.action_type,
                board_id=context.board_id,
                task_id=context.task_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return ActionOutcome.failure(spec.action_type, str(exc), ActionFailure.__name__)

        result = thaw(result)
        logger.info(
            "action_executor.action_succeeded",
            action_type=spec.action_type,
            board_id=context.board_id,
            task_id=context.task_id,
        )

        if follow_up is None or reenter is None:
            return ActionOutcome.success(spec.action_type, result)

        try:
            chained = await reenter(follow_up)
        except BoardflowError as exc:
            logger.warning(
                "action_executor.chain_failed",
                action_type=spec.action_type,
                trigger_type=follow_up.trigger_type.value,
                error_kind=exc.kind,
                error=exc.message,
            )
            return ActionOutcome.failure(spec.action_type, exc.message, exc.kind, result=result)

        result["chained"] = _chain_summary(follow_up.trigger_type, chained)
        return ActionOutcome.success(spec.action_type, result)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_task(context: TriggerContext, action_type: ActionType) -> str:
        if not context.task_id:
            raise InvalidActionParameters(
                f"{action_type.value} requires a task in the trigger context",
                action_type=action_type.value,
            )
        return context.task_id

    @staticmethod
    def _task_after(result: Mapping[str, Any], context: TriggerContext) -> Any:
        task = result.get("task")
        return task if isinstance(task, Mapping) else context.task

    @staticmethod
    def _changed(result: Mapping[str, Any]) -> bool:
        # Collaborators report changed=False for no-op writes (label already
        # present); no trigger event happened then.
        return result.get("changed", True) is not False

    async def _move_task(self, params: MoveTaskParams, context: TriggerContext) -> _Performed:
        task_id = self._require_task(context, ActionType.MOVE_TASK)
        result = await self._task_service.move_task(
            context.board_id, task_id, params.target_list_id
        )
        if not self._changed(result):
            return result, None
        follow_up = context.derive(
            TriggerType.TASK_MOVED,
            task=self._task_after(result, context),
            list_id=params.target_list_id,
            from_list_id=result.get("from_list_id", context.list_id),
            to_list_id=params.target_list_id,
        )
        return result, follow_up

    async def _assign_member(
        self, params: AssignMemberParams, context: TriggerContext
    ) -> _Performed:
        task_id = self._require_task(context, ActionType.ASSIGN_MEMBER)
        user_id = params.user_id
        if params.assign_actor:
            user_id = context.user_id or user_id
        if not user_id:
            raise InvalidActionParameters(
                "No user to assign", action_type=ActionType.ASSIGN_MEMBER.value
            )
        result = await self._task_service.assign_member(context.board_id, task_id, user_id)
        if not self._changed(result):
            return result, None
        member = result.get("member")
        follow_up = context.derive(
            TriggerType.MEMBER_ASSIGNED,
            task=self._task_after(result, context),
            member_id=user_id,
            member=member if isinstance(member, Mapping) else None,
        )
        return result, follow_up

    async def _unassign_member(self, params: Any, context: TriggerContext) -> _Performed:
        task_id = self._require_task(context, ActionType.UNASSIGN_MEMBER)
        result = await self._task_service.unassign_member(context.board_id, task_id)
        return result, None

    async def _resolve_label(
        self, params: LabelParams, context: TriggerContext, *, allow_create: bool
    ) -> tuple[str | None, Mapping[str, Any] | None, bool]:
        """Label id, known label mapping and whether it was just created."""
        if params.label_id:
            return params.label_id, None, False
        name = params.label_name or ""
        label = await self._task_service.find_label(context.board_id, name)
        created = False
        if label is None and allow_create and params.create_if_missing:
            label = await self._task_service.create_label(context.board_id, name)
            created = True
            logger.info("action_executor.label_created", board_id=context.board_id, name=name)
        if not label or label.get("id") is None:
            return None, None, False
        return str(label["id"]), label, created

    def _label_follow_up(
        self,
        trigger_type: TriggerType,
        label_id: str,
        result: Mapping[str, Any],
        context: TriggerContext,
        known_label: Mapping[str, Any] | None = None,
    ) -> TriggerContext | None:
        if not self._changed(result):
            return None
        label = result.get("label", known_label)
        return context.derive(
            trigger_type,
            task=self._task_after(result, context),
            label_id=label_id,
            label=label if isinstance(label, Mapping) else None,
        )

    async def _add_label(self, params: LabelParams, context: TriggerContext) -> _Performed:
        task_id = self._require_task(context, ActionType.ADD_LABEL)
        label_id, label, created = await self._resolve_label(
            params, context, allow_create=True
        )
        if label_id is None:
            raise InvalidActionParameters(
                f"Label not found: {params.label_name!r}",
                action_type=ActionType.ADD_LABEL.value,
            )
        result = await self._task_service.add_label(context.board_id, task_id, label_id)
        follow_up = self._label_follow_up(
            TriggerType.LABEL_ADDED, label_id, result, context, label
        )
        if created:
            result = {"label_created": True, **result}
        return result, follow_up

    async def _remove_label(self, params: LabelParams, context: TriggerContext) -> _Performed:
        task_id = self._require_task(context, ActionType.REMOVE_LABEL)
        label_id, label, _ = await self._resolve_label(params, context, allow_create=False)
        if label_id is None:
            # Nothing by that name on the board, so nothing to detach.
            return {"removed": False, "label_name": params.label_name, "changed": False}, None
        result = await self._task_service.remove_label(context.board_id, task_id, label_id)
        follow_up = self._label_follow_up(
            TriggerType.LABEL_REMOVED, label_id, result, context, label
        )
        return result, follow_up

    async def _set_due_date(self, params: SetDueDateParams, context: TriggerContext) -> _Performed:
        task_id = self._require_task(context, ActionType.SET_DUE_DATE)
        if params.due_date is not None:
            due = ensure_aware(params.due_date)
        else:
            due = utc_now() + timedelta(days=params.offset_days or 0)
        if params.hour is not None:
            due = due.replace(hour=params.hour, minute=0, second=0, microsecond=0)
        result = await self._task_service.set_due_date(context.board_id, task_id, due)
        return {"due_date": due.isoformat(), **result}, None

    async def _post_comment(self, params: PostCommentParams, context: TriggerContext) -> _Performed:
        task_id = self._require_task(context, ActionType.POST_COMMENT)
        text = render_text(params.text, context, action_type=ActionType.POST_COMMENT.value)
        result = await self._task_service.post_comment(
            context.board_id, task_id, text, context.user_id
        )
        comment_id = result.get("comment_id")
        comment = result.get("comment")
        if not isinstance(comment, Mapping):
            comment = {"id": comment_id, "text": text}
        follow_up = context.derive(
            TriggerType.COMMENT_ADDED,
            comment_id=str(comment_id) if comment_id is not None else None,
            comment=comment,
        )
        return {"text": text, **result}, follow_up

    async def _send_webhook(self, params: SendWebhookParams, context: TriggerContext) -> _Performed:
        if self._webhook_sender is None:
            raise CollaboratorUnavailable(
                "No webhook sender configured", action_type=ActionType.SEND_WEBHOOK.value
            )
        action_type = ActionType.SEND_WEBHOOK.value
        if params.payload is None:
            payload: dict[str, Any] = {
                "event": "automation_triggered",
                "board_id": context.board_id,
                "task_id": context.task_id,
                "trigger_type": context.trigger_type.value,
                "timestamp": utc_now().isoformat(),
                "context": context.to_dict(),
            }
        elif isinstance(params.payload, str):
            rendered = render_text(params.payload, context, action_type=action_type)
            try:
                payload = json.loads(rendered)
            except json.JSONDecodeError as exc:
                raise InvalidActionParameters(
                    f"Webhook payload is not valid JSON: {exc}", action_type=action_type
                ) from exc
        else:
            payload = render_value(dict(params.payload), context, action_type=action_type)

        result = await self._webhook_sender.send(
            params.url, payload, method=params.method, headers=dict(params.headers)
        )
        return {"url": params.url, **result}, None

    async def _create_checklist_item(
        self, params: CreateChecklistItemParams, context: TriggerContext
    ) -> _Performed:
        task_id = self._require_task(context, ActionType.CREATE_CHECKLIST_ITEM)
        content = render_text(
            params.content, context, action_type=ActionType.CREATE_CHECKLIST_ITEM.value
        )
        result = await self._task_service.create_checklist_item(
            context.board_id, task_id, content, params.checklist_name
        )
        return result, None

    async def _archive_task(self, params: Any, context: TriggerContext) -> _Performed:
        task_id = self._require_task(context, ActionType.ARCHIVE_TASK)
        result = await self._task_service.archive_task(context.board_id, task_id)
        return result, None

    async def _recipients(
        self, params: SendNotificationParams, context: TriggerContext
    ) -> list[str]:
        if params.notify == "board_members":
            return [str(u) for u in await self._task_service.list_board_members(context.board_id)]
        if params.notify == "actor":
            return [context.user_id] if context.user_id else []
        if params.notify == "assignee":
            task = context.task or {}
            assignee = task.get("assignee_id") or task.get("assigneeId")
            if not assignee and isinstance(task.get("assignee"), Mapping):
                assignee = task["assignee"].get("id")
            assignee = assignee or context.member_id
            return [str(assignee)] if assignee else []
        return list(params.user_ids)

    async def _send_notification(
        self, params: SendNotificationParams, context: TriggerContext
    ) -> _Performed:
        action_type = ActionType.SEND_NOTIFICATION.value
        if self._notifier is None:
            raise CollaboratorUnavailable("No notifier configured", action_type=action_type)
        user_ids = await self._recipients(params, context)
        if not user_ids:
            return {"sent": False, "user_count": 0}, None
        title = render_text(params.title, context, action_type=action_type)
        message = render_text(params.message, context, action_type=action_type)
        result = await self._notifier.notify(
            context.board_id,
            user_ids,
            title,
            message,
            {"task_id": context.task_id, "board_id": context.board_id},
        )
        return {"sent": True, "user_count": len(user_ids), **result}, None
