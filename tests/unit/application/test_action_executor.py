"""Tests for ActionExecutor."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from boardflow.application.action_executor import ActionExecutor, validate_actions
from boardflow.core.domain.automation_log import OutcomeStatus, ProcessResult
from boardflow.core.domain.automation_rule import ActionSpec
from boardflow.core.domain.context_builder import build_context
from boardflow.core.domain.errors import (
    CollaboratorUnavailable,
    InvalidRuleDefinition,
    MaxRecursionDepthExceeded,
)
from boardflow.core.domain.trigger_context import TriggerType


@pytest.fixture
def context():
    return build_context(
        "label_added",
        {
            "board_id": "b1",
            "task": {"id": "t1", "title": "Fix login", "list_id": "todo", "assignee_id": "u7"},
            "label": {"id": "l1", "name": "Urgent"},
            "user": {"id": "u1", "name": "Ada"},
        },
    )


def _actions(*specs: tuple[str, dict]) -> list[ActionSpec]:
    return [ActionSpec(t, p) for t, p in specs]


class TestExecute:
    """Tests for ordered best-effort execution."""

    async def test_runs_actions_in_declared_order(self, executor, task_service, context) -> None:
        outcomes = await executor.execute(
            _actions(
                ("add_label", {"label_id": "l2"}),
                ("archive_task", {}),
                ("unassign_member", {}),
            ),
            context,
        )

        assert [o.action_type for o in outcomes] == ["add_label", "archive_task", "unassign_member"]
        assert all(o.succeeded for o in outcomes)
        assert task_service.methods == ["add_label", "archive_task", "unassign_member"]

    async def test_failure_does_not_stop_later_actions(
        self, executor, task_service, context
    ) -> None:
        outcomes = await executor.execute(
            _actions(
                ("move_task", {}),
                ("post_comment", {"text": "still here"}),
            ),
            context,
        )

        assert outcomes[0].outcome == OutcomeStatus.FAILED
        assert outcomes[0].error_kind == "InvalidActionParameters"
        assert outcomes[1].succeeded
        assert task_service.methods == ["post_comment"]

    async def test_task_action_without_task_fails(self, executor) -> None:
        context = build_context("label_added", {"board_id": "b1", "label_id": "l1"})

        outcomes = await executor.execute(_actions(("archive_task", {})), context)

        assert outcomes[0].error_kind == "InvalidActionParameters"

    async def test_cancel_check_marks_remaining(self, executor, context) -> None:
        calls = iter([False, True])

        outcomes = await executor.execute(
            _actions(("archive_task", {}), ("unassign_member", {})),
            context,
            is_cancelled=lambda: next(calls),
        )

        assert outcomes[0].succeeded
        assert outcomes[1].outcome == OutcomeStatus.CANCELLED
        assert outcomes[1].error_kind == "Cancelled"


class TestHandlers:
    """Tests for individual action handlers."""

    async def test_post_comment_renders_template(self, executor, task_service, context) -> None:
        await executor.execute(
            _actions(("post_comment", {"text": "{{ task.title }} flagged by {{ user.name }}"})),
            context,
        )

        name, args = task_service.calls[0]
        assert args["text"] == "Fix login flagged by Ada"
        assert args["author_id"] == "u1"

    async def test_assign_creator_uses_actor(self, executor, task_service, context) -> None:
        await executor.execute(_actions(("assign_member", {"assignCreator": True})), context)

        assert task_service.tasks["t1"]["assignee_id"] == "u1"

    async def test_set_due_date_with_offset_and_hour(
        self, executor, task_service, context
    ) -> None:
        outcomes = await executor.execute(
            _actions(("set_due_date", {"dueDateOffset": 2, "dueDateHour": 9})), context
        )

        due = task_service.calls[0][1]["due_date"]
        assert isinstance(due, datetime)
        assert (due.hour, due.minute) == (9, 0)
        assert outcomes[0].result["due_date"] == due.isoformat()

    async def test_webhook_default_payload(self, executor, webhook_sender, context) -> None:
        await executor.execute(
            _actions(("send_webhook", {"url": "https://hooks.example.com/x"})), context
        )

        payload = webhook_sender.calls[0].args["payload"]
        assert payload["event"] == "automation_triggered"
        assert payload["trigger_type"] == "label_added"
        assert payload["task_id"] == "t1"

    async def test_webhook_string_payload_is_rendered_json(
        self, executor, webhook_sender, context
    ) -> None:
        await executor.execute(
            _actions(
                (
                    "send_webhook",
                    {
                        "url": "https://hooks.example.com/x",
                        "payload": '{"title": "{{ task.title }}"}',
                        "method": "PUT",
                    },
                )
            ),
            context,
        )

        call = webhook_sender.calls[0].args
        assert call["payload"] == {"title": "Fix login"}
        assert call["method"] == "PUT"

    async def test_webhook_invalid_json_payload(self, executor, context) -> None:
        outcomes = await executor.execute(
            _actions(("send_webhook", {"url": "https://x.test", "payload": "{not json"})),
            context,
        )

        assert outcomes[0].error_kind == "InvalidActionParameters"

    async def test_webhook_without_sender_is_unavailable(self, task_service, context) -> None:
        executor = ActionExecutor(task_service)

        outcomes = await executor.execute(
            _actions(("send_webhook", {"url": "https://x.test"})), context
        )

        assert outcomes[0].error_kind == CollaboratorUnavailable.__name__

    async def test_notification_to_assignee(self, executor, notifier, context) -> None:
        outcomes = await executor.execute(
            _actions(
                (
                    "send_notification",
                    {"notify": "assignee", "title": "Heads up", "message": "{{ label.name }}"},
                )
            ),
            context,
        )

        call = notifier.calls[0].args
        assert call["user_ids"] == ["u7"]
        assert call["message"] == "Urgent"
        assert outcomes[0].result["sent"] is True

    async def test_notification_without_recipients_is_not_sent(
        self, executor, notifier, context
    ) -> None:
        outcomes = await executor.execute(
            _actions(("send_notification", {"notify": "specific", "userIds": []})), context
        )

        assert outcomes[0].succeeded
        assert outcomes[0].result["sent"] is False
        assert notifier.calls == []

    async def test_add_label_by_name(self, executor, task_service, context) -> None:
        reenter = AsyncMock(return_value=ProcessResult())

        outcomes = await executor.execute(
            _actions(("add_label", {"labelName": "Urgent"})), context, reenter=reenter
        )

        assert outcomes[0].succeeded
        assert task_service.calls[1] == ("add_label", {"task_id": "t1", "label_id": "l-urgent"})
        follow_up = reenter.await_args.args[0]
        assert follow_up.label_id == "l-urgent"
        assert follow_up.label["name"] == "Urgent"

    async def test_add_label_creates_missing_label(
        self, executor, task_service, context
    ) -> None:
        outcomes = await executor.execute(
            _actions(("add_label", {"labelName": "Blocked", "createIfMissing": True})), context
        )

        assert outcomes[0].succeeded
        assert outcomes[0].result["label_created"] is True
        assert task_service.methods == ["find_label", "create_label", "add_label"]
        assert {"id": "lbl-2", "name": "Blocked"} in task_service.labels

    async def test_add_label_unknown_name_fails(self, executor, task_service, context) -> None:
        outcomes = await executor.execute(
            _actions(("add_label", {"labelName": "Blocked"})), context
        )

        assert outcomes[0].error_kind == "InvalidActionParameters"
        assert "create_label" not in task_service.methods

    async def test_remove_label_unknown_name_is_noop(
        self, executor, task_service, context
    ) -> None:
        reenter = AsyncMock(return_value=ProcessResult())

        outcomes = await executor.execute(
            _actions(("remove_label", {"labelName": "Blocked", "createIfMissing": True})),
            context,
            reenter=reenter,
        )

        assert outcomes[0].succeeded
        assert outcomes[0].result["removed"] is False
        assert task_service.methods == ["find_label"]
        reenter.assert_not_awaited()

    async def test_notification_to_board_members(self, executor, notifier, context) -> None:
        outcomes = await executor.execute(
            _actions(("send_notification", {"notifyType": "board_members", "title": "Hi"})),
            context,
        )

        assert notifier.calls[0].args["user_ids"] == ["u1", "u2", "u3"]
        assert outcomes[0].result["user_count"] == 3

    @pytest.mark.parametrize(
        ("notify_type", "expected"),
        [("creator", ["u1"]), ("user", ["u9"]), ("specific", ["u9"]), ("assignee", ["u7"])],
    )
    async def test_board_ui_notify_types(
        self, executor, notifier, context, notify_type, expected
    ) -> None:
        await executor.execute(
            _actions(
                ("send_notification", {"notifyType": notify_type, "notifyUserIds": ["u9"]})
            ),
            context,
        )

        assert notifier.calls[0].args["user_ids"] == expected

    async def test_checklist_item(self, executor, task_service, context) -> None:
        await executor.execute(
            _actions(
                (
                    "create_checklist_item",
                    {"content": "Review {{ task.title }}", "checklist_name": "QA"},
                )
            ),
            context,
        )

        assert task_service.calls[0] == (
            "create_checklist_item",
            {"task_id": "t1", "content": "Review Fix login", "checklist_name": "QA"},
        )


class TestReentry:
    """Tests for follow-on triggers handed to the reenter callback."""

    async def test_move_produces_task_moved_context(self, executor, context) -> None:
        reenter = AsyncMock(return_value=ProcessResult())

        outcomes = await executor.execute(
            _actions(("move_task", {"target_list_id": "done"})), context, reenter=reenter
        )

        follow_up = reenter.await_args.args[0]
        assert follow_up.trigger_type is TriggerType.TASK_MOVED
        assert follow_up.from_list_id == "todo"
        assert follow_up.to_list_id == "done"
        assert follow_up.label_id is None
        assert outcomes[0].result["chained"]["trigger_type"] == "task_moved"

    async def test_comment_produces_comment_added_context(self, executor, context) -> None:
        reenter = AsyncMock(return_value=ProcessResult())

        await executor.execute(
            _actions(("post_comment", {"text": "hello"})), context, reenter=reenter
        )

        follow_up = reenter.await_args.args[0]
        assert follow_up.trigger_type is TriggerType.COMMENT_ADDED
        assert follow_up.comment_id == "c1"
        assert follow_up.comment["text"] == "hello"

    async def test_refused_chain_marks_action_failed(self, executor, context) -> None:
        reenter = AsyncMock(
            side_effect=MaxRecursionDepthExceeded("too deep", depth=5, max_depth=5)
        )

        outcomes = await executor.execute(
            _actions(("add_label", {"label_id": "l2"})), context, reenter=reenter
        )

        assert outcomes[0].outcome == OutcomeStatus.FAILED
        assert outcomes[0].error_kind == "MaxRecursionDepthExceeded"

    async def test_non_chaining_actions_do_not_reenter(self, executor, context) -> None:
        reenter = AsyncMock(return_value=ProcessResult())

        await executor.execute(_actions(("archive_task", {})), context, reenter=reenter)

        reenter.assert_not_awaited()


class TestValidateActions:
    """Tests for validate_actions."""

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(InvalidRuleDefinition):
            validate_actions(_actions(("teleport_task", {})), rule_id="r1")

    def test_known_types_pass(self) -> None:
        validate_actions(_actions(("move_task", {}), ("send_webhook", {})))
