"""Test configuration and shared fixtures."""

from __future__ import annotations

import copy
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from boardflow.application.action_executor import ActionExecutor
from boardflow.application.dispatcher import Dispatcher
from boardflow.application.log_recorder import LogRecorder
from boardflow.core.domain.automation_rule import (
    ActionSpec,
    AutomationRule,
    Condition,
    TriggerFilter,
)
from boardflow.core.domain.trigger_context import TriggerType
from boardflow.infrastructure.collaborators.recording import (
    RecordingNotifier,
    RecordingWebhookSender,
)
from boardflow.infrastructure.persistence.memory_stores import (
    InMemoryLogStore,
    InMemoryRuleStore,
)

BOARD_ID = "board-1"


class FakeTaskService:
    """In-memory board implementing TaskServiceProtocol.

    Mutations change ``tasks`` for real so chained triggers see the new
    state. ``fail(method, exc)`` makes the next calls of a method raise.
    """

    def __init__(
        self,
        tasks: dict[str, dict[str, Any]] | None = None,
        *,
        labels: list[dict[str, Any]] | None = None,
        members: list[str] | None = None,
    ) -> None:
        self.tasks: dict[str, dict[str, Any]] = tasks or {}
        self.labels: list[dict[str, Any]] = labels or []
        self.members: list[str] = members or []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._failures: dict[str, Exception] = {}
        self._comment_seq = 0

    def fail(self, method: str, exc: Exception) -> None:
        self._failures[method] = exc

    def _enter(self, method: str, **args: Any) -> None:
        self.calls.append((method, args))
        if method in self._failures:
            raise self._failures[method]

    def _task(self, task_id: str) -> dict[str, Any]:
        return self.tasks.setdefault(
            task_id, {"id": task_id, "title": task_id, "list_id": None, "labels": []}
        )

    def _snapshot(self, task_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._task(task_id))

    @property
    def methods(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def move_task(self, board_id: str, task_id: str, target_list_id: str) -> dict[str, Any]:
        self._enter("move_task", task_id=task_id, target_list_id=target_list_id)
        task = self._task(task_id)
        from_list_id = task.get("list_id")
        if from_list_id == target_list_id:
            return {"changed": False, "from_list_id": from_list_id, "to_list_id": target_list_id}
        task["list_id"] = target_list_id
        return {
            "from_list_id": from_list_id,
            "to_list_id": target_list_id,
            "task": self._snapshot(task_id),
        }

    async def assign_member(self, board_id: str, task_id: str, user_id: str) -> dict[str, Any]:
        self._enter("assign_member", task_id=task_id, user_id=user_id)
        task = self._task(task_id)
        if task.get("assignee_id") == user_id:
            return {"changed": False}
        task["assignee_id"] = user_id
        return {"member": {"id": user_id}, "task": self._snapshot(task_id)}

    async def unassign_member(self, board_id: str, task_id: str) -> dict[str, Any]:
        self._enter("unassign_member", task_id=task_id)
        self._task(task_id)["assignee_id"] = None
        return {"task": self._snapshot(task_id)}

    async def add_label(self, board_id: str, task_id: str, label_id: str) -> dict[str, Any]:
        self._enter("add_label", task_id=task_id, label_id=label_id)
        task = self._task(task_id)
        if any(label["id"] == label_id for label in task["labels"]):
            return {"changed": False}
        label = next(
            (dict(known) for known in self.labels if known["id"] == label_id),
            {"id": label_id, "name": label_id.title()},
        )
        task["labels"].append(label)
        return {"label": label, "task": self._snapshot(task_id)}

    async def remove_label(self, board_id: str, task_id: str, label_id: str) -> dict[str, Any]:
        self._enter("remove_label", task_id=task_id, label_id=label_id)
        task = self._task(task_id)
        before = len(task["labels"])
        task["labels"] = [label for label in task["labels"] if label["id"] != label_id]
        if len(task["labels"]) == before:
            return {"changed": False}
        return {"task": self._snapshot(task_id)}

    async def set_due_date(
        self, board_id: str, task_id: str, due_date: datetime
    ) -> dict[str, Any]:
        self._enter("set_due_date", task_id=task_id, due_date=due_date)
        self._task(task_id)["due_date"] = due_date.isoformat()
        return {}

    async def post_comment(
        self, board_id: str, task_id: str, text: str, author_id: str | None
    ) -> dict[str, Any]:
        self._enter("post_comment", task_id=task_id, text=text, author_id=author_id)
        self._comment_seq += 1
        return {"comment_id": f"c{self._comment_seq}"}

    async def create_checklist_item(
        self,
        board_id: str,
        task_id: str,
        content: str,
        checklist_name: str | None = None,
    ) -> dict[str, Any]:
        self._enter(
            "create_checklist_item",
            task_id=task_id,
            content=content,
            checklist_name=checklist_name,
        )
        return {"item_id": "item-1"}

    async def archive_task(self, board_id: str, task_id: str) -> dict[str, Any]:
        self._enter("archive_task", task_id=task_id)
        self._task(task_id)["archived"] = True
        return {}

    async def find_label(self, board_id: str, name: str) -> dict[str, Any] | None:
        self._enter("find_label", name=name)
        return next((dict(label) for label in self.labels if label["name"] == name), None)

    async def create_label(self, board_id: str, name: str) -> dict[str, Any]:
        self._enter("create_label", name=name)
        label = {"id": f"lbl-{len(self.labels) + 1}", "name": name}
        self.labels.append(label)
        return dict(label)

    async def list_board_members(self, board_id: str) -> list[str]:
        self._enter("list_board_members")
        return list(self.members)


@pytest.fixture
def task_service() -> FakeTaskService:
    return FakeTaskService(
        {"t1": {"id": "t1", "title": "Fix login", "list_id": "todo", "labels": []}},
        labels=[{"id": "l-urgent", "name": "Urgent"}],
        members=["u1", "u2", "u3"],
    )


@pytest.fixture
def webhook_sender() -> RecordingWebhookSender:
    return RecordingWebhookSender()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def rule_store() -> InMemoryRuleStore:
    return InMemoryRuleStore()


@pytest.fixture
def log_store() -> InMemoryLogStore:
    return InMemoryLogStore()


@pytest.fixture
def executor(
    task_service: FakeTaskService,
    webhook_sender: RecordingWebhookSender,
    notifier: RecordingNotifier,
) -> ActionExecutor:
    return ActionExecutor(task_service, webhook_sender=webhook_sender, notifier=notifier)


@pytest.fixture
def dispatcher(
    rule_store: InMemoryRuleStore,
    executor: ActionExecutor,
    log_store: InMemoryLogStore,
) -> Dispatcher:
    return Dispatcher(rule_store, executor, LogRecorder(log_store), max_recursion_depth=5)


@pytest.fixture
def make_rule() -> Callable[..., AutomationRule]:
    """Factory for rules; each call is created one second after the previous."""
    base = datetime(2026, 1, 1, tzinfo=UTC)
    counter = {"n": 0}

    def _make(
        trigger_type: TriggerType = TriggerType.LABEL_ADDED,
        *,
        conditions: list[tuple[str, str, Any]] | None = None,
        actions: list[tuple[str, dict[str, Any]]] | None = None,
        rule_id: str | None = None,
        board_id: str = BOARD_ID,
        active: bool = True,
        trigger_filter: TriggerFilter | None = None,
    ) -> AutomationRule:
        counter["n"] += 1
        return AutomationRule(
            rule_id=rule_id or f"rule-{counter['n']}",
            board_id=board_id,
            trigger_type=trigger_type,
            name=f"Rule {counter['n']}",
            conditions=tuple(Condition(f, op, v) for f, op, v in conditions or []),
            actions=tuple(ActionSpec(t, p) for t, p in actions or []),
            active=active,
            trigger_filter=trigger_filter or TriggerFilter(),
            created_at=base + timedelta(seconds=counter["n"]),
        )

    return _make
