"""Recording collaborators for previews.

They accept every call, mutate nothing and remember what they were asked
to do. ``test_rule`` uses them so a preview never touches real boards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class RecordedCall:
    """One collaborator invocation."""

    method: str
    args: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"method": self.method, "args": self.args}


class RecordingTaskService:
    """TaskServiceProtocol that only records calls.

    Label lookups resolve every name to a label whose id is the name, and
    ``board_members`` stands in for the board membership.
    """

    def __init__(self, board_members: list[str] | None = None) -> None:
        self.calls: list[RecordedCall] = []
        self._board_members = list(board_members or [])

    def _record(self, method: str, **args: Any) -> dict[str, Any]:
        self.calls.append(RecordedCall(method, args))
        return {"preview": True}

    async def move_task(self, board_id: str, task_id: str, target_list_id: str) -> dict[str, Any]:
        result = self._record(
            "move_task", board_id=board_id, task_id=task_id, target_list_id=target_list_id
        )
        return {**result, "to_list_id": target_list_id}

    async def assign_member(self, board_id: str, task_id: str, user_id: str) -> dict[str, Any]:
        return self._record("assign_member", board_id=board_id, task_id=task_id, user_id=user_id)

    async def unassign_member(self, board_id: str, task_id: str) -> dict[str, Any]:
        return self._record("unassign_member", board_id=board_id, task_id=task_id)

    async def add_label(self, board_id: str, task_id: str, label_id: str) -> dict[str, Any]:
        return self._record("add_label", board_id=board_id, task_id=task_id, label_id=label_id)

    async def remove_label(self, board_id: str, task_id: str, label_id: str) -> dict[str, Any]:
        return self._record("remove_label", board_id=board_id, task_id=task_id, label_id=label_id)

    async def set_due_date(
        self, board_id: str, task_id: str, due_date: datetime
    ) -> dict[str, Any]:
        return self._record(
            "set_due_date", board_id=board_id, task_id=task_id, due_date=due_date.isoformat()
        )

    async def post_comment(
        self, board_id: str, task_id: str, text: str, author_id: str | None
    ) -> dict[str, Any]:
        return self._record(
            "post_comment", board_id=board_id, task_id=task_id, text=text, author_id=author_id
        )

    async def create_checklist_item(
        self,
        board_id: str,
        task_id: str,
        content: str,
        checklist_name: str | None = None,
    ) -> dict[str, Any]:
        return self._record(
            "create_checklist_item",
            board_id=board_id,
            task_id=task_id,
            content=content,
            checklist_name=checklist_name,
        )

    async def archive_task(self, board_id: str, task_id: str) -> dict[str, Any]:
        return self._record("archive_task", board_id=board_id, task_id=task_id)

    async def find_label(self, board_id: str, name: str) -> dict[str, Any] | None:
        self._record("find_label", board_id=board_id, name=name)
        return {"id": name, "name": name, "preview": True}

    async def create_label(self, board_id: str, name: str) -> dict[str, Any]:
        self._record("create_label", board_id=board_id, name=name)
        return {"id": name, "name": name, "preview": True}

    async def list_board_members(self, board_id: str) -> list[str]:
        self._record("list_board_members", board_id=board_id)
        return list(self._board_members)


class RecordingWebhookSender:
    """WebhookSenderProtocol that records instead of sending."""

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []

    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        self.calls.append(
            RecordedCall(
                "send",
                {"url": url, "payload": payload, "method": method, "headers": headers or {}},
            )
        )
        return {"status_code": 0, "preview": True}


class RecordingNotifier:
    """NotifierProtocol that records instead of notifying."""

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []

    async def notify(
        self,
        board_id: str,
        user_ids: list[str],
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self.calls.append(
            RecordedCall(
                "notify",
                {
                    "board_id": board_id,
                    "user_ids": list(user_ids),
                    "title": title,
                    "message": message,
                    "data": data or {},
                },
            )
        )
        return {"preview": True}
