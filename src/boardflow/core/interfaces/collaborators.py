"""Mutation collaborator protocols.

Every side effect an action requests goes through one of these. The
executor knows nothing about storage: a call either returns a result
mapping or raises an ``ActionFailure`` subclass (``ActionConflict``,
``InvalidActionParameters``, ``CollaboratorUnavailable``).

Result mappings are recorded verbatim in the action outcome. Task service
results may include a refreshed ``task`` mapping; chained triggers then see
the task as it is after the mutation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol


class TaskServiceProtocol(Protocol):
    """Protocol for task mutations on a board."""

    async def move_task(
        self, board_id: str, task_id: str, target_list_id: str
    ) -> dict[str, Any]:
        """Move a task to the end of another list.

        Returns:
            At least ``from_list_id`` and ``to_list_id``.
        """
        ...

    async def assign_member(
        self, board_id: str, task_id: str, user_id: str
    ) -> dict[str, Any]:
        """Assign a board member to a task."""
        ...

    async def unassign_member(self, board_id: str, task_id: str) -> dict[str, Any]:
        """Clear the task assignee."""
        ...

    async def add_label(
        self, board_id: str, task_id: str, label_id: str
    ) -> dict[str, Any]:
        """Attach a label; may return the resolved ``label`` mapping."""
        ...

    async def remove_label(
        self, board_id: str, task_id: str, label_id: str
    ) -> dict[str, Any]:
        """Detach a label."""
        ...

    async def set_due_date(
        self, board_id: str, task_id: str, due_date: datetime
    ) -> dict[str, Any]:
        """Set the task due date."""
        ...

    async def post_comment(
        self, board_id: str, task_id: str, text: str, author_id: str | None
    ) -> dict[str, Any]:
        """Add a comment; should return ``comment_id``."""
        ...

    async def create_checklist_item(
        self,
        board_id: str,
        task_id: str,
        content: str,
        checklist_name: str | None = None,
    ) -> dict[str, Any]:
        """Append an item to a task checklist, creating the checklist if needed."""
        ...

    async def archive_task(self, board_id: str, task_id: str) -> dict[str, Any]:
        """Archive a task."""
        ...

    async def find_label(self, board_id: str, name: str) -> dict[str, Any] | None:
        """Look up a board label by exact name; None if there is none."""
        ...

    async def create_label(self, board_id: str, name: str) -> dict[str, Any]:
        """Create a board label; must return at least ``id``."""
        ...

    async def list_board_members(self, board_id: str) -> list[str]:
        """User ids of every member of the board."""
        ...


class WebhookSenderProtocol(Protocol):
    """Protocol for outgoing webhook calls."""

    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Deliver a JSON payload.

        Returns:
            At least ``status_code``.
        """
        ...


class NotifierProtocol(Protocol):
    """Protocol for in-app notifications to board members."""

    async def notify(
        self,
        board_id: str,
        user_ids: list[str],
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a notification to the given users."""
        ...
