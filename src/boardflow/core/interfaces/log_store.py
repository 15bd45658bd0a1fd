"""Log Store Protocol.

The execution log recorder appends finished logs; operational UIs read
them back through ``list_logs``. The engine itself never reads logs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from boardflow.core.domain.automation_log import AutomationLog, LogStatus


class LogStoreProtocol(Protocol):
    """Protocol for append-only automation log persistence."""

    async def append(self, log: AutomationLog) -> None:
        """Persist a finalized log record.

        Args:
            log: The log to store. Stores must not overwrite an existing id.
        """
        ...

    async def list_logs(
        self,
        rule_id: str,
        *,
        status: LogStatus | None = None,
        limit: int = 50,
        include_test_runs: bool = False,
    ) -> list[AutomationLog]:
        """List logs of a rule, newest first.

        Args:
            rule_id: Rule whose logs to list.
            status: Optional status filter.
            limit: Maximum number of records.
            include_test_runs: Include dry-run logs (excluded by default).

        Returns:
            Matching logs ordered by ``started_at`` descending.
        """
        ...
