"""Execution log recorder.

Collects per-action outcomes for one rule invocation and writes a single
append-only AutomationLog when the invocation finishes. Persisting the log
is best-effort: a store failure is reported through structlog and never
changes what the automation did or returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

import structlog

from boardflow.core.domain.automation_log import ActionOutcome, AutomationLog, LogStatus
from boardflow.core.domain.automation_rule import AutomationRule
from boardflow.core.domain.errors import LogFinalizedError
from boardflow.core.domain.trigger_context import TriggerContext
from boardflow.core.interfaces.log_store import LogStoreProtocol
from boardflow.core.utils.time import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class LogHandle:
    """In-flight log of one rule invocation."""

    log_id: str
    rule_id: str
    board_id: str
    trigger_type: str
    trigger_data: dict
    started_at: datetime
    test_run: bool = False
    depth: int = 0
    outcomes: list[ActionOutcome] = field(default_factory=list)
    finalized: bool = False


class LogRecorder:
    """Records automation executions into a log store."""

    def __init__(self, log_store: LogStoreProtocol) -> None:
        self._log_store = log_store

    def begin(
        self,
        rule: AutomationRule,
        context: TriggerContext,
        *,
        test_run: bool = False,
        depth: int = 0,
    ) -> LogHandle:
        """Open a log for a matched rule; the context is snapshotted now."""
        return LogHandle(
            log_id=f"alog_{uuid4().hex}",
            rule_id=rule.rule_id,
            board_id=context.board_id,
            trigger_type=context.trigger_type.value,
            trigger_data=context.to_dict(),
            started_at=utc_now(),
            test_run=test_run,
            depth=depth,
        )

    def record_action(self, handle: LogHandle, outcome: ActionOutcome) -> None:
        """Append one action outcome.

        Raises:
            LogFinalizedError: If the log was already finished.
        """
        if handle.finalized:
            raise LogFinalizedError(handle.log_id)
        handle.outcomes.append(outcome)

    async def finish(
        self,
        handle: LogHandle,
        status: LogStatus,
        *,
        error: str | None = None,
    ) -> AutomationLog:
        """Finalize the log and hand it to the store.

        Returns:
            The finalized log, whether or not persisting it succeeded.

        Raises:
            LogFinalizedError: If the log was already finished.
        """
        if handle.finalized:
            raise LogFinalizedError(handle.log_id)
        handle.finalized = True
        log = AutomationLog(
            log_id=handle.log_id,
            rule_id=handle.rule_id,
            board_id=handle.board_id,
            trigger_type=handle.trigger_type,
            status=status,
            started_at=handle.started_at,
            finished_at=utc_now(),
            trigger_data=handle.trigger_data,
            actions_executed=tuple(handle.outcomes),
            error=error,
            test_run=handle.test_run,
            depth=handle.depth,
        )
        try:
            await self._log_store.append(log)
        except Exception as exc:
            logger.error(
                "automation_log.persist_failed",
                log_id=log.log_id,
                rule_id=log.rule_id,
                status=status.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            logger.debug(
                "automation_log.recorded",
                log_id=log.log_id,
                rule_id=log.rule_id,
                status=status.value,
                test_run=log.test_run,
            )
        return log
