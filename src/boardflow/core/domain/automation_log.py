"""Execution log and result models.

One ``AutomationLog`` is written per (rule, invocation) pair that got past
condition evaluation. ``ProcessResult`` is the aggregate summary returned to
whoever fired the trigger.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from boardflow.core.utils.time import parse_datetime, utc_now


class LogStatus(str, Enum):
    """Final status of one rule execution."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


class OutcomeStatus(str, Enum):
    """Result of a single action."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


CANCELLED_KIND = "Cancelled"


@dataclass(frozen=True)
class ActionOutcome:
    """What happened to one declared action.

    Attributes:
        action_type: Action name as declared on the rule.
        outcome: succeeded, failed or cancelled.
        error: Human-readable failure message.
        error_kind: Failure class name (``ActionConflict``,
            ``InvalidActionParameters``, ``MaxRecursionDepthExceeded``, ...).
        result: Data reported back by the collaborator, plus the summary of
            any chained trigger under ``chained``.
    """

    action_type: str
    outcome: OutcomeStatus
    error: str | None = None
    error_kind: str | None = None
    result: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.outcome == OutcomeStatus.SUCCEEDED

    @classmethod
    def success(cls, action_type: str, result: dict[str, Any] | None = None) -> ActionOutcome:
        return cls(action_type=action_type, outcome=OutcomeStatus.SUCCEEDED, result=result or {})

    @classmethod
    def failure(
        cls,
        action_type: str,
        error: str,
        error_kind: str,
        result: dict[str, Any] | None = None,
    ) -> ActionOutcome:
        return cls(
            action_type=action_type,
            outcome=OutcomeStatus.FAILED,
            error=error,
            error_kind=error_kind,
            result=result or {},
        )

    @classmethod
    def cancelled(cls, action_type: str) -> ActionOutcome:
        return cls(
            action_type=action_type,
            outcome=OutcomeStatus.CANCELLED,
            error="Processing was cancelled before this action ran",
            error_kind=CANCELLED_KIND,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        data: dict[str, Any] = {"action_type": self.action_type, "outcome": self.outcome.value}
        if self.error is not None:
            data["error"] = self.error
            data["error_kind"] = self.error_kind
        if self.result:
            data["result"] = self.result
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionOutcome:
        """Deserialize from stored dict."""
        return cls(
            action_type=str(data.get("action_type", "")),
            outcome=OutcomeStatus(data.get("outcome", OutcomeStatus.FAILED.value)),
            error=data.get("error"),
            error_kind=data.get("error_kind"),
            result=dict(data.get("result") or {}),
        )


def status_for(outcomes: Iterable[ActionOutcome], *, cancelled: bool = False) -> LogStatus:
    """Derive the log status from per-action outcomes.

    success when every action succeeded, partial_failure when at least one
    succeeded and one failed, failure otherwise. A cancelled run is always a
    failure.
    """
    outcomes = list(outcomes)
    if cancelled or not outcomes:
        return LogStatus.FAILURE
    succeeded = sum(1 for o in outcomes if o.succeeded)
    if succeeded == len(outcomes):
        return LogStatus.SUCCESS
    if succeeded == 0:
        return LogStatus.FAILURE
    return LogStatus.PARTIAL_FAILURE


@dataclass(frozen=True)
class AutomationLog:
    """Append-only audit record of one rule execution."""

    rule_id: str
    board_id: str
    trigger_type: str
    status: LogStatus
    started_at: datetime
    finished_at: datetime
    log_id: str = field(default_factory=lambda: f"alog_{uuid4().hex}")
    trigger_data: dict[str, Any] = field(default_factory=dict)
    actions_executed: tuple[ActionOutcome, ...] = ()
    error: str | None = None
    test_run: bool = False
    depth: int = 0

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {
            "log_id": self.log_id,
            "rule_id": self.rule_id,
            "board_id": self.board_id,
            "trigger_type": self.trigger_type,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_ms": self.duration_ms,
            "trigger_data": self.trigger_data,
            "actions_executed": [o.to_dict() for o in self.actions_executed],
            "error": self.error,
            "test_run": self.test_run,
            "depth": self.depth,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutomationLog:
        """Deserialize from stored dict."""
        started = parse_datetime(data.get("started_at")) or utc_now()
        finished = parse_datetime(data.get("finished_at")) or started
        return cls(
            log_id=str(data.get("log_id", f"alog_{uuid4().hex}")),
            rule_id=str(data.get("rule_id", "")),
            board_id=str(data.get("board_id", "")),
            trigger_type=str(data.get("trigger_type", "")),
            status=LogStatus(data.get("status", LogStatus.FAILURE.value)),
            started_at=started,
            finished_at=finished,
            trigger_data=dict(data.get("trigger_data") or {}),
            actions_executed=tuple(
                ActionOutcome.from_dict(o) for o in data.get("actions_executed") or []
            ),
            error=data.get("error"),
            test_run=bool(data.get("test_run", False)),
            depth=int(data.get("depth", 0)),
        )


@dataclass(frozen=True)
class RuleResult:
    """Per-rule entry of a process summary."""

    rule_id: str
    status: LogStatus
    action_outcomes: tuple[ActionOutcome, ...] = ()
    log_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "status": self.status.value,
            "action_outcomes": [o.to_dict() for o in self.action_outcomes],
            "log_id": self.log_id,
            "error": self.error,
        }


@dataclass(frozen=True)
class ProcessResult:
    """Summary of one ``process`` call.

    Attributes:
        rules_matched: Rules whose trigger filter and conditions matched.
        rules_executed: Rules whose actions were run.
        per_rule_results: One entry per logged rule, in execution order.
        cancelled: Whether the caller's cancellation signal cut the run short.
        test_run: Whether this was a dry run.
    """

    rules_matched: int = 0
    rules_executed: int = 0
    per_rule_results: tuple[RuleResult, ...] = ()
    cancelled: bool = False
    test_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules_matched": self.rules_matched,
            "rules_executed": self.rules_executed,
            "per_rule_results": [r.to_dict() for r in self.per_rule_results],
            "cancelled": self.cancelled,
            "test_run": self.test_run,
        }
