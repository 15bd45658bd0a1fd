"""In-memory rule and log stores.

Used by tests, embedding applications that keep rules elsewhere, and
previews. Both implement the same contracts as the file-backed stores.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

import structlog

from boardflow.core.domain.automation_log import AutomationLog, LogStatus
from boardflow.core.domain.automation_rule import AutomationRule
from boardflow.core.domain.trigger_context import TriggerType

logger = structlog.get_logger(__name__)

InvalidationListener = Callable[[str], None]


def select_active_rules(
    rules: Iterable[AutomationRule], board_id: str, trigger_type: TriggerType
) -> list[AutomationRule]:
    """Active rules of a board for a trigger type, oldest first.

    Rules created at the same instant keep their storage order.
    """
    selected = [
        rule
        for rule in rules
        if rule.active and rule.board_id == board_id and rule.trigger_type == trigger_type
    ]
    return sorted(selected, key=lambda rule: rule.created_at)


def select_logs(
    logs: Iterable[AutomationLog],
    *,
    status: LogStatus | None,
    limit: int,
    include_test_runs: bool,
) -> list[AutomationLog]:
    """Filter logs and return the newest ``limit`` of them."""
    selected = [
        log
        for log in logs
        if (status is None or log.status == status) and (include_test_runs or not log.test_run)
    ]
    selected.sort(key=lambda log: log.started_at, reverse=True)
    return selected[: max(limit, 0)]


class InMemoryRuleStore:
    """Rule store backed by a dict."""

    def __init__(self, rules: Iterable[AutomationRule] = ()) -> None:
        self._rules: dict[str, AutomationRule] = {}
        self._listeners: list[InvalidationListener] = []
        for rule in rules:
            self._rules[rule.rule_id] = rule

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        """Register a callback receiving the board id of every changed rule."""
        self._listeners.append(listener)

    def _notify(self, board_id: str) -> None:
        for listener in self._listeners:
            listener(board_id)

    async def save_rule(self, rule: AutomationRule) -> None:
        self._rules[rule.rule_id] = rule
        self._notify(rule.board_id)

    async def remove_rule(self, rule_id: str) -> bool:
        rule = self._rules.pop(rule_id, None)
        if rule is None:
            return False
        self._notify(rule.board_id)
        return True

    async def record_execution(self, rule_id: str) -> None:
        rule = self._rules.get(rule_id)
        if rule is None:
            return
        self._rules[rule_id] = rule.with_execution_recorded()
        # Cached copies of a capped rule must see the new count.
        if rule.max_executions:
            self._notify(rule.board_id)

    async def list_rules(self, board_id: str | None = None) -> list[AutomationRule]:
        rules = [r for r in self._rules.values() if board_id is None or r.board_id == board_id]
        return sorted(rules, key=lambda rule: rule.created_at)

    async def get_rule(self, rule_id: str) -> AutomationRule | None:
        return self._rules.get(rule_id)

    async def active_rules_for_trigger(
        self, board_id: str, trigger_type: TriggerType
    ) -> list[AutomationRule]:
        return select_active_rules(self._rules.values(), board_id, trigger_type)


class InMemoryLogStore:
    """Append-only log store backed by a list."""

    def __init__(self) -> None:
        self._logs: list[AutomationLog] = []
        self._ids: set[str] = set()

    @property
    def logs(self) -> list[AutomationLog]:
        """All stored logs in append order."""
        return list(self._logs)

    async def append(self, log: AutomationLog) -> None:
        if log.log_id in self._ids:
            raise ValueError(f"Log already exists: {log.log_id}")
        self._ids.add(log.log_id)
        self._logs.append(log)

    async def list_logs(
        self,
        rule_id: str,
        *,
        status: LogStatus | None = None,
        limit: int = 50,
        include_test_runs: bool = False,
    ) -> list[AutomationLog]:
        return select_logs(
            (log for log in self._logs if log.rule_id == rule_id),
            status=status,
            limit=limit,
            include_test_runs=include_test_runs,
        )
