"""Automation dispatcher.

Orchestrates one trigger-processing transaction:

    Received -> RulesLoaded -> per rule (Skipped | ActionsExecuted -> Logged)
    -> Completed

A rule store failure aborts the whole call (TriggerAbortedTransient) before
any rule runs. Everything that goes wrong inside a rule is captured in its
log and in the returned summary; the caller only sees hard errors for
malformed contexts and an unavailable rule store.

Chained triggers produced by actions are processed depth-first inside the
same call. The chain depth is threaded through as an argument; a follow-on
trigger that would reach ``max_recursion_depth`` is refused with
MaxRecursionDepthExceeded, which the executor records on the action that
produced it.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from boardflow.application.action_executor import (
    ActionExecutor,
    CancelCheck,
    ReenterCallback,
    validate_actions,
)
from boardflow.application.condition_evaluator import evaluate, matches_trigger_filter
from boardflow.application.log_recorder import LogRecorder
from boardflow.core.domain.automation_log import (
    CANCELLED_KIND,
    LogStatus,
    OutcomeStatus,
    ProcessResult,
    RuleResult,
    status_for,
)
from boardflow.core.domain.automation_rule import AutomationRule
from boardflow.core.domain.context_builder import build_context, parse_trigger_type
from boardflow.core.domain.errors import (
    InvalidRuleDefinition,
    MalformedContext,
    MaxRecursionDepthExceeded,
    TriggerAbortedTransient,
)
from boardflow.core.domain.trigger_context import TriggerContext, TriggerType
from boardflow.core.interfaces.rule_store import RuleStoreProtocol

logger = structlog.get_logger(__name__)

DEFAULT_MAX_RECURSION_DEPTH = 5


@dataclass(frozen=True)
class ProcessOptions:
    """Per-call options.

    Attributes:
        dry_run: Mark logs as test runs. Collaborators are not suppressed;
            callers previewing a rule supply harmless ones.
        cancel_event: Set by the caller to stop processing. The action in
            flight finishes, everything after it is skipped.
        timeout_seconds: Same as setting ``cancel_event`` once elapsed.
    """

    dry_run: bool = False
    cancel_event: asyncio.Event | None = None
    timeout_seconds: float | None = None


class _CancelCheck:
    """Polls the caller's cancel event and deadline."""

    def __init__(self, event: asyncio.Event | None, timeout_seconds: float | None) -> None:
        self._event = event
        self._deadline: float | None = None
        if timeout_seconds is not None:
            self._loop = asyncio.get_running_loop()
            self._deadline = self._loop.time() + timeout_seconds

    def __call__(self) -> bool:
        if self._event is not None and self._event.is_set():
            return True
        return self._deadline is not None and self._loop.time() >= self._deadline


@dataclass(frozen=True)
class _RuleRun:
    matched: bool = False
    executed: bool = False
    result: RuleResult | None = None


_SKIPPED = _RuleRun()


class Dispatcher:
    """Receives triggers, matches rules, executes and logs them.

    Args:
        rule_store: Source of active rules (optionally a CachedRuleStore).
        executor: Runs matched rules' actions.
        recorder: Writes one log per executed rule.
        max_recursion_depth: Maximum chain length, original trigger included.
    """

    def __init__(
        self,
        rule_store: RuleStoreProtocol,
        executor: ActionExecutor,
        recorder: LogRecorder,
        *,
        max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
    ) -> None:
        if max_recursion_depth < 1:
            raise ValueError("max_recursion_depth must be at least 1")
        self._rule_store = rule_store
        self._executor = executor
        self._recorder = recorder
        self._max_depth = max_recursion_depth

    @property
    def max_recursion_depth(self) -> int:
        return self._max_depth

    def with_executor(self, executor: ActionExecutor) -> Dispatcher:
        """Return a dispatcher sharing store and recorder but using other collaborators."""
        return Dispatcher(
            self._rule_store,
            executor,
            self._recorder,
            max_recursion_depth=self._max_depth,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process(
        self,
        trigger_type: TriggerType | str,
        context: TriggerContext | Mapping[str, Any],
        options: ProcessOptions | None = None,
    ) -> ProcessResult:
        """Process one trigger occurrence.

        Args:
            trigger_type: Event kind.
            context: A built TriggerContext or raw fields for build_context.
            options: Dry-run and cancellation options.

        Returns:
            Summary with matched/executed counts and per-rule results.

        Raises:
            MalformedContext: If the context is missing required fields or
                disagrees with ``trigger_type``.
            TriggerAbortedTransient: If the rule store failed; nothing ran
                and the whole trigger may be retried.
        """
        resolved = parse_trigger_type(trigger_type)
        context = self._ensure_context(resolved, context)
        if context.trigger_type != resolved:
            raise MalformedContext(
                "Context trigger type does not match the processed trigger",
                details={
                    "trigger_type": resolved.value,
                    "context_trigger_type": context.trigger_type.value,
                },
            )
        options = options or ProcessOptions()
        is_cancelled = _CancelCheck(options.cancel_event, options.timeout_seconds)
        return await self._process(
            context, dry_run=options.dry_run, is_cancelled=is_cancelled, depth=0
        )

    async def test_rule(
        self,
        rule: AutomationRule,
        sample_context: TriggerContext | Mapping[str, Any],
        *,
        cancel_event: asyncio.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> ProcessResult:
        """Run a single rule as a dry run, whether or not it is active.

        The sample context is coerced to the rule's board and trigger type.
        Chained triggers go through normal processing, still as dry runs.
        """
        if isinstance(sample_context, TriggerContext):
            context = dataclasses.replace(
                sample_context, board_id=rule.board_id, trigger_type=rule.trigger_type
            )
        else:
            raw = {**sample_context, "board_id": rule.board_id}
            context = build_context(rule.trigger_type, raw)
        is_cancelled = _CancelCheck(cancel_event, timeout_seconds)
        logger.info(
            "dispatcher.test_rule",
            rule_id=rule.rule_id,
            board_id=rule.board_id,
            trigger_type=rule.trigger_type.value,
        )
        return await self._run_rules(
            [rule],
            context,
            dry_run=True,
            is_cancelled=is_cancelled,
            depth=0,
            require_active=False,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_context(
        trigger_type: TriggerType, context: TriggerContext | Mapping[str, Any]
    ) -> TriggerContext:
        if isinstance(context, TriggerContext):
            return context
        if isinstance(context, Mapping):
            return build_context(trigger_type, context)
        raise MalformedContext(f"Unsupported context type: {type(context).__name__}")

    async def _process(
        self,
        context: TriggerContext,
        *,
        dry_run: bool,
        is_cancelled: CancelCheck,
        depth: int,
    ) -> ProcessResult:
        log = logger.bind(
            board_id=context.board_id,
            trigger_type=context.trigger_type.value,
            depth=depth,
            dry_run=dry_run,
        )
        log.debug("dispatcher.received", task_id=context.task_id)
        try:
            rules = await self._rule_store.active_rules_for_trigger(
                context.board_id, context.trigger_type
            )
        except Exception as exc:
            log.warning("dispatcher.aborted", error=str(exc), error_type=type(exc).__name__)
            raise TriggerAbortedTransient(
                f"Rule store unavailable: {exc}",
                details={
                    "board_id": context.board_id,
                    "trigger_type": context.trigger_type.value,
                },
            ) from exc
        log.debug("dispatcher.rules_loaded", count=len(rules))
        return await self._run_rules(
            rules, context, dry_run=dry_run, is_cancelled=is_cancelled, depth=depth
        )

    async def _run_rules(
        self,
        rules: Sequence[AutomationRule],
        context: TriggerContext,
        *,
        dry_run: bool,
        is_cancelled: CancelCheck,
        depth: int,
        require_active: bool = True,
    ) -> ProcessResult:
        matched = executed = 0
        results: list[RuleResult] = []
        cancelled = False
        for index, rule in enumerate(rules):
            if is_cancelled():
                cancelled = True
                logger.info(
                    "dispatcher.cancelled",
                    board_id=context.board_id,
                    trigger_type=context.trigger_type.value,
                    skipped_rules=len(rules) - index,
                )
                break
            if not self._is_candidate(rule, context, require_active=require_active):
                continue
            run = await self._run_rule(
                rule, context, dry_run=dry_run, is_cancelled=is_cancelled, depth=depth
            )
            matched += run.matched
            executed += run.executed
            if run.result is not None:
                results.append(run.result)
        else:
            cancelled = bool(rules) and is_cancelled()

        summary = ProcessResult(
            rules_matched=matched,
            rules_executed=executed,
            per_rule_results=tuple(results),
            cancelled=cancelled,
            test_run=dry_run,
        )
        logger.info(
            "dispatcher.completed",
            board_id=context.board_id,
            trigger_type=context.trigger_type.value,
            depth=depth,
            rules_candidate=len(rules),
            rules_matched=matched,
            rules_executed=executed,
            cancelled=cancelled,
        )
        return summary

    @staticmethod
    def _is_candidate(
        rule: AutomationRule, context: TriggerContext, *, require_active: bool
    ) -> bool:
        if require_active and not rule.active:
            return False
        if rule.trigger_type != context.trigger_type:
            return False
        if rule.board_id != context.board_id:
            logger.warning(
                "dispatcher.foreign_rule_skipped",
                rule_id=rule.rule_id,
                rule_board_id=rule.board_id,
                board_id=context.board_id,
            )
            return False
        return True

    async def _run_rule(
        self,
        rule: AutomationRule,
        context: TriggerContext,
        *,
        dry_run: bool,
        is_cancelled: CancelCheck,
        depth: int,
    ) -> _RuleRun:
        log = logger.bind(rule_id=rule.rule_id, board_id=context.board_id, depth=depth)
        if rule.is_inert:
            log.debug("dispatcher.rule_skipped", reason="no_actions")
            return _SKIPPED
        if not matches_trigger_filter(rule, context):
            log.debug("dispatcher.rule_skipped", reason="trigger_filter")
            return _SKIPPED
        if rule.execution_cap_reached and not dry_run:
            log.debug(
                "dispatcher.rule_skipped",
                reason="max_executions",
                max_executions=rule.max_executions,
            )
            return _SKIPPED

        try:
            validate_actions(rule.actions, rule_id=rule.rule_id)
            conditions_hold = evaluate(rule.conditions, context, rule_id=rule.rule_id)
        except InvalidRuleDefinition as exc:
            log.warning("dispatcher.invalid_rule", error=exc.message)
            return await self._record_rule_failure(
                rule, context, f"{exc.kind}: {exc.message}", dry_run=dry_run, depth=depth
            )
        except Exception as exc:
            log.exception("dispatcher.evaluation_failed", error_type=type(exc).__name__)
            return await self._record_rule_failure(
                rule, context, f"{type(exc).__name__}: {exc}", dry_run=dry_run, depth=depth
            )

        if not conditions_hold:
            log.debug("dispatcher.rule_skipped", reason="conditions")
            return _SKIPPED

        if not dry_run:
            await self._count_execution(rule)
        handle = self._recorder.begin(rule, context, test_run=dry_run, depth=depth)
        outcomes = await self._executor.execute(
            rule.actions,
            context,
            reenter=self._reentry(dry_run=dry_run, is_cancelled=is_cancelled, depth=depth),
            is_cancelled=is_cancelled,
        )
        for outcome in outcomes:
            self._recorder.record_action(handle, outcome)

        was_cancelled = any(o.outcome == OutcomeStatus.CANCELLED for o in outcomes)
        status = status_for(outcomes, cancelled=was_cancelled)
        error = CANCELLED_KIND if was_cancelled else None
        entry = await self._recorder.finish(handle, status, error=error)
        log.info(
            "dispatcher.rule_executed",
            status=status.value,
            actions=len(outcomes),
            failed=sum(1 for o in outcomes if not o.succeeded),
            log_id=entry.log_id,
            dry_run=dry_run,
        )
        return _RuleRun(
            matched=True,
            executed=True,
            result=RuleResult(
                rule_id=rule.rule_id,
                status=status,
                action_outcomes=tuple(outcomes),
                log_id=entry.log_id,
                error=error,
            ),
        )

    async def _count_execution(self, rule: AutomationRule) -> None:
        """Advance the counter before actions run so chained triggers see it."""
        try:
            await self._rule_store.record_execution(rule.rule_id)
        except Exception as exc:
            logger.warning(
                "dispatcher.execution_count_failed",
                rule_id=rule.rule_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _record_rule_failure(
        self,
        rule: AutomationRule,
        context: TriggerContext,
        error: str,
        *,
        dry_run: bool,
        depth: int,
    ) -> _RuleRun:
        """Log a rule that could not be checked; no action ran."""
        handle = self._recorder.begin(rule, context, test_run=dry_run, depth=depth)
        entry = await self._recorder.finish(handle, LogStatus.FAILURE, error=error)
        return _RuleRun(
            result=RuleResult(
                rule_id=rule.rule_id,
                status=LogStatus.FAILURE,
                log_id=entry.log_id,
                error=error,
            )
        )

    def _reentry(
        self, *, dry_run: bool, is_cancelled: CancelCheck, depth: int
    ) -> ReenterCallback:
        async def reenter(follow_up: TriggerContext) -> ProcessResult:
            next_depth = depth + 1
            if next_depth >= self._max_depth:
                logger.warning(
                    "dispatcher.max_recursion_depth_exceeded",
                    board_id=follow_up.board_id,
                    trigger_type=follow_up.trigger_type.value,
                    depth=next_depth,
                    max_depth=self._max_depth,
                )
                raise MaxRecursionDepthExceeded(
                    f"Chained {follow_up.trigger_type.value} trigger refused at depth "
                    f"{next_depth} (max {self._max_depth})",
                    depth=next_depth,
                    max_depth=self._max_depth,
                )
            return await self._process(
                follow_up, dry_run=dry_run, is_cancelled=is_cancelled, depth=next_depth
            )

        return reenter
