"""
Automation Service
==================

Application entry point that wires the engine together: rule store,
optional rule cache, action executor, log recorder and dispatcher.

Embedding applications create one service per process and call
``process`` for every board event they want automated.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog

from boardflow.application.action_executor import ActionExecutor, validate_actions
from boardflow.application.condition_evaluator import validate_conditions
from boardflow.application.dispatcher import Dispatcher, ProcessOptions
from boardflow.application.log_recorder import LogRecorder
from boardflow.application.rule_cache import CachedRuleStore
from boardflow.core.domain.action_params import parse_action_params
from boardflow.core.domain.automation_log import AutomationLog, LogStatus, ProcessResult
from boardflow.core.domain.automation_rule import ActionType, AutomationRule
from boardflow.core.domain.config_schema import EngineConfig
from boardflow.core.domain.errors import (
    InvalidActionParameters,
    InvalidRuleDefinition,
    RuleNotFoundError,
)
from boardflow.core.domain.trigger_context import TriggerContext, TriggerType
from boardflow.core.interfaces.collaborators import (
    NotifierProtocol,
    TaskServiceProtocol,
    WebhookSenderProtocol,
)
from boardflow.core.interfaces.log_store import LogStoreProtocol
from boardflow.core.interfaces.rule_store import RuleStoreProtocol

logger = structlog.get_logger(__name__)


def validate_rule(rule: AutomationRule) -> None:
    """Authoring-time validation of a whole rule.

    Checks board ownership, every condition operator, every action type and
    every action parameter set.

    Raises:
        InvalidRuleDefinition: On the first problem found.
    """
    if not rule.board_id:
        raise InvalidRuleDefinition("Rule has no board_id", rule_id=rule.rule_id)
    validate_conditions(rule.conditions, rule_id=rule.rule_id)
    validate_actions(rule.actions, rule_id=rule.rule_id)
    for index, spec in enumerate(rule.actions):
        try:
            parse_action_params(ActionType(spec.action_type), dict(spec.params))
        except InvalidActionParameters as exc:
            raise InvalidRuleDefinition(
                exc.message,
                rule_id=rule.rule_id,
                details={"action_index": index, "action_type": spec.action_type},
            ) from exc


class AutomationService:
    """Facade over the automation engine.

    Args:
        rule_store: Authoritative rule store (used for ``test_rule`` lookups).
        log_store: Store receiving execution logs.
        dispatcher: Dispatcher running live triggers.
        preview_dispatcher: Dispatcher used by ``test_rule``. Defaults to
            ``dispatcher``.
        cache: Rule cache in front of ``rule_store``, if enabled.
        config: Engine configuration.
    """

    def __init__(
        self,
        *,
        rule_store: RuleStoreProtocol,
        log_store: LogStoreProtocol,
        dispatcher: Dispatcher,
        preview_dispatcher: Dispatcher | None = None,
        cache: CachedRuleStore | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self._rule_store = rule_store
        self._log_store = log_store
        self._dispatcher = dispatcher
        self._preview_dispatcher = preview_dispatcher or dispatcher
        self._cache = cache
        self._config = config or EngineConfig()

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        task_service: TaskServiceProtocol,
        *,
        webhook_sender: WebhookSenderProtocol | None = None,
        notifier: NotifierProtocol | None = None,
        preview_task_service: TaskServiceProtocol | None = None,
        rule_store: RuleStoreProtocol | None = None,
        log_store: LogStoreProtocol | None = None,
    ) -> AutomationService:
        """Build a service from configuration.

        Stores default to the file stores under ``config.work_dir`` and the
        webhook sender to aiohttp with the configured timeout.
        """
        if rule_store is None or log_store is None or webhook_sender is None:
            from boardflow.infrastructure.collaborators.webhook_sender import (
                AiohttpWebhookSender,
            )
            from boardflow.infrastructure.persistence.file_log_store import FileLogStore
            from boardflow.infrastructure.persistence.file_rule_store import FileRuleStore

            rule_store = rule_store or FileRuleStore(config.work_dir)
            log_store = log_store or FileLogStore(config.work_dir)
            webhook_sender = webhook_sender or AiohttpWebhookSender(
                timeout_seconds=config.webhook_timeout_seconds
            )

        cache: CachedRuleStore | None = None
        lookup: RuleStoreProtocol = rule_store
        if config.cache_rules:
            cache = CachedRuleStore(rule_store)
            lookup = cache
            add_listener = getattr(rule_store, "add_invalidation_listener", None)
            if add_listener is not None:
                add_listener(cache.invalidate)

        executor = ActionExecutor(task_service, webhook_sender=webhook_sender, notifier=notifier)
        dispatcher = Dispatcher(
            lookup,
            executor,
            LogRecorder(log_store),
            max_recursion_depth=config.max_recursion_depth,
        )
        preview_dispatcher = None
        if preview_task_service is not None:
            preview_dispatcher = dispatcher.with_executor(
                executor.with_task_service(preview_task_service)
            )

        logger.debug(
            "automation_service.created",
            work_dir=config.work_dir,
            cache_rules=config.cache_rules,
            max_recursion_depth=config.max_recursion_depth,
            preview=preview_task_service is not None,
        )
        return cls(
            rule_store=rule_store,
            log_store=log_store,
            dispatcher=dispatcher,
            preview_dispatcher=preview_dispatcher,
            cache=cache,
            config=config,
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def rule_store(self) -> RuleStoreProtocol:
        return self._rule_store

    @property
    def cache(self) -> CachedRuleStore | None:
        return self._cache

    async def process(
        self,
        trigger_type: TriggerType | str,
        context: TriggerContext | Mapping[str, Any],
        *,
        dry_run: bool = False,
        cancel_event: asyncio.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> ProcessResult:
        """Process one trigger. See ``Dispatcher.process``."""
        options = ProcessOptions(
            dry_run=dry_run, cancel_event=cancel_event, timeout_seconds=timeout_seconds
        )
        return await self._dispatcher.process(trigger_type, context, options)

    async def test_rule(
        self,
        rule_id: str,
        sample_context: TriggerContext | Mapping[str, Any],
    ) -> ProcessResult:
        """Dry-run a stored rule against a sample context.

        Raises:
            RuleNotFoundError: If no rule has this id.
            MalformedContext: If the sample context is invalid.
        """
        rule = await self._rule_store.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return await self._preview_dispatcher.test_rule(rule, sample_context)

    async def list_logs(
        self,
        rule_id: str,
        *,
        status: LogStatus | str | None = None,
        limit: int | None = None,
        include_test_runs: bool = False,
    ) -> list[AutomationLog]:
        """Newest logs of a rule; ``limit`` is clamped to the configured maximum."""
        page = self._config.log_page_size if limit is None else limit
        page = max(1, min(page, self._config.max_log_page_size))
        resolved = LogStatus(status) if status is not None else None
        return await self._log_store.list_logs(
            rule_id, status=resolved, limit=page, include_test_runs=include_test_runs
        )

    def invalidate_rules(self, board_id: str | None = None) -> None:
        """Drop cached rules after out-of-band rule changes."""
        if self._cache is not None:
            self._cache.invalidate(board_id)
