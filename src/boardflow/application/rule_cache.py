"""Explicit cache of active rules per board and trigger type.

The cache is an ordinary object handed to the dispatcher, never a module
global. Rule stores call ``invalidate`` (via their invalidation listeners)
whenever a rule is saved or removed.
"""

from __future__ import annotations

import structlog

from boardflow.core.domain.automation_rule import AutomationRule
from boardflow.core.domain.trigger_context import TriggerType
from boardflow.core.interfaces.rule_store import RuleStoreProtocol

logger = structlog.get_logger(__name__)


class CachedRuleStore:
    """RuleStoreProtocol wrapper caching ``active_rules_for_trigger`` results."""

    def __init__(self, inner: RuleStoreProtocol) -> None:
        self._inner = inner
        self._entries: dict[tuple[str, TriggerType], tuple[AutomationRule, ...]] = {}
        self._hits = 0
        self._misses = 0

    @property
    def stats(self) -> dict[str, int]:
        """Hit/miss counters and current entry count."""
        return {"hits": self._hits, "misses": self._misses, "entries": len(self._entries)}

    async def active_rules_for_trigger(
        self, board_id: str, trigger_type: TriggerType
    ) -> list[AutomationRule]:
        key = (board_id, trigger_type)
        cached = self._entries.get(key)
        if cached is not None:
            self._hits += 1
            return list(cached)
        self._misses += 1
        rules = await self._inner.active_rules_for_trigger(board_id, trigger_type)
        self._entries[key] = tuple(rules)
        return list(rules)

    async def get_rule(self, rule_id: str) -> AutomationRule | None:
        return await self._inner.get_rule(rule_id)

    async def record_execution(self, rule_id: str) -> None:
        await self._inner.record_execution(rule_id)

    def invalidate(self, board_id: str | None = None) -> None:
        """Drop cached entries for one board, or everything."""
        if board_id is None:
            dropped = len(self._entries)
            self._entries.clear()
        else:
            keys = [k for k in self._entries if k[0] == board_id]
            for key in keys:
                del self._entries[key]
            dropped = len(keys)
        logger.debug("rule_cache.invalidated", board_id=board_id, dropped=dropped)
