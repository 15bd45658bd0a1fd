"""Tests for CachedRuleStore."""

from __future__ import annotations

from boardflow.application.rule_cache import CachedRuleStore
from boardflow.core.domain.trigger_context import TriggerType


class TestCachedRuleStore:
    """Tests for caching and invalidation."""

    async def test_second_lookup_is_served_from_cache(self, rule_store, make_rule) -> None:
        await rule_store.save_rule(make_rule(actions=[("archive_task", {})]))
        cache = CachedRuleStore(rule_store)

        first = await cache.active_rules_for_trigger("board-1", TriggerType.LABEL_ADDED)
        second = await cache.active_rules_for_trigger("board-1", TriggerType.LABEL_ADDED)

        assert first == second
        assert cache.stats == {"hits": 1, "misses": 1, "entries": 1}

    async def test_invalidation_listener_refreshes(self, rule_store, make_rule) -> None:
        cache = CachedRuleStore(rule_store)
        rule_store.add_invalidation_listener(cache.invalidate)
        assert await cache.active_rules_for_trigger("board-1", TriggerType.LABEL_ADDED) == []

        rule = make_rule(actions=[("archive_task", {})])
        await rule_store.save_rule(rule)

        assert await cache.active_rules_for_trigger("board-1", TriggerType.LABEL_ADDED) == [rule]

    async def test_invalidate_one_board(self, rule_store) -> None:
        cache = CachedRuleStore(rule_store)
        await cache.active_rules_for_trigger("board-1", TriggerType.LABEL_ADDED)
        await cache.active_rules_for_trigger("board-2", TriggerType.LABEL_ADDED)

        cache.invalidate("board-1")

        assert cache.stats["entries"] == 1

    async def test_get_rule_passes_through(self, rule_store, make_rule) -> None:
        rule = make_rule(rule_id="r1")
        await rule_store.save_rule(rule)

        assert await CachedRuleStore(rule_store).get_rule("r1") == rule
