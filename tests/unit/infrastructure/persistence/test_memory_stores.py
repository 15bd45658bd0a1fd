"""Tests for the in-memory stores."""

from __future__ import annotations

import dataclasses

import pytest

from boardflow.core.domain.automation_log import AutomationLog, LogStatus
from boardflow.core.domain.trigger_context import TriggerType
from boardflow.core.utils.time import utc_now


class TestInMemoryRuleStore:
    """Tests for InMemoryRuleStore."""

    async def test_active_rules_filter(self, rule_store, make_rule) -> None:
        wanted = make_rule()
        await rule_store.save_rule(wanted)
        await rule_store.save_rule(make_rule(active=False))
        await rule_store.save_rule(make_rule(board_id="board-2"))

        rules = await rule_store.active_rules_for_trigger("board-1", TriggerType.LABEL_ADDED)

        assert rules == [wanted]

    async def test_list_rules_by_board(self, rule_store, make_rule) -> None:
        await rule_store.save_rule(make_rule())
        await rule_store.save_rule(make_rule(board_id="board-2"))

        assert len(await rule_store.list_rules()) == 2
        assert len(await rule_store.list_rules("board-2")) == 1

    async def test_record_execution(self, rule_store, make_rule) -> None:
        changed: list[str] = []
        capped = dataclasses.replace(make_rule(rule_id="capped"), max_executions=2)
        await rule_store.save_rule(capped)
        await rule_store.save_rule(make_rule(rule_id="free"))
        rule_store.add_invalidation_listener(changed.append)

        await rule_store.record_execution("capped")
        await rule_store.record_execution("free")
        await rule_store.record_execution("missing")

        assert (await rule_store.get_rule("capped")).execution_count == 1
        assert (await rule_store.get_rule("free")).execution_count == 1
        assert changed == ["board-1"]


class TestInMemoryLogStore:
    """Tests for InMemoryLogStore."""

    async def test_duplicate_id_rejected(self, log_store) -> None:
        now = utc_now()
        log = AutomationLog(
            rule_id="r1",
            board_id="b1",
            trigger_type="task_created",
            status=LogStatus.SUCCESS,
            started_at=now,
            finished_at=now,
        )
        await log_store.append(log)

        with pytest.raises(ValueError):
            await log_store.append(log)
        assert await log_store.list_logs("r1") == [log]
