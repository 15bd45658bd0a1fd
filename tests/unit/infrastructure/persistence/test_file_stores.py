"""Tests for the file-backed rule and log stores."""

from __future__ import annotations

import dataclasses
import json
from datetime import UTC, datetime, timedelta

import pytest

from boardflow.core.domain.automation_log import ActionOutcome, AutomationLog, LogStatus
from boardflow.core.domain.trigger_context import TriggerType
from boardflow.infrastructure.persistence.file_log_store import FileLogStore
from boardflow.infrastructure.persistence.file_rule_store import FileRuleStore


def _log(rule_id: str, minute: int, status: LogStatus, *, test_run: bool = False) -> AutomationLog:
    started = datetime(2026, 1, 1, 12, minute, tzinfo=UTC)
    return AutomationLog(
        rule_id=rule_id,
        board_id="board-1",
        trigger_type="label_added",
        status=status,
        started_at=started,
        finished_at=started + timedelta(milliseconds=40),
        actions_executed=(ActionOutcome.success("archive_task"),),
        test_run=test_run,
    )


class TestFileRuleStore:
    """Tests for FileRuleStore."""

    @pytest.fixture
    def store(self, tmp_path) -> FileRuleStore:
        return FileRuleStore(tmp_path)

    async def test_save_and_reload(self, store, make_rule, tmp_path) -> None:
        rule = make_rule(actions=[("archive_task", {})])
        await store.save_rule(rule)

        reloaded = await FileRuleStore(tmp_path).get_rule(rule.rule_id)

        assert reloaded == rule
        assert (tmp_path / "automation" / "rules.json").exists()
        assert not (tmp_path / "automation" / "rules.json.tmp").exists()

    async def test_save_replaces_existing(self, store, make_rule) -> None:
        rule = make_rule(rule_id="r1", actions=[("archive_task", {})])
        await store.save_rule(rule)
        await store.save_rule(make_rule(rule_id="r1", active=False))

        rules = await store.list_rules()

        assert len(rules) == 1
        assert rules[0].active is False

    async def test_active_rules_in_creation_order(self, store, make_rule) -> None:
        first = make_rule()
        second = make_rule()
        inactive = make_rule(active=False)
        other_trigger = make_rule(TriggerType.TASK_CREATED)
        for rule in (second, inactive, first, other_trigger):
            await store.save_rule(rule)

        rules = await store.active_rules_for_trigger("board-1", TriggerType.LABEL_ADDED)

        assert [r.rule_id for r in rules] == [first.rule_id, second.rule_id]

    async def test_remove_notifies_listeners(self, store, make_rule) -> None:
        changed: list[str] = []
        store.add_invalidation_listener(changed.append)
        rule = make_rule(rule_id="r1")
        await store.save_rule(rule)

        assert await store.remove_rule("r1") is True
        assert await store.remove_rule("r1") is False
        assert changed == ["board-1", "board-1"]
        assert await store.get_rule("r1") is None

    async def test_record_execution_persists(self, store, make_rule, tmp_path) -> None:
        changed: list[str] = []
        await store.save_rule(dataclasses.replace(make_rule(rule_id="r1"), max_executions=1))
        await store.save_rule(make_rule(rule_id="r2"))
        store.add_invalidation_listener(changed.append)

        await store.record_execution("r1")
        await store.record_execution("r2")
        await store.record_execution("missing")

        reloaded = FileRuleStore(tmp_path)
        first = await reloaded.get_rule("r1")
        assert first.execution_count == 1
        assert first.execution_cap_reached
        assert (await reloaded.get_rule("r2")).execution_count == 1
        assert changed == ["board-1"]

    async def test_corrupt_entry_is_skipped(self, store, make_rule) -> None:
        rule = make_rule(rule_id="good")
        store.path.parent.mkdir(parents=True)
        store.path.write_text(
            json.dumps({"rules": [{"rule_id": "bad", "trigger_type": "nope"}, rule.to_dict()]})
        )

        assert [r.rule_id for r in await store.list_rules()] == ["good"]

    async def test_unreadable_file_raises(self, store) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{ not json")

        with pytest.raises(ValueError):
            await store.active_rules_for_trigger("board-1", TriggerType.LABEL_ADDED)


class TestFileLogStore:
    """Tests for FileLogStore."""

    @pytest.fixture
    def store(self, tmp_path) -> FileLogStore:
        return FileLogStore(tmp_path)

    async def test_append_writes_one_file_per_log(self, store, tmp_path) -> None:
        log = _log("r1", 0, LogStatus.SUCCESS)
        await store.append(log)

        path = tmp_path / "automation" / "logs" / "r1" / f"{log.log_id}.json"
        assert json.loads(path.read_text())["status"] == "success"

    async def test_append_never_overwrites(self, store) -> None:
        log = _log("r1", 0, LogStatus.SUCCESS)
        await store.append(log)

        with pytest.raises(FileExistsError):
            await store.append(log)

    async def test_list_newest_first_with_filters(self, store) -> None:
        for minute, status, test_run in [
            (0, LogStatus.SUCCESS, False),
            (1, LogStatus.FAILURE, False),
            (2, LogStatus.SUCCESS, True),
            (3, LogStatus.SUCCESS, False),
        ]:
            await store.append(_log("r1", minute, status, test_run=test_run))

        live = await store.list_logs("r1")
        everything = await store.list_logs("r1", include_test_runs=True, limit=2)
        failures = await store.list_logs("r1", status=LogStatus.FAILURE)

        assert [log.started_at.minute for log in live] == [3, 1, 0]
        assert [log.started_at.minute for log in everything] == [3, 2]
        assert [log.status for log in failures] == [LogStatus.FAILURE]

    async def test_unknown_rule_has_no_logs(self, store) -> None:
        assert await store.list_logs("missing") == []

    async def test_path_traversal_is_rejected(self, store) -> None:
        with pytest.raises(ValueError):
            await store.list_logs("../etc")
