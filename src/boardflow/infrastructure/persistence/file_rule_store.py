"""File-based rule store."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from boardflow.core.domain.automation_rule import AutomationRule
from boardflow.core.domain.errors import InvalidRuleDefinition
from boardflow.core.domain.trigger_context import TriggerType
from boardflow.infrastructure.persistence.memory_stores import (
    InvalidationListener,
    select_active_rules,
)

logger = structlog.get_logger(__name__)


class FileRuleStore:
    """Persist automation rules in a single JSON document.

    Storage layout::

        {work_dir}/automation/
        └── rules.json      {"rules": [ {...}, {...} ]}

    Writes go to a temporary file that is renamed over the target, so a
    crash never leaves a half-written document behind. Entries that no
    longer parse are skipped with a warning instead of hiding every other
    rule of the file.
    """

    def __init__(self, work_dir: str | Path = ".boardflow") -> None:
        self._dir = Path(work_dir) / "automation"
        self._path = self._dir / "rules.json"
        self._lock = asyncio.Lock()
        self._listeners: list[InvalidationListener] = []

    @property
    def path(self) -> Path:
        return self._path

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        """Register a callback receiving the board id of every changed rule."""
        self._listeners.append(listener)

    def _notify(self, board_id: str) -> None:
        for listener in self._listeners:
            listener(board_id)

    async def _read(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        async with aiofiles.open(self._path, encoding="utf-8") as f:
            raw = await f.read()
        if not raw.strip():
            return []
        data = json.loads(raw)
        return list(data.get("rules", []))

    async def _write(self, entries: list[dict[str, Any]]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"rules": entries}, indent=2, default=str)
        tmp = self._path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            await f.write(payload)
        tmp.replace(self._path)

    async def _load_rules(self) -> list[AutomationRule]:
        rules: list[AutomationRule] = []
        for entry in await self._read():
            try:
                rules.append(AutomationRule.from_dict(entry))
            except (InvalidRuleDefinition, KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "rule_store.entry_skipped",
                    path=str(self._path),
                    rule_id=entry.get("rule_id") if isinstance(entry, dict) else None,
                    error=str(exc),
                )
        return rules

    async def save_rule(self, rule: AutomationRule) -> None:
        """Insert or replace a rule."""
        async with self._lock:
            entries = [e for e in await self._read() if e.get("rule_id") != rule.rule_id]
            entries.append(rule.to_dict())
            await self._write(entries)
        logger.debug("rule_store.saved", rule_id=rule.rule_id, board_id=rule.board_id)
        self._notify(rule.board_id)

    async def remove_rule(self, rule_id: str) -> bool:
        """Delete a rule; returns False if it did not exist."""
        async with self._lock:
            entries = await self._read()
            removed = [e for e in entries if e.get("rule_id") == rule_id]
            if not removed:
                return False
            await self._write([e for e in entries if e.get("rule_id") != rule_id])
        board_id = str(removed[0].get("board_id", ""))
        logger.debug("rule_store.removed", rule_id=rule_id, board_id=board_id)
        self._notify(board_id)
        return True

    async def record_execution(self, rule_id: str) -> None:
        """Advance a rule's execution counter; unknown ids are ignored."""
        async with self._lock:
            entries = await self._read()
            entry = next((e for e in entries if e.get("rule_id") == rule_id), None)
            if entry is None:
                return
            entry["execution_count"] = int(entry.get("execution_count") or 0) + 1
            await self._write(entries)
        # Cached copies of a capped rule must see the new count.
        if entry.get("max_executions"):
            self._notify(str(entry.get("board_id", "")))

    async def list_rules(self, board_id: str | None = None) -> list[AutomationRule]:
        """All rules, optionally of one board, oldest first."""
        rules = [
            r for r in await self._load_rules() if board_id is None or r.board_id == board_id
        ]
        return sorted(rules, key=lambda rule: rule.created_at)

    async def get_rule(self, rule_id: str) -> AutomationRule | None:
        for rule in await self._load_rules():
            if rule.rule_id == rule_id:
                return rule
        return None

    async def active_rules_for_trigger(
        self, board_id: str, trigger_type: TriggerType
    ) -> list[AutomationRule]:
        return select_active_rules(await self._load_rules(), board_id, trigger_type)
