"""File-based automation log store."""

from __future__ import annotations

import json
from pathlib import Path

import aiofiles
import structlog

from boardflow.core.domain.automation_log import AutomationLog, LogStatus
from boardflow.infrastructure.persistence.memory_stores import select_logs

logger = structlog.get_logger(__name__)


def _segment(value: str) -> str:
    if not value or value in (".", "..") or "/" in value or "\\" in value:
        raise ValueError(f"Invalid path segment: {value!r}")
    return value


class FileLogStore:
    """Persist automation logs as one JSON file per execution.

    Storage layout::

        {work_dir}/automation/logs/
        └── {rule_id}/
            ├── {log_id}.json
            └── {log_id}.json

    Logs are append-only: writing an id that already exists is an error.
    """

    def __init__(self, work_dir: str | Path = ".boardflow") -> None:
        self._dir = Path(work_dir) / "automation" / "logs"

    async def append(self, log: AutomationLog) -> None:
        rule_dir = self._dir / _segment(log.rule_id)
        rule_dir.mkdir(parents=True, exist_ok=True)
        path = rule_dir / f"{_segment(log.log_id)}.json"
        if path.exists():
            raise FileExistsError(f"Log already exists: {log.log_id}")
        tmp = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            await f.write(json.dumps(log.to_dict(), indent=2, default=str))
        tmp.rename(path)
        logger.debug("log_store.appended", log_id=log.log_id, rule_id=log.rule_id)

    async def list_logs(
        self,
        rule_id: str,
        *,
        status: LogStatus | None = None,
        limit: int = 50,
        include_test_runs: bool = False,
    ) -> list[AutomationLog]:
        rule_dir = self._dir / _segment(rule_id)
        if not rule_dir.exists():
            return []
        logs: list[AutomationLog] = []
        for path in rule_dir.glob("*.json"):
            try:
                async with aiofiles.open(path, encoding="utf-8") as f:
                    raw = await f.read()
                logs.append(AutomationLog.from_dict(json.loads(raw)))
            except (OSError, ValueError, TypeError) as exc:
                logger.warning("log_store.load_failed", path=str(path), error=str(exc))
        return select_logs(
            logs, status=status, limit=limit, include_test_runs=include_test_runs
        )
