"""Automation log CLI commands."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from boardflow.api.cli.runtime import load_cli_config

app = typer.Typer(help="Automation execution logs")
console = Console()


@app.command("list")
def list_logs(
    ctx: typer.Context,
    rule_id: str = typer.Argument(..., help="Rule ID"),
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="Filter: success, partial_failure, failure"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of logs"),
    include_tests: bool = typer.Option(
        False, "--include-tests", help="Include dry-run logs"
    ),
) -> None:
    """Show the newest execution logs of a rule."""
    from boardflow.core.domain.automation_log import LogStatus

    if status is not None and status not in {s.value for s in LogStatus}:
        console.print(f"[red]Unknown status:[/red] {status}")
        raise typer.Exit(1)
    config = load_cli_config(ctx, console)
    asyncio.run(_list_logs(config, rule_id, status, limit, include_tests))


async def _list_logs(
    config: Any,
    rule_id: str,
    status: str | None,
    limit: int | None,
    include_tests: bool,
) -> None:
    from boardflow.application.automation_service import AutomationService
    from boardflow.infrastructure.collaborators.recording import RecordingTaskService

    service = AutomationService.from_config(config, RecordingTaskService())
    logs = await service.list_logs(
        rule_id, status=status, limit=limit, include_test_runs=include_tests
    )
    if not logs:
        console.print(f"[yellow]No logs for rule {rule_id}.[/yellow]")
        return

    table = Table(title=f"Logs for {rule_id}")
    table.add_column("Log ID", style="cyan")
    table.add_column("Started", style="white")
    table.add_column("Trigger", style="blue")
    table.add_column("Status")
    table.add_column("Actions", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Test")
    for log in logs:
        failed = sum(1 for o in log.actions_executed if not o.succeeded)
        table.add_row(
            log.log_id,
            log.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            log.trigger_type,
            log.status.value,
            f"{len(log.actions_executed) - failed}/{len(log.actions_executed)}",
            f"{log.duration_ms} ms",
            "yes" if log.test_run else "",
        )
    console.print(table)
