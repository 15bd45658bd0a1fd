"""Rule management CLI commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from boardflow.api.cli.runtime import load_cli_config

app = typer.Typer(help="Automation rule management")
console = Console()

_STATUS_STYLES = {"success": "green", "partial_failure": "yellow", "failure": "red"}


def _read_document(path: Path) -> Any:
    """Read a YAML (or JSON) document."""
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        console.print(f"[red]Cannot read {path}:[/red] {exc}")
        raise typer.Exit(1) from exc


@app.command("list")
def list_rules(
    ctx: typer.Context,
    board_id: Optional[str] = typer.Option(None, "--board", "-b", help="Only rules of this board"),
) -> None:
    """List stored rules."""
    config = load_cli_config(ctx, console)
    asyncio.run(_list_rules(config.work_dir, board_id))


async def _list_rules(work_dir: str, board_id: str | None) -> None:
    from boardflow.infrastructure.persistence.file_rule_store import FileRuleStore

    rules = await FileRuleStore(work_dir).list_rules(board_id)
    if not rules:
        console.print("[yellow]No rules found.[/yellow]")
        return

    table = Table(title="Automation Rules")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Board", style="magenta")
    table.add_column("Trigger", style="blue")
    table.add_column("Conditions", justify="right")
    table.add_column("Actions", justify="right")
    table.add_column("Active")
    for rule in rules:
        table.add_row(
            rule.rule_id,
            rule.name,
            rule.board_id,
            rule.trigger_type.value,
            str(len(rule.conditions)),
            str(len(rule.actions)),
            "[green]yes[/green]" if rule.active else "[dim]no[/dim]",
        )
    console.print(table)


@app.command("add")
def add_rule(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="YAML/JSON file with one rule or a list of rules"),
) -> None:
    """Validate and store rules from a file."""
    config = load_cli_config(ctx, console)
    document = _read_document(file)
    entries = document if isinstance(document, list) else [document]
    if not entries or not all(isinstance(e, dict) for e in entries):
        console.print(f"[red]{file} must contain a rule mapping or a list of them[/red]")
        raise typer.Exit(1)
    asyncio.run(_add_rules(config.work_dir, entries))


async def _add_rules(work_dir: str, entries: list[dict[str, Any]]) -> None:
    from boardflow.application.automation_service import validate_rule
    from boardflow.core.domain.automation_rule import AutomationRule
    from boardflow.core.domain.errors import InvalidRuleDefinition
    from boardflow.infrastructure.persistence.file_rule_store import FileRuleStore

    try:
        rules = [AutomationRule.from_dict(entry) for entry in entries]
        for rule in rules:
            validate_rule(rule)
    except InvalidRuleDefinition as exc:
        console.print(f"[red]Invalid rule {exc.rule_id or ''}:[/red] {exc.message}")
        raise typer.Exit(1) from exc

    store = FileRuleStore(work_dir)
    for rule in rules:
        await store.save_rule(rule)
        console.print(
            f"[green]Saved rule[/green] [cyan]{rule.rule_id}[/cyan] "
            f"({rule.trigger_type.value}, {len(rule.actions)} actions)"
        )


@app.command("remove")
def remove_rule(
    ctx: typer.Context,
    rule_id: str = typer.Argument(..., help="Rule ID"),
) -> None:
    """Delete a rule."""
    config = load_cli_config(ctx, console)
    asyncio.run(_remove_rule(config.work_dir, rule_id))


async def _remove_rule(work_dir: str, rule_id: str) -> None:
    from boardflow.infrastructure.persistence.file_rule_store import FileRuleStore

    if await FileRuleStore(work_dir).remove_rule(rule_id):
        console.print(f"[green]Removed rule[/green] [cyan]{rule_id}[/cyan]")
    else:
        console.print(f"[red]Rule not found:[/red] {rule_id}")
        raise typer.Exit(1)


@app.command("test")
def test_rule(
    ctx: typer.Context,
    rule_id: str = typer.Argument(..., help="Rule ID"),
    context_file: Optional[Path] = typer.Option(
        None, "--context", help="YAML/JSON file with sample trigger fields"
    ),
) -> None:
    """Dry-run a rule against a sample context without touching any board."""
    config = load_cli_config(ctx, console)
    sample: dict[str, Any] = {}
    if context_file is not None:
        document = _read_document(context_file)
        if document is not None and not isinstance(document, dict):
            console.print(f"[red]{context_file} must contain a mapping[/red]")
            raise typer.Exit(1)
        sample = document or {}
    asyncio.run(_test_rule(config, rule_id, sample))


async def _test_rule(config: Any, rule_id: str, sample: dict[str, Any]) -> None:
    from boardflow.application.automation_service import AutomationService
    from boardflow.core.domain.errors import MalformedContext, RuleNotFoundError
    from boardflow.infrastructure.collaborators.recording import (
        RecordingNotifier,
        RecordingTaskService,
        RecordingWebhookSender,
    )

    preview = RecordingTaskService()
    webhooks = RecordingWebhookSender()
    notifier = RecordingNotifier()
    service = AutomationService.from_config(
        config,
        preview,
        webhook_sender=webhooks,
        notifier=notifier,
        preview_task_service=preview,
    )
    try:
        result = await service.test_rule(rule_id, sample)
    except RuleNotFoundError as exc:
        console.print(f"[red]Rule not found:[/red] {rule_id}")
        raise typer.Exit(1) from exc
    except MalformedContext as exc:
        console.print(f"[red]Invalid sample context:[/red] {exc.message}")
        raise typer.Exit(1) from exc

    if not result.per_rule_results:
        console.print("[yellow]Rule did not match the sample context.[/yellow]")
        return

    for rule_result in result.per_rule_results:
        style = _STATUS_STYLES.get(rule_result.status.value, "white")
        console.print(
            f"Rule [cyan]{rule_result.rule_id}[/cyan]: "
            f"[{style}]{rule_result.status.value}[/{style}]"
        )
        if rule_result.error:
            console.print(f"  [red]{rule_result.error}[/red]")
        table = Table(title="Actions")
        table.add_column("#", justify="right")
        table.add_column("Action", style="cyan")
        table.add_column("Outcome")
        table.add_column("Error", style="red")
        for index, outcome in enumerate(rule_result.action_outcomes, start=1):
            table.add_row(
                str(index),
                outcome.action_type,
                outcome.outcome.value,
                f"{outcome.error_kind}: {outcome.error}" if outcome.error else "",
            )
        console.print(table)

    calls = [*preview.calls, *webhooks.calls, *notifier.calls]
    if calls:
        console.print("[bold]Calls that would be made:[/bold]")
        for call in calls:
            console.print(f"  {call.method} {call.args}")
