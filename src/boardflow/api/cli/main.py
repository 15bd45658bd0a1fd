"""Boardflow CLI entry point."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from boardflow.api.cli.commands import logs, rules

app = typer.Typer(
    name="boardflow",
    help="Boardflow - board automation rules engine",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register command groups
app.add_typer(rules.app, name="rules", help="Automation rule management")
app.add_typer(logs.app, name="logs", help="Automation execution logs")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Engine configuration file (default: ./boardflow.yaml)"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """Boardflow automation CLI."""
    # Store global options in context for subcommands
    ctx.obj = {"config_path": config, "debug": debug}


@app.command()
def version():
    """Show Boardflow version."""
    from boardflow import __version__

    console.print(f"[bold blue]Version:[/bold blue] [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
