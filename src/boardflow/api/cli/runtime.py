"""Shared helpers for CLI commands: configuration and logging setup."""

from __future__ import annotations

import logging

import structlog
import typer
from rich.console import Console

from boardflow.application.config_loader import load_config
from boardflow.core.domain.config_schema import EngineConfig
from boardflow.core.domain.errors import ConfigError


def configure_logging(level: str) -> None:
    """Route structlog output through stdlib logging at the given level."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="%(message)s")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
    )


def load_cli_config(ctx: typer.Context, console: Console) -> EngineConfig:
    """Load the configuration named by the global options and set up logging.

    Exits with status 1 on an invalid configuration.
    """
    global_opts = ctx.obj or {}
    try:
        config = load_config(global_opts.get("config_path"))
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc.message}")
        raise typer.Exit(1) from exc
    configure_logging("DEBUG" if global_opts.get("debug") else config.logging.level)
    return config
