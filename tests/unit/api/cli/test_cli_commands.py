"""Tests for the rules and logs CLI commands.

Commands run against a temporary work directory through a config file, so
the real file stores are exercised end to end.
"""

from __future__ import annotations

import pytest
from rich.console import Console
from typer.testing import CliRunner

from boardflow.api.cli import main as cli_main
from boardflow.api.cli.commands import logs as logs_commands
from boardflow.api.cli.commands import rules as rules_commands

runner = CliRunner()

RULE_YAML = """\
rule_id: r1
board_id: board-1
trigger_type: label_added
name: Archive urgent
conditions:
  - {field: label.name, operator: equals, value: Urgent}
actions:
  - {type: archive_task}
"""


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Render tables wide enough that ids are never folded."""
    console = Console(width=200)
    monkeypatch.setattr(rules_commands, "console", console)
    monkeypatch.setattr(logs_commands, "console", console)
    monkeypatch.setattr(cli_main, "console", console)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "boardflow.yaml"
    path.write_text(f"work_dir: {tmp_path / 'data'}\nlogging:\n  level: WARNING\n")
    return path


@pytest.fixture
def rule_file(tmp_path):
    path = tmp_path / "rule.yaml"
    path.write_text(RULE_YAML)
    return path


def _invoke(config_file, *args: str):
    return runner.invoke(cli_main.app, ["--config", str(config_file), *args])


class TestRulesCommands:
    """Tests for `boardflow rules`."""

    def test_add_then_list(self, config_file, rule_file) -> None:
        added = _invoke(config_file, "rules", "add", str(rule_file))
        listed = _invoke(config_file, "rules", "list")

        assert added.exit_code == 0, added.output
        assert "Saved rule" in added.output
        assert listed.exit_code == 0, listed.output
        assert "r1" in listed.output
        assert "label_added" in listed.output

    def test_list_empty(self, config_file) -> None:
        result = _invoke(config_file, "rules", "list")

        assert result.exit_code == 0
        assert "No rules found" in result.output

    def test_add_rejects_invalid_rule(self, config_file, tmp_path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text(RULE_YAML.replace("{type: archive_task}", "{type: move_task}"))

        result = _invoke(config_file, "rules", "add", str(bad))

        assert result.exit_code == 1
        assert "Invalid rule" in result.output

    def test_remove(self, config_file, rule_file) -> None:
        _invoke(config_file, "rules", "add", str(rule_file))

        removed = _invoke(config_file, "rules", "remove", "r1")
        again = _invoke(config_file, "rules", "remove", "r1")

        assert removed.exit_code == 0
        assert again.exit_code == 1

    def test_test_rule_previews_calls(self, config_file, rule_file, tmp_path) -> None:
        _invoke(config_file, "rules", "add", str(rule_file))
        sample = tmp_path / "sample.yaml"
        sample.write_text("task_id: t1\nlabel: {id: l1, name: Urgent}\n")

        result = _invoke(config_file, "rules", "test", "r1", "--context", str(sample))

        assert result.exit_code == 0, result.output
        assert "success" in result.output
        assert "archive_task" in result.output
        assert "Calls that would be made" in result.output

    def test_test_rule_not_matching(self, config_file, rule_file, tmp_path) -> None:
        _invoke(config_file, "rules", "add", str(rule_file))
        sample = tmp_path / "sample.yaml"
        sample.write_text("task_id: t1\nlabel: {id: l2, name: Minor}\n")

        result = _invoke(config_file, "rules", "test", "r1", "--context", str(sample))

        assert result.exit_code == 0
        assert "did not match" in result.output

    def test_test_unknown_rule(self, config_file) -> None:
        result = _invoke(config_file, "rules", "test", "nope")

        assert result.exit_code == 1
        assert "Rule not found" in result.output


class TestLogsCommands:
    """Tests for `boardflow logs`."""

    def test_dry_run_logs_hidden_by_default(self, config_file, rule_file, tmp_path) -> None:
        _invoke(config_file, "rules", "add", str(rule_file))
        sample = tmp_path / "sample.yaml"
        sample.write_text("task_id: t1\nlabel: {id: l1, name: Urgent}\n")
        _invoke(config_file, "rules", "test", "r1", "--context", str(sample))

        hidden = _invoke(config_file, "logs", "list", "r1")
        shown = _invoke(config_file, "logs", "list", "r1", "--include-tests")

        assert "No logs for rule r1" in hidden.output
        assert shown.exit_code == 0, shown.output
        assert "alog_" in shown.output
        assert "success" in shown.output

    def test_unknown_status(self, config_file) -> None:
        result = _invoke(config_file, "logs", "list", "r1", "--status", "meh")

        assert result.exit_code == 1


class TestGlobalOptions:
    """Tests for the root command."""

    def test_version(self) -> None:
        from boardflow import __version__

        result = runner.invoke(cli_main.app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_config_exits(self, tmp_path) -> None:
        path = tmp_path / "boardflow.yaml"
        path.write_text("max_recursion_depth: -1\n")

        result = runner.invoke(cli_main.app, ["--config", str(path), "rules", "list"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
