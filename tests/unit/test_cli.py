"""Tests for CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from strategylab.cli.commands import cli
from tests.factories import (
    EMA_CROSS_SCRIPT,
    MACD_SCRIPT,
    RSI_SCRIPT,
    SMA_CROSS_SCRIPT,
    make_bars,
    sine_closes,
)


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Quiet logs, a private database, and a bar file in tmp_path."""
    monkeypatch.setenv("STRATLAB_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("STRATLAB_DB_PATH", str(tmp_path / "db" / "test.db"))

    lines = ["time,open,high,low,close,volume"]
    for b in make_bars(sine_closes(200, period=30)):
        lines.append(f"{b.time},{b.open},{b.high},{b.low},{b.close},{b.volume}")
    (tmp_path / "bars.csv").write_text("\n".join(lines) + "\n", encoding="utf-8")

    for name, source in (
        ("ema.pine", EMA_CROSS_SCRIPT),
        ("sma.pine", SMA_CROSS_SCRIPT),
        ("macd.pine", MACD_SCRIPT),
        ("rsi.pine", RSI_SCRIPT),
    ):
        (tmp_path / name).write_text(source, encoding="utf-8")
    return tmp_path


class TestCliHelp:
    def test_cli_help_shows_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("inputs", "backtest", "sweep", "suggest", "results", "strategies", "config"):
            assert command in result.output


class TestInputsCommand:
    def test_lists_parameters(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, ["inputs", str(workspace / "macd.pine")])
        assert result.exit_code == 0, result.output
        assert "Strategy: MACD Cross" in result.output
        assert "fastLength" in result.output
        assert "Signal Length" in result.output

    def test_no_inputs(self, runner: CliRunner, workspace: Path) -> None:
        script = workspace / "plain.pine"
        script.write_text("plot(close)\n", encoding="utf-8")
        result = runner.invoke(cli, ["inputs", str(script)])
        assert result.exit_code == 0
        assert "No numeric inputs declared." in result.output


class TestBacktestCommand:
    def test_summary_output(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, [
            "backtest", str(workspace / "ema.pine"), str(workspace / "bars.csv"),
            "--symbol", "aapl",
        ])
        assert result.exit_code == 0, result.output
        assert "Backtest Results: EMA Cross Long Short" in result.output
        assert "Symbol: AAPL (1d)" in result.output
        assert "Sharpe Ratio:" in result.output
        assert "Result id:" in result.output

    def test_json_output(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, [
            "backtest", str(workspace / "ema.pine"), str(workspace / "bars.csv"),
            "--json", "--param", "fastLength=5", "--param", "slowLength=12",
            "--capital", "5000", "--commission", "0",
        ])
        assert result.exit_code == 0, result.output
        doc = json.loads(result.stdout)
        assert doc["params"] == {"fastLength": 5.0, "slowLength": 12.0}
        assert doc["initialCapital"] == 5000
        assert doc["startDate"] == "2026-01-05"
        assert doc["totalTrades"] == len(doc["trades"])
        assert len(doc["equityCurve"]) == 200

    def test_bad_param_pair(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, [
            "backtest", str(workspace / "ema.pine"), str(workspace / "bars.csv"),
            "--param", "fastLength",
        ])
        assert result.exit_code == 2
        assert "NAME=VALUE" in result.output

    def test_non_numeric_param(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, [
            "backtest", str(workspace / "ema.pine"), str(workspace / "bars.csv"),
            "--param", "fastLength=fast",
        ])
        assert result.exit_code == 2

    def test_too_few_bars(self, runner: CliRunner, workspace: Path) -> None:
        short = workspace / "short.csv"
        short.write_text("time,open,high,low,close\n2026-01-05,1,2,0.5,1.5\n", encoding="utf-8")
        result = runner.invoke(cli, ["backtest", str(workspace / "ema.pine"), str(short)])
        assert result.exit_code == 1
        assert "at least 10 bars" in result.output

    def test_invalid_capital(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, [
            "backtest", str(workspace / "ema.pine"), str(workspace / "bars.csv"),
            "--capital", "-1",
        ])
        assert result.exit_code == 1
        assert "initial_capital" in result.output

    def test_missing_script(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, ["backtest", str(workspace / "nope.pine"), str(workspace / "bars.csv")])
        assert result.exit_code == 2


class TestStoredResults:
    def test_save_list_show_delete(self, runner: CliRunner, workspace: Path) -> None:
        saved = runner.invoke(cli, [
            "backtest", str(workspace / "ema.pine"), str(workspace / "bars.csv"),
            "--symbol", "TSLA", "--save",
        ])
        assert saved.exit_code == 0, saved.output
        assert "Result saved (record id: 1)" in saved.output

        listed = runner.invoke(cli, ["results", "list", "--symbol", "TSLA"])
        assert listed.exit_code == 0
        assert "EMA Cross Long Short" in listed.output

        shown = runner.invoke(cli, ["results", "show", "1"])
        assert shown.exit_code == 0
        doc = json.loads(shown.stdout)
        assert doc["recordId"] == 1
        assert doc["symbol"] == "TSLA"
        assert doc["strategyId"] == 1

        deleted = runner.invoke(cli, ["results", "delete", "1"])
        assert deleted.exit_code == 0
        assert "Deleted result 1." in deleted.output

        missing = runner.invoke(cli, ["results", "show", "1"])
        assert missing.exit_code == 1
        assert "not found" in missing.output

    def test_empty_list(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, ["results", "list"])
        assert result.exit_code == 0
        assert "No stored results." in result.output


class TestStoredStrategies:
    def test_save_list_show_delete(self, runner: CliRunner, workspace: Path) -> None:
        saved = runner.invoke(cli, ["strategies", "save", str(workspace / "macd.pine")])
        assert saved.exit_code == 0, saved.output
        assert "Saved strategy 'MACD Cross' as #1." in saved.output

        listed = runner.invoke(cli, ["strategies", "list"])
        assert listed.exit_code == 0
        assert "MACD Cross" in listed.output

        shown = runner.invoke(cli, ["strategies", "show", "1"])
        assert shown.exit_code == 0
        doc = json.loads(shown.stdout)
        assert doc["name"] == "MACD Cross"
        assert [p["name"] for p in doc["inputs"]] == ["fastLength", "slowLength", "signalLength"]
        assert doc["backtestCount"] == 0

        source = runner.invoke(cli, ["strategies", "show", "1", "--source"])
        assert source.stdout == MACD_SCRIPT

        deleted = runner.invoke(cli, ["strategies", "delete", "1"])
        assert deleted.exit_code == 0
        assert "Deleted strategy 1." in deleted.output

        missing = runner.invoke(cli, ["strategies", "show", "1"])
        assert missing.exit_code == 1
        assert "not found" in missing.output

    def test_save_same_name_replaces(self, runner: CliRunner, workspace: Path) -> None:
        first = runner.invoke(cli, ["strategies", "save", str(workspace / "macd.pine"), "--name", "Mine"])
        second = runner.invoke(cli, ["strategies", "save", str(workspace / "rsi.pine"), "--name", "Mine"])
        assert "as #1." in first.output
        assert "as #1." in second.output

        doc = json.loads(runner.invoke(cli, ["strategies", "show", "1"]).stdout)
        assert doc["source"] == RSI_SCRIPT

    def test_delete_keeps_results(self, runner: CliRunner, workspace: Path) -> None:
        saved = runner.invoke(cli, [
            "backtest", str(workspace / "ema.pine"), str(workspace / "bars.csv"), "--save",
        ])
        assert saved.exit_code == 0, saved.output

        deleted = runner.invoke(cli, ["strategies", "delete", "1"])
        assert deleted.exit_code == 0

        doc = json.loads(runner.invoke(cli, ["results", "show", "1"]).stdout)
        assert doc["strategyId"] is None

    def test_empty_list(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, ["strategies", "list"])
        assert result.exit_code == 0
        assert "No stored strategies." in result.output


class TestSweepCommand:
    def test_truncated_sweep(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, [
            "sweep", str(workspace / "sma.pine"), str(workspace / "bars.csv"),
            "--max-combinations", "4", "--workers", "1", "--rank-by", "totalReturn",
            "--top", "2",
        ])
        assert result.exit_code == 0, result.output
        assert "Sweep: 4 of 3234 combinations run (truncated), 0 failed" in result.output
        assert "Top 2 by totalReturn:" in result.output
        assert "#1" in result.output
        assert "#3" not in result.output

    def test_unknown_rank_metric_rejected(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, [
            "sweep", str(workspace / "sma.pine"), str(workspace / "bars.csv"),
            "--rank-by", "luck",
        ])
        assert result.exit_code == 2

    def test_script_without_inputs(self, runner: CliRunner, workspace: Path) -> None:
        script = workspace / "plain.pine"
        script.write_text("strategy('x')\nplot(close)\n", encoding="utf-8")
        result = runner.invoke(cli, ["sweep", str(script), str(workspace / "bars.csv")])
        assert result.exit_code == 1
        assert "no numeric inputs" in result.output


class TestSuggestCommand:
    def test_heuristics_without_api_key(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, ["suggest", str(workspace / "rsi.pine")])
        assert result.exit_code == 0, result.output
        assert "Suggestions (heuristics):" in result.output
        assert "rsiLength" in result.output


class TestConfigCommand:
    def test_config_shows_defaults(self, runner: CliRunner, workspace: Path) -> None:
        result = runner.invoke(cli, ["config"])
        assert result.exit_code == 0
        assert "Strategy Lab Configuration" in result.output
        assert "Rank By:             sharpeRatio" in result.output
        assert "Enabled:    False" in result.output

    def test_config_shows_env_override(
        self,
        runner: CliRunner,
        workspace: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("STRATLAB_SWEEP__MAX_WORKERS", "7")
        result = runner.invoke(cli, ["config"])
        assert result.exit_code == 0
        assert "Max Workers:         7" in result.output
