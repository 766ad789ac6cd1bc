"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging

import pytest

from strategylab.utils.logging import (
    get_logger,
    get_run_id,
    set_run_id,
    setup_logging,
)


class TestSetupLogging:
    """Test logging configuration."""

    def test_setup_logging_returns_none(self) -> None:
        result = setup_logging(level="INFO", log_format="json")
        assert result is None

    def test_get_logger_returns_bound_logger(self) -> None:
        setup_logging(level="INFO", log_format="json")
        logger = get_logger("test")
        assert logger is not None

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="WARNING", log_format="json")
        get_logger("test_level").info("quiet")
        assert capsys.readouterr().err == ""


    def test_noisy_libraries_quieted(self) -> None:
        setup_logging(level="DEBUG", log_format="json")
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_noisy_libraries_follow_stricter_root(self) -> None:
        setup_logging(level="ERROR", log_format="json")
        assert logging.getLogger("httpx").level == logging.ERROR


class TestJsonFormat:
    def test_stdlib_records_rendered_as_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", log_format="json")
        set_run_id("run-std")
        try:
            logging.getLogger("plain.stdlib").warning("from stdlib")
        finally:
            set_run_id("")

        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["event"] == "from stdlib"
        assert parsed["run_id"] == "run-std"
        assert parsed["level"] == "warning"

    def test_json_output_is_valid(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Log entry in JSON mode is valid JSON with expected keys."""
        setup_logging(level="INFO", log_format="json")
        get_logger("test_json").info("test message", extra_key="extra_value")

        captured = capsys.readouterr()
        assert captured.out == ""
        parsed = json.loads(captured.err.strip())
        assert parsed["event"] == "test message"
        assert parsed["extra_key"] == "extra_value"
        assert parsed["level"] == "info"
        assert parsed["logger"] == "test_json"
        assert "timestamp" in parsed


class TestConsoleFormat:
    def test_console_output_is_not_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", log_format="console")
        get_logger("test_console").info("console test")

        output = capsys.readouterr().err.strip()
        assert "console test" in output
        with pytest.raises(json.JSONDecodeError):
            json.loads(output)


class TestRunId:
    def test_set_and_get_run_id(self) -> None:
        set_run_id("run-123")
        assert get_run_id() == "run-123"
        set_run_id("")

    def test_default_run_id(self) -> None:
        set_run_id("")
        assert get_run_id() == ""

    def test_run_id_in_log(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", log_format="json")
        set_run_id("run-456")
        try:
            get_logger("test_run").info("tagged event")
        finally:
            set_run_id("")

        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["run_id"] == "run-456"

    def test_no_run_id_key_when_unset(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", log_format="json")
        set_run_id("")
        get_logger("test_run").info("untagged")

        parsed = json.loads(capsys.readouterr().err.strip())
        assert "run_id" not in parsed
