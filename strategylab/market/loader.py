"""Load historical bars from local files for backtesting.

Supported formats:
- CSV with a header row: time,open,high,low,close[,volume]
- JSON: a list of bar objects, or {"bars": [...]}

`time` is epoch milliseconds or an ISO 8601 date/datetime (naive values
are taken as UTC). Bars are returned oldest-first.
"""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

import structlog

from strategylab.backtest.config import BacktestInputError
from strategylab.market.types import Bar
from strategylab.utils.time import parse_timestamp, to_epoch_ms

log = structlog.get_logger()

_REQUIRED_FIELDS = ("time", "open", "high", "low", "close")


def load_bars(path: str | Path) -> list[Bar]:
    """Read bars from a .csv or .json file.

    Raises BacktestInputError if the file is missing or malformed.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise BacktestInputError(f"Cannot read bar file {path}: {e}") from e

    if path.suffix.lower() == ".json":
        rows = _json_rows(text, path)
    else:
        rows = list(csv.DictReader(text.splitlines()))

    bars = [_row_to_bar(row, i, path) for i, row in enumerate(rows)]
    bars.sort(key=lambda b: b.time)
    log.info("bars_loaded", path=str(path), bar_count=len(bars))
    return bars


def parse_time(value: Any) -> int:
    """Epoch milliseconds from an int/float or an ISO 8601 string."""
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return to_epoch_ms(parse_timestamp(text))


def _json_rows(text: str, path: Path) -> list[dict[str, Any]]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise BacktestInputError(f"Invalid JSON in {path}: {e}") from e
    if isinstance(payload, dict):
        payload = payload.get("bars", [])
    if not isinstance(payload, list):
        raise BacktestInputError(f"{path}: expected a list of bars")
    return payload


def _row_to_bar(row: Any, index: int, path: Path) -> Bar:
    if not isinstance(row, dict):
        raise BacktestInputError(f"{path}: row {index} is not an object")
    missing = [f for f in _REQUIRED_FIELDS if row.get(f) in (None, "")]
    if missing:
        raise BacktestInputError(
            f"{path}: row {index} missing {', '.join(missing)}"
        )
    try:
        return Bar(
            time=parse_time(row["time"]),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume") or 0.0),
        )
    except (TypeError, ValueError) as e:
        raise BacktestInputError(f"{path}: row {index} is malformed: {e}") from e
