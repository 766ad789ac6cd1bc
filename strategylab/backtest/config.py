"""Backtest configuration, ledger value objects and errors.

BacktestConfig validates one run at the boundary. The runner still clamps
capital and commission itself so a config built with model_construct()
cannot cause a division by zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from strategylab.script.inputs import DEFAULT_STRATEGY_NAME


class BacktestConfig(BaseModel):
    """Configuration for a single backtest run.

    start_date / end_date are display labels. They are only checked for
    ordering when both parse as ISO dates.
    """

    strategy_name: str = DEFAULT_STRATEGY_NAME
    symbol: str = ""
    timeframe: str = "1d"
    start_date: str = ""
    end_date: str = ""
    initial_capital: float = Field(default=10000.0, gt=0)
    commission_pct: float = Field(default=0.1, ge=0)

    @model_validator(mode="after")
    def validate_date_range(self) -> BacktestConfig:
        start = _parse_iso_date(self.start_date)
        end = _parse_iso_date(self.end_date)
        if start is not None and end is not None and end < start:
            raise ValueError("end_date must not be before start_date")
        return self


class Direction(str, Enum):
    """Position direction."""

    LONG = "long"
    SHORT = "short"


@dataclass(frozen=True)
class BacktestTrade:
    """One completed round trip. `bars` is the holding period in bars."""

    id: int
    entry_time: int
    exit_time: int
    entry_price: float
    exit_price: float
    direction: Direction
    pnl: float
    pnl_pct: float
    bars: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entryTime": self.entry_time,
            "exitTime": self.exit_time,
            "entryPrice": self.entry_price,
            "exitPrice": self.exit_price,
            "direction": self.direction.value,
            "pnl": self.pnl,
            "pnlPct": self.pnl_pct,
            "bars": self.bars,
        }


@dataclass(frozen=True)
class EquityPoint:
    """Equity and drawdown (% below running peak) at one bar."""

    time: int
    equity: float
    drawdown: float

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.time, "equity": self.equity, "drawdown": self.drawdown}


@dataclass(frozen=True)
class MonthlyReturn:
    """Sum of trade returns (%) for trades exiting in `month` (YYYY-MM)."""

    month: str
    return_pct: float

    def to_dict(self) -> dict[str, Any]:
        return {"month": self.month, "return": self.return_pct}


class BacktestError(Exception):
    """Base class for backtest errors."""


class BacktestInputError(BacktestError):
    """The caller supplied bad input (bars, script, config or parameters)."""


class BacktestInvariantError(BacktestError):
    """An engine invariant was violated. Always a bug, never bad input."""


def _parse_iso_date(value: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
