"""Tests for BacktestConfig validation and ledger value objects."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from strategylab.backtest.config import (
    BacktestConfig,
    BacktestError,
    BacktestInputError,
    BacktestInvariantError,
    BacktestTrade,
    Direction,
    EquityPoint,
)
from strategylab.script.inputs import DEFAULT_STRATEGY_NAME


class TestBacktestConfig:
    """BacktestConfig validation tests."""

    def _valid_kwargs(self) -> dict:
        return {
            "strategy_name": "MACD Cross",
            "symbol": "AAPL",
            "timeframe": "1h",
            "start_date": "2025-01-01",
            "end_date": "2025-03-31",
            "initial_capital": 25000.0,
            "commission_pct": 0.05,
        }

    def test_valid_config(self) -> None:
        config = BacktestConfig(**self._valid_kwargs())
        assert config.strategy_name == "MACD Cross"
        assert config.symbol == "AAPL"
        assert config.initial_capital == 25000.0

    def test_defaults(self) -> None:
        config = BacktestConfig()
        assert config.strategy_name == DEFAULT_STRATEGY_NAME
        assert config.timeframe == "1d"
        assert config.initial_capital == 10000.0
        assert config.commission_pct == 0.1

    # --- Capital and commission ---

    @pytest.mark.parametrize("capital", [0.0, -100.0])
    def test_non_positive_capital_rejected(self, capital: float) -> None:
        kwargs = self._valid_kwargs()
        kwargs["initial_capital"] = capital
        with pytest.raises(ValidationError, match="initial_capital"):
            BacktestConfig(**kwargs)

    def test_negative_commission_rejected(self) -> None:
        kwargs = self._valid_kwargs()
        kwargs["commission_pct"] = -0.1
        with pytest.raises(ValidationError, match="commission_pct"):
            BacktestConfig(**kwargs)

    def test_zero_commission_allowed(self) -> None:
        kwargs = self._valid_kwargs()
        kwargs["commission_pct"] = 0.0
        assert BacktestConfig(**kwargs).commission_pct == 0.0

    # --- Date labels ---

    def test_end_before_start_rejected(self) -> None:
        kwargs = self._valid_kwargs()
        kwargs["start_date"] = "2025-03-31"
        kwargs["end_date"] = "2025-01-01"
        with pytest.raises(ValidationError, match="end_date"):
            BacktestConfig(**kwargs)

    def test_same_day_allowed(self) -> None:
        kwargs = self._valid_kwargs()
        kwargs["end_date"] = kwargs["start_date"]
        BacktestConfig(**kwargs)

    def test_datetime_labels_compared_by_date(self) -> None:
        config = BacktestConfig(
            start_date="2025-01-01T09:30:00Z", end_date="2025-01-02T16:00:00Z",
        )
        assert config.end_date.startswith("2025-01-02")

    def test_free_form_labels_not_checked(self) -> None:
        config = BacktestConfig(start_date="last year", end_date="2020-01-01")
        assert config.start_date == "last year"


class TestLedgerObjects:
    def test_trade_dict_is_camel_case(self) -> None:
        trade = BacktestTrade(
            id=1,
            entry_time=1000,
            exit_time=2000,
            entry_price=100.1,
            exit_price=105.0,
            direction=Direction.SHORT,
            pnl=-48.95,
            pnl_pct=-4.89,
            bars=3,
        )
        assert trade.to_dict() == {
            "id": 1,
            "entryTime": 1000,
            "exitTime": 2000,
            "entryPrice": 100.1,
            "exitPrice": 105.0,
            "direction": "short",
            "pnl": -48.95,
            "pnlPct": -4.89,
            "bars": 3,
        }

    def test_equity_point_dict(self) -> None:
        point = EquityPoint(time=5, equity=9950.0, drawdown=0.5)
        assert point.to_dict() == {"time": 5, "equity": 9950.0, "drawdown": 0.5}

    def test_direction_is_str(self) -> None:
        assert Direction("long") is Direction.LONG
        assert Direction.SHORT == "short"


class TestErrors:
    def test_hierarchy(self) -> None:
        assert issubclass(BacktestInputError, BacktestError)
        assert issubclass(BacktestInvariantError, BacktestError)
        assert not issubclass(BacktestInvariantError, BacktestInputError)
