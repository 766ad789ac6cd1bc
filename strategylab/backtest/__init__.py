"""Backtesting engine: single-position simulation, metrics, and sweeps."""

__all__ = [
    "BacktestConfig",
    "BacktestError",
    "BacktestInputError",
    "BacktestInvariantError",
    "BacktestMetrics",
    "BacktestMetricsData",
    "BacktestResult",
    "BacktestRunner",
    "BacktestTrade",
    "EquityPoint",
    "MonthlyReturn",
    "run_backtest",
]

from strategylab.backtest.config import (
    BacktestConfig,
    BacktestError,
    BacktestInputError,
    BacktestInvariantError,
    BacktestTrade,
    EquityPoint,
    MonthlyReturn,
)
from strategylab.backtest.metrics import BacktestMetrics, BacktestMetricsData
from strategylab.backtest.runner import BacktestResult, BacktestRunner, run_backtest
