"""Backtest performance metrics: pure functions, no I/O.

Inputs are the finished trade ledger and equity curve. Every output is a
finite float rounded to fixed precision: 2 dp for money and percentages,
3 dp for ratios. Degenerate cases use explicit sentinels instead of NaN or
infinity.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field

from strategylab.backtest.config import BacktestTrade, EquityPoint, MonthlyReturn
from strategylab.utils.time import month_key

_PERIODS_PER_YEAR = 252
_DAYS_PER_YEAR = 365
_MS_PER_DAY = 86_400_000
_MAX_PROFIT_FACTOR = 999.0
_MAX_ANNUALIZED_RETURN = 1e9


@dataclass(frozen=True)
class BacktestMetricsData:
    """Complete performance metrics for a backtest run."""

    total_return: float
    annualized_return: float
    sharpe_ratio: float
    sortino_ratio: float
    win_rate: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    profit_factor: float
    avg_win: float
    avg_loss: float
    avg_trade_duration: float
    best_trade: float
    worst_trade: float
    expectancy: float
    monthly_returns: list[MonthlyReturn] = field(default_factory=list)


class BacktestMetrics:
    """Compute performance metrics from backtest results."""

    @staticmethod
    def calculate(
        trades: list[BacktestTrade],
        equity_curve: list[EquityPoint],
        initial_capital: float,
        final_equity: float,
    ) -> BacktestMetricsData:
        """Compute all metrics.

        Args:
            trades: Completed round trips, already rounded.
            equity_curve: One point per bar, in bar order.
            initial_capital: Starting capital (> 0).
            final_equity: Equity after the last trade.
        """
        total_trades = len(trades)

        # Break-even counts as a loss so winners + losers == total
        winners = [t for t in trades if t.pnl > 0]
        losers = [t for t in trades if t.pnl <= 0]

        total_return = (final_equity - initial_capital) / initial_capital * 100.0

        days = _days_spanned(equity_curve)
        annualized = _annualized_return(final_equity, initial_capital, days)

        returns = _period_returns(equity_curve)
        sharpe, sortino = _risk_ratios(returns)

        win_rate = len(winners) / total_trades * 100.0 if total_trades else 0.0
        avg_win = _mean([t.pnl_pct for t in winners])
        avg_loss = _mean([t.pnl_pct for t in losers])
        expectancy = (
            (win_rate / 100.0) * avg_win + (1.0 - win_rate / 100.0) * avg_loss
            if total_trades
            else 0.0
        )

        return BacktestMetricsData(
            total_return=round(total_return, 2),
            annualized_return=round(annualized, 2),
            sharpe_ratio=round(sharpe, 3),
            sortino_ratio=round(sortino, 3),
            win_rate=round(win_rate, 2),
            total_trades=total_trades,
            winning_trades=len(winners),
            losing_trades=len(losers),
            profit_factor=round(_profit_factor(winners, losers), 3),
            avg_win=round(avg_win, 2),
            avg_loss=round(avg_loss, 2),
            avg_trade_duration=round(_mean([float(t.bars) for t in trades]), 2),
            best_trade=round(max((t.pnl_pct for t in trades), default=0.0), 2),
            worst_trade=round(min((t.pnl_pct for t in trades), default=0.0), 2),
            expectancy=round(expectancy, 2),
            monthly_returns=monthly_returns(trades),
        )


def monthly_returns(trades: list[BacktestTrade]) -> list[MonthlyReturn]:
    """Sum of trade pnl_pct grouped by UTC exit month, oldest first."""
    totals: dict[str, float] = defaultdict(float)
    for t in trades:
        totals[month_key(t.exit_time)] += t.pnl_pct
    return [
        MonthlyReturn(month=month, return_pct=round(total, 2))
        for month, total in sorted(totals.items())
    ]


def _days_spanned(equity_curve: list[EquityPoint]) -> float:
    if len(equity_curve) < 2:
        return 0.0
    return (equity_curve[-1].time - equity_curve[0].time) / _MS_PER_DAY


def _annualized_return(final: float, initial: float, days: float) -> float:
    """Compound annual growth in percent.

    0 when no time has passed, -100 when the account is wiped out, capped
    when compounding a short window overflows.
    """
    if days <= 0:
        return 0.0
    ratio = final / initial
    if ratio <= 0:
        return -100.0
    try:
        growth = math.pow(ratio, _DAYS_PER_YEAR / days)
    except OverflowError:
        return _MAX_ANNUALIZED_RETURN
    return min((growth - 1.0) * 100.0, _MAX_ANNUALIZED_RETURN)


def _period_returns(equity_curve: list[EquityPoint]) -> list[float]:
    returns: list[float] = []
    for prev, cur in zip(equity_curve, equity_curve[1:]):
        if prev.equity == 0:
            returns.append(0.0)
        else:
            returns.append((cur.equity - prev.equity) / prev.equity)
    return returns


def _risk_ratios(returns: list[float]) -> tuple[float, float]:
    """Annualized (Sharpe, Sortino). Population deviation, risk-free rate 0.

    Sortino divides by the root mean square of the negative returns only.
    Either ratio is 0 when its deviation is 0.
    """
    if not returns:
        return 0.0, 0.0

    n = len(returns)
    mean_r = sum(returns) / n
    std = math.sqrt(sum((r - mean_r) ** 2 for r in returns) / n)
    sharpe = mean_r / std * math.sqrt(_PERIODS_PER_YEAR) if std > 0 else 0.0

    downside = [r for r in returns if r < 0]
    down_dev = (
        math.sqrt(sum(r * r for r in downside) / len(downside)) if downside else 0.0
    )
    sortino = mean_r / down_dev * math.sqrt(_PERIODS_PER_YEAR) if down_dev > 0 else 0.0
    return sharpe, sortino


def _profit_factor(
    winners: list[BacktestTrade],
    losers: list[BacktestTrade],
) -> float:
    """Gross profit / |gross loss|. 999 with profit but no loss, 0 without wins."""
    gross_profit = sum(t.pnl for t in winners)
    gross_loss = abs(sum(t.pnl for t in losers))
    if gross_loss > 0:
        return gross_profit / gross_loss
    return _MAX_PROFIT_FACTOR if gross_profit > 0 else 0.0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0
