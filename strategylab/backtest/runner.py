"""Backtest runner: replays bars through a single-position state machine.

Wires together: input extraction (default parameters), signal detection
and metrics. The run is synchronous and pure: each call builds its own
IndicatorCache, trade ledger and equity curve, so independent runs can
execute on separate threads without locking.

States are Flat and InPosition(direction). Per bar, in order:
1. InPosition: exit on the matching exit signal or a breached stop-loss.
2. Flat (including just after an exit on this bar): enter long on a
   long-entry signal, else short when the script sells short. Never on
   the final bar, so every trade exits strictly after it enters, and never
   once equity has been wiped out.
3. Equity / drawdown bookkeeping and one EquityPoint.
After the last bar an open position is force-closed at the last close.
"""

from __future__ import annotations

import hashlib
import json
import math
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from strategylab.backtest.config import (
    BacktestConfig,
    BacktestInvariantError,
    BacktestTrade,
    Direction,
    EquityPoint,
    MonthlyReturn,
)
from strategylab.backtest.metrics import BacktestMetrics, BacktestMetricsData
from strategylab.engine.indicators import IndicatorCache
from strategylab.engine.signals import (
    SignalSet,
    detect_signals,
    resolve_alias,
    uses_short_selling,
)
from strategylab.market.types import Bar
from strategylab.script.inputs import default_params, extract_inputs

log = structlog.get_logger()

_MIN_CAPITAL = 0.01
_CONSERVATION_TOLERANCE = 0.01


@dataclass(frozen=True)
class BacktestResult:
    """Complete, immutable result of one backtest run."""

    id: str
    strategy_name: str
    symbol: str
    timeframe: str
    start_date: str
    end_date: str
    initial_capital: float
    final_equity: float
    max_drawdown: float
    max_drawdown_duration: int
    metrics: BacktestMetricsData
    trades: list[BacktestTrade]
    equity_curve: list[EquityPoint]
    params: dict[str, float]

    @property
    def monthly_returns(self) -> list[MonthlyReturn]:
        return self.metrics.monthly_returns

    def to_dict(self) -> dict[str, Any]:
        """JSON shape exposed at the system boundary (camelCase keys)."""
        m = self.metrics
        return {
            "id": self.id,
            "strategyName": self.strategy_name,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "initialCapital": self.initial_capital,
            "finalEquity": self.final_equity,
            "totalReturn": m.total_return,
            "annualizedReturn": m.annualized_return,
            "sharpeRatio": m.sharpe_ratio,
            "sortinoRatio": m.sortino_ratio,
            "maxDrawdown": self.max_drawdown,
            "maxDrawdownDuration": self.max_drawdown_duration,
            "winRate": m.win_rate,
            "totalTrades": m.total_trades,
            "winningTrades": m.winning_trades,
            "losingTrades": m.losing_trades,
            "profitFactor": m.profit_factor,
            "avgWin": m.avg_win,
            "avgLoss": m.avg_loss,
            "avgTradeDuration": m.avg_trade_duration,
            "bestTrade": m.best_trade,
            "worstTrade": m.worst_trade,
            "expectancy": m.expectancy,
            "equityCurve": [p.to_dict() for p in self.equity_curve],
            "trades": [t.to_dict() for t in self.trades],
            "monthlyReturns": [r.to_dict() for r in m.monthly_returns],
            "params": dict(self.params),
        }


@dataclass
class _Position:
    direction: Direction
    entry_index: int
    entry_time: int
    entry_price: float
    size: float


class BacktestRunner:
    """Runs one strategy script over one bar series."""

    def __init__(self, config: BacktestConfig) -> None:
        self._config = config

    def run(
        self,
        bars: Sequence[Bar],
        source: str,
        params: Mapping[str, float] | None = None,
    ) -> BacktestResult:
        """Execute the simulation and derive metrics.

        `params` overrides the defaults declared in `source`.
        """
        t0 = time.monotonic()
        effective = {**default_params(extract_inputs(source)), **(params or {})}
        capital, commission_pct = self._sane_capital_and_commission()

        log.info(
            "backtest_started",
            strategy=self._config.strategy_name,
            symbol=self._config.symbol,
            bar_count=len(bars),
            params=effective,
        )

        # Cache lives exactly as long as this run
        cache = IndicatorCache()
        signals = detect_signals(bars, source, effective, cache)
        allow_short = uses_short_selling(source)
        stop_pct = resolve_alias(effective, "stop_loss_pct")

        trades, equity_curve, final_equity, max_dd, max_dd_duration = _simulate(
            bars, signals, capital, commission_pct, stop_pct, allow_short,
        )
        _check_invariants(trades, capital, final_equity)

        metrics = BacktestMetrics.calculate(
            trades=trades,
            equity_curve=equity_curve,
            initial_capital=capital,
            final_equity=final_equity,
        )

        elapsed = time.monotonic() - t0
        log.info(
            "backtest_complete",
            family=signals.family.value,
            elapsed_sec=round(elapsed, 3),
            bars_total=len(bars),
            trades=len(trades),
            final_equity=final_equity,
        )

        return BacktestResult(
            id=_result_id(bars, source, effective, self._config),
            strategy_name=self._config.strategy_name,
            symbol=self._config.symbol,
            timeframe=self._config.timeframe,
            start_date=self._config.start_date,
            end_date=self._config.end_date,
            initial_capital=capital,
            final_equity=final_equity,
            max_drawdown=round(max_dd, 2),
            max_drawdown_duration=max_dd_duration,
            metrics=metrics,
            trades=trades,
            equity_curve=equity_curve,
            params={k: effective[k] for k in sorted(effective)},
        )

    def _sane_capital_and_commission(self) -> tuple[float, float]:
        capital = self._config.initial_capital
        commission = self._config.commission_pct
        if capital < _MIN_CAPITAL or commission < 0:
            log.warning(
                "backtest_capital_clamped",
                initial_capital=capital,
                commission_pct=commission,
            )
        return max(capital, _MIN_CAPITAL), max(commission, 0.0)


def run_backtest(
    bars: Sequence[Bar],
    source: str,
    params: Mapping[str, float] | None,
    config: BacktestConfig,
) -> BacktestResult:
    """Run one backtest. See BacktestRunner.run."""
    return BacktestRunner(config).run(bars, source, params)


# ----------------------------------------------------------------------
# Simulation loop
# ----------------------------------------------------------------------


def _simulate(
    bars: Sequence[Bar],
    signals: SignalSet,
    capital: float,
    commission_pct: float,
    stop_pct: float,
    allow_short: bool,
) -> tuple[list[BacktestTrade], list[EquityPoint], float, float, int]:
    commission = commission_pct / 100.0
    equity = capital
    peak = capital
    peak_index = 0
    max_dd = 0.0
    max_dd_duration = 0

    trades: list[BacktestTrade] = []
    equity_curve: list[EquityPoint] = []
    position: _Position | None = None
    last = len(bars) - 1

    for i, bar in enumerate(bars):
        if position is not None and _should_exit(position, bar, i, signals, stop_pct):
            equity = _close(position, bar, i, equity, commission_pct, trades)
            position = None

        if position is None and i < last and equity > 0:
            if signals.long_entry[i]:
                position = _Position(
                    Direction.LONG, i, bar.time, bar.close * (1 + commission), equity,
                )
            elif allow_short and signals.short_entry[i]:
                position = _Position(
                    Direction.SHORT, i, bar.time, bar.close * (1 - commission), equity,
                )

        if equity > peak:
            peak = equity
            peak_index = i
        dd = (peak - equity) / peak * 100.0 if peak > 0 else 0.0
        if dd > max_dd:
            max_dd = dd
            max_dd_duration = i - peak_index

        equity_curve.append(EquityPoint(
            time=bar.time,
            equity=round(equity, 2),
            drawdown=round(dd, 2),
        ))

    if position is not None:
        equity = _close(position, bars[last], last, equity, commission_pct, trades)

    return trades, equity_curve, round(equity, 2), max_dd, max_dd_duration


def _should_exit(
    position: _Position,
    bar: Bar,
    i: int,
    signals: SignalSet,
    stop_pct: float,
) -> bool:
    if position.direction is Direction.LONG:
        if signals.long_exit[i]:
            return True
        return stop_pct > 0 and bar.low < position.entry_price * (1 - stop_pct / 100)
    if signals.short_exit[i]:
        return True
    return stop_pct > 0 and bar.high > position.entry_price * (1 + stop_pct / 100)


def _close(
    position: _Position,
    bar: Bar,
    i: int,
    equity: float,
    commission_pct: float,
    trades: list[BacktestTrade],
) -> float:
    """Realize the position at the bar close. Returns the new equity.

    Round-trip commission is charged as 2 x commission_pct of return. P&L is
    booked at cent precision so the ledger always sums to the equity change.
    A loss never exceeds the equity at risk: a short that runs past double
    its entry price is booked at -100% and leaves the account at zero.
    """
    exit_price = bar.close
    move_pct = (exit_price - position.entry_price) / position.entry_price * 100.0
    if position.direction is Direction.SHORT:
        move_pct = -move_pct
    pnl_pct = max(move_pct - commission_pct * 2, -100.0)
    pnl = max(round(equity * pnl_pct / 100.0, 2), -equity)

    trades.append(BacktestTrade(
        id=len(trades) + 1,
        entry_time=position.entry_time,
        exit_time=bar.time,
        entry_price=round(position.entry_price, 2),
        exit_price=round(exit_price, 2),
        direction=position.direction,
        pnl=pnl,
        pnl_pct=round(pnl_pct, 2),
        bars=i - position.entry_index,
    ))
    return equity + pnl


def _check_invariants(
    trades: list[BacktestTrade],
    capital: float,
    final_equity: float,
) -> None:
    """Raise BacktestInvariantError if the ledger is inconsistent."""
    for trade in trades:
        if trade.entry_time >= trade.exit_time:
            raise BacktestInvariantError(
                f"Trade {trade.id} exits at {trade.exit_time} "
                f"but entered at {trade.entry_time}"
            )
    # Summed in simulation order
    booked = capital
    for trade in trades:
        booked += trade.pnl
    if not math.isfinite(final_equity) or abs(booked - final_equity) > _CONSERVATION_TOLERANCE:
        raise BacktestInvariantError(
            f"Equity not conserved: final {final_equity}, "
            f"capital plus trade P&L {booked}"
        )


def _result_id(
    bars: Sequence[Bar],
    source: str,
    params: Mapping[str, float],
    config: BacktestConfig,
) -> str:
    """Content hash of the run inputs. Identical inputs give identical ids."""
    digest = hashlib.sha256()
    digest.update(source.encode("utf-8"))
    digest.update(json.dumps(dict(params), sort_keys=True).encode("utf-8"))
    digest.update(config.model_dump_json().encode("utf-8"))
    for bar in bars:
        digest.update(
            f"{bar.time},{bar.open!r},{bar.high!r},{bar.low!r},"
            f"{bar.close!r},{bar.volume!r};".encode()
        )
    return digest.hexdigest()[:16]
