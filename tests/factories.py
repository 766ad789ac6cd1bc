"""Shared test factories for creating domain objects.

Provides make_bar() and make_bars() with sensible defaults so tests can
focus on the values they care about, plus a few canned strategy scripts.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from strategylab.market.types import Bar

# 2026-01-05 00:00 UTC
DEFAULT_START_MS = 1_767_571_200_000
DAY_MS = 86_400_000


MACD_SCRIPT = """//@version=5
strategy("MACD Cross", overlay=true)
fastLength = input.int(12, title="Fast Length", minval=2, maxval=50)
slowLength = input.int(26, title="Slow Length", minval=5, maxval=100)
signalLength = input.int(9, title="Signal Length", minval=2, maxval=30)
[macdLine, signalLine, hist] = ta.macd(close, fastLength, slowLength, signalLength)
if ta.crossover(macdLine, signalLine)
    strategy.entry("Long", strategy.long)
if ta.crossunder(macdLine, signalLine)
    strategy.close("Long")
"""

RSI_SCRIPT = """//@version=5
strategy("RSI Reversal")
rsiLength = input.int(14, title="RSI Length", minval=5, maxval=50)
rsiOverbought = input.int(70, title="Overbought", minval=50, maxval=95)
rsiOversold = input.int(30, title="Oversold", minval=5, maxval=50)
r = ta.rsi(close, rsiLength)
if ta.crossover(r, rsiOversold)
    strategy.entry("Long", strategy.long)
if ta.crossunder(r, rsiOverbought)
    strategy.close("Long")
"""

SMA_CROSS_SCRIPT = """//@version=5
strategy("SMA Cross")
fastLength = input.int(10, title="Fast", minval=2, maxval=50)
slowLength = input.int(30, title="Slow", minval=5, maxval=200)
fastMa = ta.sma(close, fastLength)
slowMa = ta.sma(close, slowLength)
if ta.crossover(fastMa, slowMa)
    strategy.entry("Long", strategy.long)
if ta.crossunder(fastMa, slowMa)
    strategy.close("Long")
"""

EMA_CROSS_SCRIPT = """//@version=5
strategy("EMA Cross Long Short")
fastLength = input.int(9, title="Fast")
slowLength = input.int(21, title="Slow")
fastMa = ta.ema(close, fastLength)
slowMa = ta.ema(close, slowLength)
if ta.crossover(fastMa, slowMa)
    strategy.entry("Long", strategy.long)
if ta.crossunder(fastMa, slowMa)
    strategy.entry("Short", strategy.short)
"""

PLAIN_SCRIPT = """//@version=5
strategy("Plain Breakout")
if close > open
    strategy.entry("Long", strategy.long)
"""


def make_bar(
    *,
    time: int = DEFAULT_START_MS,
    open: float = 100.0,
    high: float = 101.0,
    low: float = 99.0,
    close: float = 100.5,
    volume: float = 1000.0,
) -> Bar:
    """Create a Bar with sensible defaults."""
    return Bar(
        time=time,
        open=open,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


def make_bars(
    closes: Sequence[float],
    *,
    start: int = DEFAULT_START_MS,
    step_ms: int = DAY_MS,
    spread: float = 0.5,
    lows: Sequence[float] | None = None,
) -> list[Bar]:
    """One bar per close, spaced `step_ms` apart.

    Open equals close; high/low sit `spread` away unless `lows` overrides
    the low of each bar.
    """
    bars: list[Bar] = []
    for i, close in enumerate(closes):
        low = lows[i] if lows is not None else max(close - spread, close * 0.5)
        bars.append(Bar(
            time=start + i * step_ms,
            open=close,
            high=close + spread,
            low=min(low, close),
            close=close,
            volume=1000.0,
        ))
    return bars


def trending_closes(
    up: int,
    down: int,
    *,
    start: float = 100.0,
    step: float = 1.0,
) -> list[float]:
    """`up` rising closes followed by `down` falling ones."""
    closes = [start + step * i for i in range(up)]
    peak = closes[-1] if closes else start
    closes += [peak - step * (i + 1) for i in range(down)]
    return closes


def sine_closes(count: int, *, base: float = 100.0, amplitude: float = 10.0, period: int = 40) -> list[float]:
    """Oscillating closes that produce repeated crossovers."""
    return [
        base + amplitude * math.sin(2 * math.pi * i / period)
        for i in range(count)
    ]
