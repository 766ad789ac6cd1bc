"""Technical indicators over a bar series with per-run memoization.

Every indicator is computed once per (name, periods) as a full series and
stored in an IndicatorCache. Lookups by index are then O(1). Values are
defined for every index >= 0 using a fixed warm-up convention, so signal
code never has to handle None or NaN:

- SMA returns the close itself until `period` closes are available.
- EMA and the MACD signal line are seeded with the first value.
- RSI is 50 until the seed average of `period` differences exists.
- ATR is 0 at index 0, then a running average until `period` true ranges.

A cache belongs to exactly one bar series. The runner creates a fresh one
per run and drops it afterwards.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from strategylab.market.types import Bar

_NEUTRAL_RSI = 50.0


class IndicatorCache:
    """Memo of computed indicator series, keyed by indicator name + periods."""

    __slots__ = ("_series",)

    def __init__(self) -> None:
        self._series: dict[str, list[float]] = {}

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], list[float]],
    ) -> list[float]:
        """Return the cached series for `key`, computing it on first use."""
        series = self._series.get(key)
        if series is None:
            series = compute()
            self._series[key] = series
        return series

    def __contains__(self, key: object) -> bool:
        return key in self._series

    def __len__(self) -> int:
        return len(self._series)

    def clear(self) -> None:
        self._series.clear()


@dataclass(frozen=True)
class MACDValue:
    """MACD line, signal line and histogram at one index."""

    line: float
    signal: float
    histogram: float


# --- Series builders (pure) ---


def sma_series(closes: Sequence[float], period: int) -> list[float]:
    """Trailing simple moving average; the close itself before warm-up.

    Each window is summed exactly with math.fsum rather than with a running
    sum, so equal prices always give equal averages across periods.
    """
    out: list[float] = []
    for i, close in enumerate(closes):
        if i < period - 1:
            out.append(float(close))
        else:
            out.append(math.fsum(closes[i - period + 1:i + 1]) / period)
    return out


def ema_series(values: Sequence[float], period: int) -> list[float]:
    """Exponential moving average seeded with the first value.

    `prev + k * (value - prev)` is algebraically `value*k + prev*(1-k)` but
    stays exactly constant on a constant input.
    """
    if not values:
        return []
    k = 2.0 / (period + 1)
    out = [float(values[0])]
    for value in values[1:]:
        prev = out[-1]
        out.append(prev + k * (value - prev))
    return out


def rsi_series(closes: Sequence[float], period: int) -> list[float]:
    """Wilder RSI. 50 before the seed, 100 when the average loss is zero."""
    n = len(closes)
    out = [_NEUTRAL_RSI] * n
    if n <= period:
        return out

    avg_gain = 0.0
    avg_loss = 0.0
    for i in range(1, period + 1):
        diff = closes[i] - closes[i - 1]
        if diff > 0:
            avg_gain += diff / period
        else:
            avg_loss -= diff / period
    out[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, n):
        diff = closes[i] - closes[i - 1]
        gain = diff if diff > 0 else 0.0
        loss = -diff if diff < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        out[i] = _rsi_value(avg_gain, avg_loss)
    return out


def atr_series(bars: Sequence[Bar], period: int) -> list[float]:
    """Average true range: running mean for `period` bars, then Wilder."""
    n = len(bars)
    out = [0.0] * n
    running = 0.0
    for i in range(1, n):
        bar = bars[i]
        prev_close = bars[i - 1].close
        tr = max(
            bar.high - bar.low,
            abs(bar.high - prev_close),
            abs(bar.low - prev_close),
        )
        if i <= period:
            running += tr
            out[i] = running / i
        else:
            out[i] = (out[i - 1] * (period - 1) + tr) / period
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0.0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


# --- Indexed lookups (memoized through the cache) ---


def sma(
    closes: Sequence[float],
    period: int,
    idx: int,
    cache: IndicatorCache,
) -> float:
    return cache.get_or_compute(
        f"sma_{period}", lambda: sma_series(closes, period),
    )[idx]


def ema(
    closes: Sequence[float],
    period: int,
    idx: int,
    cache: IndicatorCache,
) -> float:
    return cache.get_or_compute(
        f"ema_{period}", lambda: ema_series(closes, period),
    )[idx]


def rsi(
    closes: Sequence[float],
    period: int,
    idx: int,
    cache: IndicatorCache,
) -> float:
    return cache.get_or_compute(
        f"rsi_{period}", lambda: rsi_series(closes, period),
    )[idx]


def atr(
    bars: Sequence[Bar],
    period: int,
    idx: int,
    cache: IndicatorCache,
) -> float:
    return cache.get_or_compute(
        f"atr_{period}", lambda: atr_series(bars, period),
    )[idx]


def macd(
    closes: Sequence[float],
    fast: int,
    slow: int,
    signal: int,
    idx: int,
    cache: IndicatorCache,
) -> MACDValue:
    """MACD = EMA(fast) - EMA(slow); signal = EMA(signal) of the MACD line."""

    def _line() -> list[float]:
        fast_ema = cache.get_or_compute(
            f"ema_{fast}", lambda: ema_series(closes, fast),
        )
        slow_ema = cache.get_or_compute(
            f"ema_{slow}", lambda: ema_series(closes, slow),
        )
        return [f - s for f, s in zip(fast_ema, slow_ema)]

    line = cache.get_or_compute(f"macd_{fast}_{slow}", _line)
    signal_line = cache.get_or_compute(
        f"macd_sig_{fast}_{slow}_{signal}", lambda: ema_series(line, signal),
    )
    return MACDValue(
        line=line[idx],
        signal=signal_line[idx],
        histogram=line[idx] - signal_line[idx],
    )
