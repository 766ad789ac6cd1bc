"""Boundary validation for backtest requests.

The engine assumes its inputs were checked here. Every rule is a hard
fail and raises BacktestInputError naming the first offending bar.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from strategylab.backtest.config import BacktestInputError
from strategylab.market.types import Bar

MIN_BARS = 10
MIN_SOURCE_LENGTH = 10


def validate_source(source: str, min_length: int = MIN_SOURCE_LENGTH) -> None:
    """Reject strategy text too short to carry any declarations."""
    if len(source.strip()) < min_length:
        raise BacktestInputError(
            f"Strategy script is too short ({len(source.strip())} chars, "
            f"minimum {min_length})"
        )


def validate_bars(bars: Sequence[Bar], min_bars: int = MIN_BARS) -> None:
    """Check bar count, strictly increasing time and OHLC consistency."""
    if len(bars) < min_bars:
        raise BacktestInputError(
            f"Need at least {min_bars} bars, got {len(bars)}"
        )

    prev_time: int | None = None
    for i, bar in enumerate(bars):
        prices = (bar.open, bar.high, bar.low, bar.close)
        if not all(math.isfinite(p) and p > 0 for p in prices):
            raise BacktestInputError(f"Bar {i}: prices must be positive and finite")
        if bar.high < max(bar.open, bar.close) or bar.low > min(bar.open, bar.close):
            raise BacktestInputError(
                f"Bar {i}: high/low do not bracket open/close"
            )
        if not math.isfinite(bar.volume) or bar.volume < 0:
            raise BacktestInputError(f"Bar {i}: volume must be non-negative")
        if prev_time is not None and bar.time <= prev_time:
            raise BacktestInputError(
                f"Bar {i}: timestamps must be strictly increasing "
                f"({bar.time} after {prev_time})"
            )
        prev_time = bar.time


def validate_request(
    bars: Sequence[Bar],
    source: str,
    *,
    min_bars: int = MIN_BARS,
    min_source_length: int = MIN_SOURCE_LENGTH,
) -> None:
    """Validate everything the boundary layer owns before a run."""
    validate_source(source, min_source_length)
    validate_bars(bars, min_bars)
