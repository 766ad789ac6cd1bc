"""Market data value objects.

Bars are frozen and owned by the caller. The engine only ever reads them.
Prices are float: indicator and P&L math is float end to end, and
results are rounded to fixed precision at the output boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from strategylab.utils.time import from_epoch_ms


@dataclass(frozen=True)
class Bar:
    """OHLCV bar. `time` is milliseconds since the Unix epoch (UTC)."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def timestamp(self) -> datetime:
        """Bar time as a timezone-aware UTC datetime."""
        return from_epoch_ms(self.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bar:
        """Build a Bar from the wire shape `{time, open, high, low, close, volume}`."""
        return cls(
            time=int(data["time"]),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume", 0.0)),
        )
