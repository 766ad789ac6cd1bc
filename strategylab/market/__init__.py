"""Market data: bar value objects. File loading lives in `market.loader`."""

from strategylab.market.types import Bar

__all__ = [
    "Bar",
]
