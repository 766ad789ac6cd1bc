"""Database models package."""

from strategylab.models.base import Base, JSONText
from strategylab.models.records import BacktestResultModel, StrategyModel

__all__ = [
    "BacktestResultModel",
    "Base",
    "JSONText",
    "StrategyModel",
]
