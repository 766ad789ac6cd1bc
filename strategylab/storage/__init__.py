"""Persistence for saved strategies and backtest results."""

from strategylab.storage.repository import (
    RecordNotFoundError,
    ResultRepository,
    StrategyRepository,
    create_db_engine,
    create_session_factory,
)

__all__ = [
    "RecordNotFoundError",
    "ResultRepository",
    "StrategyRepository",
    "create_db_engine",
    "create_session_factory",
]
