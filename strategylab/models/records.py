"""Saved strategy and backtest result models.

Tables: strategy, backtest_result
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from strategylab.models.base import Base, JSONText


class StrategyModel(Base):
    """A named strategy script. Names are unique; saving again replaces it."""

    __tablename__ = "strategy"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    inputs: Mapped[Any] = mapped_column(JSONText, nullable=False)  # extracted Parameters
    backtest_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_backtest_at: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)


class BacktestResultModel(Base):
    """Summary columns for listing plus the full result document."""

    __tablename__ = "backtest_result"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("strategy.id", ondelete="SET NULL"),
        nullable=True,
    )
    result_id: Mapped[str] = mapped_column(String, nullable=False)
    strategy_name: Mapped[str] = mapped_column(String, nullable=False)
    symbol: Mapped[str] = mapped_column(String, nullable=False)
    timeframe: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[str] = mapped_column(String, nullable=False)
    end_date: Mapped[str] = mapped_column(String, nullable=False)
    initial_capital: Mapped[float] = mapped_column(Float, nullable=False)
    final_equity: Mapped[float] = mapped_column(Float, nullable=False)
    total_return: Mapped[float] = mapped_column(Float, nullable=False)
    sharpe_ratio: Mapped[float] = mapped_column(Float, nullable=False)
    max_drawdown: Mapped[float] = mapped_column(Float, nullable=False)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False)
    total_trades: Mapped[int] = mapped_column(Integer, nullable=False)
    params: Mapped[Any] = mapped_column(JSONText, nullable=False)
    full_result: Mapped[Any] = mapped_column(JSONText, nullable=False)
    created_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index("ix_backtest_result_symbol", "symbol"),
        Index("ix_backtest_result_strategy_name", "strategy_name"),
        Index("ix_backtest_result_created_at", "created_at"),
    )
