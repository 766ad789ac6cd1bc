"""Repositories for saved strategies and backtest results.

Sync SQLAlchemy sessions over SQLite. Each method opens its own session
from the factory and commits before returning, so callers never hold a
transaction across calls.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from strategylab.backtest.runner import BacktestResult
from strategylab.models.base import Base, register_engine_events
from strategylab.models.records import BacktestResultModel, StrategyModel
from strategylab.script.inputs import extract_inputs
from strategylab.utils.time import format_timestamp, utc_now

log = structlog.get_logger()

DEFAULT_LIST_LIMIT = 200


class RecordNotFoundError(Exception):
    """No stored record has the requested id."""

    def __init__(self, kind: str, record_id: int) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


def create_db_engine(db_path: str, create_tables: bool = False) -> Engine:
    """SQLite engine with pragmas registered.

    ":memory:" gives a private in-memory database. `create_tables` builds
    the schema from model metadata instead of running migrations.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    register_engine_events(engine)
    if create_tables:
        Base.metadata.create_all(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)


class StrategyRepository:
    """Named strategy scripts. Saving an existing name replaces its source."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def save(self, name: str, source: str, description: str = "") -> int:
        """Insert or update by name. Returns the strategy id."""
        now = format_timestamp(utc_now())
        inputs = [p.to_dict() for p in extract_inputs(source)]

        with self._session_factory() as session:
            row = session.scalars(
                select(StrategyModel).where(StrategyModel.name == name)
            ).one_or_none()
            if row is None:
                row = StrategyModel(
                    name=name,
                    source=source,
                    description=description,
                    inputs=inputs,
                    backtest_count=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
            else:
                row.source = source
                row.description = description
                row.inputs = inputs
                row.updated_at = now
            session.commit()
            strategy_id = row.id

        log.info("record_saved", kind="strategy", record_id=strategy_id, name=name)
        return strategy_id

    def get(self, strategy_id: int) -> dict[str, Any]:
        with self._session_factory() as session:
            row = session.get(StrategyModel, strategy_id)
            if row is None:
                raise RecordNotFoundError("strategy", strategy_id)
            return _strategy_to_dict(row)

    def list(self) -> list[dict[str, Any]]:
        """All strategies, most recently updated first."""
        with self._session_factory() as session:
            rows = session.scalars(
                select(StrategyModel).order_by(
                    StrategyModel.updated_at.desc(), StrategyModel.id.desc()
                )
            ).all()
            return [_strategy_to_dict(r) for r in rows]

    def delete(self, strategy_id: int) -> None:
        with self._session_factory() as session:
            row = session.get(StrategyModel, strategy_id)
            if row is None:
                raise RecordNotFoundError("strategy", strategy_id)
            session.delete(row)
            session.commit()
        log.info("record_deleted", kind="strategy", record_id=strategy_id)


class ResultRepository:
    """Finished backtest results: summary columns plus the full document."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def save(self, result: BacktestResult, strategy_id: int | None = None) -> int:
        """Store a result. Returns the record id.

        When `strategy_id` is given, that strategy's backtest count and
        last-run time are updated in the same transaction.
        """
        now = format_timestamp(utc_now())
        m = result.metrics
        row = BacktestResultModel(
            strategy_id=strategy_id,
            result_id=result.id,
            strategy_name=result.strategy_name,
            symbol=result.symbol,
            timeframe=result.timeframe,
            start_date=result.start_date,
            end_date=result.end_date,
            initial_capital=result.initial_capital,
            final_equity=result.final_equity,
            total_return=m.total_return,
            sharpe_ratio=m.sharpe_ratio,
            max_drawdown=result.max_drawdown,
            win_rate=m.win_rate,
            total_trades=m.total_trades,
            params=dict(result.params),
            full_result=result.to_dict(),
            created_at=now,
        )

        with self._session_factory() as session:
            if strategy_id is not None:
                if session.get(StrategyModel, strategy_id) is None:
                    raise RecordNotFoundError("strategy", strategy_id)
                session.execute(
                    update(StrategyModel)
                    .where(StrategyModel.id == strategy_id)
                    .values(
                        backtest_count=StrategyModel.backtest_count + 1,
                        last_backtest_at=now,
                    )
                )
            session.add(row)
            session.commit()
            record_id = row.id

        log.info(
            "record_saved",
            kind="backtest_result",
            record_id=record_id,
            result_id=result.id,
        )
        return record_id

    def get(self, record_id: int) -> dict[str, Any]:
        """The stored result document plus record metadata."""
        with self._session_factory() as session:
            row = session.get(BacktestResultModel, record_id)
            if row is None:
                raise RecordNotFoundError("backtest_result", record_id)
            return {
                **row.full_result,
                "recordId": row.id,
                "strategyId": row.strategy_id,
                "createdAt": row.created_at,
            }

    def list(
        self,
        symbol: str | None = None,
        strategy_name: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[dict[str, Any]]:
        """Summaries, newest first, optionally filtered."""
        stmt = select(BacktestResultModel)
        if symbol:
            stmt = stmt.where(BacktestResultModel.symbol == symbol)
        if strategy_name:
            stmt = stmt.where(BacktestResultModel.strategy_name == strategy_name)
        stmt = stmt.order_by(
            BacktestResultModel.created_at.desc(), BacktestResultModel.id.desc()
        ).limit(limit)

        with self._session_factory() as session:
            return [_result_summary(r) for r in session.scalars(stmt).all()]

    def delete(self, record_id: int) -> None:
        with self._session_factory() as session:
            row = session.get(BacktestResultModel, record_id)
            if row is None:
                raise RecordNotFoundError("backtest_result", record_id)
            session.delete(row)
            session.commit()
        log.info("record_deleted", kind="backtest_result", record_id=record_id)


def _strategy_to_dict(row: StrategyModel) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "source": row.source,
        "description": row.description,
        "inputs": row.inputs,
        "backtestCount": row.backtest_count,
        "lastBacktestAt": row.last_backtest_at,
        "createdAt": row.created_at,
        "updatedAt": row.updated_at,
    }


def _result_summary(row: BacktestResultModel) -> dict[str, Any]:
    return {
        "recordId": row.id,
        "resultId": row.result_id,
        "strategyId": row.strategy_id,
        "strategyName": row.strategy_name,
        "symbol": row.symbol,
        "timeframe": row.timeframe,
        "startDate": row.start_date,
        "endDate": row.end_date,
        "initialCapital": row.initial_capital,
        "finalEquity": row.final_equity,
        "totalReturn": row.total_return,
        "sharpeRatio": row.sharpe_ratio,
        "maxDrawdown": row.max_drawdown,
        "winRate": row.win_rate,
        "totalTrades": row.total_trades,
        "params": row.params,
        "createdAt": row.created_at,
    }
