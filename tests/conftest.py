"""Shared test fixtures for strategy-lab."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator

import pytest
import structlog
from sqlalchemy.orm import Session, sessionmaker

from strategylab.storage.repository import create_db_engine, create_session_factory


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo any setup_logging() a test performed."""
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    """Keep STRATLAB_* settings from the developer's shell or .env out of tests."""
    for key in list(os.environ):
        if key.startswith("STRATLAB_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path_factory.mktemp("cwd"))


@pytest.fixture
def session_factory() -> sessionmaker[Session]:
    """Session factory over a private in-memory database with all tables."""
    engine = create_db_engine(":memory:", create_tables=True)
    return create_session_factory(engine)
