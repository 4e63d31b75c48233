from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from ledgersync.adapters.sqlalchemy import start_mappers
from ledgersync.adapters.sqlalchemy.migrations import upgrade_head
from ledgersync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyJobUnitOfWork,
    SqlAlchemyLedgerUnitOfWork,
    shutdown,
    startup,
)
from tests.helpers.ledger import FakeLedgerFetcher, RecordingAlerts

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Engine]:
    # File-backed so worker threads share one database.
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'ledgersync.db'}", future=True)
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def started_engine(sqlite_engine: Engine) -> Iterator[Engine]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield sqlite_engine
    finally:
        shutdown()


@pytest.fixture
def ledger_unit_of_work(
    started_engine: Engine,
) -> Callable[[], SqlAlchemyLedgerUnitOfWork]:
    _ = started_engine
    return SqlAlchemyLedgerUnitOfWork


@pytest.fixture
def job_unit_of_work(started_engine: Engine) -> Callable[[], SqlAlchemyJobUnitOfWork]:
    _ = started_engine
    return SqlAlchemyJobUnitOfWork


@pytest.fixture
def fetcher() -> FakeLedgerFetcher:
    return FakeLedgerFetcher()


@pytest.fixture
def alerts() -> RecordingAlerts:
    return RecordingAlerts()
