"""Process-wide database binding and the SQLAlchemy units of work.

``startup`` binds one engine per process and migrates it to head. A ledger
unit of work spans one reconciliation batch and a job unit of work one queue
transition. Both roll back when their block raises and only commit on request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ledgersync.adapters.sqlalchemy.mappings import start_mappers
from ledgersync.adapters.sqlalchemy.migrations import current_revision, upgrade_head
from ledgersync.adapters.sqlalchemy.repositories import (
    SqlAlchemyCursorRepository,
    SqlAlchemyDatasetRepository,
    SqlAlchemyFactFailureRepository,
    SqlAlchemyJobRepository,
    SqlAlchemyLicenseRepository,
    SqlAlchemyOrphanRepository,
)
from ledgersync.config.storage import DatabaseConfig, get_database_config
from ledgersync.domain.ports.unit_of_work import (
    JobRepositories,
    LedgerRepositories,
    RepositoryCollection,
)

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the database binding or a unit of work is used out of order."""


@dataclass(slots=True)
class _Binding:
    engine: Engine | None = None
    sessions: sessionmaker[Session] | None = None

    def bind(self, engine: Engine | None) -> None:
        self.engine = engine
        self.sessions = sessionmaker(bind=engine, expire_on_commit=False) if engine else None

    def require_sessions(self) -> sessionmaker[Session]:
        if self.sessions is None:
            raise StartupError(
                "No database bound. Call ledgersync.adapters.sqlalchemy.unit_of_work.startup() "
                "before opening a unit of work."
            )
        return self.sessions


_BINDING = _Binding()


def tune_sqlite(engine: Engine, *, busy_timeout_ms: int) -> None:
    """Switch SQLite connections to WAL and make writers wait for the lock."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        _ = connection_record
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
            cursor.execute("PRAGMA journal_mode = WAL")
        finally:
            cursor.close()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the process to a database, creating the engine unless one is given.

    Engines created here from a SQLite URI get :func:`tune_sqlite`; a caller
    passing ``engine`` owns its connection settings.
    """

    if _BINDING.engine is not None and not force:
        raise StartupError("Database already bound. Pass force=True to rebind.")

    if engine is None:
        config = DatabaseConfig(uri=database_uri) if database_uri else get_database_config()
        engine = create_engine(config.uri, future=True)
        if config.is_sqlite:
            tune_sqlite(engine, busy_timeout_ms=config.sqlite_busy_timeout_ms)

    start_mappers()
    upgrade_head(engine=engine)
    _BINDING.bind(engine)
    log.info(
        "Bound database %s at revision %s",
        engine.url.render_as_string(hide_password=True),
        current_revision(engine),
    )


def configured_engine() -> Engine | None:
    return _BINDING.engine


def is_started() -> bool:
    return _BINDING.engine is not None


def shutdown() -> None:
    """Dispose the bound engine and forget it."""

    if _BINDING.engine is not None:
        _BINDING.engine.dispose()
    _BINDING.bind(None)


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """One session per ``with`` block, exposing the repositories built over it."""

    def __init__(self) -> None:
        self._sessions = _BINDING.require_sessions()
        self._session: Session | None = None
        self._repositories: TRepositories | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        self._session = self._sessions()
        self._repositories = self._build_repositories(self._session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work is not open")
        return self._session

    @property
    def repositories(self) -> TRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work is not open")
        return self._repositories


class SqlAlchemyLedgerUnitOfWork(BaseSqlAlchemyUnitOfWork[LedgerRepositories]):
    def _build_repositories(self, session: Session) -> LedgerRepositories:
        return LedgerRepositories(
            cursors=SqlAlchemyCursorRepository(session),
            datasets=SqlAlchemyDatasetRepository(session),
            licenses=SqlAlchemyLicenseRepository(session),
            orphans=SqlAlchemyOrphanRepository(session),
            failures=SqlAlchemyFactFailureRepository(session),
        )


class SqlAlchemyJobUnitOfWork(BaseSqlAlchemyUnitOfWork[JobRepositories]):
    def _build_repositories(self, session: Session) -> JobRepositories:
        return JobRepositories(jobs=SqlAlchemyJobRepository(session))


if TYPE_CHECKING:
    from ledgersync.domain.ports.unit_of_work import JobUnitOfWork, LedgerUnitOfWork

    _uow_ledger_check: LedgerUnitOfWork = SqlAlchemyLedgerUnitOfWork()
    _uow_job_check: JobUnitOfWork = SqlAlchemyJobUnitOfWork()
