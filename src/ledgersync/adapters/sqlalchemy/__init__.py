"""SQLAlchemy adapter package for ledgersync."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyCursorRepository,
    SqlAlchemyDatasetRepository,
    SqlAlchemyFactFailureRepository,
    SqlAlchemyJobRepository,
    SqlAlchemyLicenseRepository,
    SqlAlchemyOrphanRepository,
    UnsupportedDialectError,
)
from .unit_of_work import (
    SqlAlchemyJobUnitOfWork,
    SqlAlchemyLedgerUnitOfWork,
    StartupError,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyCursorRepository",
    "SqlAlchemyDatasetRepository",
    "SqlAlchemyFactFailureRepository",
    "SqlAlchemyJobRepository",
    "SqlAlchemyJobUnitOfWork",
    "SqlAlchemyLedgerUnitOfWork",
    "SqlAlchemyLicenseRepository",
    "SqlAlchemyOrphanRepository",
    "StartupError",
    "UnsupportedDialectError",
    "create_all_tables",
    "mapper_registry",
    "start_mappers",
    "shutdown",
    "startup",
]
