"""Domain port definitions for adapters."""

from __future__ import annotations

from .fetching import FetchedBatch, LedgerEventFetcher
from .persistence import (
    CursorRepository,
    DatasetRepository,
    FactFailureRepository,
    JobRepository,
    LicenseRepository,
    OrphanRepository,
)
from .unit_of_work import (
    JobRepositories,
    JobUnitOfWork,
    LedgerRepositories,
    LedgerUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)
from .verification import VerificationInput, VerificationRunner

__all__ = [
    "CursorRepository",
    "DatasetRepository",
    "FactFailureRepository",
    "FetchedBatch",
    "JobRepositories",
    "JobRepository",
    "JobUnitOfWork",
    "LedgerEventFetcher",
    "LedgerRepositories",
    "LedgerUnitOfWork",
    "LicenseRepository",
    "OrphanRepository",
    "RepositoryCollection",
    "UnitOfWork",
    "VerificationInput",
    "VerificationRunner",
]
