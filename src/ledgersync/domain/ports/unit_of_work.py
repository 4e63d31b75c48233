"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from ledgersync.domain.ports.persistence import (
        CursorRepository,
        DatasetRepository,
        FactFailureRepository,
        JobRepository,
        LicenseRepository,
        OrphanRepository,
    )


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection."""

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@dataclass(slots=True)
class LedgerRepositories(RepositoryCollection):
    """Repositories touched by one reconciliation batch."""

    cursors: CursorRepository
    datasets: DatasetRepository
    licenses: LicenseRepository
    orphans: OrphanRepository
    failures: FactFailureRepository


@dataclass(slots=True)
class JobRepositories(RepositoryCollection):
    """Repositories owned by the verification job queue."""

    jobs: JobRepository


type LedgerUnitOfWork = UnitOfWork[LedgerRepositories]
type JobUnitOfWork = UnitOfWork[JobRepositories]
