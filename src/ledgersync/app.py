"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable
from dataclasses import replace
from functools import cache, partial
from logging import getLogger
from typing import TYPE_CHECKING, Any

from ledgersync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyJobUnitOfWork,
    SqlAlchemyLedgerUnitOfWork,
    is_started,
    startup,
)
from ledgersync.adapters.sui import SuiEventFetcher, normalize_sui_event
from ledgersync.config import (
    get_job_queue_config,
    get_rate_limit_config,
    get_sync_config,
)
from ledgersync.domain.alerts import log_alert
from ledgersync.domain.jobs import JobWorkerPool, VerificationJobQueue
from ledgersync.domain.model import LEDGER_FACT_KINDS, OrphanStatus, utcnow
from ledgersync.domain.rate_limit import RateLimiter
from ledgersync.domain.reconciliation import LOCAL_STREAM, ReconciliationEngine
from ledgersync.domain.scheduler import MaintenanceTasks, SyncScheduler
from ledgersync.domain.verification import MetadataVerificationRunner

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from datetime import datetime, timedelta
    from uuid import UUID

    from ledgersync.config import JobQueueConfig, SyncConfig
    from ledgersync.domain.alerts import AlertSink
    from ledgersync.domain.model import License, OrphanedTransition, VerificationJob
    from ledgersync.domain.ports import (
        JobUnitOfWork,
        LedgerEventFetcher,
        LedgerUnitOfWork,
        VerificationRunner,
    )
    from ledgersync.domain.reconciliation import CycleResult

LedgerUnitOfWorkFactory = Callable[[], "LedgerUnitOfWork"]
JobUnitOfWorkFactory = Callable[[], "JobUnitOfWork"]

DEFAULT_STREAMS: tuple[str, ...] = tuple(str(kind) for kind in LEDGER_FACT_KINDS)

log = getLogger(__name__)


def ensure_started() -> None:
    """Initialise the SQLAlchemy adapter once per process."""

    if not is_started():
        startup()


@cache
def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter shared by every entry point that takes user requests."""

    return RateLimiter()


def build_engine(
    *,
    fetcher: LedgerEventFetcher | None = None,
    unit_of_work_factory: LedgerUnitOfWorkFactory | None = None,
    config: SyncConfig | None = None,
    alert: AlertSink = log_alert,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        fetcher=fetcher or SuiEventFetcher(),
        normalize=normalize_sui_event,
        unit_of_work=unit_of_work_factory or SqlAlchemyLedgerUnitOfWork,
        config=config or get_sync_config(),
        alert=alert,
    )


def build_job_queue(
    *,
    engine: ReconciliationEngine | None = None,
    unit_of_work_factory: JobUnitOfWorkFactory | None = None,
    config: JobQueueConfig | None = None,
) -> VerificationJobQueue:
    """Job queue whose completions fold into the projection through ``engine``."""

    return VerificationJobQueue(
        unit_of_work_factory or SqlAlchemyJobUnitOfWork,
        config=config or get_job_queue_config(),
        emit=engine.fold_local if engine is not None else None,
    )


def build_maintenance(
    queue: VerificationJobQueue,
    engine: ReconciliationEngine,
    limiter: RateLimiter | None = None,
) -> MaintenanceTasks:
    tasks: list[Callable[[], object]] = [
        queue.reap_abandoned,
        queue.refold_unfolded,
        queue.purge_expired,
        partial(engine.retry_orphans, LOCAL_STREAM),
    ]
    if limiter is not None:
        tasks.append(limiter.prune)
    return MaintenanceTasks(tasks)


def build_scheduler(
    *,
    streams: Iterable[str] = DEFAULT_STREAMS,
    engine: ReconciliationEngine | None = None,
    queue: VerificationJobQueue | None = None,
    runner: VerificationRunner | None = None,
    with_jobs: bool = True,
    alert: AlertSink = log_alert,
) -> SyncScheduler:
    effective_engine = engine or build_engine(alert=alert)
    effective_queue = queue or build_job_queue(engine=effective_engine)
    workers = (
        JobWorkerPool(effective_queue, runner or MetadataVerificationRunner())
        if with_jobs
        else None
    )
    return SyncScheduler(
        effective_engine,
        streams,
        config=effective_engine.config,
        workers=workers,
        maintenance=build_maintenance(effective_queue, effective_engine, get_rate_limiter()),
        maintenance_interval_seconds=effective_queue.config.maintenance_interval_seconds,
        alert=alert,
    )


def sync_ledger_events(
    *,
    streams: Sequence[str] | None = None,
    max_batches: int | None = None,
    fetcher: LedgerEventFetcher | None = None,
    unit_of_work_factory: LedgerUnitOfWorkFactory | None = None,
) -> dict[str, CycleResult]:
    """Run one reconciliation cycle per stream, in order."""

    ensure_started()
    config = get_sync_config()
    if max_batches is not None:
        config = replace(config, max_batches_per_cycle=max_batches)
    engine = build_engine(fetcher=fetcher, unit_of_work_factory=unit_of_work_factory, config=config)
    effective_streams = list(streams or DEFAULT_STREAMS)
    log.info(
        "Starting ledger sync: streams=%s, batch_size=%s, max_batches=%s",
        ",".join(effective_streams),
        config.batch_size,
        config.max_batches_per_cycle,
    )

    results = {stream: engine.run_cycle(stream) for stream in effective_streams}

    log.info(
        f"Finished ledger sync: applied={sum(r.applied for r in results.values())}, "
        f"fetched={sum(r.fetched for r in results.values())}, "
        f"caught_up={all(r.caught_up for r in results.values())}"
    )
    return results


def run_service(*, streams: Sequence[str] | None = None, with_jobs: bool = True) -> None:
    """Run the scheduler until SIGINT or SIGTERM."""

    ensure_started()
    scheduler = build_scheduler(streams=streams or DEFAULT_STREAMS, with_jobs=with_jobs)

    async def _main() -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, scheduler.stop)
        await scheduler.run()

    asyncio.run(_main())


def submit_verification(
    user_id: str,
    input_ref: str,
    *,
    input: Mapping[str, Any] | None = None,  # noqa: A002
    queue: VerificationJobQueue | None = None,
    limiter: RateLimiter | None = None,
) -> UUID:
    """Queue a verification job for ``user_id``; raises ``RateLimited`` past the budget."""

    ensure_started()
    effective_limiter = limiter or get_rate_limiter()
    effective_limiter.check(user_id, get_rate_limit_config().ingest_trigger)
    return (queue or build_job_queue()).submit(user_id, input_ref, input=input)


def get_verification_job(
    job_id: UUID,
    *,
    requester: str | None = None,
    queue: VerificationJobQueue | None = None,
    limiter: RateLimiter | None = None,
) -> VerificationJob | None:
    """Look up a job; a ``requester`` read counts against the authenticated read budget."""

    ensure_started()
    if requester is not None:
        limit = get_rate_limit_config().authenticated_read
        (limiter or get_rate_limiter()).check(requester, limit)
    return (queue or build_job_queue()).status(job_id)


def purge_verification_jobs(
    *, retention: timedelta | None = None, queue: VerificationJobQueue | None = None
) -> int:
    ensure_started()
    return (queue or build_job_queue()).purge_expired(retention)


def list_orphans(
    *,
    expired: bool = False,
    unit_of_work_factory: LedgerUnitOfWorkFactory | None = None,
) -> list[OrphanedTransition]:
    ensure_started()
    status = OrphanStatus.EXPIRED if expired else None
    with (unit_of_work_factory or SqlAlchemyLedgerUnitOfWork)() as uow:
        return list(uow.repositories.orphans.list(status=status))


def has_active_license(
    dataset_cid: str,
    licensee: str,
    *,
    at: datetime | None = None,
    unit_of_work_factory: LedgerUnitOfWorkFactory | None = None,
) -> bool:
    """Whether ``licensee`` holds an unrevoked, unexpired license for ``dataset_cid``."""

    ensure_started()
    with (unit_of_work_factory or SqlAlchemyLedgerUnitOfWork)() as uow:
        return uow.repositories.licenses.has_active(dataset_cid, licensee, at=at or utcnow())


def list_licenses(
    *,
    dataset_cid: str | None = None,
    licensee: str | None = None,
    unit_of_work_factory: LedgerUnitOfWorkFactory | None = None,
) -> list[License]:
    """Licenses of one dataset or of one licensee, revoked and expired included."""

    if (dataset_cid is None) == (licensee is None):
        raise ValueError("Pass exactly one of dataset_cid or licensee")
    ensure_started()
    with (unit_of_work_factory or SqlAlchemyLedgerUnitOfWork)() as uow:
        licenses = uow.repositories.licenses
        if dataset_cid is not None:
            return list(licenses.list_for_dataset(dataset_cid))
        return list(licenses.list_for_licensee(licensee or ""))
