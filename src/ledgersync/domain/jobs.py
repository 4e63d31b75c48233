"""Durable verification job queue and its asyncio worker pool.

Every status change is a compare-and-set in the job store:

- ``pending -> running`` when a worker claims the job
- ``running -> completed | failed`` when the worker finishes, times out or dies

A terminal job never changes status again; a late result from a worker whose
job was already failed for exceeding its deadline is discarded. A completed job
keeps ``fact_folded_at`` unset until its licensing fact is in the projection,
and ``refold_unfolded`` re-emits the fact for any job a crash left behind.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from ledgersync.config.sync import JobQueueConfig
from ledgersync.domain.errors import JobExecutionFailure, JobNotFoundError
from ledgersync.domain.model import JobStatus, VerificationJob, utcnow
from ledgersync.domain.ports import VerificationInput
from ledgersync.domain.verification import verification_fact

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from datetime import datetime, timedelta
    from uuid import UUID

    from ledgersync.domain.model import LedgerFact
    from ledgersync.domain.ports import JobUnitOfWork, VerificationRunner

log = getLogger(__name__)

type EmitFacts = Callable[[Sequence[LedgerFact]], object]

_INPUT_FIELDS = ("filename", "file_size", "file_type")

DEFAULT_REFOLD_BATCH = 100


def verification_input(job: VerificationJob) -> VerificationInput:
    """Request handed to the runner for ``job``."""

    data = dict(job.input)
    file_size = data.get("file_size")
    return VerificationInput(
        job_id=str(job.id),
        user_id=job.user_id,
        input_ref=job.input_ref,
        filename=data.get("filename"),
        file_size=int(file_size) if file_size is not None else None,
        file_type=data.get("file_type"),
        extra={key: value for key, value in data.items() if key not in _INPUT_FIELDS},
    )


def to_status_document(job: VerificationJob) -> dict[str, Any]:
    """Job status body as served to the submitting user."""

    document: dict[str, Any] = {
        "id": str(job.id),
        "userId": job.user_id,
        "status": job.status.value,
        "createdAt": job.created_at.isoformat(),
    }
    if job.result is not None:
        document["result"] = job.result
    if job.error is not None:
        document["error"] = job.error
    if job.completed_at is not None:
        document["completedAt"] = job.completed_at.isoformat()
    return document


class VerificationJobQueue:
    """Submit, claim and finish verification jobs through short units of work."""

    def __init__(
        self,
        unit_of_work: Callable[[], JobUnitOfWork],
        *,
        config: JobQueueConfig | None = None,
        emit: EmitFacts | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._unit_of_work = unit_of_work
        self.config = config or JobQueueConfig()
        self._emit = emit
        self._clock = clock

    def submit(
        self,
        user_id: str,
        input_ref: str,
        *,
        input: Mapping[str, Any] | None = None,  # noqa: A002
    ) -> UUID:
        """Record a pending job and return its id without running it."""

        if not user_id:
            raise ValueError("user_id is required")
        if not input_ref:
            raise ValueError("input_ref is required")
        job = VerificationJob(
            user_id=user_id,
            input_ref=input_ref,
            input=dict(input or {}),
            created_at=self._clock(),
        )
        with self._unit_of_work() as uow:
            uow.repositories.jobs.add(job)
            uow.commit()
        log.info("Queued verification job %s for %s (%s)", job.id, user_id, input_ref)
        return job.id

    def status(self, job_id: UUID) -> VerificationJob | None:
        with self._unit_of_work() as uow:
            return uow.repositories.jobs.get(job_id)

    def require(self, job_id: UUID) -> VerificationJob:
        job = self.status(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def claim_next(self, worker: str = "worker") -> VerificationJob | None:
        """Atomically move the oldest pending job to ``running`` for ``worker``."""

        with self._unit_of_work() as uow:
            job = uow.repositories.jobs.claim_next(token=uuid4(), now=self._clock())
            uow.commit()
        if job is not None:
            log.info("%s claimed verification job %s", worker, job.id)
        return job

    def complete(self, job_id: UUID, result: Mapping[str, Any]) -> bool:
        """Record ``result`` and fold the licensing fact; ``False`` if the job was not running.

        The job is committed as completed first. If folding its fact fails the
        job stays unfolded and ``refold_unfolded`` picks it up later.
        """

        now = self._clock()
        payload = dict(result)
        with self._unit_of_work() as uow:
            jobs = uow.repositories.jobs
            finished = jobs.finish(
                job_id, status=JobStatus.COMPLETED, result=payload, error=None, now=now
            )
            job = jobs.get(job_id) if finished else None
            uow.commit()
        if job is None:
            log.warning("Discarding result for job %s: it is no longer running", job_id)
            return False
        log.info(
            "Job %s completed: verdict=%s quality=%s",
            job_id,
            payload.get("verdict"),
            payload.get("quality_score"),
        )
        self._fold(job)
        return True

    def refold_unfolded(self, limit: int = DEFAULT_REFOLD_BATCH) -> int:
        """Fold the facts of completed jobs whose earlier fold never committed."""

        with self._unit_of_work() as uow:
            pending = list(uow.repositories.jobs.unfolded(limit=limit))
        folded = sum(1 for job in pending if self._fold(job))
        if folded:
            log.info("Refolded %d completed verification jobs", folded)
        return folded

    def _fold(self, job: VerificationJob) -> bool:
        # Without an emitter there is no projection to keep in step.
        if self._emit is not None:
            occurred_at = job.completed_at or self._clock()
            fact = verification_fact(job, job.result or {}, occurred_at=occurred_at)
            try:
                self._emit([fact])
            except Exception:
                log.exception("Could not fold job %s; it stays queued for refolding", job.id)
                return False
        with self._unit_of_work() as uow:
            marked = uow.repositories.jobs.mark_folded(job.id, now=self._clock())
            uow.commit()
        return marked

    def fail(self, job_id: UUID, error: str) -> bool:
        with self._unit_of_work() as uow:
            finished = uow.repositories.jobs.finish(
                job_id, status=JobStatus.FAILED, result=None, error=error, now=self._clock()
            )
            uow.commit()
        if finished:
            log.warning("Job %s failed: %s", job_id, error)
        else:
            log.warning("Ignoring failure for job %s: it is no longer running", job_id)
        return finished

    def execute(self, job: VerificationJob, runner: VerificationRunner) -> bool:
        """Run ``runner`` for a claimed job and record its outcome on the job."""

        try:
            result = runner(verification_input(job))
        except Exception as exc:  # noqa: BLE001
            failure = JobExecutionFailure(str(exc) or type(exc).__name__)
            log.debug("Runner raised for job %s", job.id, exc_info=exc)
            return self.fail(job.id, str(failure))
        return self.complete(job.id, result)

    def purge_expired(self, retention: timedelta | None = None) -> int:
        """Delete terminal jobs that finished more than ``retention`` ago."""

        cutoff = self._clock() - (self.config.retention if retention is None else retention)
        with self._unit_of_work() as uow:
            purged = uow.repositories.jobs.purge_finished_before(cutoff)
            uow.commit()
        if purged:
            log.info("Purged %d verification jobs finished before %s", purged, cutoff)
        return purged

    def reap_abandoned(self, deadline: timedelta | None = None) -> int:
        """Fail ``running`` jobs claimed longer than ``deadline`` ago."""

        now = self._clock()
        cutoff = now - (self.config.deadline if deadline is None else deadline)
        with self._unit_of_work() as uow:
            reaped = uow.repositories.jobs.fail_running_since(
                cutoff, error="Abandoned by its worker past the execution deadline", now=now
            )
            uow.commit()
        if reaped:
            log.warning("Failed %d abandoned verification jobs", reaped)
        return reaped


async def run_job(
    queue: VerificationJobQueue,
    job: VerificationJob,
    runner: VerificationRunner,
    *,
    deadline_seconds: float,
) -> bool:
    """Execute one claimed job on a worker thread, failing it past its deadline."""

    try:
        return await asyncio.wait_for(
            asyncio.to_thread(queue.execute, job, runner), timeout=deadline_seconds
        )
    except TimeoutError:
        return await asyncio.to_thread(
            queue.fail, job.id, f"Verification timed out after {deadline_seconds:g} seconds"
        )


async def run_worker(
    queue: VerificationJobQueue,
    runner: VerificationRunner,
    stop: asyncio.Event,
    *,
    name: str = "job-worker",
) -> None:
    """Claim and execute jobs one at a time until ``stop`` is set."""

    config = queue.config
    while not stop.is_set():
        try:
            job = await asyncio.to_thread(queue.claim_next, name)
            if job is None:
                await wait_or_stop(stop, config.poll_interval_seconds)
                continue
            await run_job(queue, job, runner, deadline_seconds=config.deadline_seconds)
        except Exception:
            log.exception("%s hit an error; retrying after %ss", name, config.poll_interval_seconds)
            await wait_or_stop(stop, config.poll_interval_seconds)


@dataclass(slots=True)
class JobWorkerPool:
    """Fixed number of ``run_worker`` tasks sharing one queue."""

    queue: VerificationJobQueue
    runner: VerificationRunner
    workers: int | None = None
    names: list[str] = field(default_factory=list)

    async def run(self, stop: asyncio.Event) -> None:
        count = self.workers or self.queue.config.workers
        self.names = [f"job-worker-{index}" for index in range(1, count + 1)]
        log.info("Starting %d verification workers", count)
        async with asyncio.TaskGroup() as group:
            for name in self.names:
                group.create_task(run_worker(self.queue, self.runner, stop, name=name))


async def wait_or_stop(stop: asyncio.Event, seconds: float) -> None:
    """Sleep ``seconds`` or until ``stop`` is set, whichever comes first."""

    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(stop.wait(), timeout=seconds)
