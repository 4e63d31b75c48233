"""Synchronization and job-queue defaults."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .env import env_float, env_int

DEFAULT_SYNC_INTERVAL_SECONDS = 30.0
DEFAULT_EVENT_BATCH_SIZE = 50
DEFAULT_MAX_BATCHES_PER_CYCLE = 20
DEFAULT_MAX_BACKOFF_SECONDS = 600.0
DEFAULT_BACKOFF_BASE_SECONDS = 2.0
DEFAULT_ORPHAN_HORIZON_CYCLES = 24
DEFAULT_MAX_PENDING_TRANSITIONS = 1_000

DEFAULT_JOB_WORKERS = 2
DEFAULT_JOB_DEADLINE_SECONDS = 300.0
DEFAULT_JOB_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_JOB_RETENTION = timedelta(hours=24)
DEFAULT_MAINTENANCE_INTERVAL_SECONDS = 3_600.0


@dataclass(frozen=True, slots=True)
class SyncConfig:
    interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS
    batch_size: int = DEFAULT_EVENT_BATCH_SIZE
    max_batches_per_cycle: int = DEFAULT_MAX_BATCHES_PER_CYCLE
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS
    orphan_horizon_cycles: int = DEFAULT_ORPHAN_HORIZON_CYCLES
    max_pending_transitions: int = DEFAULT_MAX_PENDING_TRANSITIONS


@dataclass(frozen=True, slots=True)
class JobQueueConfig:
    workers: int = DEFAULT_JOB_WORKERS
    deadline_seconds: float = DEFAULT_JOB_DEADLINE_SECONDS
    poll_interval_seconds: float = DEFAULT_JOB_POLL_INTERVAL_SECONDS
    retention: timedelta = DEFAULT_JOB_RETENTION
    maintenance_interval_seconds: float = DEFAULT_MAINTENANCE_INTERVAL_SECONDS

    @property
    def deadline(self) -> timedelta:
        return timedelta(seconds=self.deadline_seconds)


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        interval_seconds=env_float(
            "LEDGERSYNC_SYNC_INTERVAL_SECONDS", DEFAULT_SYNC_INTERVAL_SECONDS, minimum=0.1
        ),
        batch_size=env_int("LEDGERSYNC_BATCH_SIZE", DEFAULT_EVENT_BATCH_SIZE, minimum=1),
        max_batches_per_cycle=env_int(
            "LEDGERSYNC_MAX_BATCHES_PER_CYCLE", DEFAULT_MAX_BATCHES_PER_CYCLE, minimum=1
        ),
        max_backoff_seconds=env_float(
            "LEDGERSYNC_MAX_BACKOFF_SECONDS", DEFAULT_MAX_BACKOFF_SECONDS, minimum=1.0
        ),
        orphan_horizon_cycles=env_int(
            "LEDGERSYNC_ORPHAN_HORIZON_CYCLES", DEFAULT_ORPHAN_HORIZON_CYCLES, minimum=1
        ),
        max_pending_transitions=env_int(
            "LEDGERSYNC_MAX_PENDING_TRANSITIONS", DEFAULT_MAX_PENDING_TRANSITIONS, minimum=1
        ),
    )


def get_job_queue_config() -> JobQueueConfig:
    retention_hours = env_float(
        "LEDGERSYNC_JOB_RETENTION_HOURS",
        DEFAULT_JOB_RETENTION.total_seconds() / 3600,
    )
    return JobQueueConfig(
        workers=env_int("LEDGERSYNC_JOB_WORKERS", DEFAULT_JOB_WORKERS, minimum=1),
        deadline_seconds=env_float(
            "LEDGERSYNC_JOB_DEADLINE_SECONDS", DEFAULT_JOB_DEADLINE_SECONDS, minimum=1.0
        ),
        poll_interval_seconds=env_float(
            "LEDGERSYNC_JOB_POLL_INTERVAL_SECONDS",
            DEFAULT_JOB_POLL_INTERVAL_SECONDS,
            minimum=0.05,
        ),
        retention=timedelta(hours=retention_hours),
    )
