"""Long-running asyncio driver for ledger streams, job workers and maintenance.

Each stream gets its own loop task, so streams advance concurrently while the
batches of one stream stay sequential. Blocking work (SQL, RPC facade) runs on
worker threads.

Failure handling per stream:

- ``TransientFetchError``: exponential backoff with full jitter, capped
- ``PermanentFetchError``: that stream stops and the operator is alerted
- anything else: logged, next cycle at the normal interval
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from ledgersync.config.sync import DEFAULT_MAINTENANCE_INTERVAL_SECONDS, SyncConfig
from ledgersync.domain.alerts import log_alert
from ledgersync.domain.errors import PermanentFetchError, StaleAdvance, TransientFetchError
from ledgersync.domain.jobs import wait_or_stop

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ledgersync.domain.alerts import AlertSink
    from ledgersync.domain.jobs import JobWorkerPool
    from ledgersync.domain.reconciliation import CycleResult, ReconciliationEngine

log = getLogger(__name__)


def backoff_delay(
    attempt: int,
    *,
    base: float,
    cap: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """Full-jitter exponential backoff for the ``attempt``-th consecutive failure."""

    ceiling = min(cap, base * 2 ** max(0, attempt - 1))
    return rand() * ceiling


@dataclass(slots=True)
class StreamState:
    stream: str
    consecutive_failures: int = 0
    stopped: bool = False
    cycles: int = 0
    last_result: CycleResult | None = None
    last_error: str | None = None


class SyncScheduler:
    """Run reconciliation cycles for ``streams`` until stopped."""

    def __init__(
        self,
        engine: ReconciliationEngine,
        streams: Iterable[str],
        *,
        config: SyncConfig | None = None,
        workers: JobWorkerPool | None = None,
        maintenance: Callable[[], object] | None = None,
        maintenance_interval_seconds: float = DEFAULT_MAINTENANCE_INTERVAL_SECONDS,
        alert: AlertSink = log_alert,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.engine = engine
        self.config = config or engine.config
        self.states = {stream: StreamState(stream) for stream in streams}
        if not self.states:
            raise ValueError("At least one stream is required")
        self._workers = workers
        self._maintenance = maintenance
        self._maintenance_interval = maintenance_interval_seconds
        self._alert = alert
        self._rand = rand
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def run(self) -> None:
        log.info("Starting scheduler for streams: %s", ", ".join(self.states))
        async with asyncio.TaskGroup() as group:
            for state in self.states.values():
                group.create_task(self._stream_loop(state), name=f"sync:{state.stream}")
            if self._workers is not None:
                group.create_task(self._workers.run(self._stop), name="job-workers")
            if self._maintenance is not None:
                group.create_task(self._maintenance_loop(), name="maintenance")
        log.info("Scheduler stopped")

    async def run_once(self) -> dict[str, CycleResult]:
        """Run one cycle of every stream concurrently; errors propagate."""

        streams = list(self.states)
        results = await asyncio.gather(
            *(asyncio.to_thread(self.engine.run_cycle, stream) for stream in streams)
        )
        return dict(zip(streams, results, strict=True))

    async def _stream_loop(self, state: StreamState) -> None:
        while not self._stop.is_set():
            delay = await self.cycle(state)
            if state.stopped:
                return
            await wait_or_stop(self._stop, delay)

    async def cycle(self, state: StreamState) -> float:
        """Run one cycle of ``state.stream`` and return the delay before the next one."""

        state.cycles += 1
        try:
            result = await asyncio.to_thread(self.engine.run_cycle, state.stream)
        except TransientFetchError as exc:
            state.consecutive_failures += 1
            state.last_error = str(exc)
            delay = backoff_delay(
                state.consecutive_failures,
                base=self.config.backoff_base_seconds,
                cap=self.config.max_backoff_seconds,
                rand=self._rand,
            )
            log.warning(
                "Transient failure on %s (attempt %d); retrying in %.1fs: %s",
                state.stream,
                state.consecutive_failures,
                delay,
                exc,
            )
            return delay
        except PermanentFetchError as exc:
            state.stopped = True
            state.last_error = str(exc)
            self._alert(exc)
            return 0.0
        except StaleAdvance as exc:
            state.last_error = str(exc)
            log.warning("Batch on %s rolled back: %s", state.stream, exc)
            return self.config.interval_seconds
        except Exception as exc:
            state.last_error = str(exc)
            log.exception("Cycle on %s failed", state.stream)
            return self.config.interval_seconds

        state.consecutive_failures = 0
        state.last_error = None
        state.last_result = result
        if not result.caught_up:
            return 0.0
        return self.config.interval_seconds

    async def _maintenance_loop(self) -> None:
        maintenance = self._maintenance
        if maintenance is None:
            return
        while not self._stop.is_set():
            try:
                await asyncio.to_thread(maintenance)
            except Exception:
                log.exception("Maintenance run failed")
            await wait_or_stop(self._stop, self._maintenance_interval)


@dataclass(slots=True)
class MaintenanceTasks:
    """Callables run together by the scheduler's maintenance loop."""

    tasks: list[Callable[[], object]] = field(default_factory=list)

    def __call__(self) -> None:
        for task in self.tasks:
            task()
