"""Fold ledger facts into the local projection, one durable batch at a time.

Each batch reads its starting cursor, fetches outside of any transaction, and
then applies every fact, records orphans and failures, and advances the cursor
inside a single unit of work. A crash anywhere before commit leaves the cursor
where it was, so the whole batch is delivered again and re-applied as no-ops.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from ledgersync.config.sync import SyncConfig
from ledgersync.domain.alerts import log_alert
from ledgersync.domain.cursors import CursorStore
from ledgersync.domain.errors import OrphanedTransitionTimeout
from ledgersync.domain.model import (
    FactFailure,
    NormalizationFailure,
    OrphanedTransition,
    OrphanStatus,
    utcnow,
)

from .apply import ApplyOutcome, FactApplier, created_target
from .orphans import PendingTransitions

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from ledgersync.domain.alerts import AlertSink
    from ledgersync.domain.model import LedgerFact, TargetRef
    from ledgersync.domain.ports import (
        LedgerEventFetcher,
        LedgerRepositories,
        LedgerUnitOfWork,
    )

    from .normalize import NormalizeEvent

log = getLogger(__name__)

LOCAL_STREAM = "local"


@dataclass(slots=True)
class CycleResult:
    """Counters for one ``run_cycle`` (or ``fold_local``) call."""

    stream: str
    batches: int = 0
    fetched: int = 0
    created: int = 0
    transitioned: int = 0
    duplicates: int = 0
    ignored: int = 0
    failures: int = 0
    orphaned: int = 0
    resolved_orphans: int = 0
    expired_orphans: int = 0
    cursor: str | None = None
    caught_up: bool = False

    @property
    def applied(self) -> int:
        return self.created + self.transitioned

    def record(self, outcome: ApplyOutcome) -> None:
        match outcome:
            case ApplyOutcome.CREATED:
                self.created += 1
            case ApplyOutcome.TRANSITIONED:
                self.transitioned += 1
            case ApplyOutcome.DUPLICATE | ApplyOutcome.ALREADY_APPLIED:
                self.duplicates += 1
            case ApplyOutcome.IGNORED:
                self.ignored += 1
            case ApplyOutcome.MISSING_TARGET:
                self.orphaned += 1


@dataclass(slots=True)
class _BatchSession:
    """Apply facts in source order, holding transitions whose target is missing."""

    repositories: LedgerRepositories
    stream: str
    now: datetime
    result: CycleResult
    pending: PendingTransitions
    applier: FactApplier = field(init=False)

    def __post_init__(self) -> None:
        self.applier = FactApplier(self.repositories, self.now)

    def apply(self, fact: LedgerFact) -> None:
        outcome = self.applier(fact)
        if outcome is ApplyOutcome.MISSING_TARGET:
            self._hold(fact)
            return
        self.result.record(outcome)
        if outcome is ApplyOutcome.CREATED:
            target = created_target(fact)
            if target is not None:
                self._release(target)

    def finish(self) -> None:
        for target, fact in self.pending.drain():
            self._persist_orphan(target, fact)

    def _hold(self, fact: LedgerFact) -> None:
        target = fact.target
        if target is None:
            raise TypeError(f"{fact.kind} cannot wait for a target")
        self.result.orphaned += 1
        if self.repositories.orphans.contains(self.stream, fact.ledger_id):
            log.debug("Orphan %s %s is already recorded", fact.kind, fact.ledger_id)
            return
        if not self.pending.add(target, fact):
            self._persist_orphan(target, fact)

    def _release(self, target: TargetRef) -> None:
        orphans = self.repositories.orphans
        for orphan in orphans.for_target(target.kind, target.id):
            outcome = self.applier(orphan.fact)
            if not outcome.settled:
                continue
            orphans.remove(orphan)
            self.result.resolved_orphans += 1
            self.result.record(outcome)
            log.info(
                "Resolved %s orphan %s %s on %s",
                orphan.status,
                orphan.fact_kind,
                orphan.ledger_id,
                target.id,
            )
        for fact in self.pending.pop(target):
            self.result.orphaned -= 1
            self.result.record(self.applier(fact))

    def _persist_orphan(self, target: TargetRef, fact: LedgerFact) -> None:
        self.repositories.orphans.add(
            OrphanedTransition(
                fact=fact,
                stream=self.stream,
                target_kind=target.kind,
                target_id=target.id,
                fact_kind=fact.kind,
                ledger_id=fact.ledger_id,
                first_seen_at=self.now,
                last_attempt_at=self.now,
            )
        )
        log.info(
            "Holding %s %s until %s %s exists", fact.kind, fact.ledger_id, target.kind, target.id
        )


@dataclass(slots=True)
class ReconciliationEngine:
    """Drive fetch, normalize, apply and cursor advance for ledger streams."""

    fetcher: LedgerEventFetcher
    normalize: NormalizeEvent
    unit_of_work: Callable[[], LedgerUnitOfWork]
    config: SyncConfig = field(default_factory=SyncConfig)
    alert: AlertSink = log_alert
    clock: Callable[[], datetime] = utcnow

    def run_cycle(self, stream: str) -> CycleResult:
        """Retry orphans of ``stream``, then apply batches until caught up or capped."""

        result = CycleResult(stream=stream)
        self.retry_orphans(stream, result=result)
        for _ in range(self.config.max_batches_per_cycle):
            if self._run_batch(stream, result):
                result.caught_up = True
                break
        log.info(
            "Cycle %s: fetched=%d created=%d transitioned=%d duplicates=%d "
            "failures=%d orphaned=%d cursor=%s",
            stream,
            result.fetched,
            result.created,
            result.transitioned,
            result.duplicates,
            result.failures,
            result.orphaned,
            result.cursor,
        )
        return result

    def fold_local(
        self, facts: Iterable[LedgerFact], *, stream: str = LOCAL_STREAM
    ) -> CycleResult:
        """Apply locally produced facts through the same idempotent path as ledger facts."""

        result = CycleResult(stream=stream)
        with self.unit_of_work() as uow:
            session = self._session(uow.repositories, stream, self.clock(), result)
            for fact in facts:
                session.apply(fact)
            session.finish()
            uow.commit()
        return result

    def retry_orphans(self, stream: str, *, result: CycleResult | None = None) -> CycleResult:
        """Re-attempt held transitions of ``stream`` and age the ones still missing."""

        result = result or CycleResult(stream=stream)
        now = self.clock()
        timeouts: list[OrphanedTransitionTimeout] = []
        with self.unit_of_work() as uow:
            repositories = uow.repositories
            applier = FactApplier(repositories, now)
            for orphan in repositories.orphans.pending_for_stream(stream):
                outcome = applier(orphan.fact)
                if outcome.settled:
                    repositories.orphans.remove(orphan)
                    result.resolved_orphans += 1
                    result.record(outcome)
                    continue
                orphan.cycles += 1
                orphan.last_attempt_at = now
                if orphan.cycles >= self.config.orphan_horizon_cycles:
                    orphan.status = OrphanStatus.EXPIRED
                    result.expired_orphans += 1
                    timeouts.append(OrphanedTransitionTimeout(orphan))
            uow.commit()
        for timeout in timeouts:
            self.alert(timeout)
        return result

    def _run_batch(self, stream: str, result: CycleResult) -> bool:
        with self.unit_of_work() as uow:
            start = CursorStore(uow.repositories.cursors).get(stream)
        result.cursor = start

        batch = self.fetcher(stream, start, self.config.batch_size)
        last_position = batch.last_position
        if last_position is None:
            return True

        now = self.clock()
        with self.unit_of_work() as uow:
            repositories = uow.repositories
            session = self._session(repositories, stream, now, result)
            for raw in batch.events:
                normalized = self.normalize(raw)
                if isinstance(normalized, NormalizationFailure):
                    self._record_failure(repositories, normalized, now, result)
                    continue
                session.apply(normalized)
            session.finish()
            CursorStore(repositories.cursors).advance(
                stream, last_position, expected=start, now=now
            )
            uow.commit()

        result.batches += 1
        result.fetched += len(batch.events)
        result.cursor = last_position
        return batch.end_of_stream

    def _session(
        self,
        repositories: LedgerRepositories,
        stream: str,
        now: datetime,
        result: CycleResult,
    ) -> _BatchSession:
        return _BatchSession(
            repositories=repositories,
            stream=stream,
            now=now,
            result=result,
            pending=PendingTransitions(self.config.max_pending_transitions),
        )

    @staticmethod
    def _record_failure(
        repositories: LedgerRepositories,
        failure: NormalizationFailure,
        now: datetime,
        result: CycleResult,
    ) -> None:
        result.failures += 1
        recorded = repositories.failures.record(
            FactFailure(
                ledger_id=failure.ledger_id,
                stream=failure.stream,
                position=failure.position,
                reason=failure.reason,
                recorded_at=now,
            )
        )
        if recorded:
            log.warning(
                "Skipping malformed event %s at %s on %s: %s",
                failure.ledger_id,
                failure.position,
                failure.stream,
                failure.reason,
            )
