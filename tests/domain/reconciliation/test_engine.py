from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import pytest

from ledgersync.adapters.sqlalchemy.mappings import (
    dataset_table,
    fact_failure_table,
    license_table,
    orphaned_transition_table,
)
from ledgersync.adapters.sui import normalize_sui_event
from ledgersync.config.sync import SyncConfig
from ledgersync.domain.errors import OrphanedTransitionTimeout, StaleAdvance
from ledgersync.domain.model import (
    DatasetVerified,
    NormalizationFailure,
    OrphanStatus,
    VerificationStatus,
)
from ledgersync.domain.reconciliation import LOCAL_STREAM, ReconciliationEngine
from tests.helpers.ledger import count_rows

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.engine import Engine

    from ledgersync.adapters.sqlalchemy.unit_of_work import SqlAlchemyLedgerUnitOfWork
    from ledgersync.domain.model import LedgerFact, License, RawEvent
    from ledgersync.domain.ports import FetchedBatch
    from tests.helpers.ledger import FakeLedgerFetcher, RecordingAlerts

    UowFactory = Callable[[], SqlAlchemyLedgerUnitOfWork]

VERIFIED_AT = datetime(2026, 3, 1, 12, tzinfo=UTC)


def make_engine(
    fetcher: FakeLedgerFetcher,
    unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    **config: Any,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        fetcher=fetcher,
        normalize=normalize_sui_event,
        unit_of_work=unit_of_work,
        config=SyncConfig(**config),
        alert=alerts,
    )


def _cursor(unit_of_work: UowFactory, stream: str) -> tuple[str | None, int]:
    with unit_of_work() as uow:
        cursor = uow.repositories.cursors.get(stream)
        assert cursor is not None
        return cursor.token, cursor.sequence


def _license(unit_of_work: UowFactory, ledger_id: str) -> License | None:
    with unit_of_work() as uow:
        return uow.repositories.licenses.get_by_ledger_id(ledger_id)


def test_batch_with_duplicates_creates_each_record_once_and_advances_once(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    stream = fetcher.stream("DatasetRegistered")
    for index in range(47):
        stream.dataset_registered(f"bafy-{index}")
    for index in (3, 17, 40):
        stream.dataset_registered(f"bafy-{index}")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts, batch_size=50)

    result = engine.run_cycle("DatasetRegistered")

    assert count_rows(sqlite_engine, dataset_table) == 47
    assert result.created == 47
    assert result.duplicates == 3
    assert result.batches == 1
    assert result.caught_up
    token, sequence = _cursor(ledger_unit_of_work, "DatasetRegistered")
    assert token == stream.events[-1].position
    assert sequence == 1


def test_rerunning_a_caught_up_stream_is_a_no_op(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    stream = fetcher.stream("DatasetRegistered")
    stream.dataset_registered("bafy-1")
    stream.dataset_registered("bafy-2")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)

    engine.run_cycle("DatasetRegistered")
    again = engine.run_cycle("DatasetRegistered")

    assert again.fetched == 0
    assert again.caught_up
    assert count_rows(sqlite_engine, dataset_table) == 2
    assert _cursor(ledger_unit_of_work, "DatasetRegistered")[1] == 1
    assert fetcher.calls[-1][1] == stream.events[-1].position


def test_cycle_applies_batches_in_order_until_caught_up(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
) -> None:
    stream = fetcher.stream("DatasetRegistered")
    for index in range(7):
        stream.dataset_registered(f"bafy-{index}")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts, batch_size=3)

    result = engine.run_cycle("DatasetRegistered")

    assert result.batches == 3
    assert result.created == 7
    assert [call[1] for call in fetcher.calls] == [
        None,
        stream.events[2].position,
        stream.events[5].position,
    ]
    assert _cursor(ledger_unit_of_work, "DatasetRegistered") == (stream.events[-1].position, 3)


def test_cycle_stops_at_the_batch_cap(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
) -> None:
    stream = fetcher.stream("DatasetRegistered")
    for index in range(5):
        stream.dataset_registered(f"bafy-{index}")
    engine = make_engine(
        fetcher, ledger_unit_of_work, alerts, batch_size=2, max_batches_per_cycle=1
    )

    result = engine.run_cycle("DatasetRegistered")

    assert result.batches == 1
    assert not result.caught_up
    assert result.cursor == stream.events[1].position


def test_revoke_before_issue_across_streams_ends_revoked(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    fetcher.stream("LicenseRevoked").license_revoked("0xlicense")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)

    revoked = engine.run_cycle("LicenseRevoked")

    assert revoked.orphaned == 1
    assert count_rows(sqlite_engine, orphaned_transition_table) == 1

    fetcher.stream("LicenseIssued").license_issued("0xlicense", "bafy-1")
    issued = engine.run_cycle("LicenseIssued")

    assert issued.created == 1
    assert issued.resolved_orphans == 1
    assert count_rows(sqlite_engine, orphaned_transition_table) == 0
    license_ = _license(ledger_unit_of_work, "0xlicense")
    assert license_ is not None
    assert license_.revoked
    assert license_.revoked_by == "0xowner"


def test_revoke_before_issue_in_one_batch_is_held_in_memory(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    stream = fetcher.stream("mixed")
    stream.license_revoked("0xlicense")
    stream.license_issued("0xlicense", "bafy-1")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)

    result = engine.run_cycle("mixed")

    assert result.created == 1
    assert result.transitioned == 1
    assert result.orphaned == 0
    assert count_rows(sqlite_engine, orphaned_transition_table) == 0
    license_ = _license(ledger_unit_of_work, "0xlicense")
    assert license_ is not None
    assert license_.revoked


def test_pending_overflow_is_persisted_and_still_resolved(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    stream = fetcher.stream("mixed")
    stream.license_revoked("0xl1")
    stream.license_revoked("0xl2")
    stream.license_issued("0xl1", "bafy-1")
    stream.license_issued("0xl2", "bafy-1")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts, max_pending_transitions=1)

    result = engine.run_cycle("mixed")

    assert result.transitioned == 2
    assert result.resolved_orphans == 1
    assert count_rows(sqlite_engine, orphaned_transition_table) == 0
    for ledger_id in ("0xl1", "0xl2"):
        license_ = _license(ledger_unit_of_work, ledger_id)
        assert license_ is not None
        assert license_.revoked


def test_orphan_past_horizon_expires_and_alerts_once(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
) -> None:
    fetcher.stream("LicenseRevoked").license_revoked("0xmissing")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts, orphan_horizon_cycles=2)

    engine.run_cycle("LicenseRevoked")
    engine.run_cycle("LicenseRevoked")
    assert alerts == []

    result = engine.run_cycle("LicenseRevoked")
    engine.run_cycle("LicenseRevoked")

    assert result.expired_orphans == 1
    assert len(alerts) == 1
    assert isinstance(alerts[0], OrphanedTransitionTimeout)
    with ledger_unit_of_work() as uow:
        (orphan,) = uow.repositories.orphans.list()
    assert orphan.status is OrphanStatus.EXPIRED
    assert orphan.cycles == 2


def test_expired_orphan_is_applied_when_its_target_finally_appears(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
) -> None:
    fetcher.stream("LicenseRevoked").license_revoked("0xlate")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts, orphan_horizon_cycles=1)
    engine.run_cycle("LicenseRevoked")
    engine.run_cycle("LicenseRevoked")
    assert len(alerts) == 1

    fetcher.stream("LicenseIssued").license_issued("0xlate", "bafy-1")
    engine.run_cycle("LicenseIssued")

    license_ = _license(ledger_unit_of_work, "0xlate")
    assert license_ is not None
    assert license_.revoked


def test_crash_mid_batch_redelivers_the_whole_batch(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    stream = fetcher.stream("DatasetRegistered")
    for index in range(10):
        stream.dataset_registered(f"bafy-{index}")
    crash_at = stream.events[6].position

    def crashing(raw: RawEvent) -> LedgerFact | NormalizationFailure:
        if raw.position == crash_at:
            raise RuntimeError("process died")
        return normalize_sui_event(raw)

    engine = make_engine(fetcher, ledger_unit_of_work, alerts)
    crashing_engine = ReconciliationEngine(
        fetcher=fetcher,
        normalize=crashing,
        unit_of_work=ledger_unit_of_work,
        config=engine.config,
        alert=alerts,
    )

    with pytest.raises(RuntimeError):
        crashing_engine.run_cycle("DatasetRegistered")

    assert count_rows(sqlite_engine, dataset_table) == 0
    with ledger_unit_of_work() as uow:
        assert uow.repositories.cursors.get("DatasetRegistered") is None

    result = engine.run_cycle("DatasetRegistered")

    assert result.created == 10
    assert count_rows(sqlite_engine, dataset_table) == 10
    assert fetcher.calls[-1][1] is None


def test_replay_after_lost_commit_is_idempotent(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    stream = fetcher.stream("mixed")
    stream.dataset_registered("bafy-1")
    stream.license_issued("0xl1", "bafy-1")
    stream.license_revoked("0xl1")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)
    engine.run_cycle("mixed")

    # Re-apply the same events as if the cursor had never moved.
    facts = [normalize_sui_event(raw) for raw in stream.events]
    result = engine.fold_local(
        [fact for fact in facts if not isinstance(fact, NormalizationFailure)], stream="mixed"
    )

    assert result.applied == 0
    assert result.duplicates == 3
    assert count_rows(sqlite_engine, dataset_table) == 1
    assert count_rows(sqlite_engine, license_table) == 1


def test_bad_payload_is_recorded_and_does_not_block_the_batch(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    stream = fetcher.stream("LicenseIssued")
    stream.license_issued("0xl1", "bafy-1")
    stream.emit("LicenseIssued", {"license_id": "0xbroken", "issued_at": "soon"})
    stream.license_issued("0xl2", "bafy-1")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)

    result = engine.run_cycle("LicenseIssued")
    engine.run_cycle("LicenseIssued")

    assert result.created == 2
    assert result.failures == 1
    assert count_rows(sqlite_engine, fact_failure_table) == 1
    with ledger_unit_of_work() as uow:
        (failure,) = uow.repositories.failures.list()
    assert failure.ledger_id == "0xbroken"
    assert failure.position == stream.events[1].position
    assert _cursor(ledger_unit_of_work, "LicenseIssued")[0] == stream.events[-1].position


def test_unrecognized_events_are_ignored_but_advance_the_cursor(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
) -> None:
    stream = fetcher.stream("mixed")
    stream.emit("PriceUpdated", {"dataset_cid": "bafy-1", "price": "10"})
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)

    result = engine.run_cycle("mixed")

    assert result.ignored == 1
    assert result.failures == 0
    assert _cursor(ledger_unit_of_work, "mixed")[0] == stream.events[0].position


def test_concurrent_advance_rolls_back_the_batch(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
    sqlite_engine: Engine,
) -> None:
    stream = fetcher.stream("DatasetRegistered")
    stream.dataset_registered("bafy-1")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)
    original = fetcher.__call__

    def racing_fetch(name: str, from_token: str | None, max_batch: int) -> FetchedBatch:
        batch = original(name, from_token, max_batch)
        # Another driver advances the same stream while this batch is in flight.
        with ledger_unit_of_work() as uow:
            uow.repositories.cursors.compare_and_set(
                name, expected=None, new_token="elsewhere", now=engine.clock()
            )
            uow.commit()
        return batch

    engine.fetcher = racing_fetch

    with pytest.raises(StaleAdvance):
        engine.run_cycle("DatasetRegistered")

    assert count_rows(sqlite_engine, dataset_table) == 0
    assert _cursor(ledger_unit_of_work, "DatasetRegistered") == ("elsewhere", 1)


def test_local_verification_fact_updates_the_dataset_once(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
) -> None:
    fetcher.stream("DatasetRegistered").dataset_registered("bafy-1")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)
    engine.run_cycle("DatasetRegistered")
    fact = DatasetVerified(
        ledger_id="job-1",
        content_id="bafy-1",
        subject="user-1",
        occurred_at=VERIFIED_AT,
        status=VerificationStatus.VERIFIED,
        verdict="authentic",
        confidence=0.9,
        quality_score=90.0,
    )

    first = engine.fold_local([fact])
    second = engine.fold_local([fact])

    assert first.transitioned == 1
    assert second.duplicates == 1
    with ledger_unit_of_work() as uow:
        dataset = uow.repositories.datasets.get_by_content_id("bafy-1")
    assert dataset is not None
    assert dataset.verification_status is VerificationStatus.VERIFIED
    assert dataset.verification_score == 90.0
    assert dataset.verification_job_id == "job-1"


def test_older_verification_redelivered_after_a_newer_one_is_a_noop(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
) -> None:
    fetcher.stream("DatasetRegistered").dataset_registered("bafy-1")
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)
    engine.run_cycle("DatasetRegistered")
    first = DatasetVerified(
        ledger_id="job-a",
        content_id="bafy-1",
        occurred_at=VERIFIED_AT,
        status=VerificationStatus.REJECTED,
        quality_score=20.0,
    )
    second = DatasetVerified(
        ledger_id="job-b",
        content_id="bafy-1",
        occurred_at=VERIFIED_AT + timedelta(minutes=5),
        status=VerificationStatus.VERIFIED,
        quality_score=95.0,
    )

    results = [engine.fold_local([fact]) for fact in (first, second, first)]

    assert [result.transitioned for result in results] == [1, 1, 0]
    assert results[2].duplicates == 1
    with ledger_unit_of_work() as uow:
        dataset = uow.repositories.datasets.get_by_content_id("bafy-1")
    assert dataset is not None
    assert dataset.verification_job_id == "job-b"
    assert dataset.verification_status is VerificationStatus.VERIFIED
    assert dataset.verified_at == second.occurred_at


def test_verification_fact_requires_a_timestamp() -> None:
    with pytest.raises(ValueError, match="occurred_at"):
        DatasetVerified(ledger_id="job-c", content_id="bafy-1", status=VerificationStatus.VERIFIED)


def test_local_fact_for_unknown_dataset_waits_for_registration(
    fetcher: FakeLedgerFetcher,
    ledger_unit_of_work: UowFactory,
    alerts: RecordingAlerts,
) -> None:
    engine = make_engine(fetcher, ledger_unit_of_work, alerts)
    fact = DatasetVerified(
        ledger_id="job-2",
        content_id="bafy-later",
        occurred_at=VERIFIED_AT,
        status=VerificationStatus.PENDING_REVIEW,
    )

    held = engine.fold_local([fact])
    assert held.orphaned == 1
    with ledger_unit_of_work() as uow:
        (orphan,) = uow.repositories.orphans.list()
    assert orphan.stream == LOCAL_STREAM

    fetcher.stream("DatasetRegistered").dataset_registered("bafy-later")
    result = engine.run_cycle("DatasetRegistered")

    assert result.resolved_orphans == 1
    with ledger_unit_of_work() as uow:
        dataset = uow.repositories.datasets.get_by_content_id("bafy-later")
    assert dataset is not None
    assert dataset.verification_status is VerificationStatus.PENDING_REVIEW
