from __future__ import annotations

from datetime import UTC, datetime, timedelta

from ledgersync.adapters.sui import SuiEvent, fact_kind_of, normalize_sui_event, to_raw_event
from ledgersync.domain.model import (
    DatasetRegistered,
    FactKind,
    LicenseIssued,
    LicenseRevoked,
    NormalizationFailure,
    RawEvent,
    Unrecognized,
)
from tests.helpers.ledger import ISSUED_AT_MS, LedgerStream, event_position, event_type


def test_to_raw_event_uses_event_id_token_as_position() -> None:
    event = SuiEvent.model_validate(
        {
            "id": {"txDigest": "d9", "eventSeq": "2"},
            "sender": "0xowner",
            "type": event_type("DatasetRegistered"),
            "parsedJson": {"cid": "bafy-9"},
            "timestampMs": str(ISSUED_AT_MS),
        }
    )

    raw = to_raw_event("DatasetRegistered", event)

    assert raw.position == event_position("d9", 2)
    assert raw.tx_digest == "d9"
    assert raw.payload == {"cid": "bafy-9"}
    assert raw.timestamp_ms == ISSUED_AT_MS


def test_fact_kind_of_known_and_unknown_types() -> None:
    assert fact_kind_of(event_type("LicenseIssued")) is FactKind.LICENSE_ISSUED
    assert fact_kind_of(event_type("PriceChanged")) is None
    # verifications are produced locally, never read from the ledger
    assert fact_kind_of(event_type("DatasetVerified")) is None


def test_dataset_registered_prefers_the_ledger_object_id() -> None:
    stream = LedgerStream("DatasetRegistered")
    with_id = normalize_sui_event(stream.dataset_registered("bafy-1", dataset_id="0xd1"))
    without_id = normalize_sui_event(stream.dataset_registered("bafy-2"))

    assert isinstance(with_id, DatasetRegistered)
    assert with_id.ledger_id == "0xd1"
    assert with_id.content_id == "bafy-1"
    assert with_id.subject == "0xowner"
    assert with_id.occurred_at == datetime.fromtimestamp(ISSUED_AT_MS / 1000, tz=UTC)
    assert isinstance(without_id, DatasetRegistered)
    assert without_id.ledger_id == "bafy-2"


def test_license_issued_treats_zero_expiry_as_perpetual() -> None:
    stream = LedgerStream("LicenseIssued")
    perpetual = normalize_sui_event(stream.license_issued("0xl1", "bafy-1"))
    expiring = normalize_sui_event(
        stream.license_issued("0xl2", "bafy-1", expires_at_ms=ISSUED_AT_MS + 86_400_000)
    )

    assert isinstance(perpetual, LicenseIssued)
    assert perpetual.expires_at is None
    assert perpetual.subject == "0xbuyer"
    assert perpetual.license_type == "commercial"
    assert isinstance(expiring, LicenseIssued)
    assert expiring.expires_at is not None
    assert expiring.expires_at - expiring.issued_at == timedelta(days=1)


def test_license_revoked_targets_the_license() -> None:
    fact = normalize_sui_event(LedgerStream("LicenseRevoked").license_revoked("0xl1"))

    assert isinstance(fact, LicenseRevoked)
    assert fact.target.id == "0xl1"
    assert fact.revoked_by == "0xowner"
    assert fact.revoked_at is not None


def test_unknown_event_type_is_unrecognized_not_a_failure() -> None:
    raw = LedgerStream("LicenseIssued").emit("PriceChanged", {"price": "10"})

    fact = normalize_sui_event(raw)

    assert isinstance(fact, Unrecognized)
    assert fact.ledger_id == raw.position
    assert fact.event_type == raw.event_type


def test_invalid_payload_becomes_a_failure_with_readable_id() -> None:
    raw = LedgerStream("LicenseIssued").emit(
        "LicenseIssued", {"license_id": "0xl9", "dataset_cid": "bafy-1"}
    )

    failure = normalize_sui_event(raw)

    assert isinstance(failure, NormalizationFailure)
    assert failure.ledger_id == "0xl9"
    assert failure.position == raw.position
    assert failure.stream == "LicenseIssued"
    assert "licensee" in failure.reason
    assert failure.reason.startswith("LicenseIssued")


def test_failure_without_identifier_falls_back_to_position() -> None:
    raw = RawEvent(
        stream="DatasetRegistered",
        position=event_position("d1"),
        event_type=event_type("DatasetRegistered"),
        payload={"title": "no cid"},
    )

    failure = normalize_sui_event(raw)

    assert isinstance(failure, NormalizationFailure)
    assert failure.ledger_id == raw.position


def test_out_of_range_timestamp_is_a_failure() -> None:
    raw = LedgerStream("LicenseIssued").emit(
        "LicenseIssued",
        {
            "license_id": "0xl1",
            "dataset_cid": "bafy-1",
            "licensee": "0xbuyer",
            "license_type": "commercial",
            "issued_at": str(2**64 - 1),
        },
    )

    failure = normalize_sui_event(raw)

    assert isinstance(failure, NormalizationFailure)
    assert "timestamp" in failure.reason
