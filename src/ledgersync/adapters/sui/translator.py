"""Translate Sui events into raw events and raw events into ledger facts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from ledgersync.domain.model import (
    LEDGER_FACT_KINDS,
    DatasetRegistered,
    FactKind,
    LicenseIssued,
    LicenseRevoked,
    NormalizationFailure,
    RawEvent,
    Unrecognized,
)
from ledgersync.domain.reconciliation.normalize import move_struct_name

from .schema import (
    DatasetRegisteredPayload,
    LicenseIssuedPayload,
    LicenseRevokedPayload,
    MovePayload,
    SuiEvent,
    ms_to_datetime,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ledgersync.domain.model import LedgerFact

_PAYLOAD_TYPES: dict[FactKind, type[MovePayload]] = {
    FactKind.DATASET_REGISTERED: DatasetRegisteredPayload,
    FactKind.LICENSE_ISSUED: LicenseIssuedPayload,
    FactKind.LICENSE_REVOKED: LicenseRevokedPayload,
}

_ID_FIELDS = ("license_id", "dataset_id", "cid")


def to_raw_event(stream: str, event: SuiEvent) -> RawEvent:
    return RawEvent(
        stream=stream,
        position=event.id.token(),
        event_type=event.type,
        payload=dict(event.parsed_json),
        sender=event.sender,
        timestamp_ms=event.timestamp_ms,
        tx_digest=event.id.tx_digest,
    )


def fact_kind_of(event_type: str) -> FactKind | None:
    """Ledger fact kind named by a Move event type, if it is one this service knows."""

    try:
        kind = FactKind(move_struct_name(event_type))
    except ValueError:
        return None
    return kind if kind in LEDGER_FACT_KINDS else None


def normalize_sui_event(raw: RawEvent) -> LedgerFact | NormalizationFailure:
    """Validate ``raw.payload`` for its Move type; never raises for bad payloads."""

    kind = fact_kind_of(raw.event_type)
    if kind is None:
        return Unrecognized(
            ledger_id=raw.position,
            event_type=raw.event_type,
            subject=raw.sender,
            position=raw.position,
            tx_digest=raw.tx_digest,
        )

    try:
        payload = _PAYLOAD_TYPES[kind].model_validate(raw.payload)
        return _to_fact(payload, raw)
    except ValidationError as exc:
        reason = _summarize(exc)
    except (OverflowError, OSError, ValueError) as exc:
        reason = f"timestamp out of range: {exc}"
    return NormalizationFailure(
        ledger_id=_readable_id(raw.payload) or raw.position,
        stream=raw.stream,
        position=raw.position,
        reason=f"{kind}: {reason}",
    )


def _to_fact(payload: MovePayload, raw: RawEvent) -> LedgerFact:
    if isinstance(payload, DatasetRegisteredPayload):
        return _dataset_registered(payload, raw)
    if isinstance(payload, LicenseIssuedPayload):
        return _license_issued(payload, raw)
    if isinstance(payload, LicenseRevokedPayload):
        return _license_revoked(payload, raw)
    raise TypeError(f"No translation for {type(payload).__name__}")  # pragma: no cover


def _dataset_registered(payload: DatasetRegisteredPayload, raw: RawEvent) -> DatasetRegistered:
    registered_at = payload.registered_at or raw.timestamp_ms
    return DatasetRegistered(
        ledger_id=payload.dataset_id or payload.cid,
        content_id=payload.cid,
        subject=payload.owner or raw.sender,
        occurred_at=ms_to_datetime(registered_at) if registered_at else None,
        position=raw.position,
        tx_digest=raw.tx_digest,
        title=payload.title,
    )


def _license_issued(payload: LicenseIssuedPayload, raw: RawEvent) -> LicenseIssued:
    issued_at = ms_to_datetime(payload.issued_at)
    return LicenseIssued(
        ledger_id=payload.license_id,
        content_id=payload.dataset_cid,
        subject=payload.licensee,
        occurred_at=issued_at,
        position=raw.position,
        tx_digest=raw.tx_digest,
        license_type=payload.license_type,
        issued_at=issued_at,
        # zero means the license never expires
        expires_at=ms_to_datetime(payload.expires_at) if payload.expires_at else None,
        dataset_owner=payload.dataset_owner,
    )


def _license_revoked(payload: LicenseRevokedPayload, raw: RawEvent) -> LicenseRevoked:
    revoked_ms = payload.revoked_at or raw.timestamp_ms
    revoked_at = ms_to_datetime(revoked_ms) if revoked_ms else None
    return LicenseRevoked(
        ledger_id=payload.license_id,
        content_id=payload.dataset_cid,
        subject=payload.licensee,
        occurred_at=revoked_at,
        position=raw.position,
        tx_digest=raw.tx_digest,
        revoked_at=revoked_at,
        revoked_by=payload.revoked_by or raw.sender,
    )


def _readable_id(payload: Mapping[str, object]) -> str | None:
    if not hasattr(payload, "get"):
        return None
    for name in _ID_FIELDS:
        value = payload.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _summarize(exc: ValidationError) -> str:
    parts = [
        f"{'.'.join(str(item) for item in error['loc']) or 'payload'}: {error['msg']}"
        for error in exc.errors()
    ]
    return "; ".join(parts)
