"""Pydantic models describing the Sui JSON-RPC event payloads."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _u64(value: object) -> object:
    """Sui serializes ``u64`` as a decimal string."""

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            raise ValueError(f"not an unsigned integer: {value!r}")
        return int(stripped)
    if isinstance(value, bool):
        raise ValueError("boolean is not an unsigned integer")
    if isinstance(value, int) and value < 0:
        raise ValueError(f"negative value for u64: {value}")
    return value


def _move_string(value: object) -> object:
    """Accept ``vector<u8>`` as a byte list as well as an already decoded string."""

    if isinstance(value, Sequence) and not isinstance(value, str | bytes):
        try:
            return bytes(value).decode("utf-8")  # pyright: ignore[reportArgumentType]
        except (TypeError, ValueError) as exc:
            raise ValueError(f"not a UTF-8 byte vector: {exc}") from exc
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if isinstance(value, str):
        return value.strip()
    return value


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


class SuiBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EventId(SuiBaseModel):
    tx_digest: str = Field(alias="txDigest", min_length=1)
    event_seq: str = Field(alias="eventSeq")

    @field_validator("event_seq", mode="before")
    @classmethod
    def _stringify_seq(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def token(self) -> str:
        return self.model_dump_json(by_alias=True)


class SuiEvent(SuiBaseModel):
    id: EventId
    package_id: str | None = Field(default=None, alias="packageId")
    transaction_module: str | None = Field(default=None, alias="transactionModule")
    sender: str | None = None
    type: str
    parsed_json: dict[str, Any] = Field(default_factory=dict[str, Any], alias="parsedJson")
    timestamp_ms: int | None = Field(default=None, alias="timestampMs")

    _parse_timestamp = field_validator("timestamp_ms", mode="before")(_u64)


class EventPage(SuiBaseModel):
    data: list[SuiEvent] = Field(default_factory=list["SuiEvent"])
    next_cursor: EventId | None = Field(default=None, alias="nextCursor")
    has_next_page: bool = Field(default=False, alias="hasNextPage")


class RpcErrorPayload(SuiBaseModel):
    code: int
    message: str = ""
    data: Any = None


class QueryEventsResponse(SuiBaseModel):
    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: EventPage | None = None
    error: RpcErrorPayload | None = None


# Move event payloads (``parsedJson``)


class MovePayload(SuiBaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)


class DatasetRegisteredPayload(MovePayload):
    dataset_id: str | None = None
    cid: str = Field(min_length=1)
    owner: str | None = None
    title: str | None = None
    registered_at: int | None = None

    _decode_strings = field_validator("cid", "title", mode="before")(_move_string)
    _parse_u64 = field_validator("registered_at", mode="before")(_u64)
    _blank_ids = field_validator("dataset_id", "owner", mode="before")(_blank_to_none)


class LicenseIssuedPayload(MovePayload):
    license_id: str = Field(min_length=1)
    dataset_cid: str = Field(min_length=1)
    licensee: str = Field(min_length=1)
    license_type: str = Field(min_length=1)
    issued_at: int
    expires_at: int | None = None
    dataset_owner: str | None = None

    _decode_strings = field_validator("dataset_cid", "license_type", mode="before")(_move_string)
    _parse_u64 = field_validator("issued_at", "expires_at", mode="before")(_u64)
    _blank_owner = field_validator("dataset_owner", mode="before")(_blank_to_none)


class LicenseRevokedPayload(MovePayload):
    license_id: str = Field(min_length=1)
    dataset_cid: str | None = None
    licensee: str | None = None
    revoked_at: int | None = None
    revoked_by: str | None = None

    _decode_strings = field_validator("dataset_cid", mode="before")(_move_string)
    _parse_u64 = field_validator("revoked_at", mode="before")(_u64)
    _blank_ids = field_validator("licensee", "revoked_by", mode="before")(_blank_to_none)
