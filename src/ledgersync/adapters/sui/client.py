"""JSON-RPC client for reading Move events from a Sui full node."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from ledgersync.adapters.http_resilience import ResilientClient
from ledgersync.config.sui import SuiConfig, get_sui_config
from ledgersync.domain.errors import PermanentFetchError, TransientFetchError
from ledgersync.domain.model import LEDGER_FACT_KINDS
from ledgersync.domain.ports.fetching import FetchedBatch, LedgerEventFetcher

from .schema import EventId, EventPage, QueryEventsResponse
from .translator import to_raw_event

if TYPE_CHECKING:
    from collections.abc import Callable

    from ledgersync.config.http_resilience import ResilienceConfig

log = getLogger(__name__)

QUERY_EVENTS_METHOD = "suix_queryEvents"
SUI_MAX_PAGE_SIZE = 50

# JSON-RPC codes that no amount of retrying will fix.
_PERMANENT_RPC_CODES = frozenset({-32700, -32600, -32601, -32602})


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def decode_cursor(token: str | None, *, stream: str) -> dict[str, str] | None:
    """EventId mapping for a stored cursor token (``None`` starts from the beginning)."""

    if token is None:
        return None
    try:
        event_id = EventId.model_validate_json(token)
    except ValidationError as exc:
        raise PermanentFetchError(f"Invalid cursor token {token!r}", stream=stream) from exc
    return event_id.model_dump(by_alias=True)


def query_params(event_type: str, cursor: dict[str, str] | None, limit: int) -> list[Any]:
    # Trailing False asks for ascending order.
    return [{"MoveEventType": event_type}, cursor, limit, False]


@dataclass(slots=True)
class SuiEventFetcher:
    """Fetch ascending Move events of one contract event type per stream.

    Streams are named after the Move event struct (``LicenseIssued`` ...).
    """

    config: SuiConfig = field(default_factory=get_sui_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    streams: frozenset[str] = field(
        default_factory=lambda: frozenset(str(kind) for kind in LEDGER_FACT_KINDS)
    )

    def __call__(self, stream: str, from_token: str | None, max_batch: int) -> FetchedBatch:
        return asyncio.run(self.fetch(stream, from_token, max_batch))

    async def fetch(self, stream: str, from_token: str | None, max_batch: int) -> FetchedBatch:
        if stream not in self.streams:
            raise PermanentFetchError(f"Unknown stream {stream!r}", stream=stream)
        cursor = decode_cursor(from_token, stream=stream)
        limit = max(1, min(max_batch, SUI_MAX_PAGE_SIZE))
        params = query_params(self.config.event_type(stream), cursor, limit)

        async with self.client_factory(self.config.resilience) as client:
            page = await self._query(client, stream, params)

        events = [to_raw_event(stream, event) for event in page.data]
        log.debug(
            "Fetched %d %s events after %s (has_next_page=%s)",
            len(events),
            stream,
            from_token,
            page.has_next_page,
        )
        return FetchedBatch(events=events, end_of_stream=not (events and page.has_next_page))

    async def _query(
        self, client: ResilientClient, stream: str, params: list[Any]
    ) -> EventPage:
        try:
            response = await client.call(self.config.rpc_url, QUERY_EVENTS_METHOD, params)
        except httpx.TimeoutException as exc:
            raise TransientFetchError(f"Sui RPC timed out: {exc}", stream=stream) from exc
        except httpx.TransportError as exc:
            raise TransientFetchError(f"Sui RPC unreachable: {exc}", stream=stream) from exc

        status = response.status_code
        if status == httpx.codes.TOO_MANY_REQUESTS or status >= 500:
            raise TransientFetchError(f"Sui RPC returned HTTP {status}", stream=stream)
        if status >= 400:
            raise PermanentFetchError(f"Sui RPC rejected the query: HTTP {status}", stream=stream)

        try:
            payload = QueryEventsResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise TransientFetchError(
                f"Malformed Sui RPC response: {exc.error_count()} errors", stream=stream
            ) from exc

        if payload.error is not None:
            error = payload.error
            log.error(f"Sui RPC error {error.code} on {stream}: {error.message}")
            if error.code in _PERMANENT_RPC_CODES:
                raise PermanentFetchError(
                    f"Sui RPC error {error.code}: {error.message}", stream=stream
                )
            raise TransientFetchError(f"Sui RPC error {error.code}: {error.message}", stream=stream)
        if payload.result is None:
            raise TransientFetchError("Sui RPC response has neither result nor error", stream=stream)
        return payload.result


if TYPE_CHECKING:
    _fetcher_check: LedgerEventFetcher = SuiEventFetcher()
