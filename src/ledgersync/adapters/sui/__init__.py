"""Public interface for the Sui ledger adapter."""

from __future__ import annotations

from .client import SuiEventFetcher, decode_cursor, query_params
from .schema import EventId, EventPage, QueryEventsResponse, SuiEvent
from .translator import fact_kind_of, normalize_sui_event, to_raw_event

__all__ = [
    "EventId",
    "EventPage",
    "QueryEventsResponse",
    "SuiEvent",
    "SuiEventFetcher",
    "decode_cursor",
    "fact_kind_of",
    "normalize_sui_event",
    "query_params",
    "to_raw_event",
]
