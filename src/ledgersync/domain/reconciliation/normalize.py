"""Normalization contract between the fetcher and the reconciliation engine.

A normalizer turns one ``RawEvent`` into a typed ``LedgerFact``. It must never
raise for malformed payloads: it returns a ``NormalizationFailure`` instead, so
one bad event cannot poison the rest of its batch. Event kinds it does not know
become ``Unrecognized`` facts, which the engine accepts and ignores.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ledgersync.domain.model import LedgerFact, NormalizationFailure, RawEvent


class NormalizeEvent(Protocol):
    def __call__(self, raw: RawEvent) -> LedgerFact | NormalizationFailure: ...


def move_struct_name(event_type: str) -> str:
    """Return the struct name of a Move event type, without module path or generics.

    >>> move_struct_name("0x2::license::LicenseIssued<0x2::sui::SUI>")
    'LicenseIssued'
    """

    base = event_type.split("<", 1)[0]
    return base.rsplit("::", 1)[-1].strip()
