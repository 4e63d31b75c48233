"""Port for the collaborator that actually verifies a dataset."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class VerificationInput:
    job_id: str
    user_id: str
    input_ref: str
    filename: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict[str, Any])


@runtime_checkable
class VerificationRunner(Protocol):
    """Long-running, failable verification; any exception fails the job."""

    def __call__(self, request: VerificationInput) -> Mapping[str, Any]: ...


__all__ = ["VerificationInput", "VerificationRunner"]
