"""Framework-neutral request handlers for the job status and submission endpoints.

Handlers return ``(status_code, body)`` pairs with JSON-ready bodies; the HTTP
front door that serves them lives outside this package. Error bodies are
always ``{"error": ...}`` mappings without tracebacks.
"""

from __future__ import annotations

import math
from http import HTTPStatus
from logging import getLogger
from typing import TYPE_CHECKING, Any
from uuid import UUID

from ledgersync.domain.errors import RateLimited
from ledgersync.domain.jobs import to_status_document

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ledgersync.domain.model import VerificationJob

log = getLogger(__name__)

type JsonResponse = tuple[int, dict[str, Any]]


def error_body(message: str, **details: Any) -> dict[str, Any]:
    return {"error": message, **details}


def job_status_response(
    lookup: Callable[[UUID], VerificationJob | None],
    job_id: str,
    *,
    requester: str | None = None,
) -> JsonResponse:
    """Status document for ``job_id``; 403 when ``requester`` does not own the job.

    ``lookup`` may enforce the read budget by raising ``RateLimited``, which is
    answered with 429.
    """

    try:
        parsed = UUID(job_id)
    except ValueError:
        return HTTPStatus.NOT_FOUND, error_body("Job not found")

    try:
        job = lookup(parsed)
    except RateLimited as exc:
        return HTTPStatus.TOO_MANY_REQUESTS, rate_limited_body(exc)
    if job is None:
        return HTTPStatus.NOT_FOUND, error_body("Job not found")
    if requester is not None and requester != job.user_id:
        log.info("Refusing status of job %s to %s", job.id, requester)
        return HTTPStatus.FORBIDDEN, error_body("Forbidden")
    return HTTPStatus.OK, to_status_document(job)


def submit_response(
    submit: Callable[..., UUID],
    user_id: str,
    input_ref: str,
    *,
    input: Mapping[str, Any] | None = None,  # noqa: A002
) -> JsonResponse:
    """Queue a job and answer ``202`` with its id, mapping caller errors to 4xx bodies."""

    try:
        job_id = submit(user_id, input_ref, input=input)
    except RateLimited as exc:
        return HTTPStatus.TOO_MANY_REQUESTS, rate_limited_body(exc)
    except ValueError as exc:
        return HTTPStatus.BAD_REQUEST, error_body(str(exc))
    return HTTPStatus.ACCEPTED, {
        "jobId": str(job_id),
        "status": "pending",
        "message": "Verification job queued",
    }


def retry_after_seconds(exc: RateLimited) -> int:
    return max(1, math.ceil(exc.retry_after))


def rate_limited_body(exc: RateLimited) -> dict[str, Any]:
    return error_body(str(exc), retryAfter=retry_after_seconds(exc))


def rate_limited_headers(exc: RateLimited) -> dict[str, str]:
    return {"Retry-After": str(retry_after_seconds(exc))}
