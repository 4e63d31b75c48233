from __future__ import annotations

from datetime import UTC, datetime
from http import HTTPStatus
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from ledgersync.domain.errors import RateLimited
from ledgersync.domain.model import JobStatus, VerificationJob
from ledgersync.ui.http import (
    job_status_response,
    rate_limited_headers,
    retry_after_seconds,
    submit_response,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

CREATED = datetime(2025, 3, 1, 12, tzinfo=UTC)


def _job(**kwargs: Any) -> VerificationJob:
    return VerificationJob(user_id="user-1", input_ref="bafy-1", created_at=CREATED, **kwargs)


def test_status_of_own_job() -> None:
    job = _job(
        status=JobStatus.COMPLETED,
        result={"verdict": "authentic"},
        completed_at=CREATED,
    )

    status, body = job_status_response(lambda _: job, str(job.id), requester="user-1")

    assert status == HTTPStatus.OK
    assert body == {
        "id": str(job.id),
        "userId": "user-1",
        "status": "completed",
        "createdAt": CREATED.isoformat(),
        "result": {"verdict": "authentic"},
        "completedAt": CREATED.isoformat(),
    }


def test_status_of_someone_elses_job_is_forbidden() -> None:
    job = _job()

    status, body = job_status_response(lambda _: job, str(job.id), requester="user-2")

    assert status == HTTPStatus.FORBIDDEN
    assert body == {"error": "Forbidden"}


def test_unknown_or_malformed_job_id_is_not_found() -> None:
    lookups: list[UUID] = []

    def lookup(job_id: UUID) -> None:
        lookups.append(job_id)

    missing = uuid4()

    assert job_status_response(lookup, str(missing)) == (
        HTTPStatus.NOT_FOUND,
        {"error": "Job not found"},
    )
    assert job_status_response(lookup, "not-a-uuid")[0] == HTTPStatus.NOT_FOUND
    assert lookups == [missing]


def test_submit_accepts_with_job_id() -> None:
    job_id = uuid4()
    received: dict[str, Any] = {}

    def submit(
        user_id: str,
        input_ref: str,
        *,
        input: Mapping[str, Any] | None,  # noqa: A002
    ) -> UUID:
        received.update(user_id=user_id, input_ref=input_ref, input=input)
        return job_id

    status, body = submit_response(submit, "user-1", "bafy-1", input={"file_size": 10})

    assert status == HTTPStatus.ACCEPTED
    assert body == {
        "jobId": str(job_id),
        "status": "pending",
        "message": "Verification job queued",
    }
    assert received == {"user_id": "user-1", "input_ref": "bafy-1", "input": {"file_size": 10}}


def test_status_read_over_budget_is_rate_limited() -> None:
    error = RateLimited("user-1", "authenticated_read", retry_after=12.5)

    def lookup(job_id: UUID) -> VerificationJob | None:
        _ = job_id
        raise error

    status, body = job_status_response(lookup, str(uuid4()), requester="user-1")

    assert status == HTTPStatus.TOO_MANY_REQUESTS
    assert body["retryAfter"] == 13


def test_submit_rate_limited_reports_retry_after() -> None:
    error = RateLimited("user-1", "ingest_trigger", retry_after=44.2)

    def submit(*_: object, **__: object) -> UUID:
        raise error

    status, body = submit_response(submit, "user-1", "bafy-1")

    assert status == HTTPStatus.TOO_MANY_REQUESTS
    assert body["retryAfter"] == 45
    assert "Too many requests" in body["error"]
    assert rate_limited_headers(error) == {"Retry-After": "45"}


def test_submit_validation_error_is_bad_request() -> None:
    def submit(*_: object, **__: object) -> UUID:
        raise ValueError("input_ref is required")

    assert submit_response(submit, "user-1", "") == (
        HTTPStatus.BAD_REQUEST,
        {"error": "input_ref is required"},
    )


def test_retry_after_is_at_least_one_second() -> None:
    assert retry_after_seconds(RateLimited("u", "x", retry_after=0.01)) == 1
