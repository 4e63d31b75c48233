# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv

from ledgersync.app import (
    DEFAULT_STREAMS,
    get_verification_job,
    has_active_license,
    list_licenses,
    list_orphans,
    purge_verification_jobs,
    run_service,
    submit_verification,
    sync_ledger_events,
)
from ledgersync.config import configure_logging
from ledgersync.domain.jobs import to_status_document

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile Sui licensing events into ledgersync")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run one reconciliation cycle per stream")
    sync.add_argument(
        "--stream",
        action="append",
        choices=DEFAULT_STREAMS,
        help="Stream to sync; repeat for several (default: all)",
    )
    sync.add_argument(
        "--max-batches",
        type=int,
        help="Maximum number of batches per stream before stopping (defaults to config)",
    )

    run = subparsers.add_parser("run", help="Run the sync driver until interrupted")
    run.add_argument(
        "--stream",
        action="append",
        choices=DEFAULT_STREAMS,
        help="Stream to follow; repeat for several (default: all)",
    )
    run.add_argument(
        "--no-jobs",
        action="store_true",
        help="Do not start verification job workers",
    )

    jobs = subparsers.add_parser("jobs", help="Verification job commands")
    jobs_sub = jobs.add_subparsers(dest="jobs_command", required=True)
    submit = jobs_sub.add_parser("submit", help="Queue a verification job")
    submit.add_argument("--user-id", type=str, required=True, help="Submitting user")
    submit.add_argument(
        "--input-ref",
        type=str,
        required=True,
        help="Content id of the dataset to verify",
    )
    submit.add_argument("--size", type=int, help="Dataset size in bytes")
    submit.add_argument("--filename", type=str, help="Uploaded file name")
    submit.add_argument("--file-type", type=str, help="Uploaded MIME type")
    status = jobs_sub.add_parser("status", help="Show a verification job")
    status.add_argument("job_id", type=str, help="Job id returned by submit")
    purge = jobs_sub.add_parser("purge", help="Delete finished jobs past retention")
    purge.add_argument(
        "--retention-hours",
        type=float,
        help="Keep jobs finished within this many hours (defaults to config)",
    )

    orphans = subparsers.add_parser("orphans", help="Held transition commands")
    orphans_sub = orphans.add_subparsers(dest="orphans_command", required=True)
    orphans_list = orphans_sub.add_parser("list", help="List held transitions")
    orphans_list.add_argument(
        "--expired",
        action="store_true",
        help="Only list transitions past the orphan horizon",
    )

    licenses = subparsers.add_parser("licenses", help="License projection commands")
    licenses_sub = licenses.add_subparsers(dest="licenses_command", required=True)
    check = licenses_sub.add_parser("check", help="Check for an active license")
    check.add_argument("--dataset-cid", type=str, required=True, help="Dataset content id")
    check.add_argument("--licensee", type=str, required=True, help="Licensee address")
    licenses_list = licenses_sub.add_parser("list", help="List licenses of a dataset or licensee")
    owner = licenses_list.add_mutually_exclusive_group(required=True)
    owner.add_argument("--dataset-cid", type=str, help="Dataset content id")
    owner.add_argument("--licensee", type=str, help="Licensee address")

    return parser.parse_args(list(argv))


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _validate(args: argparse.Namespace) -> None:
    if args.command == "sync" and args.max_batches is not None and args.max_batches < 1:
        raise ValueError("--max-batches must be at least 1")
    if args.command == "jobs":
        if args.jobs_command == "status":
            args.job_id = _parse_uuid(args.job_id)
        elif args.jobs_command == "submit" and args.size is not None and args.size < 0:
            raise ValueError("--size must be non-negative")
        elif (
            args.jobs_command == "purge"
            and args.retention_hours is not None
            and args.retention_hours < 0
        ):
            raise ValueError("Retention hours must be non-negative")


def _submit_input(args: argparse.Namespace) -> dict[str, object]:
    values = {"file_size": args.size, "filename": args.filename, "file_type": args.file_type}
    return {key: value for key, value in values.items() if value is not None}


def _run_jobs(args: argparse.Namespace) -> int:
    if args.jobs_command == "submit":
        job_id = submit_verification(args.user_id, args.input_ref, input=_submit_input(args))
        print(job_id)
        return 0
    if args.jobs_command == "status":
        job = get_verification_job(args.job_id)
        if job is None:
            log.error("Job %s not found", args.job_id)
            return 1
        print(json.dumps(to_status_document(job), indent=2, sort_keys=True))
        return 0
    if args.jobs_command == "purge":
        retention = (
            timedelta(hours=args.retention_hours) if args.retention_hours is not None else None
        )
        purged = purge_verification_jobs(retention=retention)
        log.info("Purged %s verification jobs", purged)
        return 0
    raise ValueError(f"Unsupported jobs command: {args.jobs_command}")


def _run(args: argparse.Namespace) -> int:
    if args.command == "sync":
        results = sync_ledger_events(streams=args.stream, max_batches=args.max_batches)
        for result in results.values():
            log.info(
                "%s: applied=%s duplicates=%s failures=%s orphaned=%s caught_up=%s",
                result.stream,
                result.applied,
                result.duplicates,
                result.failures,
                result.orphaned,
                result.caught_up,
            )
        return 0
    if args.command == "run":
        run_service(streams=args.stream, with_jobs=not args.no_jobs)
        return 0
    if args.command == "jobs":
        return _run_jobs(args)
    if args.command == "orphans" and args.orphans_command == "list":
        for orphan in list_orphans(expired=args.expired):
            print(
                f"{orphan.status}\t{orphan.stream}\t{orphan.fact_kind}\t{orphan.ledger_id}"
                f"\t{orphan.target_kind}:{orphan.target_id}\tcycles={orphan.cycles}"
            )
        return 0
    if args.command == "licenses" and args.licenses_command == "check":
        active = has_active_license(args.dataset_cid, args.licensee)
        print("active" if active else "inactive")
        return 0 if active else 1
    if args.command == "licenses" and args.licenses_command == "list":
        for license_ in list_licenses(dataset_cid=args.dataset_cid, licensee=args.licensee):
            state = "revoked" if license_.revoked else "issued"
            expires = license_.expires_at.isoformat() if license_.expires_at else "-"
            print(
                f"{license_.ledger_id}\t{license_.dataset_cid}\t{license_.licensee}"
                f"\t{license_.license_type}\t{state}\texpires={expires}"
            )
        return 0
    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        _validate(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        code = _run(parsed_args)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)
    if code:
        sys.exit(code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    signal(SIGINT, sigint_handler)
    main()
