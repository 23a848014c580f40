from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING, cast

from dotenv import load_dotenv

from histomerge.app import (
    history_as_of,
    pending_reviews,
    record_milestone,
    run_batch_from_files,
    verify_entity_history,
)
from histomerge.config import configure_logging
from histomerge.domain.model import BatchStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from histomerge.domain.pipeline import BatchReport

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile and historize source records")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run one batch of landed source records")
    run.add_argument(
        "--config",
        type=Path,
        help="Engine configuration (TOML); defaults to HISTOMERGE_CONFIG",
    )
    run.add_argument(
        "--input",
        type=Path,
        required=True,
        help="JSON Lines file with one source record per line",
    )
    run.add_argument("--batch-id", type=str, required=True, help="Stable id of the batch")
    run.add_argument(
        "--batch-time",
        type=str,
        help="ISO-8601 timestamp (UTC) the batch takes effect at (defaults to now)",
    )
    run.add_argument(
        "--max-workers",
        type=int,
        help="Entity types processed in parallel (defaults to HISTOMERGE_MAX_WORKERS)",
    )

    as_of = subparsers.add_parser("as-of", help="Show the version valid at a point in time")
    as_of.add_argument("--entity-type", type=str, required=True)
    as_of.add_argument("--master-id", type=str, required=True)
    as_of.add_argument("--at", type=str, required=True, help="ISO-8601 timestamp (UTC)")

    verify = subparsers.add_parser("verify", help="Check history invariants of an entity type")
    verify.add_argument("--entity-type", type=str, required=True)

    milestone = subparsers.add_parser("milestone", help="Record one process milestone")
    milestone.add_argument("--config", type=Path, help="Engine configuration (TOML)")
    milestone.add_argument("--process-type", type=str, required=True)
    milestone.add_argument("--process-id", type=str, required=True)
    milestone.add_argument("--name", type=str, required=True, help="Milestone name")
    milestone.add_argument("--at", type=str, required=True, help="ISO-8601 timestamp (UTC)")
    milestone.add_argument("--payload", type=str, help="JSON object stored with the milestone")
    milestone.add_argument(
        "--batch-id",
        type=str,
        help="Batch id recorded on the slot (defaults to a timestamped manual id)",
    )

    reviews = subparsers.add_parser("reviews", help="List the manual review queue")
    reviews.add_argument("--batch-id", type=str, help="Only items raised by this batch")

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _parse_payload(value: str | None) -> dict[str, object]:
    if value is None:
        return {}
    try:
        loaded = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON payload: {value}") from exc
    if not isinstance(loaded, dict):
        raise ValueError("Milestone payload must be a JSON object")  # noqa: TRY004
    return cast(dict[str, object], loaded)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _validate(args: argparse.Namespace) -> dict[str, object]:
    """Parse option values that argparse leaves as strings."""

    values: dict[str, object] = {}
    if args.command == "run":
        if args.max_workers is not None and args.max_workers < 1:
            raise ValueError("--max-workers must be at least 1")
        values["batch_time"] = (
            _parse_iso_datetime(args.batch_time) if args.batch_time else None
        )
    elif args.command in {"as-of", "milestone"}:
        values["at"] = _parse_iso_datetime(args.at)
    if args.command == "milestone":
        values["payload"] = _parse_payload(args.payload)
    return values


def _log_report(report: BatchReport) -> None:
    for entity_type, outcome in report.outcomes.items():
        counters = outcome.counters
        log.info(
            "%s: %s read=%s groups=%s conflicts=%s reviews=%s written=%s rejected=%s %s",
            entity_type,
            outcome.status,
            counters.records_read,
            counters.groups_resolved,
            counters.conflicts_logged,
            counters.reviews_queued,
            counters.rows_written,
            counters.rows_rejected,
            dict(counters.effects),
        )
        if outcome.error:
            log.error("%s failed: %s", entity_type, outcome.error)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        values = _validate(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    exit_code = 0
    try:
        if parsed_args.command == "run":
            report = run_batch_from_files(
                config_path=parsed_args.config,
                input_path=parsed_args.input,
                batch_id=parsed_args.batch_id,
                batch_time=cast("datetime | None", values["batch_time"]),
                max_workers=parsed_args.max_workers,
            )
            _log_report(report)
            if any(
                outcome.status is not BatchStatus.SUCCEEDED
                for outcome in report.outcomes.values()
            ):
                exit_code = 1
        elif parsed_args.command == "as-of":
            version = history_as_of(
                entity_type=parsed_args.entity_type,
                master_id=parsed_args.master_id,
                at=cast(datetime, values["at"]),
            )
            if version is None:
                log.info("No version of %s valid at %s", parsed_args.master_id, values["at"])
                exit_code = 1
            else:
                log.info(
                    "%s v%s [%s, %s): %s",
                    version.master_id,
                    version.version_number,
                    version.valid_from.isoformat(),
                    version.valid_to.isoformat(),
                    json.dumps(version.version_fields, sort_keys=True, default=str),
                )
        elif parsed_args.command == "verify":
            problems = verify_entity_history(entity_type=parsed_args.entity_type)
            for master_id, found in problems.items():
                log.error("%s: %s", master_id, "; ".join(found))
            if problems:
                exit_code = 1
        elif parsed_args.command == "milestone":
            at = cast(datetime, values["at"])
            effect = record_milestone(
                config_path=parsed_args.config,
                process_type=parsed_args.process_type,
                process_id=parsed_args.process_id,
                milestone_name=parsed_args.name,
                at=at,
                payload=cast(dict[str, object], values["payload"]),
                batch_id=parsed_args.batch_id or f"manual-{_utcnow().strftime('%Y%m%dT%H%M%S')}",
            )
            log.info("Milestone effect: %s", effect)
        elif parsed_args.command == "reviews":
            items = pending_reviews(batch_id=parsed_args.batch_id)
            for item in items:
                log.info(
                    "[%s] %s %s: %s %s",
                    item.batch_id,
                    item.entity_type,
                    item.master_id,
                    item.reason,
                    json.dumps(item.detail, sort_keys=True, default=str),
                )
            log.info("%s review items", len(items))
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
