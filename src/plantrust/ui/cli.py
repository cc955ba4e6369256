from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv

from plantrust.app import (
    backfill_expirations,
    cleanup_expired,
    expiration_stats,
    list_pending_conflicts,
    pre_import_check,
    recalculate_confidence,
    resolve_import_conflict,
)
from plantrust.config import configure_logging
from plantrust.domain.model import ConflictStatus, RecordType

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

RESOLUTION_CHOICES = tuple(
    status.value for status in ConflictStatus if status is not ConflictStatus.PENDING
)


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected an integer, got {value!r}") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {parsed}")
    return parsed


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Maintain provider/plan acceptance trust data")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    cleanup = subparsers.add_parser("cleanup-expired", help="Delete expired evidence")
    cleanup.add_argument(
        "--dry-run",
        action="store_true",
        help="Only count expired rows, delete nothing",
    )
    cleanup.add_argument(
        "--batch-size",
        type=_positive_int,
        default=None,
        help="Rows deleted per transaction (defaults to config)",
    )

    subparsers.add_parser("expiration-stats", help="Report expiration buckets per table")

    backfill = subparsers.add_parser(
        "backfill-ttl",
        help="Give legacy rows without an expiration one",
    )
    backfill.add_argument(
        "--apply",
        action="store_true",
        help="Write the computed expirations (default only analyses)",
    )

    recalculate = subparsers.add_parser(
        "recalculate-confidence",
        help="Re-score verified acceptances so recency decay is applied",
    )
    recalculate.add_argument("--dry-run", action="store_true", help="Report without writing")
    recalculate.add_argument(
        "--limit",
        type=_positive_int,
        help="Maximum number of acceptances to process",
    )
    recalculate.add_argument(
        "--batch-size",
        type=_positive_int,
        default=None,
        help="Acceptances per transaction (defaults to config)",
    )

    conflicts = subparsers.add_parser("conflicts", help="Import conflict commands")
    conflicts_sub = conflicts.add_subparsers(dest="conflicts_command", required=True)
    conflicts_list = conflicts_sub.add_parser("list", help="List pending import conflicts")
    conflicts_list.add_argument("--limit", type=_positive_int, default=50)
    conflicts_list.add_argument(
        "--record-type",
        choices=[record_type.value for record_type in RecordType],
        help="Only show conflicts for this record type",
    )
    conflicts_resolve = conflicts_sub.add_parser("resolve", help="Resolve one import conflict")
    conflicts_resolve.add_argument("conflict_id", type=str, help="Conflict id")
    conflicts_resolve.add_argument("outcome", choices=RESOLUTION_CHOICES)

    subparsers.add_parser(
        "pre-import-check",
        help="Summarise enriched data a raw import would have to preserve",
    )

    return parser.parse_args(list(argv))


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _run(args: argparse.Namespace) -> None:
    if args.command == "cleanup-expired":
        result = cleanup_expired(dry_run=args.dry_run, batch_size=args.batch_size)
        for table, expired in result.expired.items():
            log.info(
                "%s: expired=%s, deleted=%s%s",
                table,
                expired,
                result.deleted.get(table, 0),
                " (dry run)" if result.dry_run else "",
            )
    elif args.command == "expiration-stats":
        stats = expiration_stats()
        for table, table_stats in stats.tables.items():
            log.info(
                "%s: total=%s, with_ttl=%s, expired=%s, expiring_7d=%s, expiring_30d=%s",
                table,
                table_stats.total,
                table_stats.with_expiration,
                table_stats.expired,
                table_stats.expiring_within_7_days,
                table_stats.expiring_within_30_days,
            )
    elif args.command == "backfill-ttl":
        report = backfill_expirations(apply=args.apply)
        for table, table_report in report.tables.items():
            log.info(
                "%s: total=%s, missing_before=%s, updated=%s, missing_after=%s",
                table,
                table_report.total,
                table_report.missing_before,
                table_report.updated,
                table_report.missing_after,
            )
        if not report.applied:
            log.info("Analysis only; re-run with --apply to write expirations")
    elif args.command == "recalculate-confidence":
        recalculate_confidence(dry_run=args.dry_run, limit=args.limit, batch_size=args.batch_size)
    elif args.command == "conflicts" and args.conflicts_command == "list":
        record_type = RecordType(args.record_type) if args.record_type else None
        pending = list_pending_conflicts(limit=args.limit, record_type=record_type)
        for conflict in pending:
            log.info(
                "%s %s %s.%s: current=%r incoming=%r",
                conflict.id,
                conflict.record_type,
                conflict.target_record_id,
                conflict.field_name,
                conflict.current_value,
                conflict.incoming_value,
            )
        log.info("%s pending conflicts shown", len(pending))
    elif args.command == "conflicts" and args.conflicts_command == "resolve":
        conflict = resolve_import_conflict(
            _parse_uuid(args.conflict_id), ConflictStatus(args.outcome)
        )
        log.info("Conflict %s resolved as %s", conflict.id, conflict.status)
    elif args.command == "pre-import-check":
        check = pre_import_check()
        log.info(
            "enriched_providers=%s, enriched_locations=%s, pending_conflicts=%s",
            check.enriched_providers,
            check.enriched_locations,
            check.pending_conflicts,
        )
    else:
        raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        _run(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)


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
