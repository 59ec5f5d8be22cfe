#!/usr/bin/env python3
"""
Run a recurrence job for one user, as a synchronous external caller.

Jobs:
    generate            Materialize every ACTIVE recurrence up to its horizon
                        (default).
    repair-dates        Rebuild generated instances whose dates drifted.
    cleanup-duplicates  Collapse duplicate recurrences and occurrences.
    migrate-legacy      Turn labelled-but-unlinked occurrences into recurrences.

Each job runs in one transaction: it commits on success and rolls back on
any error.

Usage:
    python3 scripts/regenerate_recurrences.py --user-id <uuid> [options]

Examples:
    # Top up every active recurrence of a user (default horizon)
    python3 scripts/regenerate_recurrences.py --user-id 6f1c...

    # One company, twelve months ahead, with a settings override file
    python3 scripts/regenerate_recurrences.py --user-id 6f1c... \\
        --company-id 02ab... --horizon-months 12 --config ops.yaml

    # Create the tables first on an empty SQLite database
    python3 scripts/regenerate_recurrences.py --user-id 6f1c... \\
        --database-url sqlite:///recurrences.db --create-tables
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = os.environ.get("DATABASE_URL", "sqlite:///recurrences.db")

JOBS = ("generate", "repair-dates", "cleanup-duplicates", "migrate-legacy")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a recurrence materialization job for one user.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--user-id",
        required=True,
        type=UUID,
        help="Owner of the recurrences to process.",
    )
    parser.add_argument(
        "--job",
        choices=JOBS,
        default="generate",
        help="Job to run (default: generate).",
    )
    parser.add_argument(
        "--company-id",
        type=UUID,
        default=None,
        help="Restrict generation to one company.",
    )
    parser.add_argument(
        "--horizon-months",
        type=int,
        default=None,
        help="Override every recurrence's horizon for this run.",
    )
    parser.add_argument(
        "--as-of-date",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Horizon anchor date (YYYY-MM-DD). Default: today.",
    )
    parser.add_argument(
        "--actor-id",
        type=UUID,
        default=None,
        help="Actor UUID recorded on writes (default: the user id).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML file overriding the packaged engine settings.",
    )
    parser.add_argument(
        "--database-url",
        default=DB_URL,
        help=f"Database URL (default: $DATABASE_URL or {DB_URL!r}).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Emit DEBUG logs.",
    )
    return parser.parse_args(argv)


def _run_job(args: argparse.Namespace, session, settings) -> list[str]:
    from recurrence_kernel.domain.clock import SystemClock
    from recurrence_kernel.services import MaintenanceService, MaterializationService

    clock = SystemClock()
    actor_id = args.actor_id or args.user_id

    if args.job == "generate":
        summary = MaterializationService(session, clock, settings).generate_all(
            args.user_id,
            company_id=args.company_id,
            as_of=args.as_of_date,
            horizon_months=args.horizon_months,
            actor_id=actor_id,
        )
        lines = [
            f"  recurrences processed: {summary.recurrences_processed}",
            f"  occurrences generated: {summary.total_generated}",
            f"  dates skipped:         {summary.total_skipped}",
        ]
        for failure in summary.failures:
            lines.append(
                f"  FAILED {failure.recurrence_id}: "
                f"[{failure.error_code}] {failure.error_message}"
            )
        return lines

    maintenance = MaintenanceService(session, clock, settings)
    if args.job == "repair-dates":
        repair = maintenance.repair_dates(args.user_id)
        lines = [
            f"  recurrences processed: {repair.recurrences_processed}",
            f"  occurrences deleted:   {repair.occurrences_deleted}",
            f"  occurrences generated: {repair.occurrences_generated}",
        ]
        lines.extend(
            f"    {d.name}: -{d.deleted} +{d.generated}" for d in repair.details
        )
        return lines

    if args.job == "cleanup-duplicates":
        cleanup = maintenance.cleanup_duplicates(args.user_id)
        return [
            f"  recurrences analyzed:  {cleanup.recurrences_analyzed}",
            f"  recurrences deleted:   {cleanup.recurrences_deleted}",
            f"  occurrences relinked:  {cleanup.occurrences_relinked}",
            f"  occurrences analyzed:  {cleanup.occurrences_analyzed}",
            f"  occurrences deleted:   {cleanup.occurrences_deleted}",
        ]

    migration = maintenance.migrate_legacy_recurrences(args.user_id, actor_id)
    lines = [
        f"  occurrences examined:  {migration.occurrences_examined}",
        f"  recurrences created:   {migration.migrated_count}",
        f"  occurrences generated: {migration.occurrences_generated}",
    ]
    for failure in migration.errors:
        lines.append(
            f"  FAILED {failure.recurrence_id}: "
            f"[{failure.error_code}] {failure.error_message}"
        )
    return lines


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.config is not None and not args.config.is_file():
        print(f"ERROR: Config file not found: {args.config}", file=sys.stderr)
        return 1

    # Lazy imports so we fail fast on args first
    import yaml

    from recurrence_config import get_engine_settings
    from recurrence_kernel.db.engine import (
        create_tables,
        init_engine_from_url,
        reset_engine,
        session_scope,
    )
    from recurrence_kernel.exceptions import RecurrenceKernelError
    from recurrence_kernel.logging_config import LogContext, configure_logging

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = get_engine_settings(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1

    init_engine_from_url(args.database_url)
    try:
        if args.create_tables:
            create_tables()

        LogContext.set(user_id=str(args.user_id))
        print(f"Running {args.job} for user {args.user_id}")
        try:
            with session_scope() as session:
                lines = _run_job(args, session, settings)
        except RecurrenceKernelError as e:
            print(f"ERROR: [{e.code}] {e}", file=sys.stderr)
            return 1

        for line in lines:
            print(line)
        print("Done.")
        return 0
    finally:
        LogContext.clear()
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())
