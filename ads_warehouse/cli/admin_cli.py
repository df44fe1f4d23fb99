"""
Admin CLI for the ads reporting warehouse.

Usage:
    python -m ads_warehouse.cli.admin_cli load --input <records.jsonl> [--config <path>] [--threshold N]
    python -m ads_warehouse.cli.admin_cli check-integrity [--account-id <id>] [--date YYYY-MM-DD]
    python -m ads_warehouse.cli.admin_cli count-duplicates [--account-id <id>] [--date YYYY-MM-DD]
    python -m ads_warehouse.cli.admin_cli purge-duplicates --confirm [--backup-suffix <suffix>] [scope]
    python -m ads_warehouse.cli.admin_cli scope-stats [--account-id <id>] [--date YYYY-MM-DD]
    python -m ads_warehouse.cli.admin_cli health
"""

import argparse
import json
import os
import sys
from datetime import date
from pathlib import Path

import psycopg
import pydantic

from ads_warehouse.core.config import IngestionConfigLoader
from ads_warehouse.core.exceptions import IngestionError, IntegrityViolation
from ads_warehouse.core.models.ads_reporting import AdsReporting
from ads_warehouse.core.models.audit import AuditScope
from ads_warehouse.observability.logger import get_logger
from ads_warehouse.warehouse.audit import DuplicateAuditor
from ads_warehouse.warehouse.connection import DatabaseConnectionPool
from ads_warehouse.warehouse.health import check_health
from ads_warehouse.warehouse.ingestion import IngestionProcessor

logger = get_logger(__name__)

EXIT_INTEGRITY_FAILED = 2


def create_pool(args) -> DatabaseConnectionPool:
    return DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )


def scope_from_args(args) -> AuditScope:
    processing_date = date.fromisoformat(args.date) if args.date else None
    return AuditScope(account_id=args.account_id, processing_date=processing_date)


def read_records(path: str | Path) -> list[AdsReporting]:
    """
    Read newline-delimited JSON reporting records.

    Raises:
        ValueError: If a line is not a valid record (line number in the message)
    """
    records = []
    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(AdsReporting.model_validate(json.loads(line)))
            except (json.JSONDecodeError, pydantic.ValidationError) as e:
                raise ValueError(f"{path}:{line_no}: invalid record: {e}") from e
    return records


def load_command(args, pool: DatabaseConnectionPool) -> int:
    """Load a JSONL file of reporting records into tbl_ads_reporting."""
    config = IngestionConfigLoader(args.config).load()
    if args.threshold is not None:
        config = config.model_copy(update={"copy_from_threshold": args.threshold})

    records = read_records(args.input)
    logger.info(f"Read {len(records)} records from {args.input}")

    processor = IngestionProcessor(pool, config=config)
    stats = processor.compute_batch_duplicate_stats(records)
    result = processor.load_reporting(records)

    print(f"\nLoaded {args.input}")
    print(f"  Submitted:   {stats.total_records}")
    print(f"  Unique keys: {stats.unique_keys} ({stats.total_duplicates} duplicates merged)")
    print(f"  Written:     {result.records_processed}")
    print(f"  Strategy:    {result.strategy}")
    print(f"  Duration:    {result.duration_ms}ms ({result.records_per_second} records/sec)\n")
    return 0


def check_integrity_command(args, pool: DatabaseConnectionPool) -> int:
    auditor = DuplicateAuditor(pool, table=args.table) if args.table else DuplicateAuditor(pool)
    scope = scope_from_args(args)

    try:
        report = auditor.assert_integrity(scope)
    except IntegrityViolation as e:
        print(f"\nFAILED: {e}")
        for name, value in e.report.items():
            print(f"  {name}: {value}")
        print()
        return EXIT_INTEGRITY_FAILED

    print(f"\nPASSED: {report.table} ({scope.describe()})")
    for name, value in report.as_dict().items():
        print(f"  {name}: {value}")
    print()
    return 0


def count_duplicates_command(args, pool: DatabaseConnectionPool) -> int:
    auditor = DuplicateAuditor(pool, table=args.table) if args.table else DuplicateAuditor(pool)
    scope = scope_from_args(args)

    count = auditor.count_duplicate_keys(scope)
    print(f"\nDuplicate key rows in {auditor.table} ({scope.describe()}): {count}")

    if count and args.show_rows:
        rows = auditor.find_duplicate_rows(scope, limit=args.limit)
        print(f"\n{'Occurrences':<12} Key")
        print(f"{'-' * 80}")
        for row in rows:
            key = "|".join(str(row[c]) for c in auditor.key_columns)
            print(f"{row['key_occurrences']:<12} {key}")
    print()
    return 0


def purge_duplicates_command(args, pool: DatabaseConnectionPool) -> int:
    if not args.confirm:
        print("\nRefusing to delete rows without --confirm\n")
        return 1

    auditor = DuplicateAuditor(pool, table=args.table) if args.table else DuplicateAuditor(pool)
    scope = scope_from_args(args)

    deleted = auditor.purge_superseded_duplicates(scope, backup_suffix=args.backup_suffix)
    print(f"\nDeleted {deleted} superseded duplicate rows from {auditor.table} ({scope.describe()})")
    if args.backup_suffix:
        print(f"Backup: {auditor.backup_table_name(args.backup_suffix)}")
    print()
    return 0


def scope_stats_command(args, pool: DatabaseConnectionPool) -> int:
    auditor = DuplicateAuditor(pool, table=args.table) if args.table else DuplicateAuditor(pool)
    stats = auditor.get_scope_stats(scope_from_args(args))

    print(f"\n{'=' * 60}")
    print(f"SCOPE STATS: {auditor.table}")
    print(f"{'=' * 60}")
    for name, value in stats.items():
        print(f"  {name:<20} {value}")
    print()
    return 0


def health_command(args, pool: DatabaseConnectionPool) -> int:
    status = check_health(pool)
    print(f"\n{'HEALTHY' if status.healthy else 'UNHEALTHY'}: {status.message}")
    for name, value in status.details.items():
        print(f"  {name}: {value}")
    print()
    return 0 if status.healthy else 1


COMMANDS = {
    "load": load_command,
    "check-integrity": check_integrity_command,
    "count-duplicates": count_duplicates_command,
    "purge-duplicates": purge_duplicates_command,
    "scope-stats": scope_stats_command,
    "health": health_command,
}


def add_scope_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--account-id",
        help="Restrict to one account (optional)"
    )
    parser.add_argument(
        "--date",
        help="Restrict to one processing date, YYYY-MM-DD (optional)"
    )
    parser.add_argument(
        "--table",
        help="Table to audit (default: tbl_ads_reporting)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Admin CLI for the ads reporting warehouse",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    # Global database connection options
    parser.add_argument(
        "--db-host",
        default=os.getenv("DB_HOST", "localhost"),
        help="Database host (default: $DB_HOST or localhost)"
    )
    parser.add_argument(
        "--db-port",
        type=int,
        default=int(os.getenv("DB_PORT", "5432")),
        help="Database port (default: $DB_PORT or 5432)"
    )
    parser.add_argument(
        "--db-name",
        default=os.getenv("DB_NAME", "ads_warehouse"),
        help="Database name (default: $DB_NAME or ads_warehouse)"
    )
    parser.add_argument(
        "--db-user",
        default=os.getenv("DB_USER", "ads_ingest"),
        help="Database user (default: $DB_USER or ads_ingest)"
    )
    parser.add_argument(
        "--db-password",
        default=os.getenv("DB_PASSWORD"),
        help="Database password (default: $DB_PASSWORD)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # load command
    load_parser = subparsers.add_parser(
        "load",
        help="Load newline-delimited JSON reporting records"
    )
    load_parser.add_argument(
        "--input",
        required=True,
        help="Path to a .jsonl file with one reporting record per line"
    )
    load_parser.add_argument(
        "--config",
        help="Path to ingestion YAML config (default: $INGESTION_CONFIG)"
    )
    load_parser.add_argument(
        "--threshold",
        type=int,
        help="Override copy_from_threshold for this run"
    )

    # check-integrity command
    integrity_parser = subparsers.add_parser(
        "check-integrity",
        help="Check persisted rows for null and duplicate keys"
    )
    add_scope_arguments(integrity_parser)

    # count-duplicates command
    count_parser = subparsers.add_parser(
        "count-duplicates",
        help="Count rows sharing a composite key"
    )
    add_scope_arguments(count_parser)
    count_parser.add_argument(
        "--show-rows",
        action="store_true",
        help="List the duplicated keys"
    )
    count_parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of rows to list (default: 100)"
    )

    # purge-duplicates command
    purge_parser = subparsers.add_parser(
        "purge-duplicates",
        help="Delete all but the latest row of each duplicated key"
    )
    add_scope_arguments(purge_parser)
    purge_parser.add_argument(
        "--confirm",
        action="store_true",
        help="Required: confirm the destructive delete"
    )
    purge_parser.add_argument(
        "--backup-suffix",
        help="Copy the scope into <table>_backup_<suffix> before deleting"
    )

    # scope-stats command
    stats_parser = subparsers.add_parser(
        "scope-stats",
        help="Show row counts and metric totals"
    )
    add_scope_arguments(stats_parser)

    # health command
    subparsers.add_parser(
        "health",
        help="Check database connectivity and required tables"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for admin CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        pool = create_pool(args)
    except ValueError as e:
        print(f"\nError: {e}")
        return 1

    try:
        pool.open()
        return COMMANDS[args.command](args, pool)

    except (IngestionError, psycopg.Error, OSError, ValueError) as e:
        logger.error(f"Command {args.command} failed: {e}", exc_info=True)
        print(f"\nError: {e}")
        return 1

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130

    finally:
        pool.close()


if __name__ == "__main__":
    sys.exit(main())
