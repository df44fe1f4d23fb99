"""
Duplicate and integrity audits of persisted rows.

Checks the target table for rows with null key components and for key
collisions, and can purge superseded duplicates on explicit request.
Nothing here runs as part of ingestion.
"""

import re
from typing import Any, Sequence

import psycopg
from psycopg import sql

from ads_warehouse.core.aggregation import compute_duplicate_stats
from ads_warehouse.core.exceptions import IntegrityViolation, ValidationError
from ads_warehouse.core.mapping import ADS_REPORTING_MAPPING, TableMapping
from ads_warehouse.core.models.audit import AuditScope, BatchDuplicateStats, IntegrityReport
from ads_warehouse.observability.logger import get_logger, log_operation
from ads_warehouse.observability.metrics import record_audit
from ads_warehouse.utils.validation import MAX_IDENTIFIER_LENGTH, sanitize_sql_identifier

logger = get_logger(__name__)

BACKUP_SUFFIX_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

# Metric totals reported by get_scope_stats, when the table has them
STATS_METRICS = ("spend", "revenue", "impressions", "clicks", "reach", "purchases")


class DuplicateAuditor:
    """
    Audits a fact table keyed by a composite key.

    Args:
        pool: Database connection pool
        mapping: Column layout providing the key columns
        table: Table to audit (defaults to the mapping's table)
        account_column: Column filtered by AuditScope.account_id
        date_column: Column filtered by AuditScope.processing_date
    """

    def __init__(
        self,
        pool,
        mapping: TableMapping = ADS_REPORTING_MAPPING,
        table: str | None = None,
        account_column: str = "account_id",
        date_column: str = "ads_processing_dt",
    ):
        self.pool = pool
        self.mapping = mapping
        self.table = sanitize_sql_identifier(table or mapping.table, "table")
        self.key_columns = mapping.key_columns
        self.account_column = sanitize_sql_identifier(account_column, "account_column")
        self.date_column = sanitize_sql_identifier(date_column, "date_column")

    # =======================
    # QUERY BUILDING
    # =======================

    def _keys(self) -> sql.Composable:
        return sql.SQL(", ").join(sql.Identifier(c) for c in self.key_columns)

    def _where(self, scope: AuditScope | None, *extra: sql.Composable) -> tuple[sql.Composable, list[Any]]:
        scope = scope or AuditScope()
        conditions: list[sql.Composable] = []
        params: list[Any] = []

        if scope.account_id is not None:
            conditions.append(sql.SQL("{} = %s").format(sql.Identifier(self.account_column)))
            params.append(scope.account_id)
        if scope.processing_date is not None:
            conditions.append(sql.SQL("{} = %s").format(sql.Identifier(self.date_column)))
            params.append(scope.processing_date)
        conditions.extend(extra)

        if not conditions:
            return sql.SQL(""), params
        return sql.SQL("WHERE ") + sql.SQL(" AND ").join(conditions), params

    def _scalar(self, query: sql.Composable, params: list[Any]) -> int:
        rows = self.pool.execute_query(query, params)
        return int(rows[0]["cnt"] or 0) if rows else 0

    # =======================
    # CHECKS
    # =======================

    def validate_key_completeness(self, scope: AuditScope | None = None) -> int:
        """
        Count rows with at least one null key component.

        Reports only; offending rows are left in place.
        """
        any_null = sql.SQL("({})").format(
            sql.SQL(" OR ").join(sql.SQL("{} IS NULL").format(sql.Identifier(c)) for c in self.key_columns)
        )
        where, params = self._where(scope, any_null)
        query = sql.SQL("SELECT COUNT(*) AS cnt FROM {table} {where}").format(
            table=sql.Identifier(self.table), where=where
        )

        count = self._scalar(query, params)
        record_audit(self.table, null_key_rows=count)

        if count:
            logger.warning(f"{count} rows in {self.table} have null key components ({(scope or AuditScope()).describe()})")
        return count

    def count_duplicate_keys(self, scope: AuditScope | None = None) -> int:
        """Rows beyond the first for every composite key in scope."""
        where, params = self._where(scope)
        query = sql.SQL(
            "SELECT COALESCE(SUM(occurrences - 1), 0)::bigint AS cnt FROM ("
            "SELECT COUNT(*) AS occurrences FROM {table} {where} "
            "GROUP BY {keys} HAVING COUNT(*) > 1) dup"
        ).format(table=sql.Identifier(self.table), where=where, keys=self._keys())

        count = self._scalar(query, params)
        record_audit(self.table, duplicate_keys=count)

        if count:
            logger.warning(f"{count} duplicate key rows in {self.table} ({(scope or AuditScope()).describe()})")
        return count

    def find_duplicate_rows(self, scope: AuditScope | None = None, limit: int = 100) -> list[dict]:
        """Rows whose composite key occurs more than once, grouped by key."""
        where, params = self._where(scope)
        query = sql.SQL(
            "SELECT * FROM ("
            "SELECT t.*, COUNT(*) OVER (PARTITION BY {keys}) AS key_occurrences FROM {table} t {where}"
            ") d WHERE key_occurrences > 1 ORDER BY {keys} LIMIT %s"
        ).format(table=sql.Identifier(self.table), where=where, keys=self._keys())
        return self.pool.execute_query(query, params + [limit])

    def validate_data_integrity(self, scope: AuditScope | None = None) -> IntegrityReport:
        scope = scope or AuditScope()
        report = IntegrityReport(
            table=self.table,
            scope=scope,
            null_key_rows=self.validate_key_completeness(scope),
            duplicate_keys=self.count_duplicate_keys(scope),
        )

        if report.passed:
            logger.info(f"Integrity check passed for {self.table} ({scope.describe()})")
        else:
            logger.error(f"Integrity check failed for {self.table} ({scope.describe()}): {report.as_dict()}")
        return report

    def assert_integrity(self, scope: AuditScope | None = None) -> IntegrityReport:
        """
        Raises:
            IntegrityViolation: If any row in scope has a null or duplicate key
        """
        report = self.validate_data_integrity(scope)
        if not report.passed:
            raise IntegrityViolation(
                f"Integrity check failed for {self.table} ({report.scope.describe()})",
                report=report.as_dict(),
            )
        return report

    def compute_batch_duplicate_stats(self, batch: Sequence[Any]) -> BatchDuplicateStats:
        """Duplicate statistics of an in-memory batch, by this table's key."""
        stats = compute_duplicate_stats(batch, self.mapping.key_of)
        logger.debug(f"Batch duplicate stats: {stats.as_dict()}")
        return stats

    def get_scope_stats(self, scope: AuditScope | None = None) -> dict[str, Any]:
        """Row count, distinct keys and metric totals for a scope."""
        metrics = [m for m in STATS_METRICS if m in self.mapping.column_names]
        totals = [
            sql.SQL("COALESCE(SUM({col}), 0) AS {alias}").format(
                col=sql.Identifier(m), alias=sql.Identifier(f"total_{m}")
            )
            for m in metrics
        ]
        if "updated_at" in self.mapping.column_names:
            totals.insert(0, sql.SQL("MAX(updated_at) AS last_updated_at"))
        where, params = self._where(scope)
        query = sql.SQL(
            "SELECT COUNT(*) AS total_rows, COUNT(DISTINCT ({keys})) AS unique_keys"
            "{sep}{totals} FROM {table} {where}"
        ).format(
            keys=self._keys(),
            sep=sql.SQL(", ") if totals else sql.SQL(""),
            totals=sql.SQL(", ").join(totals),
            table=sql.Identifier(self.table),
            where=where,
        )

        rows = self.pool.execute_query(query, params)
        stats = dict(rows[0]) if rows else {}
        stats["scope"] = (scope or AuditScope()).describe()
        return stats

    # =======================
    # BACKUP AND PURGE
    # =======================

    def backup_table_name(self, suffix: str) -> str:
        if not suffix or not BACKUP_SUFFIX_PATTERN.match(suffix):
            raise ValidationError(f"Backup suffix '{suffix}' must contain only letters, digits and underscores")
        name = f"{self.table}_backup_{suffix}"
        if len(name) > MAX_IDENTIFIER_LENGTH:
            raise ValidationError(f"Backup table name '{name}' exceeds {MAX_IDENTIFIER_LENGTH} characters")
        return name

    def _create_backup(self, cur: psycopg.Cursor, scope: AuditScope | None, suffix: str) -> int:
        backup = self.backup_table_name(suffix)
        where, params = self._where(scope)
        cur.execute(
            sql.SQL("CREATE TABLE {backup} AS SELECT * FROM {table} {where}").format(
                backup=sql.Identifier(backup), table=sql.Identifier(self.table), where=where
            ),
            params,
        )
        logger.info(f"Backed up {cur.rowcount} rows of {self.table} into {backup}")
        return cur.rowcount

    def create_backup(self, scope: AuditScope | None, suffix: str) -> int:
        """Copy the rows in scope into <table>_backup_<suffix>. Returns the rows copied."""
        with self.pool.transaction() as cur:
            return self._create_backup(cur, scope, suffix)

    def drop_backup(self, suffix: str) -> None:
        backup = self.backup_table_name(suffix)
        self.pool.execute_command(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(backup)))
        logger.info(f"Dropped backup table {backup}")

    def purge_superseded_duplicates(self, scope: AuditScope | None = None, backup_suffix: str | None = None) -> int:
        """
        Delete all but the most recently written row of every duplicated key.

        Recency is updated_at, then created_at, then physical row position.
        Destructive: only run on explicit operator request. The optional
        backup and the delete share one transaction.

        Returns:
            Number of rows deleted
        """
        scope = scope or AuditScope()
        where, params = self._where(scope)
        query = sql.SQL(
            "DELETE FROM {table} WHERE ctid IN ("
            "SELECT ctid FROM ("
            "SELECT ctid, row_number() OVER ("
            "PARTITION BY {keys} "
            "ORDER BY updated_at DESC NULLS LAST, created_at DESC NULLS LAST, ctid DESC"
            ") AS rn FROM {table} {where}"
            ") ranked WHERE rn > 1)"
        ).format(table=sql.Identifier(self.table), keys=self._keys(), where=where)

        with log_operation("purge superseded duplicates", logger=logger, table=self.table, scope=scope.describe()):
            with self.pool.transaction() as cur:
                if backup_suffix:
                    self._create_backup(cur, scope, backup_suffix)
                cur.execute(query, params)
                deleted = cur.rowcount

        logger.warning(f"Purged {deleted} superseded duplicate rows from {self.table} ({scope.describe()})")
        return deleted
