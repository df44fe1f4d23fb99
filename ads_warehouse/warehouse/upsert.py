"""
Idempotent upsert of small batches with parameterized statements.

Implements INSERT ... ON CONFLICT DO UPDATE inside one transaction, so a
failure on any row leaves the target untouched.
"""

import time
from typing import Any, Sequence

import psycopg
from psycopg import sql

from ads_warehouse.core.exceptions import LoadError
from ads_warehouse.core.models.processing_result import DIRECT_BATCH, ProcessingResult
from ads_warehouse.observability.logger import get_logger, log_operation

from .connection import DatabaseConnectionPool
from .csv_encoder import CsvRowEncoder

logger = get_logger(__name__)


def build_conflict_clause(key_columns: Sequence[str], update_columns: Sequence[str]) -> sql.Composed:
    """
    ON CONFLICT clause overwriting exactly the update columns on key match.

    With no update columns, existing rows are left as they are.
    """
    keys = sql.SQL(", ").join(sql.Identifier(c) for c in key_columns)
    if not update_columns:
        return sql.SQL("ON CONFLICT ({keys}) DO NOTHING").format(keys=keys)

    assignments = sql.SQL(", ").join(
        sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c in update_columns
    )
    return sql.SQL("ON CONFLICT ({keys}) DO UPDATE SET {assignments}").format(
        keys=keys, assignments=assignments
    )


def build_insert_sql(
    table: str,
    columns: Sequence[str],
    key_columns: Sequence[str],
    update_columns: Sequence[str],
) -> sql.Composed:
    """Parameterized single-row upsert for the given column layout."""
    return sql.SQL("INSERT INTO {table} ({columns}) VALUES ({placeholders}) {conflict}").format(
        table=sql.Identifier(table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        placeholders=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        conflict=build_conflict_clause(key_columns, update_columns),
    )


class DirectBatchLoader:
    """
    Writes a batch with one executemany of a parameterized upsert.

    All rows share one transaction. Retrying or falling back to per-record
    writes after a failure is left to the caller.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize direct batch loader.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def load(
        self,
        table: str,
        records: Sequence[Any],
        columns: Sequence[str],
        key_columns: Sequence[str],
        update_columns: Sequence[str],
        encoder: CsvRowEncoder,
    ) -> ProcessingResult:
        """
        Upsert a batch of records.

        Args:
            table: Target table
            records: Records, at most one per composite key
            columns: Target columns, in encoder order
            key_columns: Columns of the target's uniqueness constraint
            update_columns: Columns overwritten on key match
            encoder: Supplies the parameter tuple of each record

        Returns:
            ProcessingResult with the number of rows inserted or updated

        Raises:
            EncodingError: If a record's parameters do not match the columns
            LoadError: If the database rejects any row; nothing is written
        """
        if not records:
            return ProcessingResult(records_processed=0, duration_ms=0, strategy=DIRECT_BATCH)

        start = time.perf_counter()
        query = build_insert_sql(table, columns, key_columns, update_columns)
        params = [encoder.parameters(record) for record in records]

        try:
            with log_operation(
                "direct batch upsert", logger=logger, table=table, rows=len(params)
            ):
                with self.pool.transaction() as cur:
                    cur.executemany(query, params)
                    affected = cur.rowcount
        except psycopg.Error as e:
            logger.error(f"Direct batch upsert into {table} failed, transaction rolled back: {e}")
            raise LoadError(
                f"Direct batch upsert into {table} failed: {e}",
                table=table,
                strategy=DIRECT_BATCH,
                step="EXECUTE_BATCH",
            ) from e

        duration_ms = int((time.perf_counter() - start) * 1000)
        return ProcessingResult(
            records_processed=max(affected, 0),
            duration_ms=duration_ms,
            strategy=DIRECT_BATCH,
        )
