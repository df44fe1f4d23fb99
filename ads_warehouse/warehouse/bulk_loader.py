"""
Staged bulk loading through PostgreSQL COPY.

One call runs four steps inside a single transaction:

1. CREATE_STAGING  temp table shaped like the target, dropped on commit
2. STREAM_ROWS     header + CSV rows streamed with COPY FROM STDIN
3. MERGE           INSERT ... SELECT ... ON CONFLICT from staging into target
4. DROP_STAGING    explicit drop of the staging table

A failure in any step rolls the whole transaction back, so readers never
see a partial merge and the call can be retried as-is.
"""

import time
import uuid
from typing import Any, Sequence

import psycopg
from psycopg import sql

from ads_warehouse.core.exceptions import LoadError
from ads_warehouse.core.models.processing_result import BULK_STAGED, ProcessingResult
from ads_warehouse.observability.logger import get_logger, log_operation
from ads_warehouse.utils.validation import MAX_IDENTIFIER_LENGTH

from .connection import DatabaseConnectionPool
from .csv_encoder import DELIMITER, CsvRowEncoder
from .upsert import build_conflict_clause

logger = get_logger(__name__)

CREATE_STAGING = "CREATE_STAGING"
STREAM_ROWS = "STREAM_ROWS"
MERGE = "MERGE"
DROP_STAGING = "DROP_STAGING"

# Rows buffered per write to the COPY stream
COPY_CHUNK_ROWS = 1000


def staging_table_name(table: str, prefix: str = "stg") -> str:
    """
    Unique staging table name for one load of `table`.

    The random suffix keeps concurrent loads in one session from colliding;
    temp tables are already private to their session.
    """
    suffix = f"_{prefix}_{uuid.uuid4().hex[:12]}"
    if len(suffix) >= MAX_IDENTIFIER_LENGTH:
        raise ValueError(f"Staging prefix '{prefix}' leaves no room for the table name")
    return table[: MAX_IDENTIFIER_LENGTH - len(suffix)] + suffix


class BulkStagedLoader:
    """
    Loads large batches with COPY into a staging table, then merges them.

    Args:
        pool: Database connection pool
        staging_prefix: Marker placed in staging table names
    """

    def __init__(self, pool: DatabaseConnectionPool, staging_prefix: str = "stg"):
        self.pool = pool
        self.staging_prefix = staging_prefix

    def load(
        self,
        table: str,
        records: Sequence[Any],
        columns: Sequence[str],
        key_columns: Sequence[str],
        update_columns: Sequence[str],
        encoder: CsvRowEncoder,
        header: str | None = None,
    ) -> ProcessingResult:
        """
        Upsert a batch of records through a staging table.

        Args:
            table: Target table
            records: Records, at most one per composite key
            columns: Target columns, in header order
            key_columns: Columns of the target's uniqueness constraint
            update_columns: Columns overwritten on key match
            encoder: Renders each record as a CSV row
            header: CSV header line (defaults to the encoder's)

        Returns:
            ProcessingResult with the number of rows inserted or updated by the merge

        Raises:
            EncodingError: If any row does not match the header; nothing is written
            LoadError: If any step fails; the transaction is rolled back
        """
        if not records:
            return ProcessingResult(records_processed=0, duration_ms=0, strategy=BULK_STAGED)

        start = time.perf_counter()
        header = header or encoder.header

        # Encode everything up front so arity errors surface before the transaction opens
        rows = [encoder.encode(record) for record in records]

        staging = staging_table_name(table, self.staging_prefix)
        step = CREATE_STAGING

        try:
            with log_operation(
                "bulk staged upsert", logger=logger, table=table, staging=staging, rows=len(rows)
            ):
                with self.pool.transaction() as cur:
                    self._create_staging(cur, table, staging)

                    step = STREAM_ROWS
                    copied = self._stream_rows(cur, staging, columns, header, rows)
                    logger.debug(f"Copied {copied} rows into {staging}")

                    step = MERGE
                    merged = self._merge(cur, table, staging, columns, key_columns, update_columns)

                    step = DROP_STAGING
                    cur.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(staging)))
        except psycopg.Error as e:
            logger.error(f"Bulk load into {table} failed at {step}, transaction rolled back: {e}")
            raise LoadError(
                f"Bulk load into {table} failed at {step}: {e}",
                table=table,
                strategy=BULK_STAGED,
                step=step,
            ) from e

        duration_ms = int((time.perf_counter() - start) * 1000)
        return ProcessingResult(records_processed=merged, duration_ms=duration_ms, strategy=BULK_STAGED)

    def _create_staging(self, cur: psycopg.Cursor, table: str, staging: str) -> None:
        cur.execute(
            sql.SQL(
                "CREATE TEMP TABLE {staging} (LIKE {table} INCLUDING DEFAULTS) ON COMMIT DROP"
            ).format(staging=sql.Identifier(staging), table=sql.Identifier(table))
        )

    def _stream_rows(
        self,
        cur: psycopg.Cursor,
        staging: str,
        columns: Sequence[str],
        header: str,
        rows: list[str],
    ) -> int:
        copy_sql = sql.SQL(
            "COPY {staging} ({columns}) FROM STDIN WITH (FORMAT CSV, HEADER true, DELIMITER {delimiter})"
        ).format(
            staging=sql.Identifier(staging),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            delimiter=sql.Literal(DELIMITER),
        )

        with cur.copy(copy_sql) as copy:
            copy.write(header + "\n")
            for i in range(0, len(rows), COPY_CHUNK_ROWS):
                chunk = rows[i:i + COPY_CHUNK_ROWS]
                copy.write("\n".join(chunk) + "\n")

        return cur.rowcount

    def _merge(
        self,
        cur: psycopg.Cursor,
        table: str,
        staging: str,
        columns: Sequence[str],
        key_columns: Sequence[str],
        update_columns: Sequence[str],
    ) -> int:
        column_list = sql.SQL(", ").join(sql.Identifier(c) for c in columns)
        cur.execute(
            sql.SQL("INSERT INTO {table} ({columns}) SELECT {columns} FROM {staging} {conflict}").format(
                table=sql.Identifier(table),
                columns=column_list,
                staging=sql.Identifier(staging),
                conflict=build_conflict_clause(key_columns, update_columns),
            )
        )
        return cur.rowcount
