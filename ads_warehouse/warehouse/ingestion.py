"""
Ingestion entry point: validate, aggregate, route and load one batch.

Each call runs Validate -> Aggregate -> Encode -> Select -> Load on the
caller's thread and either commits everything or nothing.
"""

import time
from collections.abc import Mapping
from typing import Any, Sequence

import pydantic

from ads_warehouse.core.aggregation import PreLoadAggregator
from ads_warehouse.core.config import IngestionConfig
from ads_warehouse.core.exceptions import IngestionError, ValidationError
from ads_warehouse.core.mapping import ADS_REPORTING_MAPPING, AdsReportingColumns
from ads_warehouse.core.models.ads_reporting import AdsReporting
from ads_warehouse.core.models.audit import BatchDuplicateStats
from ads_warehouse.core.models.processing_result import (
    BULK_STAGED,
    DIRECT_BATCH,
    ProcessingResult,
    ProcessingStrategy,
)
from ads_warehouse.core.validators import KeyCompletenessValidator
from ads_warehouse.observability.logger import get_logger
from ads_warehouse.observability.metrics import (
    aggregation_duplicates_removed_total,
    increment_counter,
    record_ingestion,
    record_ingestion_failure,
)
from ads_warehouse.utils.validation import (
    sanitize_sql_identifier,
    validate_load_columns,
    validate_threshold,
)

from .bulk_loader import BulkStagedLoader
from .connection import DatabaseConnectionPool
from .csv_encoder import CsvRowEncoder
from .upsert import DirectBatchLoader

logger = get_logger(__name__)


class StrategySelector:
    """
    Picks the load path from the batch size.

    Batches of at least `threshold` records go through the bulk staged path.
    """

    def __init__(self, threshold: int = 5000):
        self.threshold = validate_threshold(threshold)

    def choose(self, batch_size: int) -> ProcessingStrategy:
        return BULK_STAGED if batch_size >= self.threshold else DIRECT_BATCH


class IngestionProcessor:
    """
    Loads batches of records into a table with idempotent upsert semantics.

    Args:
        pool: Open database connection pool
        config: Ingestion settings (defaults apply when omitted)
        direct_loader: Loader for small batches
        bulk_loader: Loader for large batches
        aggregator: Pre-load aggregator for the ads reporting table

    Example:
        >>> processor = IngestionProcessor(pool)  # doctest: +SKIP
        >>> processor.load_reporting(records)  # doctest: +SKIP
        ProcessingResult(records=120, duration=35ms, strategy=DIRECT_BATCH, rate=3428/sec)
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        config: IngestionConfig | None = None,
        direct_loader: DirectBatchLoader | None = None,
        bulk_loader: BulkStagedLoader | None = None,
        aggregator: PreLoadAggregator | None = None,
    ):
        self.pool = pool
        self.config = config or IngestionConfig()
        self.selector = StrategySelector(self.config.copy_from_threshold)
        self.direct_loader = direct_loader or DirectBatchLoader(pool)
        self.bulk_loader = bulk_loader or BulkStagedLoader(pool, self.config.staging_prefix)
        self.aggregator = aggregator or PreLoadAggregator(ADS_REPORTING_MAPPING)

    def load(
        self,
        target_table: str,
        records: Sequence[Any],
        key_columns: Sequence[str],
        update_columns: Sequence[str],
        row_encoder: CsvRowEncoder,
        header: str | None = None,
    ) -> ProcessingResult:
        """
        Upsert a batch into `target_table`.

        Records sharing a key are collapsed first, so either load path sees
        at most one record per key: aggregated when aggregate_before_load is
        set, otherwise reduced to the last record per key.

        Args:
            target_table: Table to load
            records: Batch of model instances; may contain duplicate keys
            key_columns: Columns of the target's uniqueness constraint
            update_columns: Columns overwritten when a key already exists
            row_encoder: Renders records for the selected load path
            header: Caller-supplied CSV header; must match the encoder's

        Returns:
            ProcessingResult for the whole call

        Raises:
            ValidationError: Bad identifiers, column lists or incomplete keys; nothing written
            EncodingError: Header or row arity mismatch; nothing written
            LoadError: The database rejected the load; the transaction was rolled back
        """
        start = time.perf_counter()

        table = sanitize_sql_identifier(target_table, "target_table")
        columns = row_encoder.mapping.column_names
        validate_load_columns(columns, key_columns, update_columns)

        if header is not None:
            row_encoder.validate_header(header)
        header = row_encoder.header

        if not records:
            logger.debug(f"Empty batch for {table}, nothing to load")
            return ProcessingResult(records_processed=0, duration_ms=0, strategy=DIRECT_BATCH)

        reject_mapping_records(records)
        aggregator = self._aggregator_for(row_encoder, key_columns)
        KeyCompletenessValidator(key_columns, aggregator.key_of).validate_batch(records)

        batch = self._collapse(table, records, aggregator, update_columns)
        strategy = self.selector.choose(len(batch))
        logger.info(
            f"Loading {len(batch)} records into {table} via {strategy} "
            f"(submitted={len(records)}, threshold={self.selector.threshold})"
        )

        try:
            if strategy == BULK_STAGED:
                loaded = self.bulk_loader.load(
                    table, batch, columns, key_columns, update_columns, row_encoder, header
                )
            else:
                loaded = self.direct_loader.load(
                    table, batch, columns, key_columns, update_columns, row_encoder
                )
        except IngestionError as e:
            record_ingestion_failure(table, strategy, type(e).__name__)
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        result = ProcessingResult(
            records_processed=loaded.records_processed,
            duration_ms=duration_ms,
            strategy=strategy,
        )
        record_ingestion(table, strategy, len(records), result.records_processed, duration_ms)
        logger.info(f"Loaded {table}: {result}")
        return result

    def load_reporting(self, records: Sequence[Any], header: str | None = None) -> ProcessingResult:
        """
        Upsert reporting records into tbl_ads_reporting with the standard key and update columns.

        Plain dicts are parsed into AdsReporting first.
        """
        return self.load(
            AdsReportingColumns.TABLE,
            parse_reporting_records(records),
            AdsReportingColumns.KEY_COLUMNS,
            AdsReportingColumns.UPDATE_COLUMNS,
            CsvRowEncoder(ADS_REPORTING_MAPPING),
            header,
        )

    def compute_batch_duplicate_stats(self, records: Sequence[Any]) -> BatchDuplicateStats:
        return self.aggregator.duplicate_stats(records)

    def _aggregator_for(self, row_encoder: CsvRowEncoder, key_columns: Sequence[str]) -> PreLoadAggregator:
        mapping = row_encoder.mapping
        if mapping is self.aggregator.mapping and list(key_columns) == self.aggregator.key_columns:
            return self.aggregator
        # Ratio recalculation only applies to the aggregator's own mapping
        recalculate = self.aggregator.recalculate if mapping is self.aggregator.mapping else None
        return PreLoadAggregator(mapping, recalculate=recalculate, key_columns=key_columns)

    def _collapse(
        self,
        table: str,
        records: Sequence[Any],
        aggregator: PreLoadAggregator,
        update_columns: Sequence[str],
    ) -> list[Any]:
        if self.config.aggregate_before_load:
            batch = aggregator.aggregate(records)
        else:
            batch = aggregator.keep_last(records, update_columns)

        removed = len(records) - len(batch)
        if removed:
            increment_counter(aggregation_duplicates_removed_total, removed, table=table)
            if self.config.aggregate_before_load and not aggregator.validate_conservation(
                records, batch, self.config.conservation_tolerance
            ):
                logger.warning(f"Metric totals for {table} drifted during aggregation")
        return batch


def reject_mapping_records(records: Sequence[Any]) -> None:
    """
    Raise ValidationError for records that are mappings instead of objects.

    Columns are read by attribute, so a dict would load as all NULLs.
    """
    invalid = [(idx, ["<record is a mapping>"]) for idx, r in enumerate(records) if isinstance(r, Mapping)]
    if invalid:
        raise ValidationError(
            f"{len(invalid)} record(s) are mappings, expected model instances "
            f"(first at #{invalid[0][0]})",
            invalid_records=invalid,
        )


def parse_reporting_records(records: Sequence[Any]) -> list[Any]:
    """Parse dict records into AdsReporting; other records pass through."""
    parsed = []
    for idx, record in enumerate(records):
        if not isinstance(record, Mapping):
            parsed.append(record)
            continue
        try:
            parsed.append(AdsReporting.model_validate(record))
        except pydantic.ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise ValidationError(
                f"Record #{idx} is not a valid reporting record: {e.error_count()} error(s)",
                invalid_records=[(idx, fields)],
            ) from e
    return parsed
