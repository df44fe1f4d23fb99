"""
Unit tests for strategy selection and the ingestion processor.

Loaders are replaced by in-memory fakes, so no database is needed.
"""

from datetime import datetime

import pytest

from ads_warehouse.core.config import IngestionConfig
from ads_warehouse.core.exceptions import EncodingError, LoadError, ValidationError
from ads_warehouse.core.mapping import ADS_REPORTING_MAPPING, AdsReportingColumns, TableMapping
from ads_warehouse.core.models.ads_reporting import AdsReporting
from ads_warehouse.core.models.processing_result import BULK_STAGED, DIRECT_BATCH, ProcessingResult
from ads_warehouse.observability.metrics import REGISTRY
from ads_warehouse.warehouse.csv_encoder import CsvRowEncoder
from ads_warehouse.warehouse.ingestion import IngestionProcessor, StrategySelector


class FakeLoader:
    """Records every call and reports all records as written"""

    def __init__(self, strategy: str, fail: bool = False):
        self.strategy = strategy
        self.fail = fail
        self.calls = []

    def load(self, table, records, columns, key_columns, update_columns, encoder, header=None):
        self.calls.append({
            "table": table,
            "records": list(records),
            "columns": list(columns),
            "key_columns": list(key_columns),
            "update_columns": list(update_columns),
            "header": header,
        })
        if self.fail:
            raise LoadError("boom", table=table, strategy=self.strategy, step="MERGE")
        return ProcessingResult(records_processed=len(records), duration_ms=1, strategy=self.strategy)


def make_processor(threshold: int = 5, **config) -> tuple[IngestionProcessor, FakeLoader, FakeLoader]:
    direct = FakeLoader(DIRECT_BATCH)
    bulk = FakeLoader(BULK_STAGED)
    processor = IngestionProcessor(
        pool=None,
        config=IngestionConfig(copy_from_threshold=threshold, **config),
        direct_loader=direct,
        bulk_loader=bulk,
    )
    return processor, direct, bulk


@pytest.mark.unit
class TestStrategySelector:
    """Tests for StrategySelector"""

    def test_threshold_boundary(self):
        selector = StrategySelector(5000)

        assert selector.choose(0) == DIRECT_BATCH
        assert selector.choose(4999) == DIRECT_BATCH
        assert selector.choose(5000) == BULK_STAGED
        assert selector.choose(250000) == BULK_STAGED

    def test_threshold_of_one_always_bulk(self):
        selector = StrategySelector(1)
        assert selector.choose(1) == BULK_STAGED

    @pytest.mark.parametrize("threshold", [0, -1, 2.5, "10", True])
    def test_invalid_threshold_rejected(self, threshold):
        with pytest.raises(ValidationError):
            StrategySelector(threshold)


@pytest.mark.unit
class TestIngestionProcessor:
    """Tests for IngestionProcessor routing and validation"""

    def test_small_batch_uses_direct_loader(self, make_batch):
        processor, direct, bulk = make_processor(threshold=5)

        result = processor.load_reporting(make_batch(4))

        assert result.strategy == DIRECT_BATCH
        assert result.records_processed == 4
        assert len(direct.calls) == 1
        assert bulk.calls == []

    def test_large_batch_uses_bulk_loader(self, make_batch):
        processor, direct, bulk = make_processor(threshold=5)

        result = processor.load_reporting(make_batch(5))

        assert result.strategy == BULK_STAGED
        assert direct.calls == []
        assert bulk.calls[0]["header"] == CsvRowEncoder().header

    def test_routing_uses_size_after_aggregation(self, make_batch):
        """Six records with three distinct keys route by the three survivors"""
        processor, direct, bulk = make_processor(threshold=5)

        result = processor.load_reporting(make_batch(3) + make_batch(3))

        assert result.strategy == DIRECT_BATCH
        assert len(direct.calls[0]["records"]) == 3

    def test_standard_reporting_columns(self, make_batch):
        processor, direct, _ = make_processor()
        processor.load_reporting(make_batch(1))

        call = direct.calls[0]
        assert call["table"] == "tbl_ads_reporting"
        assert call["columns"] == ADS_REPORTING_MAPPING.column_names
        assert call["key_columns"] == AdsReportingColumns.KEY_COLUMNS
        assert call["update_columns"] == AdsReportingColumns.UPDATE_COLUMNS
        assert "created_at" not in call["update_columns"]
        assert not set(call["key_columns"]) & set(call["update_columns"])

    def test_without_aggregation_last_record_per_key_is_kept(self, record_factory):
        processor, direct, bulk = make_processor(threshold=2, aggregate_before_load=False)
        first = record_factory(impressions=100, created_at=datetime(2024, 3, 2, 1, 0))
        last = record_factory(impressions=80, created_at=datetime(2024, 3, 9, 1, 0))

        result = processor.load_reporting([first, last, record_factory(advertisement_id="ad_2")])

        assert result.strategy == BULK_STAGED
        kept = bulk.calls[0]["records"]
        assert len(kept) == 2
        assert kept[0].impressions == 80
        # created_at is not updated on conflict, so the first insert's value stands
        assert kept[0].created_at == datetime(2024, 3, 2, 1, 0)
        assert direct.calls == []

    def test_other_mapping_is_collapsed_before_routing(self, record_factory):
        """Duplicate keys never reach a loader, whatever the encoder's mapping"""
        processor, direct, bulk = make_processor(threshold=2)
        encoder = CsvRowEncoder(TableMapping("tbl_ads_reporting", ADS_REPORTING_MAPPING.columns))
        batch = [record_factory(impressions=100, clicks=10), record_factory(impressions=50, clicks=5)]

        result = processor.load(
            "tbl_ads_reporting",
            batch,
            AdsReportingColumns.KEY_COLUMNS,
            AdsReportingColumns.UPDATE_COLUMNS,
            encoder,
        )

        assert result.strategy == DIRECT_BATCH
        assert bulk.calls == []
        merged = direct.calls[0]["records"]
        assert len(merged) == 1
        assert merged[0].impressions == 150
        assert merged[0].clicks == 15

    def test_custom_key_columns_group_records(self, record_factory):
        processor, direct, _ = make_processor(threshold=100)
        batch = [record_factory(city="LA", impressions=1), record_factory(city="SF", impressions=2)]
        key_columns = [k for k in AdsReportingColumns.KEY_COLUMNS if k != "city"]
        update_columns = AdsReportingColumns.UPDATE_COLUMNS + ["city"]

        processor.load("tbl_ads_reporting", batch, key_columns, update_columns, CsvRowEncoder())

        merged = direct.calls[0]["records"]
        assert len(merged) == 1
        assert merged[0].impressions == 3

    def test_dict_records_parsed_by_load_reporting(self, record_factory):
        processor, direct, _ = make_processor()

        processor.load_reporting([record_factory().model_dump()])

        loaded = direct.calls[0]["records"][0]
        assert isinstance(loaded, AdsReporting)
        assert loaded == record_factory()

    def test_invalid_dict_record_rejected(self, record_factory):
        processor, direct, _ = make_processor()
        bad = record_factory().model_dump()
        bad["impressions"] = "lots"

        with pytest.raises(ValidationError) as exc_info:
            processor.load_reporting([record_factory(), bad])

        assert exc_info.value.invalid_records == [(1, ["impressions"])]
        assert direct.calls == []

    def test_dict_records_rejected_by_generic_load(self, record_factory):
        processor, direct, bulk = make_processor()

        with pytest.raises(ValidationError, match="mappings") as exc_info:
            processor.load(
                "tbl_ads_reporting",
                [record_factory(), record_factory().model_dump()],
                AdsReportingColumns.KEY_COLUMNS,
                AdsReportingColumns.UPDATE_COLUMNS,
                CsvRowEncoder(),
            )

        assert exc_info.value.invalid_records[0][0] == 1
        assert direct.calls == [] and bulk.calls == []

    def test_empty_batch_is_a_no_op(self):
        processor, direct, bulk = make_processor()

        result = processor.load_reporting([])

        assert result == ProcessingResult(records_processed=0, duration_ms=0, strategy=DIRECT_BATCH)
        assert direct.calls == [] and bulk.calls == []

    def test_null_key_component_rejects_whole_batch(self, make_batch, record_factory):
        processor, direct, bulk = make_processor()
        batch = make_batch(3) + [record_factory(city=None)]

        with pytest.raises(ValidationError) as exc_info:
            processor.load_reporting(batch)

        assert exc_info.value.invalid_records == [(3, ["city"])]
        assert direct.calls == [] and bulk.calls == []

    def test_header_mismatch_rejected_before_load(self, make_batch):
        processor, direct, bulk = make_processor()
        bad_header = ",".join(reversed(ADS_REPORTING_MAPPING.column_names))

        with pytest.raises(EncodingError):
            processor.load_reporting(make_batch(2), header=bad_header)

        assert direct.calls == [] and bulk.calls == []

    def test_invalid_table_name_rejected(self, make_batch):
        processor, direct, _ = make_processor()

        with pytest.raises(ValidationError, match="invalid characters"):
            processor.load(
                "tbl; DROP TABLE x",
                make_batch(1),
                AdsReportingColumns.KEY_COLUMNS,
                AdsReportingColumns.UPDATE_COLUMNS,
                CsvRowEncoder(),
            )
        assert direct.calls == []

    def test_key_column_in_update_columns_rejected(self, make_batch):
        processor, _, _ = make_processor()

        with pytest.raises(ValidationError, match="cannot be update columns"):
            processor.load(
                "tbl_ads_reporting",
                make_batch(1),
                AdsReportingColumns.KEY_COLUMNS,
                ["account_id", "spend"],
                CsvRowEncoder(),
            )

    def test_load_error_propagates_and_is_counted(self, make_batch):
        direct = FakeLoader(DIRECT_BATCH, fail=True)
        processor = IngestionProcessor(
            pool=None, direct_loader=direct, bulk_loader=FakeLoader(BULK_STAGED)
        )
        labels = {"table": "tbl_ads_reporting", "strategy": DIRECT_BATCH, "error_type": "LoadError"}
        before = REGISTRY.get_sample_value("ads_ingestion_failures_total", labels) or 0

        with pytest.raises(LoadError) as exc_info:
            processor.load_reporting(make_batch(2))

        assert exc_info.value.step == "MERGE"
        assert REGISTRY.get_sample_value("ads_ingestion_failures_total", labels) == before + 1

    def test_success_updates_record_counter(self, make_batch):
        processor, _, _ = make_processor(threshold=100)
        labels = {"table": "tbl_ads_reporting", "strategy": DIRECT_BATCH}
        before = REGISTRY.get_sample_value("ads_ingestion_records_total", labels) or 0

        processor.load_reporting(make_batch(3))

        assert REGISTRY.get_sample_value("ads_ingestion_records_total", labels) == before + 3

    def test_compute_batch_duplicate_stats(self, make_batch):
        processor, _, _ = make_processor()
        stats = processor.compute_batch_duplicate_stats(make_batch(3) + make_batch(1))

        assert stats.unique_keys == 3
        assert stats.total_duplicates == 1
