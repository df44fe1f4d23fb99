"""
Unit tests for declarative table mappings.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ads_warehouse.core.mapping import (
    ADS_REPORTING_MAPPING,
    AdsReportingColumns,
    ColumnSpec,
    TableMapping,
    normalize_value,
)
from ads_warehouse.core.models.ads_reporting import CompositeKey


@pytest.mark.unit
class TestAdsReportingMapping:
    """Tests for the tbl_ads_reporting layout"""

    def test_column_counts(self):
        kinds = [c.kind for c in ADS_REPORTING_MAPPING.columns]

        assert len(ADS_REPORTING_MAPPING.columns) == 59
        assert kinds.count("key") == 12

    def test_key_columns_match_composite_key(self):
        assert tuple(AdsReportingColumns.KEY_COLUMNS) == CompositeKey._fields

    def test_update_columns(self):
        update = AdsReportingColumns.UPDATE_COLUMNS

        assert len(update) == 46
        assert "created_at" not in update
        assert "updated_at" in update
        assert not set(update) & set(AdsReportingColumns.KEY_COLUMNS)

    def test_ratios_are_not_additive(self):
        additive = {c.name for c in ADS_REPORTING_MAPPING.additive_columns}

        assert {"spend", "revenue", "impressions", "clicks", "reach"} <= additive
        assert not {"cpc", "cpm", "ctr", "frequency", "purchase_roas"} & additive

    def test_key_of_builds_composite_key(self, record_factory):
        key = ADS_REPORTING_MAPPING.key_of(record_factory())

        assert isinstance(key, CompositeKey)
        assert key.account_id == "act_1001"
        assert key.city == "San Francisco"

    def test_key_of_with_other_key_columns(self, record_factory):
        key = ADS_REPORTING_MAPPING.key_of(record_factory(), ["city", "account_id"])

        assert not isinstance(key, CompositeKey)
        assert key == ("San Francisco", "act_1001")

    def test_column_lookup(self):
        assert ADS_REPORTING_MAPPING.column("country_code").type == "integer"
        with pytest.raises(KeyError):
            ADS_REPORTING_MAPPING.column("nope")


@pytest.mark.unit
class TestTableMapping:
    """Tests for TableMapping construction"""

    def test_duplicate_columns_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            TableMapping("t", [ColumnSpec(name="id", kind="key"), ColumnSpec(name="id")])

    def test_key_required(self):
        with pytest.raises(ValueError, match="no key columns"):
            TableMapping("t", [ColumnSpec(name="value", kind="additive", type="integer")])

    def test_attribute_alias(self):
        class Row:
            ident = "r1"
            total = None

        mapping = TableMapping("t", [
            ColumnSpec(name="id", attribute="ident", kind="key"),
            ColumnSpec(name="amount", attribute="total", kind="additive", type="integer"),
        ])

        assert mapping.key_of(Row()) == ("r1",)
        assert mapping.values_of(Row()) == ["r1", 0]


@pytest.mark.unit
class TestNormalizeValue:
    """Tests for normalize_value"""

    def test_absent_metrics_become_typed_zero(self):
        assert normalize_value(ColumnSpec(name="n", kind="additive", type="integer"), None) == 0
        assert normalize_value(ColumnSpec(name="f", kind="additive", type="float"), None) == 0.0

    def test_absent_key_stays_none(self):
        assert normalize_value(ColumnSpec(name="k", kind="key", type="integer"), None) is None

    def test_absent_decimal_stays_none(self):
        assert normalize_value(ColumnSpec(name="r", kind="ratio", type="decimal"), None) is None

    def test_timestamp_to_naive_utc_seconds(self):
        column = ColumnSpec(name="ts", type="timestamp")
        aware = datetime(2024, 1, 1, 12, 0, 0, 500000, tzinfo=timezone(timedelta(hours=-5)))

        assert normalize_value(column, aware) == datetime(2024, 1, 1, 17, 0, 0)

    def test_coercion(self):
        assert normalize_value(ColumnSpec(name="d", type="decimal"), 0.25) == Decimal("0.25")
        assert normalize_value(ColumnSpec(name="i", type="integer"), "7") == 7
