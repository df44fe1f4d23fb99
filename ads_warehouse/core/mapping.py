"""
Declarative column mappings for warehouse tables.

A TableMapping lists a table's columns once, in load order. The CSV header,
CSV rows, direct-insert parameters, key columns and additive metrics are all
derived from it, so their field counts and order cannot drift apart.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Literal, Sequence

from pydantic import BaseModel, Field

from ads_warehouse.core.models.ads_reporting import CompositeKey

ColumnKind = Literal["key", "additive", "ratio", "attribute"]
ColumnType = Literal["text", "integer", "float", "decimal", "date", "timestamp"]

# Column types rendered as zero instead of NULL when absent
ZERO_FILLED_TYPES = ("integer", "float")


class ColumnSpec(BaseModel):
    """
    One column of a target table.

    Attributes:
        name: Column name in the database
        attribute: Attribute name on the record (defaults to name)
        kind: key, additive (summable), ratio (derived), or attribute
        type: Value type, controls rendering and zero-filling
    """

    name: str = Field(..., min_length=1)
    attribute: str | None = None
    kind: ColumnKind = "attribute"
    type: ColumnType = "text"

    @property
    def source(self) -> str:
        return self.attribute or self.name

    class Config:
        frozen = True


def collapse_line_breaks(value: str) -> str:
    return value.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")


def normalize_value(column: ColumnSpec, value: Any) -> Any:
    """
    Normalize a record value into the form stored in the database.

    Absent integer and float columns become typed zeros. Timestamps are
    truncated to whole seconds and made naive UTC. Line breaks in text
    become spaces, so both load paths store the same text.
    """
    if value is None:
        if column.kind != "key" and column.type == "integer":
            return 0
        if column.kind != "key" and column.type == "float":
            return 0.0
        return None

    if column.type == "timestamp" and isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.replace(microsecond=0)
    if column.type == "integer":
        return int(value)
    if column.type == "float":
        return float(value)
    if column.type == "decimal" and not isinstance(value, Decimal):
        return Decimal(str(value))
    if column.type == "text" and isinstance(value, str):
        return collapse_line_breaks(value)
    return value


class TableMapping:
    """
    Ordered column layout of a warehouse table.

    Args:
        table: Target table name
        columns: Column specs in load order
        key_type: Builds the key object from the key values (plain tuple when omitted)
    """

    def __init__(
        self,
        table: str,
        columns: Iterable[ColumnSpec],
        key_type: Callable[..., tuple] | None = None,
    ):
        self.table = table
        self.columns: tuple[ColumnSpec, ...] = tuple(columns)
        self.key_type = key_type

        names = [c.name for c in self.columns]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate column names in mapping for {table}")
        if not self.key_columns:
            raise ValueError(f"Mapping for {table} declares no key columns")

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def key_columns(self) -> list[str]:
        return [c.name for c in self.columns if c.kind == "key"]

    @property
    def additive_columns(self) -> list[ColumnSpec]:
        return [c for c in self.columns if c.kind == "additive"]

    @property
    def update_columns(self) -> list[str]:
        """Every non-key column except created_at, which keeps its first value."""
        return [c.name for c in self.columns if c.kind != "key" and c.name != "created_at"]

    def column(self, name: str) -> ColumnSpec:
        for c in self.columns:
            if c.name == name:
                return c
        raise KeyError(f"Unknown column '{name}' for {self.table}")

    def key_of(self, record: Any, key_columns: Sequence[str] | None = None) -> tuple:
        """
        Composite key of a record.

        With the mapping's own key columns the key is built with `key_type`;
        any other column list gives a plain tuple in that order.
        """
        if key_columns is None or list(key_columns) == self.key_columns:
            values = tuple(getattr(record, c.source, None) for c in self.columns if c.kind == "key")
            return self.key_type(*values) if self.key_type is not None else values
        return tuple(getattr(record, self.column(name).source, None) for name in key_columns)

    def values_of(self, record: Any) -> list[Any]:
        """Normalized values of a record, in column order."""
        return [normalize_value(c, getattr(record, c.source, None)) for c in self.columns]


def _col(name: str, kind: ColumnKind, type_: ColumnType) -> ColumnSpec:
    return ColumnSpec(name=name, kind=kind, type=type_)


ADS_REPORTING_TABLE = "tbl_ads_reporting"

ADS_REPORTING_MAPPING = TableMapping(
    ADS_REPORTING_TABLE,
    [
        # Composite key (12)
        _col("account_id", "key", "text"),
        _col("platform_id", "key", "text"),
        _col("campaign_id", "key", "text"),
        _col("adset_id", "key", "text"),
        _col("advertisement_id", "key", "text"),
        _col("placement_id", "key", "text"),
        _col("ads_processing_dt", "key", "date"),
        _col("age_group", "key", "text"),
        _col("gender", "key", "text"),
        _col("country_code", "key", "integer"),
        _col("region", "key", "text"),
        _col("city", "key", "text"),
        # Core metrics
        _col("spend", "additive", "float"),
        _col("revenue", "additive", "float"),
        _col("purchase_roas", "ratio", "decimal"),
        _col("impressions", "additive", "integer"),
        _col("clicks", "additive", "integer"),
        _col("unique_clicks", "additive", "integer"),
        _col("cost_per_unique_click", "ratio", "decimal"),
        _col("link_clicks", "additive", "integer"),
        _col("unique_link_clicks", "additive", "integer"),
        _col("reach", "additive", "integer"),
        _col("frequency", "ratio", "decimal"),
        _col("cpc", "ratio", "decimal"),
        _col("cpm", "ratio", "decimal"),
        _col("cpp", "ratio", "decimal"),
        _col("ctr", "ratio", "decimal"),
        _col("unique_ctr", "ratio", "decimal"),
        # Engagement metrics
        _col("post_engagement", "additive", "integer"),
        _col("page_engagement", "additive", "integer"),
        _col("likes", "additive", "integer"),
        _col("comments", "additive", "integer"),
        _col("shares", "additive", "integer"),
        _col("photo_view", "additive", "integer"),
        _col("video_views", "additive", "integer"),
        _col("video_p25_watched_actions", "additive", "integer"),
        _col("video_p50_watched_actions", "additive", "integer"),
        _col("video_p75_watched_actions", "additive", "integer"),
        _col("video_p95_watched_actions", "additive", "integer"),
        _col("video_p100_watched_actions", "additive", "integer"),
        _col("video_avg_percent_watched", "ratio", "decimal"),
        # Conversion metrics
        _col("purchases", "additive", "integer"),
        _col("purchase_value", "attribute", "decimal"),
        _col("leads", "additive", "integer"),
        _col("cost_per_lead", "ratio", "decimal"),
        _col("mobile_app_install", "additive", "integer"),
        _col("cost_per_app_install", "ratio", "decimal"),
        _col("social_spend", "attribute", "decimal"),
        _col("inline_link_clicks", "additive", "integer"),
        _col("inline_post_engagement", "additive", "integer"),
        _col("cost_per_inline_link_click", "ratio", "decimal"),
        _col("cost_per_inline_post_engagement", "ratio", "decimal"),
        # Metadata
        _col("currency", "attribute", "text"),
        _col("attribution_setting", "attribute", "text"),
        _col("date_start", "attribute", "text"),
        _col("date_stop", "attribute", "text"),
        _col("created_at", "attribute", "timestamp"),
        _col("updated_at", "attribute", "timestamp"),
        _col("country_name", "attribute", "text"),
    ],
    key_type=CompositeKey,
)


class AdsReportingColumns:
    """Standard column lists for loading tbl_ads_reporting."""

    TABLE = ADS_REPORTING_TABLE
    KEY_COLUMNS: list[str] = ADS_REPORTING_MAPPING.key_columns
    UPDATE_COLUMNS: list[str] = ADS_REPORTING_MAPPING.update_columns

