"""
Pre-load aggregation of records sharing a composite key.

Duplicate keys in one extraction are fan-out artifacts (the same fact split
across API pages or breakdown passes), not independent facts. They are
collapsed into one record per key before load: additive counters are summed,
everything else comes from the first record of the group.
"""

import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Sequence

from ads_warehouse.core.mapping import ADS_REPORTING_MAPPING, TableMapping
from ads_warehouse.core.models.audit import BatchDuplicateStats
from ads_warehouse.observability.logger import get_logger

logger = get_logger(__name__)

RATIO_PLACES = Decimal("0.0001")


def _ratio(numerator: float | Decimal, denominator: float | int) -> Decimal:
    return (Decimal(str(numerator)) / Decimal(str(denominator))).quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)


def recalculate_reporting_ratios(record: Any) -> None:
    """
    Recompute derived ratios of an AdsReporting record from its counters.

    Ratios whose denominator is zero or missing keep their current value.
    """
    spend = record.spend
    clicks = record.clicks
    impressions = record.impressions
    reach = record.reach
    unique_clicks = record.unique_clicks

    if clicks and clicks > 0 and spend is not None:
        record.cpc = _ratio(spend, clicks)
    if impressions and impressions > 0 and spend is not None:
        record.cpm = _ratio(Decimal(str(spend)) * 1000, impressions)
    if impressions and impressions > 0 and clicks is not None:
        record.ctr = _ratio(clicks * 100, impressions)
    if reach and reach > 0 and unique_clicks is not None:
        record.unique_ctr = _ratio(unique_clicks * 100, reach)
    if reach and reach > 0 and impressions is not None:
        record.frequency = _ratio(impressions, reach)
    if unique_clicks and unique_clicks > 0 and spend is not None:
        record.cost_per_unique_click = _ratio(spend, unique_clicks)
    if record.purchase_value is not None and spend is not None and spend > 0:
        record.purchase_roas = _ratio(record.purchase_value, spend)


def compute_duplicate_stats(records: Sequence[Any], key_func: Callable[[Any], tuple]) -> BatchDuplicateStats:
    """Count keys and duplicates in a batch without modifying it."""
    counts: dict[tuple, int] = {}
    for record in records:
        key = key_func(record)
        counts[key] = counts.get(key, 0) + 1

    duplicate_groups = sum(1 for c in counts.values() if c > 1)
    total_duplicates = sum(c - 1 for c in counts.values() if c > 1)

    return BatchDuplicateStats(
        total_records=len(records),
        unique_keys=len(counts),
        duplicate_groups=duplicate_groups,
        total_duplicates=total_duplicates,
    )


class PreLoadAggregator:
    """
    Collapses same-key records so a batch holds at most one record per key.

    Args:
        mapping: Table layout providing key and additive columns
        recalculate: Optional hook to recompute derived fields of a merged record
        key_columns: Columns records are grouped by (defaults to the mapping's key)
    """

    def __init__(
        self,
        mapping: TableMapping = ADS_REPORTING_MAPPING,
        recalculate: Callable[[Any], None] | None = recalculate_reporting_ratios,
        key_columns: Sequence[str] | None = None,
    ):
        self.mapping = mapping
        self.recalculate = recalculate
        self.key_columns = list(key_columns) if key_columns is not None else mapping.key_columns
        self._additive = [c.source for c in mapping.additive_columns]
        self._float_additive = {c.source for c in mapping.additive_columns if c.type != "integer"}

    def aggregate(self, records: Sequence[Any]) -> list[Any]:
        """
        Aggregate a batch by composite key.

        Args:
            records: Batch, possibly with duplicate keys

        Returns:
            One record per distinct key, in first-seen key order. Records
            whose key is unique are returned as-is.
        """
        if not records:
            return []

        start = time.perf_counter()

        groups = self._group(records)
        aggregated = []
        for key, group in groups.items():
            if len(group) > 1:
                logger.debug(f"Merging {len(group)} records for key {key}")
            aggregated.append(self._merge_group(group))

        duration_ms = int((time.perf_counter() - start) * 1000)
        removed = len(records) - len(aggregated)
        if removed:
            duplicate_groups = sum(1 for g in groups.values() if len(g) > 1)
            logger.info(
                f"Aggregated {len(records)} records into {len(aggregated)} unique keys "
                f"({duplicate_groups} duplicate groups, {removed} duplicates merged, "
                f"{removed * 100.0 / len(records):.1f}% dedup rate) in {duration_ms}ms"
            )
        else:
            logger.debug(f"No duplicate keys among {len(records)} records")

        return aggregated

    def key_of(self, record: Any) -> tuple:
        return self.mapping.key_of(record, self.key_columns)

    def _group(self, records: Sequence[Any]) -> dict[tuple, list[Any]]:
        groups: dict[tuple, list[Any]] = {}
        for record in records:
            groups.setdefault(self.key_of(record), []).append(record)
        return groups

    def keep_last(self, records: Sequence[Any], update_columns: Sequence[str]) -> list[Any]:
        """
        Reduce a batch to one record per key without summing.

        The stored result matches upserting the records one by one: update
        columns come from the last record of a key, every other column
        from the first.

        Returns:
            One record per distinct key, in first-seen key order
        """
        updated = set(update_columns)
        kept_from_first = [c.source for c in self.mapping.columns if c.name not in updated]

        result = []
        for key, group in self._group(records).items():
            if len(group) == 1:
                result.append(group[0])
                continue
            first = group[0]
            logger.debug(f"Keeping last of {len(group)} records for key {key}")
            result.append(group[-1].model_copy(update={a: getattr(first, a) for a in kept_from_first}))
        return result

    def _merge_group(self, group: list[Any]) -> Any:
        if len(group) == 1:
            return group[0]

        base = group[0].model_copy()

        for attr in self._additive:
            if attr in self._float_additive:
                total = sum(float(getattr(r, attr) or 0.0) for r in group)
            else:
                total = sum(int(getattr(r, attr) or 0) for r in group)
            setattr(base, attr, total)

        if self.recalculate is not None:
            self.recalculate(base)

        if hasattr(base, "updated_at"):
            timestamps = [r.updated_at for r in group if r.updated_at is not None]
            if timestamps:
                base.updated_at = max(timestamps)

        return base

    def duplicate_stats(self, records: Sequence[Any]) -> BatchDuplicateStats:
        return compute_duplicate_stats(records, self.key_of)

    def validate_conservation(
        self,
        original: Sequence[Any],
        aggregated: Sequence[Any],
        tolerance: float = 0.01,
    ) -> bool:
        """
        Check that every additive metric has the same total before and after aggregation.

        Float metrics may differ by at most `tolerance`; integer metrics must match exactly.
        """
        preserved = True
        for attr in self._additive:
            before = sum(getattr(r, attr) or 0 for r in original)
            after = sum(getattr(r, attr) or 0 for r in aggregated)
            allowed = tolerance if attr in self._float_additive else 0
            if abs(before - after) > allowed:
                logger.error(f"Aggregation changed total {attr}: {before} -> {after}")
                preserved = False
        return preserved
