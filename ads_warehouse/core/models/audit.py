"""
Models produced by the duplicate and integrity auditor.
"""

from datetime import date

from pydantic import BaseModel, Field


class AuditScope(BaseModel):
    """
    Subset of the target table an audit operates on.

    An empty scope covers the whole table.
    """

    account_id: str | None = None
    processing_date: date | None = None

    def describe(self) -> str:
        if self.account_id is None and self.processing_date is None:
            return "all rows"
        parts = []
        if self.account_id is not None:
            parts.append(f"account_id={self.account_id}")
        if self.processing_date is not None:
            parts.append(f"processing_date={self.processing_date.isoformat()}")
        return ", ".join(parts)


class BatchDuplicateStats(BaseModel):
    """
    In-memory duplicate statistics for a batch before load.

    Attributes:
        total_records: Records in the batch
        unique_keys: Distinct composite keys
        duplicate_groups: Keys that occur more than once
        total_duplicates: Records beyond the first for each duplicated key
    """

    total_records: int = Field(0, ge=0)
    unique_keys: int = Field(0, ge=0)
    duplicate_groups: int = Field(0, ge=0)
    total_duplicates: int = Field(0, ge=0)

    @property
    def deduplication_rate(self) -> float:
        if self.total_records == 0:
            return 0.0
        return self.total_duplicates * 100.0 / self.total_records

    def as_dict(self) -> dict[str, int]:
        return {
            "totalRecords": self.total_records,
            "uniqueKeys": self.unique_keys,
            "duplicateGroups": self.duplicate_groups,
            "totalDuplicates": self.total_duplicates,
        }


class IntegrityReport(BaseModel):
    """Result of checking persisted rows for null and duplicate keys."""

    table: str
    scope: AuditScope = Field(default_factory=AuditScope)
    null_key_rows: int = Field(0, ge=0)
    duplicate_keys: int = Field(0, ge=0)

    @property
    def passed(self) -> bool:
        return self.null_key_rows == 0 and self.duplicate_keys == 0

    def as_dict(self) -> dict[str, int]:
        return {
            "nullKeyRows": self.null_key_rows,
            "duplicateKeys": self.duplicate_keys,
        }
