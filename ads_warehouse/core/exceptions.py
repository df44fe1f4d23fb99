"""
Exception hierarchy for the ingestion engine.

Validation and encoding errors are raised before any durable write.
Load errors mean the surrounding transaction was rolled back.
"""

from typing import Any


class IngestionError(Exception):
    """Base class for all ingestion engine errors."""
    pass


class ValidationError(IngestionError, ValueError):
    """
    Raised when input is rejected before load.

    Attributes:
        invalid_records: (batch index, missing fields) for each offending record
    """

    def __init__(self, message: str, invalid_records: list[tuple[int, list[str]]] | None = None):
        self.invalid_records = invalid_records or []
        super().__init__(message)


class EncodingError(IngestionError):
    """Raised when header and row field counts disagree."""

    def __init__(self, message: str, expected: int | None = None, actual: int | None = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class LoadError(IngestionError):
    """
    Raised when a durable write fails and the transaction is rolled back.

    Attributes:
        table: Target table
        strategy: Load path that failed
        step: Step of the load that failed (e.g. "MERGE")
    """

    def __init__(self, message: str, table: str, strategy: str, step: str | None = None):
        self.table = table
        self.strategy = strategy
        self.step = step
        super().__init__(message)


class IntegrityViolation(IngestionError):
    """Raised when persisted rows have null or duplicate composite keys."""

    def __init__(self, message: str, report: dict[str, Any]):
        self.report = report
        super().__init__(message)
