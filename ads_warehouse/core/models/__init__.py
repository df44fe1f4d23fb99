"""
Core data models for the ads reporting ingestion engine.

All models use Pydantic for runtime validation and type safety.
"""

from .ads_reporting import AdsReporting, CompositeKey
from .audit import AuditScope, BatchDuplicateStats, IntegrityReport
from .processing_result import BULK_STAGED, DIRECT_BATCH, ProcessingResult, ProcessingStrategy

__all__ = [
    "AdsReporting",
    "CompositeKey",
    "ProcessingResult",
    "ProcessingStrategy",
    "DIRECT_BATCH",
    "BULK_STAGED",
    "AuditScope",
    "BatchDuplicateStats",
    "IntegrityReport",
]
