"""
ProcessingResult model returned by every ingestion call (ephemeral).
"""

from typing import Literal

from pydantic import BaseModel, Field

DIRECT_BATCH = "DIRECT_BATCH"
BULK_STAGED = "BULK_STAGED"

ProcessingStrategy = Literal["DIRECT_BATCH", "BULK_STAGED"]


class ProcessingResult(BaseModel):
    """
    Outcome of one ingestion call. Immutable.

    Attributes:
        records_processed: Rows inserted or updated in the target
        duration_ms: Wall-clock duration of the call in milliseconds
        strategy: Load path that performed the write
    """

    records_processed: int = Field(..., ge=0)
    duration_ms: int = Field(..., ge=0)
    strategy: ProcessingStrategy

    @property
    def records_per_second(self) -> int:
        if self.duration_ms <= 0:
            return 0
        return (self.records_processed * 1000) // self.duration_ms

    def __str__(self) -> str:
        return (
            f"ProcessingResult(records={self.records_processed}, "
            f"duration={self.duration_ms}ms, strategy={self.strategy}, "
            f"rate={self.records_per_second}/sec)"
        )

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "records_processed": 12000,
                "duration_ms": 850,
                "strategy": "BULK_STAGED"
            }
        }
