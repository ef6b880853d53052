# backend/pawsync/models/pipeline_models.py
"""
Pipeline Domain Models

Results produced by the capture and conversion stages and the per-pet and
per-batch records reported by the orchestrator.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..enums import CaptureStrategy, FailureReason, PipelineOutcome, PipelineStage


class CaptureResult(BaseModel):
    """Raw PNG bytes captured from a source page."""

    png_bytes: bytes = Field(..., repr=False)
    strategy: CaptureStrategy
    selector: Optional[str] = Field(
        None, description="Selector that matched when strategy is element"
    )
    duration_ms: Optional[int] = None


class ConversionResult(BaseModel):
    """Resized JPEG and WebP produced from one source image."""

    jpeg_bytes: bytes = Field(..., repr=False)
    webp_bytes: bytes = Field(..., repr=False)
    jpeg_size: int
    webp_size: int
    savings_percent: float
    width: int
    height: int


class PetPipelineResult(BaseModel):
    """Outcome of one pet's pass through the pipeline."""

    pet_id: str
    outcome: PipelineOutcome
    stage: PipelineStage = Field(
        ..., description="Last stage reached; FAILED for failed pets"
    )
    failure_reason: Optional[FailureReason] = None
    error: Optional[str] = None
    capture_strategy: Optional[CaptureStrategy] = None
    capture_attempts: int = 0
    store_attempts: int = 0
    jpeg_size: Optional[int] = None
    webp_size: Optional[int] = None
    status_write_failed: bool = False
    duration_ms: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == PipelineOutcome.DONE


class BatchResult(BaseModel):
    """Aggregate of one batch. One entry per input pet, in input order."""

    batch_id: Optional[str] = None
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    abandoned_count: int = 0
    timed_out: bool = False
    results: List[PetPipelineResult] = Field(default_factory=list)
    duration_ms: Optional[int] = None

    @classmethod
    def from_results(
        cls,
        results: List[PetPipelineResult],
        batch_id: Optional[str] = None,
        timed_out: bool = False,
        duration_ms: Optional[int] = None,
    ) -> "BatchResult":
        counts = {outcome: 0 for outcome in PipelineOutcome}
        for result in results:
            counts[result.outcome] += 1
        return cls(
            batch_id=batch_id,
            success_count=counts[PipelineOutcome.DONE],
            failed_count=counts[PipelineOutcome.FAILED],
            skipped_count=counts[PipelineOutcome.SKIPPED],
            abandoned_count=counts[PipelineOutcome.ABANDONED],
            timed_out=timed_out,
            results=results,
            duration_ms=duration_ms,
        )
