"""Aggregate results returned by the periodic jobs and their manual triggers."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PassResult(BaseModel):
    """Per-order outcome counts for one pass of a job."""

    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)

    def record_success(self) -> None:
        self.successful += 1

    def record_skip(self) -> None:
        self.skipped += 1

    def record_failure(self, order_ref: str, error: Exception) -> None:
        self.failed += 1
        self.errors.append(f"{order_ref}: {error}")


class JobReport(BaseModel):
    """Totals over every pass of one job run."""

    job: str
    today: str
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    passes: Dict[str, PassResult] = Field(default_factory=dict)
    parcels_fetched: Optional[int] = None

    @classmethod
    def from_passes(cls, job: str, today: str, passes: Dict[str, PassResult], **extra) -> "JobReport":
        return cls(
            job=job,
            today=today,
            successful=sum(result.successful for result in passes.values()),
            failed=sum(result.failed for result in passes.values()),
            skipped=sum(result.skipped for result in passes.values()),
            errors=[error for result in passes.values() for error in result.errors],
            passes=passes,
            **extra,
        )
