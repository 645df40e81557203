from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from adapt_api.api.v1.schemas import JobStatus, SizeConfig


def utcnow() -> datetime:
    """Return an explicit, timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class JobResult:
    url: str
    thumbnail_url: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Job:
    """
    Internal representation of a generation job.

    Source creatives and their aspect-ratio adaptations share this record;
    adaptations are the ones with `source_job_id` set. Kept separate from the
    API schemas so storage-level fields can evolve independently.
    """

    id: str
    project_id: str
    source_asset_id: str
    variation_index: int
    size_config: SizeConfig
    status: JobStatus = JobStatus.QUEUED
    # Strategy or provider that produced the pixels: smart-contain,
    # smart-crop, or an outpainting provider id.
    model_id: str | None = None
    prompt: str = ""
    variation_types: List[str] = field(default_factory=list)
    source_job_id: str | None = None
    result: JobResult | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None


@dataclass(slots=True)
class Variation:
    """UI-facing copy of a completed job's output, ordered by `variation_index`."""

    id: str
    project_id: str
    job_id: str
    source_asset_id: str
    variation_index: int
    size_config: SizeConfig
    model_id: str
    prompt: str
    url: str
    thumbnail_url: str
    type: str = "image"
    selected: bool = False
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class Rect:
    """Axis-aligned rectangle in pixel coordinates (x, y is the top-left corner)."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def expanded(self, margin: int, max_width: int, max_height: int) -> "Rect":
        """Grow by `margin` on every side, clamped to a `max_width` x `max_height` canvas."""
        x0 = max(0, self.x - margin)
        y0 = max(0, self.y - margin)
        x1 = min(max_width, self.right + margin)
        y1 = min(max_height, self.bottom + margin)
        return Rect(x=x0, y=y0, width=x1 - x0, height=y1 - y0)


@dataclass(slots=True)
class Placement:
    """Where the contained source lands inside the target canvas."""

    scale: float
    content: Rect


@dataclass(slots=True)
class TaskOutcome:
    """Result of adapting one target size, success or failure."""

    job: Job
    variation: Variation | None = None
    error: str | None = None
    details: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.job.status == JobStatus.COMPLETED


@dataclass(slots=True)
class AdaptationSummary:
    """Aggregate of one adaptation batch."""

    outcomes: List[TaskOutcome] = field(default_factory=list)

    @property
    def jobs(self) -> List[Job]:
        return [outcome.job for outcome in self.outcomes]

    @property
    def created(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.created

    @property
    def first_failure(self) -> TaskOutcome | None:
        for outcome in self.outcomes:
            if not outcome.succeeded:
                return outcome
        return None
