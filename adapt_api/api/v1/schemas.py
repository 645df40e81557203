from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for public models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobStatus(str, Enum):
    """Lifecycle states for a generation or adaptation job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SafeZone(ApiModel):
    """Pixel margins, in target coordinates, that generated background must not touch."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    top: NonNegativeInt = 0
    right: NonNegativeInt = 0
    bottom: NonNegativeInt = 0
    left: NonNegativeInt = 0

    def is_empty(self) -> bool:
        return not (self.top or self.right or self.bottom or self.left)


class SizeConfig(ApiModel):
    """A target placement size, either from the preset catalog or user supplied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = Field(..., description="Human-readable size name, e.g. 'Story/Reel'.")
    width: PositiveInt = Field(..., description="Target width in pixels.")
    height: PositiveInt = Field(..., description="Target height in pixels.")
    platform: str = Field(..., description="Platform key, e.g. 'meta' or 'tiktok'.")
    placement: str = Field(default="", description="Placement within the platform.")
    safe_zone: SafeZone | None = Field(
        default=None,
        description="Optional safe-zone margins; catalog defaults apply when omitted.",
    )


class ResizeRequest(ApiModel):
    """Body of `POST /resize`. Presence checks happen in the route so they map to 400."""

    source_job_id: str | None = Field(default=None, description="Completed job to adapt.")
    target_sizes: List[SizeConfig] | None = Field(default=None, description="Sizes to produce.")


class JobResult(ApiModel):
    url: str
    thumbnail_url: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AdaptationJobOut(ApiModel):
    """Public view of one job record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    project_id: str
    source_asset_id: str
    source_job_id: str | None = None
    variation_index: int
    size_config: SizeConfig
    model_id: str | None = None
    status: JobStatus
    result: JobResult | None = None
    error: str | None = None
    created_at: str
    completed_at: str | None = None


class ResizeResponse(ApiModel):
    jobs: List[AdaptationJobOut] = Field(default_factory=list)
    created: int = Field(..., description="Number of sizes adapted successfully.")
    failed: int = Field(..., description="Number of sizes that failed.")


class ResizeFailure(ApiModel):
    """Returned with 500 when every requested size failed."""

    error: str
    details: str
    failed_count: int


class VariationOut(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

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
    created_at: str


class PlatformPresets(ApiModel):
    key: str
    display_name: str
    sizes: List[SizeConfig] = Field(default_factory=list)
