from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from adapt_api.api.v1.schemas import (
    AdaptationJobOut,
    JobResult,
    PlatformPresets,
    ResizeFailure,
    ResizeRequest,
    ResizeResponse,
    VariationOut,
)
from adapt_api.models.jobs import Job, Variation
from adapt_api.services.errors import JobStateError, NotFoundError, ValidationError
from adapt_api.services.jobs import JobStore, get_job_store
from adapt_api.services.orchestrator import AdaptationOrchestrator, get_orchestrator
from adapt_api.services.safe_zones import list_platforms

router = APIRouter(prefix="/api/v1")


def job_out(job: Job) -> AdaptationJobOut:
    return AdaptationJobOut(
        id=job.id,
        project_id=job.project_id,
        source_asset_id=job.source_asset_id,
        source_job_id=job.source_job_id,
        variation_index=job.variation_index,
        size_config=job.size_config,
        model_id=job.model_id,
        status=job.status,
        result=(
            JobResult(url=job.result.url, thumbnail_url=job.result.thumbnail_url, metadata=job.result.metadata)
            if job.result is not None
            else None
        ),
        error=job.error,
        created_at=job.created_at.isoformat(),
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
    )


def variation_out(variation: Variation) -> VariationOut:
    return VariationOut(
        id=variation.id,
        project_id=variation.project_id,
        job_id=variation.job_id,
        source_asset_id=variation.source_asset_id,
        variation_index=variation.variation_index,
        size_config=variation.size_config,
        model_id=variation.model_id,
        prompt=variation.prompt,
        url=variation.url,
        thumbnail_url=variation.thumbnail_url,
        type=variation.type,
        selected=variation.selected,
        created_at=variation.created_at.isoformat(),
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, JobStateError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """API v1 health check endpoint."""
    return {"status": "ok", "api_version": "v1"}


@router.post(
    "/resize",
    response_model=ResizeResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    tags=["resize"],
    summary="Adapt a completed creative to new placement sizes",
    responses={500: {"model": ResizeFailure}},
)
async def resize(
    payload: ResizeRequest,
    orchestrator: AdaptationOrchestrator = Depends(get_orchestrator),
):
    """
    Adapt the result image of `sourceJobId` to every size in `targetSizes`.

    Each size becomes its own job with a pre-reserved variation index.
    Small ratio changes are letterboxed; larger ones are outpainted (or
    center-cropped when outpainting is disabled). Sizes succeed or fail
    independently:

    - some succeed: 201 with every job and both counts,
    - all fail: 500 with the first failure's message and details.
    """
    if not payload.source_job_id or not payload.target_sizes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="sourceJobId and targetSizes required",
        )

    try:
        summary = await orchestrator.adapt(payload.source_job_id, payload.target_sizes)
    except (ValidationError, NotFoundError) as exc:
        raise _http_error(exc) from exc

    if summary.created == 0:
        first = summary.first_failure
        failure = ResizeFailure(
            error=first.error or "All resize operations failed",
            details=first.details or "",
            failed_count=summary.failed,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure.model_dump(by_alias=True),
        )

    return ResizeResponse(
        jobs=[job_out(job) for job in summary.jobs],
        created=summary.created,
        failed=summary.failed,
    )


@router.get(
    "/jobs",
    response_model=List[AdaptationJobOut],
    response_model_by_alias=True,
    tags=["jobs"],
    summary="List jobs, optionally for one project",
)
async def list_jobs(
    project_id: str | None = Query(default=None, alias="projectId"),
    store: JobStore = Depends(get_job_store),
) -> List[AdaptationJobOut]:
    return [job_out(job) for job in store.list_jobs(project_id)]


@router.get(
    "/jobs/{job_id}",
    response_model=AdaptationJobOut,
    response_model_by_alias=True,
    tags=["jobs"],
    summary="Get a single job",
)
async def get_job(job_id: str, store: JobStore = Depends(get_job_store)) -> AdaptationJobOut:
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found.",
        )
    return job_out(job)


@router.post(
    "/jobs/{job_id}/retry",
    response_model=AdaptationJobOut,
    response_model_by_alias=True,
    tags=["jobs"],
    summary="Re-run one failed adaptation size",
)
async def retry_job(
    job_id: str,
    orchestrator: AdaptationOrchestrator = Depends(get_orchestrator),
) -> AdaptationJobOut:
    """
    Move a failed adaptation job back to `queued` and run it again.

    The job keeps its id and variation index. The returned job shows the
    outcome of the new attempt (completed or failed again).
    """
    try:
        outcome = await orchestrator.retry(job_id)
    except (ValidationError, NotFoundError, JobStateError) as exc:
        raise _http_error(exc) from exc
    return job_out(outcome.job)


@router.post(
    "/jobs/{job_id}/cancel",
    response_model=AdaptationJobOut,
    response_model_by_alias=True,
    tags=["jobs"],
    summary="Cancel a queued or processing job",
)
async def cancel_job(
    job_id: str,
    orchestrator: AdaptationOrchestrator = Depends(get_orchestrator),
) -> AdaptationJobOut:
    try:
        job = orchestrator.cancel(job_id)
    except (NotFoundError, JobStateError) as exc:
        raise _http_error(exc) from exc
    return job_out(job)


@router.get(
    "/variations",
    response_model=List[VariationOut],
    response_model_by_alias=True,
    tags=["variations"],
    summary="List a project's variations in display order",
)
async def list_variations(
    project_id: str | None = Query(default=None, alias="projectId"),
    store: JobStore = Depends(get_job_store),
) -> List[VariationOut]:
    if not project_id:
        return []
    return [variation_out(v) for v in store.list_variations(project_id)]


@router.get(
    "/sizes",
    response_model=List[PlatformPresets],
    response_model_by_alias=True,
    tags=["sizes"],
    summary="Platform size presets and their safe zones",
)
async def list_sizes() -> List[PlatformPresets]:
    return list_platforms()
