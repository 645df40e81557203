"""
Aspect-ratio adaptation orchestration.

One request adapts a completed source job to many target sizes. Sizes run
independently in worker threads (all their work is blocking I/O or OpenCV),
the batch waits for every one of them to settle, and each failure is
recorded on its own job without touching its siblings.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from adapt_api.api.v1.schemas import JobStatus, SizeConfig
from adapt_api.config import AdaptationSettings, get_settings
from adapt_api.models.jobs import AdaptationSummary, Job, JobResult, TaskOutcome, utcnow
from adapt_api.services.compositor import (
    composite_disclaimer,
    decode_image,
    encode_png,
    fit_to_target,
    render_center_crop,
    render_contain,
    render_outpaint_base,
)
from adapt_api.services.errors import (
    AdaptationError,
    AdaptationTimeout,
    InvalidSourceImage,
    JobStateError,
    NotFoundError,
    ProviderOutputError,
    StorageError,
    ValidationError,
)
from adapt_api.services.jobs import JobStore, get_job_store
from adapt_api.services.letterbox import trim_letterbox
from adapt_api.services.masks import build_mask
from adapt_api.services.policy import Strategy, choose_strategy, classify_aspect_ratio
from adapt_api.services.providers import OutpaintGateway, OutpaintRequest, build_guidance_prompt, get_gateway
from adapt_api.services.recorder import VariationRecorder
from adapt_api.services.safe_zones import resolve_safe_zone
from adapt_api.services.storage import LocalBlobStorage, fetch_bytes, get_blob_storage

logger = logging.getLogger(__name__)

Fetcher = Callable[..., bytes]


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


class AdaptationOrchestrator:
    def __init__(
        self,
        store: JobStore,
        storage: LocalBlobStorage,
        gateway: OutpaintGateway,
        settings: AdaptationSettings,
        fetch: Fetcher = fetch_bytes,
    ) -> None:
        self._store = store
        self._storage = storage
        self._gateway = gateway
        self._settings = settings
        self._fetch = fetch
        self._recorder = VariationRecorder(store)

    # Request-level entry points

    def _load_source_job(self, source_job_id: str | None) -> Job:
        if not source_job_id:
            raise ValidationError("sourceJobId and targetSizes required")
        source = self._store.get_job(source_job_id)
        if source is None:
            raise NotFoundError("Source job not found")
        if source.result is None or not source.result.url:
            raise ValidationError("Source job has no result image")
        return source

    async def adapt(self, source_job_id: str | None, target_sizes: Sequence[SizeConfig] | None) -> AdaptationSummary:
        """
        Adapt a source job to every target size.

        Validation and source lookup fail the whole request; after fan-out
        every size settles on its own and the summary reports both counts.
        """
        if not target_sizes:
            raise ValidationError("sourceJobId and targetSizes required")
        source = self._load_source_job(source_job_id)

        jobs = self._recorder.open_batch(source, list(target_sizes))
        logger.info("Adapting source job %s to %d sizes", source.id, len(jobs))

        outcomes = await self._run_all(source, jobs)
        summary = AdaptationSummary(outcomes=outcomes)
        logger.info(
            "Adaptation of %s finished: %d created, %d failed",
            source.id,
            summary.created,
            summary.failed,
        )
        return summary

    async def retry(self, job_id: str) -> TaskOutcome:
        """Re-run a single failed adaptation job, keeping its variation index."""
        job = self._store.get_job(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        if job.source_job_id is None:
            raise ValidationError("Only aspect-ratio adaptation jobs can be retried")
        source = self._load_source_job(job.source_job_id)

        job = self._store.reset_for_retry(job_id)
        logger.info("Retrying adaptation job %s (%dx%d)", job.id, job.size_config.width, job.size_config.height)
        outcomes = await self._run_all(source, [job])
        return outcomes[0]

    def cancel(self, job_id: str) -> Job:
        return self._store.mark_failed(job_id, "Cancelled by user")

    # Fan-out

    async def _run_all(self, source: Job, jobs: List[Job]) -> List[TaskOutcome]:
        tasks = [asyncio.create_task(asyncio.to_thread(self.run_task, source, job)) for job in jobs]
        done, _pending = await asyncio.wait(tasks, timeout=self._settings.batch_timeout_seconds)

        outcomes: List[TaskOutcome] = []
        for job, task in zip(jobs, tasks):
            if task in done:
                outcomes.append(task.result())
            else:
                task.cancel()
                outcomes.append(self._timed_out(job))
        return outcomes

    def _timed_out(self, job: Job) -> TaskOutcome:
        error = AdaptationTimeout(
            f"Adaptation exceeded the {self._settings.batch_timeout_seconds:.0f}s budget; retry this size"
        )
        logger.error("Job %s timed out", job.id)
        return self._fail(job, error, details=str(error))

    def _fail(self, job: Job, error: Exception, details: str) -> TaskOutcome:
        try:
            failed = self._recorder.record_failure(job, str(error))
        except AdaptationError as exc:
            # Already settled elsewhere (cancelled, or completed just in time).
            logger.warning("Could not mark job %s failed: %s", job.id, exc)
            failed = self._store.get_job(job.id) or job
            if failed.status == JobStatus.COMPLETED:
                return TaskOutcome(job=failed)
        return TaskOutcome(job=failed, error=str(error), details=details)

    def run_task(self, source: Job, job: Job) -> TaskOutcome:
        """
        Adapt one size. Never raises: every error becomes a failed job.

        Runs in a worker thread.
        """
        try:
            self._store.mark_processing(job.id)
            result, model_id = self._adapt_one(source, job)
            completed, variation = self._recorder.record_success(job, result, model_id)
            logger.info("Job %s completed via %s: %s", job.id, model_id, result.url)
            return TaskOutcome(job=completed, variation=variation)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Adaptation to %dx%d failed for job %s",
                job.size_config.width,
                job.size_config.height,
                job.id,
            )
            return self._fail(job, exc, details=traceback.format_exc())

    # Per-size work

    def _load_source_image(self, source: Job) -> np.ndarray:
        data = self._fetch(source.result.url, self._storage, timeout=self._settings.http_timeout_seconds)
        image = decode_image(data)
        if self._settings.trim_source_letterbox:
            image = trim_letterbox(image)
        return image

    def _adapt_one(self, source: Job, job: Job) -> Tuple[JobResult, str]:
        size = job.size_config
        image = self._load_source_image(source)
        source_height, source_width = image.shape[:2]

        strategy = choose_strategy(
            source_width,
            source_height,
            size,
            threshold=self._settings.contain_ratio_threshold,
            outpaint_enabled=self._settings.outpaint_enabled,
        )
        metadata = {
            "resizedFrom": source.id,
            "method": strategy.value,
            "aspectRatio": classify_aspect_ratio(size.width, size.height),
            "sourceSize": f"{source_width}x{source_height}",
        }

        if strategy is Strategy.OUTPAINT:
            return self._outpaint(source, job, image, metadata)

        self._store.set_model(job.id, strategy.value)
        if strategy is Strategy.CONTAIN:
            output = render_contain(image, size.width, size.height, fill=self._settings.contain_fill)
        else:
            output = render_center_crop(image, size.width, size.height)

        self._ensure_processing(job.id)
        path = f"generated/resize-{job.id}-{size.width}x{size.height}-{_timestamp_ms()}.png"
        url = self._storage.upload(path, encode_png(output), "image/png")
        metadata["generatedAt"] = utcnow().isoformat()
        return JobResult(url=url, thumbnail_url=url, metadata=metadata), strategy.value

    def _outpaint(self, source: Job, job: Job, image: np.ndarray, metadata: dict) -> Tuple[JobResult, str]:
        size = job.size_config
        provider = self._settings.default_provider
        uses_mask = self._gateway.uses_mask(provider)
        self._store.set_model(job.id, provider)

        source_height, source_width = image.shape[:2]
        zone = resolve_safe_zone(size)
        mask = build_mask(
            size.width,
            size.height,
            source_width,
            source_height,
            safe_zone=zone,
            margin=self._settings.mask_safety_margin,
        )
        base = render_outpaint_base(image, size.width, size.height)

        stamp = _timestamp_ms()
        temp_paths: List[str] = []
        try:
            image_path = f"temp/outpaint-img-{job.id}-{stamp}.png"
            temp_paths.append(image_path)
            base_url = self._storage.upload(image_path, encode_png(base), "image/png")

            mask_url: Optional[str] = None
            if uses_mask:
                mask_path = f"temp/outpaint-mask-{job.id}-{stamp}.png"
                temp_paths.append(mask_path)
                mask_url = self._storage.upload(mask_path, encode_png(mask.mask), "image/png")

            request = OutpaintRequest(
                base_image_url=base_url,
                mask_url=mask_url,
                target_width=size.width,
                target_height=size.height,
                target_aspect_ratio=metadata["aspectRatio"],
                guidance_prompt=build_guidance_prompt(source.prompt, uses_mask=uses_mask),
                safety_level=self._settings.safety_level,
            )
            logger.info(
                "Outpainting job %s to %dx%d with %s (mask coverage %.1f%%)",
                job.id,
                size.width,
                size.height,
                provider,
                mask.coverage * 100,
            )
            output_url = self._gateway.invoke(provider, request)
            generated = self._download_output(output_url)
        finally:
            self._cleanup(temp_paths)

        generated = fit_to_target(generated, size.width, size.height)
        if self._settings.disclaimer_compositing:
            generated = composite_disclaimer(generated, image, self._settings.disclaimer_band_fraction)

        self._ensure_processing(job.id)
        path = f"resized/{job.id}-{size.width}x{size.height}-{stamp}.png"
        url = self._storage.upload(path, encode_png(generated), "image/png")
        metadata.update(
            {
                "provider": provider,
                "safeZone": zone.model_dump(by_alias=True),
                "disclaimerComposited": self._settings.disclaimer_compositing,
                "generatedAt": utcnow().isoformat(),
            }
        )
        return JobResult(url=url, thumbnail_url=url, metadata=metadata), provider

    def _ensure_processing(self, job_id: str) -> None:
        # Timed out or cancelled while this thread was working.
        current = self._store.get_job(job_id)
        if current is None or current.status is not JobStatus.PROCESSING:
            state = current.status.value if current is not None else "missing"
            raise JobStateError(f"Job {job_id} is {state}; discarding late output")

    def _download_output(self, url: str) -> np.ndarray:
        data = self._fetch(url, self._storage, timeout=self._settings.http_timeout_seconds)
        try:
            return decode_image(data)
        except InvalidSourceImage as exc:
            raise ProviderOutputError("Provider output is not a decodable image", url) from exc

    def _cleanup(self, paths: List[str]) -> None:
        if not paths:
            return
        try:
            self._storage.remove(paths)
        except StorageError as exc:
            logger.warning("Temp cleanup failed: %s", exc)


_orchestrator: AdaptationOrchestrator | None = None


def get_orchestrator() -> AdaptationOrchestrator:
    """Get or create the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = AdaptationOrchestrator(
            store=get_job_store(),
            storage=get_blob_storage(),
            gateway=get_gateway(),
            settings=get_settings(),
        )
    return _orchestrator
