from __future__ import annotations

import logging
from typing import List

from adapt_api.api.v1.schemas import SizeConfig
from adapt_api.models.jobs import Job, JobResult, Variation
from adapt_api.services.jobs import JobStore

logger = logging.getLogger(__name__)


class VariationRecorder:
    """
    Persists adaptation jobs and the variations derived from them.

    The job record is authoritative and written first; the variation is a
    read-optimised copy, so failing to write it is logged and tolerated.
    """

    def __init__(self, store: JobStore) -> None:
        self._store = store

    def open_batch(self, source: Job, sizes: List[SizeConfig]) -> List[Job]:
        """
        Create one queued job per size with pre-reserved variation indices.

        Indices follow the input order of `sizes` and are fixed before any
        work starts, so completion order never affects them.
        """
        indices = self._store.reserve_variation_indices(source.project_id, len(sizes))
        jobs = [
            self._store.create_adaptation_job(source, size, index)
            for size, index in zip(sizes, indices)
        ]
        logger.info(
            "Reserved variation indices %s for project %s (source job %s)",
            indices,
            source.project_id,
            source.id,
        )
        return jobs

    def record_success(self, job: Job, result: JobResult, model_id: str) -> tuple[Job, Variation | None]:
        completed = self._store.mark_completed(job.id, result, model_id)
        try:
            variation = self._store.create_variation(completed)
        except Exception:  # noqa: BLE001
            logger.exception("Variation write failed for job %s; job stays completed", job.id)
            variation = None
        return completed, variation

    def record_failure(self, job: Job, error: str) -> Job:
        return self._store.mark_failed(job.id, error)
