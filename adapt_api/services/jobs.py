from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List
from uuid import uuid4

from adapt_api.api.v1.schemas import JobStatus, SizeConfig
from adapt_api.models.jobs import Job, JobResult, Variation, utcnow
from adapt_api.services.errors import JobStateError, NotFoundError

# Status moves forward only; FAILED -> QUEUED is the explicit retry.
_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
    JobStatus.COMPLETED: frozenset(),
}


class JobStore:
    """
    Simple in-memory store for jobs and variations.

    All access goes through one lock, which is what makes variation-index
    reservation atomic across concurrent adaptation batches. Records handed
    out are copies, so callers never mutate shared state behind the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._jobs: Dict[str, Job] = {}
        self._variations: Dict[str, Variation] = {}
        # Highest variation index handed out or observed, per project.
        self._index_high_water: Dict[str, int] = {}

    # Jobs

    def register_job(self, job: Job) -> Job:
        """Insert a job as-is, e.g. a completed source creative from the generation flow."""
        with self._lock:
            self._jobs[job.id] = replace(job)
            self._observe_index(job.project_id, job.variation_index)
            return replace(job)

    def create_adaptation_job(
        self,
        source: Job,
        size_config: SizeConfig,
        variation_index: int,
    ) -> Job:
        job = Job(
            id=str(uuid4()),
            project_id=source.project_id,
            source_asset_id=source.source_asset_id,
            variation_index=variation_index,
            size_config=size_config,
            status=JobStatus.QUEUED,
            prompt=source.prompt,
            variation_types=["aspect-adapt"],
            source_job_id=source.id,
        )
        return self.register_job(job)

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job is not None else None

    def list_jobs(self, project_id: str | None = None) -> List[Job]:
        with self._lock:
            jobs = [
                replace(job)
                for job in self._jobs.values()
                if project_id is None or job.project_id == project_id
            ]
        return sorted(jobs, key=lambda job: (job.variation_index, job.created_at))

    def _transition(self, job_id: str, status: JobStatus, **changes) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")
            if status not in _TRANSITIONS[job.status]:
                raise JobStateError(
                    f"Job {job_id} cannot move from {job.status.value} to {status.value}"
                )
            updated = replace(job, status=status, updated_at=utcnow(), **changes)
            self._jobs[job_id] = updated
            return replace(updated)

    def mark_processing(self, job_id: str) -> Job:
        return self._transition(job_id, JobStatus.PROCESSING)

    def set_model(self, job_id: str, model_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")
            updated = replace(job, model_id=model_id, updated_at=utcnow())
            self._jobs[job_id] = updated
            return replace(updated)

    def mark_completed(self, job_id: str, result: JobResult, model_id: str) -> Job:
        return self._transition(
            job_id,
            JobStatus.COMPLETED,
            result=result,
            model_id=model_id,
            error=None,
            completed_at=utcnow(),
        )

    def mark_failed(self, job_id: str, error: str) -> Job:
        return self._transition(job_id, JobStatus.FAILED, error=error)

    def reset_for_retry(self, job_id: str) -> Job:
        return self._transition(job_id, JobStatus.QUEUED, error=None, result=None, completed_at=None)

    # Variation indices

    def _observe_index(self, project_id: str, index: int) -> None:
        current = self._index_high_water.get(project_id, -1)
        if index > current:
            self._index_high_water[project_id] = index

    def reserve_variation_indices(self, project_id: str, count: int) -> List[int]:
        """
        Atomically reserve `count` consecutive variation indices for a project.

        The block starts right after the highest index ever seen or reserved
        for the project, so concurrent batches never overlap.
        """
        if count <= 0:
            return []
        with self._lock:
            start = self._index_high_water.get(project_id, -1) + 1
            indices = list(range(start, start + count))
            self._index_high_water[project_id] = indices[-1]
            return indices

    # Variations

    def create_variation(self, job: Job) -> Variation:
        if job.result is None or job.model_id is None:
            raise JobStateError(f"Job {job.id} has no result to publish as a variation")
        variation = Variation(
            id=str(uuid4()),
            project_id=job.project_id,
            job_id=job.id,
            source_asset_id=job.source_asset_id,
            variation_index=job.variation_index,
            size_config=job.size_config,
            model_id=job.model_id,
            prompt=job.prompt,
            url=job.result.url,
            thumbnail_url=job.result.thumbnail_url,
        )
        with self._lock:
            self._variations[variation.id] = variation
            self._observe_index(variation.project_id, variation.variation_index)
            return replace(variation)

    def list_variations(self, project_id: str) -> List[Variation]:
        with self._lock:
            variations = [replace(v) for v in self._variations.values() if v.project_id == project_id]
        return sorted(variations, key=lambda v: v.variation_index)


_default_store = JobStore()


def get_job_store() -> JobStore:
    """
    Return the process-wide job store instance.

    Abstracted behind a function so tests can inject a fresh store.
    """
    return _default_store
