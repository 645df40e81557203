"""
Shared fixtures: a fresh job store, temp-dir blob storage and a stub
outpainting provider that echoes its base image back.
"""

import asyncio
import os
import tempfile
import threading
import time
from pathlib import Path
from uuid import uuid4

import cv2
import numpy as np
import pytest

# Importing adapt_api.main builds the app, which creates the asset dir.
os.environ.setdefault("ADAPT_STORAGE_DIR", tempfile.mkdtemp(prefix="adapt-assets-"))

from adapt_api.api.v1.schemas import JobStatus, SizeConfig  # noqa: E402
from adapt_api.config import AdaptationSettings  # noqa: E402
from adapt_api.models.jobs import Job, JobResult  # noqa: E402
from adapt_api.services.compositor import decode_image, encode_png  # noqa: E402
from adapt_api.services.errors import ProviderError  # noqa: E402
from adapt_api.services.jobs import JobStore  # noqa: E402
from adapt_api.services.orchestrator import AdaptationOrchestrator  # noqa: E402
from adapt_api.services.providers import OutpaintGateway, ProviderId  # noqa: E402
from adapt_api.services.rate_limiter import ProviderRateLimiter  # noqa: E402
from adapt_api.services.storage import LocalBlobStorage  # noqa: E402

PUBLIC_BASE = "http://testserver/assets"
SOURCE_JOB_ID = "src-job-1"
PROJECT_ID = "project-1"


def run(coro):
    """Run a coroutine to completion from a sync test."""
    return asyncio.run(coro)


def make_source_image(width: int = 200, height: int = 200) -> np.ndarray:
    """Gradient creative with a light disclaimer strip and dark 'text' at the bottom."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :, 0] = np.linspace(40, 200, width, dtype=np.uint8)[None, :]
    image[:, :, 1] = np.linspace(60, 180, height, dtype=np.uint8)[:, None]
    image[:, :, 2] = 90
    band = max(1, round(height * 0.15))
    image[height - band :, :] = (235, 235, 235)
    cv2.putText(image, "T&C apply", (5, height - band // 3), cv2.FONT_HERSHEY_SIMPLEX, 0.4, (0, 0, 0), 1)
    return image


def size(width: int, height: int, name: str | None = None, platform: str = "custom", **kwargs) -> SizeConfig:
    return SizeConfig(name=name or f"{width}x{height}", width=width, height=height, platform=platform, **kwargs)


class RecordingStorage(LocalBlobStorage):
    """LocalBlobStorage that remembers every path written and removed."""

    def __init__(self, base_dir: Path, public_base_url: str) -> None:
        super().__init__(base_dir, public_base_url)
        self.uploaded = []
        self.removed = []
        self._record_lock = threading.Lock()

    def upload(self, path, data, content_type="image/png"):
        with self._record_lock:
            self.uploaded.append(path)
        return super().upload(path, data, content_type)

    def remove(self, paths):
        paths = list(paths)
        with self._record_lock:
            self.removed.extend(paths)
        super().remove(paths)

    def files_under(self, prefix: str):
        root = self.base_dir / prefix
        if not root.exists():
            return []
        return [p for p in root.rglob("*") if p.is_file()]


class StubAdapter:
    """
    Outpainting adapter that returns its base image as the "generated" output.

    `fail_for` lists (width, height) targets that raise a provider error;
    `wrap` shapes the returned payload; `delay` simulates a slow provider.
    """

    def __init__(
        self,
        storage,
        provider_id=ProviderId.FLUX_FILL_PRO,
        uses_mask=True,
        fail_for=(),
        wrap=None,
        output_size=None,
        delay=0.0,
    ):
        self.provider_id = provider_id
        self.uses_mask = uses_mask
        self.fail_for = set(fail_for)
        self.wrap = wrap or (lambda url: url)
        self.output_size = output_size
        self.delay = delay
        self.calls = []
        self._storage = storage

    def build_input(self, request):
        return {
            "image": request.base_image_url,
            "mask": request.mask_url,
            "prompt": request.guidance_prompt,
            "aspect_ratio": request.target_aspect_ratio,
            "width": request.target_width,
            "height": request.target_height,
        }

    def call(self, inputs):
        self.calls.append(inputs)
        if self.delay:
            time.sleep(self.delay)
        if (inputs["width"], inputs["height"]) in self.fail_for:
            raise ProviderError("stub provider failure", provider=self.provider_id.value, status_code=500)

        image = decode_image(self._storage.read_public_url(inputs["image"]))
        if self.output_size is not None:
            image = cv2.resize(image, self.output_size)
        url = self._storage.upload(f"provider/{uuid4()}.png", encode_png(image))
        return self.wrap(url)


def fast_limiter(name):
    return ProviderRateLimiter(name, max_requests_per_minute=6000, burst_capacity=100, min_interval_seconds=0.0)


@pytest.fixture
def settings(tmp_path):
    return AdaptationSettings(
        storage_dir=str(tmp_path / "assets"),
        public_base_url=PUBLIC_BASE,
        batch_timeout_seconds=10.0,
    )


@pytest.fixture
def store():
    return JobStore()


@pytest.fixture
def storage(tmp_path):
    return RecordingStorage(tmp_path / "assets", PUBLIC_BASE)


@pytest.fixture
def adapter(storage):
    return StubAdapter(storage)


@pytest.fixture
def gateway(adapter):
    return OutpaintGateway({adapter.provider_id: adapter}, limiter_for=fast_limiter)


@pytest.fixture
def source_image():
    return make_source_image()


@pytest.fixture
def source_job(store, storage, source_image):
    url = storage.upload("sources/source.png", encode_png(source_image))
    job = Job(
        id=SOURCE_JOB_ID,
        project_id=PROJECT_ID,
        source_asset_id="asset-1",
        variation_index=0,
        size_config=size(200, 200, name="Master", platform="meta"),
        status=JobStatus.COMPLETED,
        model_id="flux-pro",
        prompt="sunlit beach, product on a towel",
        result=JobResult(url=url, thumbnail_url=url),
    )
    storage.uploaded.clear()
    return store.register_job(job)


@pytest.fixture
def orchestrator(store, storage, gateway, settings):
    return AdaptationOrchestrator(store=store, storage=storage, gateway=gateway, settings=settings)
