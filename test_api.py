"""HTTP surface: status codes and camelCase payloads of the v1 routes."""

import pytest
from fastapi.testclient import TestClient

from adapt_api.main import create_app
from adapt_api.models.jobs import Job
from adapt_api.services.jobs import get_job_store
from adapt_api.services.orchestrator import AdaptationOrchestrator, get_orchestrator
from adapt_api.services.providers import OutpaintGateway
from adapt_api.services.recorder import VariationRecorder
from conftest import PROJECT_ID, SOURCE_JOB_ID, StubAdapter, fast_limiter, size

PORTRAIT = {"name": "Story", "width": 100, "height": 200, "platform": "meta", "placement": "Stories/Reels"}
BANNER = {"name": "Banner", "width": 300, "height": 100, "platform": "moloco"}
NEARLY_SQUARE = {"name": "Nearly square", "width": 220, "height": 200, "platform": "custom"}


@pytest.fixture
def make_client(store, storage, settings, source_job):
    def factory(fail_for=()):
        adapter = StubAdapter(storage, fail_for=fail_for)
        gateway = OutpaintGateway({adapter.provider_id: adapter}, limiter_for=fast_limiter)
        orchestrator = AdaptationOrchestrator(store=store, storage=storage, gateway=gateway, settings=settings)

        app = create_app()
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        app.dependency_overrides[get_job_store] = lambda: store
        return TestClient(app)

    return factory


@pytest.fixture
def client(make_client):
    return make_client()


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/api/v1/health").json()["api_version"] == "v1"


class TestResize:
    def test_empty_target_sizes(self, client):
        response = client.post("/api/v1/resize", json={"sourceJobId": SOURCE_JOB_ID, "targetSizes": []})
        assert response.status_code == 400
        assert "targetSizes" in response.json()["detail"]

    def test_missing_fields(self, client):
        response = client.post("/api/v1/resize", json={})
        assert response.status_code == 400

    def test_malformed_size_is_a_bad_request(self, client):
        bad = dict(PORTRAIT, width=0)
        response = client.post("/api/v1/resize", json={"sourceJobId": SOURCE_JOB_ID, "targetSizes": [bad]})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_unknown_source_job(self, client):
        response = client.post("/api/v1/resize", json={"sourceJobId": "missing", "targetSizes": [PORTRAIT]})
        assert response.status_code == 404

    def test_source_without_result(self, client, store):
        store.register_job(
            Job(id="queued-src", project_id=PROJECT_ID, source_asset_id="a", variation_index=0, size_config=size(100, 200))
        )
        response = client.post("/api/v1/resize", json={"sourceJobId": "queued-src", "targetSizes": [PORTRAIT]})
        assert response.status_code == 400

    def test_partial_success(self, make_client):
        client = make_client(fail_for={(300, 100)})
        response = client.post(
            "/api/v1/resize",
            json={"sourceJobId": SOURCE_JOB_ID, "targetSizes": [NEARLY_SQUARE, PORTRAIT, BANNER]},
        )

        assert response.status_code == 201
        body = response.json()
        assert (body["created"], body["failed"]) == (2, 1)
        assert len(body["jobs"]) == 3
        first = body["jobs"][0]
        assert first["sourceJobId"] == SOURCE_JOB_ID
        assert first["modelId"] == "smart-contain"
        assert first["sizeConfig"]["width"] == 220
        assert first["result"]["thumbnailUrl"] == first["result"]["url"]
        assert [job["variationIndex"] for job in body["jobs"]] == [1, 2, 3]
        assert body["jobs"][2]["status"] == "failed"
        assert "stub provider failure" in body["jobs"][2]["error"]

    def test_all_sizes_failing(self, make_client):
        client = make_client(fail_for={(100, 200), (300, 100)})
        response = client.post(
            "/api/v1/resize",
            json={"sourceJobId": SOURCE_JOB_ID, "targetSizes": [PORTRAIT, BANNER]},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["failedCount"] == 2
        assert "stub provider failure" in body["error"]
        assert "Traceback" in body["details"]


class TestJobs:
    def test_get_and_list_jobs(self, client):
        created = client.post(
            "/api/v1/resize", json={"sourceJobId": SOURCE_JOB_ID, "targetSizes": [NEARLY_SQUARE]}
        ).json()
        job_id = created["jobs"][0]["id"]

        response = client.get(f"/api/v1/jobs/{job_id}")
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["completedAt"] is not None

        listed = client.get("/api/v1/jobs", params={"projectId": PROJECT_ID}).json()
        assert {job["id"] for job in listed} == {SOURCE_JOB_ID, job_id}

    def test_unknown_job(self, client):
        assert client.get("/api/v1/jobs/nope").status_code == 404

    def test_retry_failed_job(self, make_client, store):
        client = make_client(fail_for={(300, 100)})
        body = client.post("/api/v1/resize", json={"sourceJobId": SOURCE_JOB_ID, "targetSizes": [PORTRAIT, BANNER]})
        failed = [job for job in body.json()["jobs"] if job["status"] == "failed"][0]

        # Same store, healthy provider.
        healthy = make_client()
        response = healthy.post(f"/api/v1/jobs/{failed['id']}/retry")

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["variationIndex"] == failed["variationIndex"]

    def test_retry_completed_job_conflicts(self, client):
        body = client.post("/api/v1/resize", json={"sourceJobId": SOURCE_JOB_ID, "targetSizes": [NEARLY_SQUARE]})
        job_id = body.json()["jobs"][0]["id"]
        assert client.post(f"/api/v1/jobs/{job_id}/retry").status_code == 409

    def test_retry_source_job_is_a_bad_request(self, client):
        assert client.post(f"/api/v1/jobs/{SOURCE_JOB_ID}/retry").status_code == 400

    def test_cancel(self, client, store, source_job):
        (job,) = VariationRecorder(store).open_batch(source_job, [size(100, 200)])
        response = client.post(f"/api/v1/jobs/{job.id}/cancel")
        assert response.status_code == 200
        assert response.json()["error"] == "Cancelled by user"

        assert client.post(f"/api/v1/jobs/{job.id}/cancel").status_code == 409
        assert client.post("/api/v1/jobs/nope/cancel").status_code == 404


class TestVariations:
    def test_variations_are_ordered_by_index(self, client):
        client.post(
            "/api/v1/resize",
            json={"sourceJobId": SOURCE_JOB_ID, "targetSizes": [PORTRAIT, NEARLY_SQUARE, BANNER]},
        )
        variations = client.get("/api/v1/variations", params={"projectId": PROJECT_ID}).json()
        assert [v["variationIndex"] for v in variations] == [1, 2, 3]
        assert variations[0]["sizeConfig"]["name"] == "Story"
        assert all(v["type"] == "image" for v in variations)

    def test_no_project_id_returns_empty_list(self, client):
        assert client.get("/api/v1/variations").json() == []


class TestSizes:
    def test_preset_catalog(self, client):
        presets = client.get("/api/v1/sizes").json()
        keys = [preset["key"] for preset in presets]
        assert keys == ["meta", "tiktok", "snapchat", "moloco", "googleUAC"]

        meta = presets[0]
        assert meta["displayName"].startswith("Meta")
        story = [s for s in meta["sizes"] if s["name"] == "Story/Reel"][0]
        assert story["safeZone"] == {"top": 250, "right": 0, "bottom": 340, "left": 0}
