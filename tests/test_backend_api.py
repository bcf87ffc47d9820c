"""Tests for the development render backend (FastAPI app)."""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from renderflow.config import settings
from renderflow.jobs.in_process_queue import InProcessQueue
from renderflow.jobs.models import JobState, RenderJob
from renderflow.main import app, run_render_job
from renderflow.storage.uploads import UploadStore


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "simulated_stage_delay_seconds", 0.0)
    with TestClient(app) as test_client:
        yield test_client


def submit(client, source_url, count=1, project_id="proj_test"):
    variations = [{"id": f"var_{i}", "data": {"source_url": source_url}} for i in range(count)]
    response = client.post("/render/jobs", json={"project_id": project_id, "variations": variations})
    assert response.status_code == 200, response.text
    return response.json()["ids"]


def poll_until_terminal(client, job_id, attempts=250):
    for _ in range(attempts):
        body = client.get(f"/render/jobs/{job_id}").json()
        if body["state"] in ("done", "failed"):
            return body
        time.sleep(0.02)
    pytest.fail(f"job {job_id} never reached a terminal state")


def test_health_reports_ok(client):
    body = client.get("/render/health").json()
    assert body["ok"] is True
    assert body["ffmpeg"] in ("ready", "unavailable")


class TestUpload:
    def test_non_video_is_rejected(self, client):
        response = client.post("/render/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 415
        assert response.json() == {"error": "Only video files allowed"}

    def test_oversized_upload_is_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_mb", 0)
        response = client.post("/render/upload", files={"file": ("ad.mp4", b"abc", "video/mp4")})
        assert response.status_code == 413
        assert "too large" in response.json()["error"].lower()

    def test_upload_is_served_back(self, client):
        response = client.post("/render/upload", files={"file": ("My Ad.mp4", b"0123456789", "video/mp4")})
        assert response.status_code == 200
        body = response.json()
        assert body["size"] == 10
        assert body["url"].endswith("/My_Ad.mp4")

        served = client.get(body["url"])
        assert served.status_code == 200
        assert served.content == b"0123456789"


class TestJobs:
    def test_job_walks_to_done_with_passthrough_output(self, client):
        upload = client.post("/render/upload", files={"file": ("src.mp4", b"12345", "video/mp4")}).json()
        (job_id,) = submit(client, upload["url"])

        final = poll_until_terminal(client, job_id)

        assert final["state"] == "done"
        assert final["progress_pct"] == 100
        assert final["project_id"] == "proj_test"
        assert final["variation_id"] == "var_0"
        assert final["output"]["output_url"] == upload["url"]
        assert final["output"]["file_size"] == 5
        assert "error" not in final

    def test_unsupported_source_fails_the_job(self, client):
        (job_id,) = submit(client, "ftp://example.test/src.mp4")

        final = poll_until_terminal(client, job_id)

        assert final["state"] == "failed"
        assert final["error"]["code"] == "INVALID_SOURCE"
        assert "output" not in final

    def test_one_job_per_variation(self, client):
        ids = submit(client, "https://cdn.test/a.mp4", count=3)
        assert len(set(ids)) == 3

    def test_empty_batch_is_rejected(self, client):
        response = client.post("/render/jobs", json={"project_id": "p", "variations": []})
        assert response.status_code == 400
        assert "variation" in response.json()["error"]

    def test_missing_source_url_is_rejected(self, client):
        response = client.post("/render/jobs", json={"project_id": "p", "variations": [{"id": "v1"}]})
        assert response.status_code == 400
        assert "v1" in response.json()["error"]

    def test_malformed_body_uses_error_envelope(self, client):
        response = client.post("/render/jobs", json={"variations": []})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_unknown_job_is_404(self, client):
        response = client.get("/render/jobs/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Job not found"}

    def test_history_honours_limit(self, client):
        submit(client, "https://cdn.test/a.mp4", count=3)
        jobs = client.get("/render/jobs", params={"limit": 2}).json()["jobs"]
        assert len(jobs) == 2
        assert all(RenderJob.model_validate(job) for job in jobs)


class TestInProcessQueue:
    def test_worker_crash_marks_job_failed(self):
        def explode(job, input_params, report):
            report(job.model_copy(update={"state": JobState.PROCESSING, "progress_pct": 40}))
            raise RuntimeError("disk full")

        async def scenario():
            queue = InProcessQueue(worker_fn=explode)
            await queue.start()
            await queue.submit(RenderJob(id="j1"), {"source_url": "https://cdn.test/a.mp4"})
            for _ in range(200):
                job = await queue.get_status("j1")
                if job.is_terminal:
                    break
                await asyncio.sleep(0.01)
            await queue.stop()
            return job

        job = asyncio.run(scenario())

        assert job.state == JobState.FAILED
        assert job.error.code == "WORKER_ERROR"
        assert "disk full" in job.error.message
        assert job.progress_pct == 40

    def test_simulated_render_reports_every_stage(self, monkeypatch):
        monkeypatch.setattr(settings, "simulated_stage_delay_seconds", 0.0)
        seen = []

        final = run_render_job(RenderJob(id="j1"), {"source_url": "https://cdn.test/a.mp4"}, seen.append)

        assert [j.state.value for j in seen] == [
            "preparing", "downloading", "processing", "encoding", "muxing", "finalizing",
        ]
        assert [j.progress_pct for j in seen] == sorted(j.progress_pct for j in seen)
        assert final.state == JobState.DONE
        assert final.output.output_url == "https://cdn.test/a.mp4"


class TestUploadStore:
    def test_rejects_path_traversal(self, tmp_path):
        store = UploadStore(base_dir=str(tmp_path))
        (tmp_path / "secret.txt").write_text("x")
        assert store.file_exists("..", "secret.txt") is False
        assert store.file_exists("abc", "../secret.txt") is False

    def test_new_upload_sanitizes_name(self, tmp_path):
        store = UploadStore(base_dir=str(tmp_path))
        upload_id, name, path = store.new_upload("../../etc/passwd")
        assert name == "etc_passwd"
        assert path == str(tmp_path / upload_id / name)

    def test_cleanup_removes_expired_uploads(self, tmp_path):
        store = UploadStore(base_dir=str(tmp_path), ttl_hours=0)
        store.new_upload("a.mp4")
        time.sleep(0.01)
        assert store.cleanup_expired() == 1
