"""Tests for per-operation fallback routing."""

import asyncio

import httpx
import pytest

from conftest import MemoryObjectStore, RecordingBackend, make_transport
from renderflow.client.errors import (
    BackendRejectedError,
    BackendUnreachableError,
    FallbackStorageError,
    InvalidRequestError,
)
from renderflow.client.fallback import FallbackResolver
from renderflow.jobs.models import JobState, RealJob, RenderJob, SyntheticJob
from renderflow.storage.object_store import SupabaseObjectStore, fallback_object_key, sanitize_filename


def run(coro):
    return asyncio.run(coro)


def resolver_for(handler, store=None):
    backend = RecordingBackend(handler)
    resolver = FallbackResolver(make_transport(backend), store, clock=lambda: 1700000000.5)
    return resolver, backend


class TestUploadFallback:
    def test_network_timeout_falls_back_to_object_storage(self, video_asset):
        def timeout(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        store = MemoryObjectStore()
        resolver, _ = resolver_for(timeout, store)
        result = run(resolver.upload_asset(video_asset))

        assert result.url == "https://storage.test/videos/renderflow/1700000000500_My_Ad_final_.mp4"
        assert result.size == len(video_asset.data)
        assert store.objects == {"renderflow/1700000000500_My_Ad_final_.mp4": video_asset.data}

    def test_413_is_propagated_without_fallback(self, video_asset):
        store = MemoryObjectStore()
        resolver, _ = resolver_for(lambda r: httpx.Response(413), store)
        with pytest.raises(BackendRejectedError, match="(?i)too large"):
            run(resolver.upload_asset(video_asset))
        assert store.objects == {}

    def test_no_store_configured_reraises_unreachable(self, video_asset, offline_resolver):
        _, backend = offline_resolver
        resolver = FallbackResolver(make_transport(backend))
        with pytest.raises(BackendUnreachableError):
            run(resolver.upload_asset(video_asset))


class TestSubmitFallback:
    def test_unreachable_backend_yields_preview_jobs(self, offline_resolver):
        resolver, backend = offline_resolver
        result = run(resolver.submit_job("proj", "https://cdn/src.mp4", 3))

        assert result.preview is True
        assert len(result.ids) == 3
        assert len(set(result.ids)) == 3
        assert all(job_id.startswith("preview_var_") for job_id in result.ids)
        assert all(isinstance(ref, SyntheticJob) for ref in result.jobs)
        assert [f"preview_{vid}" for vid in result.variation_ids] == result.ids
        assert len(backend.requests) == 1

    def test_server_error_yields_preview_jobs(self):
        resolver, _ = resolver_for(lambda r: httpx.Response(503, json={"error": "queue down"}))
        result = run(resolver.submit_job("proj", "https://cdn/src.mp4", 2))
        assert result.preview is True
        assert len(result.ids) == 2

    def test_client_error_is_propagated(self):
        resolver, _ = resolver_for(lambda r: httpx.Response(400, json={"error": "Bad project"}))
        with pytest.raises(BackendRejectedError, match="Bad project"):
            run(resolver.submit_job("proj", "https://cdn/src.mp4", 1))

    @pytest.mark.parametrize("source_url, count", [("", 2), ("https://cdn/src.mp4", 0)])
    def test_validation_is_never_subject_to_fallback(self, offline_resolver, source_url, count):
        resolver, backend = offline_resolver
        with pytest.raises(InvalidRequestError):
            run(resolver.submit_job("proj", source_url, count))
        assert backend.requests == []

    def test_real_submission_returns_backend_ids(self):
        resolver, _ = resolver_for(lambda r: httpx.Response(200, json={"ids": ["j1", "j2"]}))
        result = run(resolver.submit_job("proj", "https://cdn/src.mp4", 2))
        assert result.preview is False
        assert result.ids == ["j1", "j2"]


class TestPollRouting:
    @pytest.mark.parametrize("job", ["preview_var_1", SyntheticJob(id="preview_var_1"), RenderJob(id="preview_var_1")])
    def test_preview_job_never_touches_network(self, offline_resolver, job):
        resolver, backend = offline_resolver
        status = run(resolver.get_job_status(job))
        assert status.state == JobState.DONE
        assert status.output is None
        assert backend.requests == []

    def test_real_job_is_polled(self):
        payload = {"id": "j1", "state": "processing", "progress_pct": 40}
        resolver, backend = resolver_for(lambda r: httpx.Response(200, json=payload))
        status = run(resolver.get_job_status(RealJob(id="j1")))
        assert status.state == JobState.PROCESSING
        assert backend.paths() == ["/render/jobs/j1"]

    def test_real_job_poll_failure_is_raised_to_caller(self, offline_resolver):
        resolver, _ = offline_resolver
        with pytest.raises(BackendUnreachableError):
            run(resolver.get_job_status("j1"))


class TestAdvisoryReads:
    def test_health_degrades(self, offline_resolver):
        resolver, _ = offline_resolver
        assert run(resolver.check_health()).ok is False

    def test_health_is_the_transport_report(self):
        resolver, _ = resolver_for(lambda r: httpx.Response(503, text="warming up"))
        status = run(resolver.check_health())
        assert status.ok is False
        assert status.error == "Health check failed: 503 - warming up"

    def test_history_degrades_to_empty(self, offline_resolver):
        resolver, _ = offline_resolver
        assert run(resolver.get_history()).jobs == []


class TestObjectKeys:
    def test_sanitizes_to_ascii(self):
        assert sanitize_filename("Été promo #1.mov") == "t_promo_1.mov"
        assert sanitize_filename("../../") == "upload"

    def test_key_is_deterministic(self):
        assert fallback_object_key("a b.mp4", 12.5, "uploads") == "uploads/12500_a_b.mp4"
        assert fallback_object_key("a.mp4", 12.5, "") == "12500_a.mp4"


class FakeBucket:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []

    def upload(self, path, file, file_options=None):
        if self.fail:
            raise RuntimeError("bucket not found")
        self.uploads.append((path, file, file_options))

    def get_public_url(self, path):
        return f"https://project.supabase.test/storage/v1/object/public/videos/{path}"


class FakeSupabase:
    def __init__(self, bucket):
        self.buckets = []
        self._bucket = bucket
        self.storage = self

    def from_(self, name):
        self.buckets.append(name)
        return self._bucket


class TestSupabaseObjectStore:
    def test_uploads_and_returns_public_url(self, video_asset):
        bucket = FakeBucket()
        client = FakeSupabase(bucket)
        store = SupabaseObjectStore(bucket="videos", client=client)

        url = run(store.upload("renderflow/1_ad.mp4", video_asset))

        assert url.endswith("/public/videos/renderflow/1_ad.mp4")
        assert client.buckets == ["videos"]
        path, data, options = bucket.uploads[0]
        assert path == "renderflow/1_ad.mp4"
        assert data == video_asset.data
        assert options["content-type"] == "video/mp4"

    def test_storage_failure_is_wrapped(self, video_asset):
        store = SupabaseObjectStore(bucket="videos", client=FakeSupabase(FakeBucket(fail=True)))
        with pytest.raises(FallbackStorageError, match="bucket not found"):
            run(store.upload("k", video_asset))
