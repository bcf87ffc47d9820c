"""Raw HTTP calls against the render service.

Each method performs exactly one request with a bounded timeout and
surfaces the backend's answer unaltered. No retries, no recovery: that
belongs to `renderflow.client.fallback`.

Wire contract:
  GET  /health            -> {ok, ffmpeg, error?}
  POST /upload            -> {url, size}        (multipart: file)
  POST /jobs              -> {ids}              ({project_id, variations})
  GET  /jobs/{id}         -> RenderJob
  GET  /jobs?limit=N      -> {jobs}
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from renderflow.client.errors import (
    BackendRejectedError,
    BackendUnreachableError,
    InvalidRequestError,
)
from renderflow.client.models import AssetFile, HealthStatus, HistoryResult, SubmitResult, UploadResult
from renderflow.config import settings
from renderflow.jobs.models import RealJob, RenderJob

logger = logging.getLogger(__name__)

# Status codes with a fixed, user-facing meaning on upload
_UPLOAD_ERRORS = {
    413: "File too large: exceeds the maximum upload size",
    415: "Unsupported media type: only video files are accepted",
}


def new_variation_ids(count: int) -> List[str]:
    """Fresh correlation ids, one per requested variation."""
    return [f"var_{uuid.uuid4().hex}" for _ in range(count)]


def validate_submission(source_url: str, variation_count: int) -> None:
    if not source_url:
        raise InvalidRequestError("Source URL required")
    if variation_count < 1:
        raise InvalidRequestError("Variations must be >= 1")


def _error_message(response: httpx.Response, default: str) -> str:
    """The backend's own error text: JSON `error` or `message`, else the raw body."""
    text = response.text
    try:
        body = response.json()
    except ValueError:
        return text or default
    if isinstance(body, dict):
        detail = body.get("error") or body.get("message")
        if isinstance(detail, dict):
            detail = detail.get("message")
        if detail:
            return str(detail)
    return text or default


def _malformed(response: httpx.Response, what: str, cause: object) -> BackendRejectedError:
    """A 2xx answer whose body does not have the documented shape."""
    return BackendRejectedError(response.status_code, f"Malformed {what}: {cause}")


class RenderTransport:
    """Async HTTP adapter for one render service base URL."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        health_timeout: Optional[float] = None,
        upload_timeout: Optional[float] = None,
        request_timeout: Optional[float] = None,
    ):
        self._base_url = (base_url or settings.base_url).rstrip("/")
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self._health_timeout = health_timeout or settings.health_timeout_seconds
        self._upload_timeout = upload_timeout or settings.upload_timeout_seconds
        self._request_timeout = request_timeout or settings.request_timeout_seconds

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RenderTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, timeout: float, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            return await self._client.request(method, url, timeout=timeout, **kwargs)
        except httpx.TransportError as exc:
            raise BackendUnreachableError(f"{method} {url} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def check_health(self) -> HealthStatus:
        """Probe the service. Never raises on unreachability."""
        started = time.monotonic()
        try:
            response = await self._request("GET", "/health", self._health_timeout)
        except BackendUnreachableError as exc:
            logger.warning("Render service unreachable: %s", exc)
            return HealthStatus(ok=False, error=str(exc))

        if not response.is_success:
            return HealthStatus(
                ok=False,
                error=f"Health check failed: {response.status_code} - {response.text}",
            )
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return HealthStatus(ok=False, error="Invalid response from render service")

        return HealthStatus(
            ok=body.get("ok") is True,
            ffmpeg="ready" if body.get("ffmpeg") == "ready" else "unavailable",
            error=body.get("error"),
            latency_ms=int((time.monotonic() - started) * 1000),
        )

    async def upload_asset(self, asset: AssetFile) -> UploadResult:
        response = await self._request(
            "POST",
            "/upload",
            self._upload_timeout,
            files={"file": (asset.name, asset.data, asset.content_type)},
        )
        if response.status_code in _UPLOAD_ERRORS:
            raise BackendRejectedError(response.status_code, _UPLOAD_ERRORS[response.status_code])
        if not response.is_success:
            raise BackendRejectedError(
                response.status_code,
                _error_message(response, f"Upload failed: {response.status_code}"),
            )
        try:
            body = response.json()
            return UploadResult(url=body["url"], size=body.get("size", asset.size))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise _malformed(response, "upload response", exc) from exc

    async def submit_job(
        self,
        project_id: str,
        source_url: str,
        variation_count: int,
        *,
        variation_ids: Optional[Sequence[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> SubmitResult:
        """Submit one batch of `variation_count` variations of `source_url`.

        `context` (analysis, strategy) travels with every variation as
        opaque correlation data.
        """
        validate_submission(source_url, variation_count)
        if variation_ids is None:
            variation_ids = new_variation_ids(variation_count)
        elif len(variation_ids) != variation_count:
            raise InvalidRequestError(
                f"Expected {variation_count} variation ids, got {len(variation_ids)}"
            )

        data: Dict[str, Any] = {"source_url": source_url}
        if context:
            data["context"] = context
        payload = {
            "project_id": project_id,
            "variations": [{"id": vid, "data": data} for vid in variation_ids],
        }

        response = await self._request("POST", "/jobs", self._request_timeout, json=payload)
        if not response.is_success:
            raise BackendRejectedError(
                response.status_code,
                _error_message(response, f"Submission failed: {response.status_code}"),
            )

        try:
            ids = response.json().get("ids") or []
        except (ValueError, AttributeError) as exc:
            raise _malformed(response, "submission response", exc) from exc
        if not isinstance(ids, list) or not all(isinstance(job_id, str) for job_id in ids):
            raise _malformed(response, "submission response", f"expected a list of job ids, got {ids!r}")
        if not ids:
            raise BackendRejectedError(response.status_code, "No job ids returned")
        if len(ids) != len(variation_ids):
            raise BackendRejectedError(
                response.status_code,
                f"Expected {len(variation_ids)} job ids, got {len(ids)}",
            )
        logger.info("Submitted %d variation(s) for project %s", len(ids), project_id)
        return SubmitResult(
            project_id=project_id,
            jobs=[RealJob(id=job_id) for job_id in ids],
            variation_ids=list(variation_ids),
        )

    async def get_job_status(self, job: RealJob) -> RenderJob:
        response = await self._request("GET", f"/jobs/{job.id}", self._request_timeout)
        if not response.is_success:
            raise BackendRejectedError(
                response.status_code,
                f"Poll failed: {response.status_code} - {response.text}",
            )
        try:
            return RenderJob.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise _malformed(response, "job payload", exc) from exc

    async def get_history(self, limit: Optional[int] = None) -> HistoryResult:
        response = await self._request(
            "GET",
            "/jobs",
            self._request_timeout,
            params={"limit": limit or settings.history_limit},
        )
        if not response.is_success:
            raise BackendRejectedError(
                response.status_code,
                f"Failed to fetch history: {response.status_code} - {response.text}",
            )
        try:
            return HistoryResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise _malformed(response, "history response", exc) from exc
