"""Per-operation routing between the render service and its fallbacks.

The line drawn here is between a backend that *answered* (a rejection is
real information and is propagated) and a backend that could not be
reached (a fallback path is taken where one exists):

  upload   unreachable            -> secondary object storage
  submit   unreachable or 5xx     -> synthetic `preview_` jobs
  poll     synthetic job          -> terminal `done`, no network call
  health   unreachable            -> `ok: false` (reported by the transport)
  history  unreachable            -> empty job list
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Union

from renderflow.client.errors import BackendRejectedError, BackendUnreachableError
from renderflow.client.models import AssetFile, HealthStatus, HistoryResult, SubmitResult, UploadResult
from renderflow.client.transport import RenderTransport, new_variation_ids, validate_submission
from renderflow.jobs.models import (
    PREVIEW_PREFIX,
    RealJob,
    RenderJob,
    SyntheticJob,
    as_job_ref,
    synthesize_preview_job,
)
from renderflow.storage.object_store import ObjectStore, fallback_object_key

logger = logging.getLogger(__name__)


class FallbackResolver:
    """Wraps a `RenderTransport` with the degradation policy above."""

    def __init__(
        self,
        transport: RenderTransport,
        store: Optional[ObjectStore] = None,
        *,
        key_prefix: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._transport = transport
        self._store = store
        self._key_prefix = key_prefix
        self._clock = clock

    async def check_health(self) -> HealthStatus:
        # The transport already reports an unreachable service as degraded
        return await self._transport.check_health()

    async def upload_asset(self, asset: AssetFile) -> UploadResult:
        try:
            return await self._transport.upload_asset(asset)
        except BackendUnreachableError as exc:
            if self._store is None:
                raise
            logger.warning("Upload of %s falling back to object storage: %s", asset.name, exc)
            key = fallback_object_key(asset.name, self._clock(), self._key_prefix)
            url = await self._store.upload(key, asset)
            return UploadResult(url=url, size=asset.size)

    async def submit_job(
        self,
        project_id: str,
        source_url: str,
        variation_count: int,
        context: Optional[Dict[str, Any]] = None,
    ) -> SubmitResult:
        # Validation failures are never subject to fallback
        validate_submission(source_url, variation_count)
        variation_ids = new_variation_ids(variation_count)
        try:
            return await self._transport.submit_job(
                project_id,
                source_url,
                variation_count,
                variation_ids=variation_ids,
                context=context,
            )
        except BackendUnreachableError as exc:
            logger.warning("Render service unreachable, submitting in preview mode: %s", exc)
        except BackendRejectedError as exc:
            if not exc.is_server_error:
                raise
            logger.warning(
                "Render service failed with %d, submitting in preview mode: %s",
                exc.status_code,
                exc.message,
            )
        return SubmitResult(
            project_id=project_id,
            jobs=[SyntheticJob(id=f"{PREVIEW_PREFIX}{vid}") for vid in variation_ids],
            variation_ids=variation_ids,
            preview=True,
        )

    async def get_job_status(
        self,
        job: Union[str, RealJob, SyntheticJob, RenderJob],
        previous: Optional[RenderJob] = None,
    ) -> RenderJob:
        """Fresh snapshot for `job`.

        Synthetic jobs resolve locally. Failures polling a real job are
        raised; the caller decides to keep its previous snapshot.
        """
        ref = as_job_ref(job)
        if isinstance(ref, SyntheticJob):
            if previous is None and isinstance(job, RenderJob):
                previous = job
            return synthesize_preview_job(ref, previous)
        return await self._transport.get_job_status(ref)

    async def get_history(self, limit: Optional[int] = None) -> HistoryResult:
        try:
            return await self._transport.get_history(limit)
        except BackendUnreachableError as exc:
            logger.warning("History unavailable: %s", exc)
            return HistoryResult(jobs=[])
