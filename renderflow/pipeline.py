"""Render pipeline session: one wizard run from source asset to results.

The wizard and the job batch are independent state machines. The only
link between them is the poll loop's "batch resolved" callback, which
completes the Execute step and moves the wizard to Results.
"""

import logging
import time
from typing import Any, Dict, Mapping, Optional, Tuple

from renderflow.client.errors import InvalidRequestError
from renderflow.client.fallback import FallbackResolver
from renderflow.client.models import AssetFile, SubmitResult
from renderflow.jobs.models import BatchOutcome, RenderJob, batch_outcome, placeholder_jobs
from renderflow.jobs.poller import BatchCallback, PollLoop
from renderflow.wizard.sequencer import WizardSequencer, WizardState, WizardStep

logger = logging.getLogger(__name__)

MIN_VARIATIONS = 1
MAX_VARIATIONS = 50


class RenderPipeline:
    """Drives the Input -> Analyze -> Strategy -> Review -> Execute -> Results flow."""

    def __init__(
        self,
        resolver: FallbackResolver,
        *,
        sequencer: Optional[WizardSequencer] = None,
        poll_interval: Optional[float] = None,
        on_update: Optional[BatchCallback] = None,
    ):
        self._resolver = resolver
        self._wizard = sequencer or WizardSequencer()
        self._poll_interval = poll_interval
        self._on_update = on_update
        self._loop: Optional[PollLoop] = None
        # Bumped on every wizard reset; a submission started in an older run is discarded
        self._run_epoch = 0
        self._clear()
        self._wizard.add_reset_listener(self._cancel_polling)

    def _clear(self) -> None:
        self.source_url: Optional[str] = None
        self.analysis: Optional[Mapping[str, Any]] = None
        self.strategy: Optional[Mapping[str, Any]] = None
        self.variation_count: int = MIN_VARIATIONS
        self.submission: Optional[SubmitResult] = None
        self._jobs: Tuple[RenderJob, ...] = ()

    # ------------------------------------------------------------------
    # Read-only views for the presentation layer
    # ------------------------------------------------------------------

    @property
    def wizard(self) -> WizardState:
        return self._wizard.state

    @property
    def jobs(self) -> Tuple[RenderJob, ...]:
        if self._loop is not None:
            return self._loop.jobs
        return self._jobs

    @property
    def outcome(self) -> BatchOutcome:
        return batch_outcome(self.jobs)

    @property
    def poll_loop(self) -> Optional[PollLoop]:
        return self._loop

    @property
    def preview(self) -> bool:
        return self.submission is not None and self.submission.preview

    def go_to(self, step: int) -> bool:
        return self._wizard.go_to(step)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _require_step(self, step: WizardStep) -> None:
        if self._wizard.current_step != step:
            raise InvalidRequestError(
                f"Cannot act on step {step.name.title()} while on step "
                f"{self._wizard.current_step.name.title()}"
            )

    async def ingest(
        self,
        source_url: Optional[str] = None,
        asset: Optional[AssetFile] = None,
    ) -> str:
        """Input step: accept a source URL directly, or upload an asset."""
        self._require_step(WizardStep.INPUT)
        if source_url:
            url = source_url.strip()
        elif asset is not None:
            url = (await self._resolver.upload_asset(asset)).url
        else:
            raise InvalidRequestError("Provide a source URL or select a video file")

        self.source_url = url
        self._wizard.complete_and_advance(WizardStep.INPUT)
        return url

    def record_analysis(self, analysis: Mapping[str, Any]) -> None:
        """Analyze step: keep the externally produced analysis as opaque context."""
        self._require_step(WizardStep.ANALYZE)
        self.analysis = analysis
        self._wizard.complete_and_advance(WizardStep.ANALYZE)

    def record_strategy(self, strategy: Mapping[str, Any], variation_count: int) -> None:
        self._require_step(WizardStep.STRATEGY)
        if not MIN_VARIATIONS <= variation_count <= MAX_VARIATIONS:
            raise InvalidRequestError(
                f"Variations must be between {MIN_VARIATIONS} and {MAX_VARIATIONS}"
            )
        self.strategy = strategy
        self.variation_count = variation_count
        self._wizard.complete_and_advance(WizardStep.STRATEGY)

    def confirm_review(self) -> None:
        self._require_step(WizardStep.REVIEW)
        self._wizard.complete_and_advance(WizardStep.REVIEW)

    async def execute(self, project_id: Optional[str] = None) -> PollLoop:
        """Execute step: submit the batch and start polling it.

        Submission errors propagate and leave the wizard on this step.
        """
        self._require_step(WizardStep.EXECUTE)
        if self._loop is not None and self._loop.running:
            raise InvalidRequestError("A render batch is already running")

        project_id = project_id or f"proj_wizard_{int(time.time() * 1000)}"
        context: Dict[str, Any] = {}
        if self.analysis is not None:
            context["analysis"] = self.analysis
        if self.strategy is not None:
            context["strategy"] = self.strategy

        epoch = self._run_epoch
        submission = await self._resolver.submit_job(
            project_id,
            self.source_url or "",
            self.variation_count,
            context=context or None,
        )
        if epoch != self._run_epoch:
            logger.info("Pipeline was reset during submission; discarding batch for %s", project_id)
            raise InvalidRequestError("The pipeline was reset while the batch was being submitted")
        self.submission = submission
        self._jobs = tuple(placeholder_jobs(submission.jobs, project_id, submission.variation_ids))
        logger.info(
            "Started batch of %d job(s) for %s%s",
            len(self._jobs),
            project_id,
            " (preview mode)" if submission.preview else "",
        )

        self._loop = PollLoop(
            self._resolver,
            self._jobs,
            interval=self._poll_interval,
            on_update=self._on_update,
            on_resolved=self._on_batch_resolved,
        )
        self._loop.start()
        return self._loop

    async def wait_for_results(self) -> Tuple[RenderJob, ...]:
        if self._loop is None:
            return self.jobs
        return await self._loop.wait()

    def _on_batch_resolved(self, jobs: Tuple[RenderJob, ...]) -> None:
        self._jobs = jobs
        logger.info("Batch finished: %s", batch_outcome(jobs).value)
        self._wizard.complete(WizardStep.EXECUTE)
        # Someone reviewing an earlier step stays there; Results is now reachable
        if self._wizard.current_step == WizardStep.EXECUTE:
            self._wizard.go_to(WizardStep.RESULTS)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def _cancel_polling(self) -> None:
        self._run_epoch += 1
        if self._loop is not None:
            self._loop.cancel()
            self._loop = None

    async def reset(self) -> None:
        """Discard the run. Any active poll loop is stopped first."""
        loop = self._loop
        self._wizard.reset()
        if loop is not None:
            await loop.stop()
        self._clear()
