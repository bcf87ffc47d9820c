"""Step gating for the linear render pipeline wizard.

A step is reachable when it has been completed, or when it is exactly one
past the highest completed step. Nothing advances on its own: callers
complete a step once the asynchronous work behind it has succeeded, then
navigate.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, FrozenSet, List

logger = logging.getLogger(__name__)


class WizardStep(IntEnum):
    INPUT = 1
    ANALYZE = 2
    STRATEGY = 3
    REVIEW = 4
    EXECUTE = 5
    RESULTS = 6


_STEP_VALUES = frozenset(int(step) for step in WizardStep)


class StepStatus(str, Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    AVAILABLE = "available"
    LOCKED = "locked"


@dataclass(frozen=True)
class WizardState:
    current_step: WizardStep = WizardStep.INPUT
    completed_steps: FrozenSet[WizardStep] = field(default_factory=frozenset)

    @property
    def progress(self) -> float:
        """Fraction of steps completed, for the sidebar progress bar."""
        return len(self.completed_steps) / len(WizardStep)


class WizardSequencer:
    def __init__(self):
        self._current = WizardStep.INPUT
        self._completed: set = set()
        self._reset_listeners: List[Callable[[], None]] = []

    @property
    def state(self) -> WizardState:
        return WizardState(self._current, frozenset(self._completed))

    @property
    def current_step(self) -> WizardStep:
        return self._current

    @property
    def completed_steps(self) -> FrozenSet[WizardStep]:
        return frozenset(self._completed)

    def _frontier(self) -> int:
        return max(self._completed, default=0) + 1

    def is_reachable(self, step: int) -> bool:
        return step in self._completed or step == self._frontier()

    def status(self, step: WizardStep) -> StepStatus:
        if step == self._current:
            return StepStatus.CURRENT
        if step in self._completed:
            return StepStatus.COMPLETED
        if step == self._frontier():
            return StepStatus.AVAILABLE
        return StepStatus.LOCKED

    def go_to(self, step: int) -> bool:
        """Navigate to `step`. Unreachable targets are rejected as a no-op."""
        if step not in _STEP_VALUES or not self.is_reachable(step):
            logger.debug("Navigation to step %s rejected (completed: %s)", step, sorted(self._completed))
            return False
        self._current = WizardStep(step)
        return True

    def complete(self, step: int) -> bool:
        """Mark `step` complete. Idempotent; returns True only on first completion.

        Only a reachable step can be completed, so no step is ever skipped.
        """
        if step in self._completed:
            return False
        if step not in _STEP_VALUES or step != self._frontier():
            logger.debug("Completion of step %s rejected (completed: %s)", step, sorted(self._completed))
            return False
        self._completed.add(WizardStep(step))
        return True

    def complete_and_advance(self, step: int) -> bool:
        """Complete `step` and move to the step after it, if there is one."""
        self.complete(step)
        if step not in self._completed:
            return False
        if step < max(WizardStep):
            return self.go_to(step + 1)
        return True

    def add_reset_listener(self, listener: Callable[[], None]) -> None:
        self._reset_listeners.append(listener)

    def reset(self) -> None:
        """Back to step 1 with nothing completed; notifies reset listeners."""
        for listener in list(self._reset_listeners):
            listener()
        self._completed.clear()
        self._current = WizardStep.INPUT
