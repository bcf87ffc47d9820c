"""Job dispatcher interface for the development render backend."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from renderflow.jobs.models import RenderJob


class JobDispatcher(ABC):
    """Abstract interface for job dispatching."""

    @abstractmethod
    async def submit(self, job: RenderJob, input_params: Optional[Dict[str, Any]] = None) -> str:
        """Submit a job for processing. Returns job_id."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[RenderJob]:
        """Get the current snapshot of a job."""
        ...

    @abstractmethod
    async def list_jobs(self, limit: int) -> List[RenderJob]:
        """Most recent jobs first."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
