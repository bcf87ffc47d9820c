"""Value types exchanged with the render service (non-job payloads)."""

import mimetypes
import os
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from renderflow.jobs.models import JobRef, RenderJob


class AssetFile(BaseModel):
    """A source asset held in memory, ready for a multipart upload."""

    model_config = ConfigDict(frozen=True)

    name: str
    data: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "AssetFile":
        with open(path, "rb") as f:
            data = f.read()
        name = os.path.basename(path)
        guessed, _ = mimetypes.guess_type(name)
        return cls(
            name=name,
            data=data,
            content_type=content_type or guessed or "application/octet-stream",
        )

    @property
    def size(self) -> int:
        return len(self.data)


class HealthStatus(BaseModel):
    ok: bool
    ffmpeg: Literal["ready", "unavailable"] = "unavailable"
    error: Optional[str] = None
    latency_ms: Optional[int] = None


class UploadResult(BaseModel):
    """Where an uploaded asset now lives. Callers cannot tell which store served it."""

    url: str
    size: int


class SubmitResult(BaseModel):
    project_id: str
    jobs: List[JobRef]
    variation_ids: List[str]
    preview: bool = False

    @property
    def ids(self) -> List[str]:
        return [ref.id for ref in self.jobs]


class HistoryResult(BaseModel):
    jobs: List[RenderJob] = Field(default_factory=list)
