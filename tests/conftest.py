"""Shared fixtures: scripted HTTP backends and an in-memory object store."""

from typing import Callable, Dict, List

import httpx
import pytest

from renderflow.client.fallback import FallbackResolver
from renderflow.client.models import AssetFile
from renderflow.client.transport import RenderTransport
from renderflow.storage.object_store import ObjectStore

BASE_URL = "http://render.test/render"


class MemoryObjectStore(ObjectStore):
    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    async def upload(self, key: str, asset: AssetFile) -> str:
        self.objects[key] = asset.data
        return f"https://storage.test/videos/{key}"


class RecordingBackend:
    """Routes requests to a handler and remembers every request it saw."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self._handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def make_transport(backend: Callable[[httpx.Request], httpx.Response]) -> RenderTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    return RenderTransport(BASE_URL, client=client)


@pytest.fixture
def memory_store():
    return MemoryObjectStore()


@pytest.fixture
def video_asset():
    return AssetFile(name="My Ad (final).mp4", data=b"\x00\x00\x00\x18ftypmp42", content_type="video/mp4")


@pytest.fixture
def offline_resolver(memory_store):
    backend = RecordingBackend(unreachable)
    resolver = FallbackResolver(
        make_transport(backend), memory_store, key_prefix="renderflow", clock=lambda: 1700000000.0
    )
    return resolver, backend
