"""Secondary object storage used when the render service cannot take an upload."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from supabase import Client

from renderflow.client.errors import FallbackStorageError
from renderflow.client.models import AssetFile
from renderflow.config import settings
from renderflow.db.supabase_client import get_supabase

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(name: str) -> str:
    """ASCII-only file name safe for storage keys."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip("._")
    return cleaned or "upload"


def fallback_object_key(filename: str, timestamp: float, prefix: Optional[str] = None) -> str:
    """Deterministic storage key from a timestamp (seconds) and the file name."""
    prefix = settings.fallback_key_prefix if prefix is None else prefix
    key = f"{int(timestamp * 1000)}_{sanitize_filename(filename)}"
    return f"{prefix.strip('/')}/{key}" if prefix else key


class ObjectStore(ABC):
    """Abstract interface for a bucket that can serve uploads publicly."""

    @abstractmethod
    async def upload(self, key: str, asset: AssetFile) -> str:
        """Store `asset` under `key`. Returns the public URL."""
        ...


class SupabaseObjectStore(ObjectStore):
    """Supabase Storage bucket. The sync SDK runs in a thread executor."""

    def __init__(self, bucket: Optional[str] = None, client: Optional[Client] = None):
        self._bucket = bucket or settings.fallback_bucket
        self._client = client

    def _upload_sync(self, key: str, asset: AssetFile) -> str:
        client = self._client or get_supabase()
        bucket = client.storage.from_(self._bucket)
        bucket.upload(
            path=key,
            file=asset.data,
            file_options={"content-type": asset.content_type, "upsert": "true"},
        )
        return bucket.get_public_url(key)

    async def upload(self, key: str, asset: AssetFile) -> str:
        loop = asyncio.get_running_loop()
        try:
            url = await loop.run_in_executor(None, self._upload_sync, key, asset)
        except Exception as exc:
            raise FallbackStorageError(
                f"Fallback upload to bucket '{self._bucket}' failed: {exc}"
            ) from exc
        logger.info("Stored %s in fallback bucket %s", key, self._bucket)
        return url
