"""Upload storage for the development render backend with auto-cleanup."""

import os
import shutil
import time
import uuid
from typing import Optional, Tuple

from renderflow.config import settings
from renderflow.storage.object_store import sanitize_filename


class UploadStore:
    """Keeps uploaded source videos on local disk with TTL-based cleanup."""

    def __init__(self, base_dir: Optional[str] = None, ttl_hours: int = 2):
        self._base_dir = base_dir or settings.upload_dir
        os.makedirs(self._base_dir, exist_ok=True)
        self._ttl_seconds = ttl_hours * 3600

    def new_upload(self, filename: str) -> Tuple[str, str, str]:
        """Reserve a slot for an upload. Returns (upload_id, safe_name, path)."""
        upload_id = uuid.uuid4().hex
        safe_name = sanitize_filename(filename)
        upload_dir = os.path.join(self._base_dir, upload_id)
        os.makedirs(upload_dir, exist_ok=True)
        return upload_id, safe_name, os.path.join(upload_dir, safe_name)

    def get_path(self, upload_id: str, filename: str) -> str:
        return os.path.join(self._base_dir, upload_id, filename)

    def file_exists(self, upload_id: str, filename: str) -> bool:
        # Reject anything that is not a plain name inside our directory
        for part in (upload_id, filename):
            if part in ("", ".", "..") or part != os.path.basename(part):
                return False
        return os.path.isfile(self.get_path(upload_id, filename))

    def discard(self, upload_id: str) -> None:
        shutil.rmtree(os.path.join(self._base_dir, upload_id), ignore_errors=True)

    def cleanup_expired(self) -> int:
        """Remove upload directories older than TTL. Returns count of removed dirs."""
        now = time.time()
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            upload_dir = os.path.join(self._base_dir, entry)
            if not os.path.isdir(upload_dir):
                continue
            if now - os.path.getmtime(upload_dir) > self._ttl_seconds:
                shutil.rmtree(upload_dir, ignore_errors=True)
                removed += 1
        return removed


# Global instance
upload_store = UploadStore(ttl_hours=settings.upload_ttl_hours)
