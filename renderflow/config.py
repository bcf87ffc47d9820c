"""Application configuration via environment variables."""

import os
import tempfile

from pydantic_settings import BaseSettings


# Default render service location per deployment environment
_BASE_URLS = {
    "development": "http://localhost:3001/render",
    "production": "https://flowscale.cloud/api/render",
}


class Settings(BaseSettings):
    # Render service
    environment: str = "development"
    render_api_url: str = ""

    # Timeouts (seconds)
    health_timeout_seconds: float = 5.0
    upload_timeout_seconds: float = 30.0
    request_timeout_seconds: float = 10.0

    # Polling
    poll_interval_ms: int = 1000
    history_limit: int = 20

    # Supabase (fallback object storage)
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    fallback_bucket: str = "videos"
    fallback_key_prefix: str = "renderflow"

    # Development render backend
    backend_port: int = 3001
    max_upload_mb: int = 500
    upload_dir: str = os.path.join(tempfile.gettempdir(), "renderflow_uploads")
    upload_ttl_hours: int = 2
    simulated_stage_delay_seconds: float = 0.5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def base_url(self) -> str:
        return resolve_base_url(self.environment, self.render_api_url)

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0


def resolve_base_url(environment: str, override: str = "") -> str:
    """Pick the render service base URL for a deployment environment.

    A non-empty override always wins. Unknown environments are an error
    rather than a silent fallback to localhost.
    """
    if override:
        return override.rstrip("/")
    try:
        return _BASE_URLS[environment]
    except KeyError:
        raise ValueError(
            f"Unknown environment '{environment}'. Valid: {sorted(_BASE_URLS)}"
        ) from None


settings = Settings()
