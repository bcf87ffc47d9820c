"""Supabase client singleton for fallback object storage."""

from supabase import create_client, Client
from renderflow.config import settings

_client: Client | None = None


def get_supabase() -> Client:
    """Get or create the Supabase client.

    Prefers the anon key; the service role key is accepted for server-side use.
    """
    global _client
    if _client is None:
        key = settings.supabase_anon_key or settings.supabase_service_role_key
        if not settings.supabase_url or not key:
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_ANON_KEY (or SUPABASE_SERVICE_ROLE_KEY) must be set"
            )
        _client = create_client(settings.supabase_url, key)
    return _client
