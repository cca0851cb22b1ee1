"""Supabase client initialization."""

from functools import lru_cache

from supabase import Client, create_client

from advisor_engine.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get Supabase client instance (cached singleton).

    Returns:
        Supabase client configured with service role key

    Raises:
        RuntimeError: If persistence is not configured or initialization fails
    """
    settings = get_settings()
    if not settings.persistence_enabled:
        raise RuntimeError("Supabase persistence is not configured")
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
