"""Supabase client initialization."""

from functools import lru_cache

from supabase import Client, ClientOptions, create_client

from portal_assistant.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get Supabase client instance (cached singleton).

    Returns:
        Supabase client configured with service role key

    Raises:
        Exception: If client initialization fails
    """
    try:
        settings = get_settings()
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        return client
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e


def get_user_supabase(access_token: str) -> Client:
    """
    Get a Supabase client that acts as the calling user.

    Requests carry the user's JWT so row-level security decides what the
    assistant can read and write. Not cached: one client per request.

    Args:
        access_token: The caller's Supabase access token

    Returns:
        Supabase client scoped to the user
    """
    settings = get_settings()
    key = settings.SUPABASE_ANON_KEY or settings.SUPABASE_SERVICE_ROLE_KEY
    try:
        return create_client(
            settings.SUPABASE_URL,
            key,
            options=ClientOptions(headers={"Authorization": f"Bearer {access_token}"}),
        )
    except Exception as e:
        raise RuntimeError(f"Failed to initialize user Supabase client: {e}") from e
