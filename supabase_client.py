# vendora_dispatch/supabase_client.py
from supabase import Client, ClientOptions, create_client

from config import Settings


def get_supabase_client(settings: Settings) -> Client:
    """
    Create a service-role Supabase client.

    Each call builds a new client with its own connection pool, so the
    server builds one per process (see `data_integrator.repository_factory`).
    """
    if not settings.supabase_url:
        raise RuntimeError("SUPABASE_URL is not set in the environment")

    if not settings.supabase_key:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY is not set in the environment")

    options = ClientOptions(
        postgrest_client_timeout=settings.store_timeout_seconds,
        auto_refresh_token=False,
        persist_session=False,
    )
    return create_client(settings.supabase_url, settings.supabase_key, options=options)
