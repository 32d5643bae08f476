"""Supabase client construction."""

from supabase import Client, ClientOptions, create_client

from coach.config.settings import get_settings


def get_supabase(access_token: str | None = None) -> Client:
    """Build a Supabase client with the anon key.

    When ``access_token`` is given, PostgREST requests carry it as the bearer
    token so row level security sees the signed-in user.
    """
    settings = get_settings()
    options = ClientOptions(auto_refresh_token=False, persist_session=False)
    client = create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY, options=options)
    if access_token:
        client.postgrest.auth(access_token)
    return client
