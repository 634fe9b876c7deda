"""
Mila - Supabase Client.

Low-level database access. The onboarding store adapter and the auth
dependency build on this client.
"""

from supabase import Client, create_client

from mila.config import settings

_service_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the Supabase client with the service role key.

    Bypasses row-level security; only used server-side for token checks and
    onboarding persistence. Uses singleton pattern to reuse connection.
    """
    global _service_client

    if _service_client is None:
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _service_client
