import logging

from supabase import AsyncClient, Client, ClientOptions, acreate_client, create_client

from app.core.config import STORE_TIMEOUT_SECONDS, SUPABASE_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)

_SUPABASE: Client | None = None


def get_supabase() -> Client:
    """Shared service-role client, created on first use."""
    global _SUPABASE
    if _SUPABASE is not None:
        return _SUPABASE

    if not SUPABASE_URL or not SUPABASE_KEY:
        raise RuntimeError("Missing PUBLIC_SUPABASE_URL or SECRET_API_KEY")

    _SUPABASE = create_client(
        SUPABASE_URL,
        SUPABASE_KEY,
        options=ClientOptions(
            postgrest_client_timeout=STORE_TIMEOUT_SECONDS,
            storage_client_timeout=STORE_TIMEOUT_SECONDS,
        ),
    )
    logger.info(f"supabase_client_created url={SUPABASE_URL}")
    return _SUPABASE


async def connect_realtime() -> AsyncClient:
    """Async client for Supabase Realtime subscriptions (the sync client has none)."""
    if not SUPABASE_URL or not SUPABASE_KEY:
        raise RuntimeError("Missing PUBLIC_SUPABASE_URL or SECRET_API_KEY")

    client = await acreate_client(SUPABASE_URL, SUPABASE_KEY)
    logger.info(f"supabase_realtime_client_created url={SUPABASE_URL}")
    return client
