"""
Supabase clients for the pipeline.

Every service takes its client from get_supabase_client(). The cleanup
sweep prefers get_admin_client(), which uses the service-role key so it
can remove rows of every shop past row-level security.
"""

from functools import lru_cache
from typing import Optional

import structlog
from supabase import Client, create_client

from config.settings import settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


@lru_cache()
def get_supabase_client() -> Client:
    """
    Cached client for the anon/service key in SUPABASE_KEY.

    The first call checks the connection against bulk_uploads so a bad URL
    or key fails at startup rather than on the first upload.
    get_supabase_client.cache_clear() forces a reconnect.

    Raises:
        DatabaseError: If the client can't reach the pipeline tables
    """
    # Only the host part of the URL goes to the log
    logger.info("connecting_to_supabase", url=settings.supabase_url[:30] + "...")
    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
        client.table("bulk_uploads").select("id").limit(1).execute()
    except Exception as e:
        logger.error("supabase_connection_failed", error=str(e), error_type=type(e).__name__)
        raise DatabaseError("connect", str(e)) from e

    logger.info("supabase_connected")
    return client


@lru_cache()
def get_admin_client() -> Optional[Client]:
    """Service-role client, or None when SUPABASE_SERVICE_KEY is unset or unusable."""
    if not settings.supabase_service_key:
        logger.warning("admin_client_not_configured")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_service_key)
    except Exception as e:
        logger.error("admin_client_failed", error=str(e))
        return None
