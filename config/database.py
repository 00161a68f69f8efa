"""
Database connection management.

Provides Supabase client singletons for database operations.
"""

from supabase import create_client, Client
from functools import lru_cache
from typing import Optional
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class ConnectionError(DatabaseError):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        ConnectionError: If connection fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_key
        )

        logger.info(
            "supabase_connected",
            status="success"
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


@lru_cache()
def get_admin_client() -> Client:
    """
    Get Supabase client with service role key (admin access).

    The geocoding worker runs outside any user request, so it uses the
    service role when configured and the anon client otherwise.

    Returns:
        Client: Admin Supabase client (or the anon client as fallback)
    """
    if not settings.supabase_service_key:
        logger.warning("admin_client_not_configured_using_anon_client")
        return get_supabase_client()

    try:
        return create_client(
            settings.supabase_url,
            settings.supabase_service_key
        )
    except Exception as e:
        logger.error(
            "admin_client_failed",
            error=str(e)
        )
        raise ConnectionError(f"Failed to create admin Supabase client: {e}") from e


# Convenience alias
db = get_supabase_client


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection(client: Optional[Client] = None) -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = client or get_supabase_client()

        lists = client.table("project_address_lists").select("id", count="exact").limit(1).execute()
        addresses = client.table("addresses").select("id", count="exact").limit(1).execute()

        return {
            "status": "healthy",
            "lists_count": lists.count,
            "addresses_count": addresses.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }


def reset_connection():
    """
    Reset the cached database connections.

    Call this if connection becomes stale or after config changes.
    """
    get_supabase_client.cache_clear()
    get_admin_client.cache_clear()
    logger.info("database_connection_reset")
