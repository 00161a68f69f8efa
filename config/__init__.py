"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    db: Function to get Supabase client
    get_supabase_client: Same as db
    get_admin_client: Service-role client for background work
    configure_logging: structlog setup for the API and worker
    check_connection: Health check function
"""

from config.settings import settings, get_settings, Settings
from config.logging_config import configure_logging
from config.database import (
    db,
    get_supabase_client,
    get_admin_client,
    check_connection,
    reset_connection,
    DatabaseError,
    ConnectionError
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",
    "configure_logging",

    # Database
    "db",
    "get_supabase_client",
    "get_admin_client",
    "check_connection",
    "reset_connection",
    "DatabaseError",
    "ConnectionError",
]
