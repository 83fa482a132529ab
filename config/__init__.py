"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    get_supabase_client: Cached Supabase client
    get_admin_client: Service-role client for the cleanup sweep
    configure_logging: structlog setup for entry points
"""

from config.settings import settings, get_settings, Settings
from config.database import get_supabase_client, get_admin_client
from config.logging import configure_logging

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Database
    "get_supabase_client",
    "get_admin_client",

    # Logging
    "configure_logging",
]
