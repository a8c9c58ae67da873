"""
Configuration module for the notification backend.

Provides centralized configuration for:
- Environment-driven application settings (VAPID, scan schedule, limits)
"""

from backend.src.config.settings import AppSettings, get_settings

__all__ = [
    "AppSettings",
    "get_settings",
]
