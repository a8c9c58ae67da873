"""
Utility modules for the notification backend.

This package contains shared utilities used across the application:
- logging_config: Structured logging setup and named loggers
- realtime: In-process Server-Sent Events hub for live notifications
"""

from backend.src.utils.logging_config import get_logger, init_logging
from backend.src.utils.realtime import RealtimeConnection, RealtimeHub, format_sse

__all__ = [
    "get_logger",
    "init_logging",
    "RealtimeConnection",
    "RealtimeHub",
    "format_sse",
]
