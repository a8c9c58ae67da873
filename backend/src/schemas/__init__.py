"""
Pydantic schemas for API request/response validation.

This module exports all schema classes for use in API endpoints.
"""

from backend.src.schemas.notifications import (
    NotificationCreate,
    NotificationResponse,
    NotificationListResponse,
    UnreadCountResponse,
    ReadStateResponse,
    MarkAllReadResponse,
    PushSubscriptionCreate,
    PushSubscriptionRemove,
    PushSubscriptionResponse,
    AckResponse,
    VapidKeyResponse,
    OverdueCheckResponse,
)
from backend.src.schemas.notification_payloads import (
    NotificationPayload,
    PAYLOAD_MODELS,
)

__all__ = [
    "NotificationCreate",
    "NotificationResponse",
    "NotificationListResponse",
    "UnreadCountResponse",
    "ReadStateResponse",
    "MarkAllReadResponse",
    "PushSubscriptionCreate",
    "PushSubscriptionRemove",
    "PushSubscriptionResponse",
    "AckResponse",
    "VapidKeyResponse",
    "OverdueCheckResponse",
    "NotificationPayload",
    "PAYLOAD_MODELS",
]
