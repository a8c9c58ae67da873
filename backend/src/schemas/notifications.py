"""
Pydantic schemas for notification API request/response validation.

Provides data validation and serialization for:
- Notification creation and history (list, unread count)
- Read-state changes (mark read, mark all read, archive)
- Push subscription management (subscribe, unsubscribe)
- Overdue scan trigger
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from backend.src.models.notification import (
    DeliveryStatus,
    Notification,
    NotificationStatus,
    NotificationType,
    RecipientKind,
)


# ============================================================================
# Notification Schemas
# ============================================================================


class NotificationCreate(BaseModel):
    """
    Schema for creating a notification.

    Required:
        type: Notification type (determines payload shape)
        message: Rendered notification text
        recipient_guid: usr_xxx or cli_xxx

    Optional:
        data: Type-specific payload
    """

    type: NotificationType
    message: str = Field(..., min_length=1, max_length=2000)
    recipient_guid: str = Field(..., description="Recipient GUID (usr_xxx or cli_xxx)")
    data: Dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "task_modified",
                "message": 'Task "Quarterly report" is now overdue',
                "recipient_guid": "usr_01hgw2bbg0000000000000002",
                "data": {
                    "task_id": "tsk_01hgw2bbg0000000000000003",
                    "status": "overdue",
                    "url": "/taskOfferings/tsk_01hgw2bbg0000000000000003",
                },
            }
        }
    }


class NotificationResponse(BaseModel):
    """Response schema for a single notification."""

    guid: str = Field(..., description="Notification GUID (ntf_xxx)")
    type: NotificationType
    message: str
    status: NotificationStatus
    data: Dict[str, Any] = Field(default_factory=dict)
    recipient_kind: RecipientKind
    recipient_guid: Optional[str] = None
    delivery_status: DeliveryStatus
    created_at: datetime
    updated_at: datetime
    delivered_at: Optional[datetime] = None

    @field_serializer("created_at", "updated_at", "delivered_at")
    @classmethod
    def serialize_datetime_utc(cls, v: Optional[datetime]) -> Optional[str]:
        """Serialize datetime as ISO 8601 with explicit UTC timezone."""
        return v.isoformat() + "Z" if v else None

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        if notification.user_id is not None:
            kind = RecipientKind.USER
            owner = notification.user
        else:
            kind = RecipientKind.CLIENT
            owner = notification.client
        return cls(
            guid=notification.guid,
            type=notification.type,
            message=notification.message,
            status=notification.status,
            data=notification.data or {},
            recipient_kind=kind,
            recipient_guid=owner.guid if owner is not None else None,
            delivery_status=notification.delivery_status,
            created_at=notification.created_at,
            updated_at=notification.updated_at,
            delivered_at=notification.delivered_at,
        )


class NotificationListResponse(BaseModel):
    """Response schema for a recipient's notification feed."""

    notifications: List[NotificationResponse]
    total: int = Field(..., ge=0, description="Total notifications matching filter")
    unread_count: int = Field(..., ge=0)


class UnreadCountResponse(BaseModel):
    """Response schema for unread notification count."""

    unread_count: int = Field(..., ge=0, description="Number of unread notifications")


class ReadStateResponse(BaseModel):
    """Response for a single read-state change."""

    id: str = Field(..., description="Notification GUID (ntf_xxx)")
    status: NotificationStatus


class MarkAllReadResponse(BaseModel):
    updated_count: int = Field(..., ge=0)
    message: str


# ============================================================================
# Push Subscription Schemas
# ============================================================================


class PushSubscriptionCreate(BaseModel):
    """
    Schema for creating a push subscription.

    Required:
        recipient_guid: Owner of the subscription (usr_xxx or cli_xxx)
        endpoint: Push service endpoint URL (must be HTTPS)
        p256dh_key: Base64url-encoded ECDH public key
        auth_key: Base64url-encoded auth secret

    Optional:
        device_name: User-friendly device label
    """

    recipient_guid: str
    endpoint: str = Field(..., max_length=1024, description="Push service endpoint URL (must be HTTPS)")
    p256dh_key: str = Field(..., min_length=1, max_length=255)
    auth_key: str = Field(..., min_length=1, max_length=255)
    device_name: Optional[str] = Field(default=None, max_length=100, description="Optional device name")

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint_https(cls, v: str) -> str:
        """Ensure endpoint uses HTTPS."""
        if not v.startswith("https://"):
            raise ValueError("Push subscription endpoint must use HTTPS")
        return v


class PushSubscriptionRemove(BaseModel):
    """Schema for removing a push subscription by endpoint."""

    endpoint: str = Field(..., description="The push service endpoint URL to unsubscribe")


class PushSubscriptionResponse(BaseModel):
    """Response schema for a push subscription."""

    guid: str = Field(..., description="Subscription GUID (sub_xxx)")
    endpoint: str
    device_name: Optional[str] = None
    created_at: datetime
    last_used_at: Optional[datetime] = None

    @field_serializer("created_at", "last_used_at")
    @classmethod
    def serialize_datetime_utc(cls, v: Optional[datetime]) -> Optional[str]:
        """Serialize datetime as ISO 8601 with explicit UTC timezone."""
        return v.isoformat() + "Z" if v else None

    model_config = {"from_attributes": True}


class AckResponse(BaseModel):
    success: bool = True
    message: str


class VapidKeyResponse(BaseModel):
    """Response schema for VAPID public key."""

    vapid_public_key: str = Field(..., description="Base64url-encoded VAPID public key")


# ============================================================================
# Overdue Scan Schemas
# ============================================================================


class OverdueCheckResponse(BaseModel):
    accepted: bool
    message: str
