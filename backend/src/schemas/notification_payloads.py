"""
Per-type payload shapes for notification ``data``.

Every notification type has a pydantic model describing the keys its
payload must carry. Unknown keys are allowed and kept, so templates can
attach extra context without a schema change, but the required keys for a
type are checked before anything is persisted. Validation is strict:
a value of the wrong type is rejected rather than coerced.
"""

from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from backend.src.models.notification import NotificationType


class PushOverride(BaseModel):
    """Push-specific title/body that replace the defaults for this notification."""

    model_config = ConfigDict(extra="allow", strict=True)

    title: Optional[str] = Field(default=None, max_length=200)
    body: Optional[str] = Field(default=None, max_length=500)


class NotificationPayload(BaseModel):
    """Keys shared by every payload."""

    model_config = ConfigDict(extra="allow", strict=True)

    url: Optional[str] = Field(default=None, description="Deep link opened on click")
    push_notification: Optional[PushOverride] = None


class ActorPayload(NotificationPayload):
    """Payload that names the user who caused the notification."""

    name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None


class TaskPayload(ActorPayload):
    task_id: str = Field(..., min_length=1, description="Task GUID (tsk_xxx)")
    details: Optional[Dict[str, Any]] = None


class TaskModifiedPayload(TaskPayload):
    status: Optional[str] = None
    priority: Optional[str] = None


class CommentMentionPayload(TaskPayload):
    comment_id: str = Field(..., min_length=1)


class MessageReceivedPayload(ActorPayload):
    sender_id: str = Field(..., min_length=1, description="GUID of the sender")
    conversation_id: Optional[str] = None


class SystemAlertPayload(NotificationPayload):
    severity: Literal["info", "warning", "critical"] = "info"


class PaymentReceivedPayload(NotificationPayload):
    amount: float = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    invoice_id: Optional[str] = None


PAYLOAD_MODELS: Dict[NotificationType, Type[NotificationPayload]] = {
    NotificationType.TASK_ASSIGNED: TaskPayload,
    NotificationType.TASK_CREATED: TaskPayload,
    NotificationType.TASK_COMPLETED: TaskPayload,
    NotificationType.TASK_MODIFIED: TaskModifiedPayload,
    NotificationType.COMMENT_MENTION: CommentMentionPayload,
    NotificationType.MESSAGE_RECEIVED: MessageReceivedPayload,
    NotificationType.SYSTEM_ALERT: SystemAlertPayload,
    NotificationType.PAYMENT_RECEIVED: PaymentReceivedPayload,
}
