"""
Notification model for the in-app notification feed.

A notification is addressed to exactly one recipient, either a staff user or
a client. It is the source of truth for the notification panel, independent
of whether push or real-time delivery succeeded.

Read state follows a closed state machine (unread -> read -> archived).
Delivery bookkeeping (delivery_status and friends) is tracked separately
and is never mixed with read state.
"""

import enum
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Index, JSON, Enum,
    CheckConstraint, event, inspect,
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class NotificationType(enum.Enum):
    """Kind of notification; determines the shape of ``data``."""
    TASK_ASSIGNED = "task_assigned"
    TASK_CREATED = "task_created"
    TASK_COMPLETED = "task_completed"
    TASK_MODIFIED = "task_modified"
    COMMENT_MENTION = "comment_mention"
    MESSAGE_RECEIVED = "message_received"
    SYSTEM_ALERT = "system_alert"
    PAYMENT_RECEIVED = "payment_received"


class NotificationStatus(enum.Enum):
    """Read state of a notification."""
    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"

    def can_transition_to(self, target: "NotificationStatus") -> bool:
        """Whether ``self -> target`` is an edge of the read-state machine."""
        return target in _STATUS_TRANSITIONS[self]


_STATUS_TRANSITIONS = {
    NotificationStatus.UNREAD: frozenset({NotificationStatus.READ}),
    NotificationStatus.READ: frozenset({NotificationStatus.ARCHIVED}),
    NotificationStatus.ARCHIVED: frozenset(),
}


class DeliveryStatus(enum.Enum):
    """Outcome of the last dispatch over push and real-time channels."""
    PENDING = "pending"
    DELIVERED = "delivered"
    PARTIAL = "partial"
    FAILED = "failed"


class RecipientKind(enum.Enum):
    USER = "user"
    CLIENT = "client"


@dataclass(frozen=True)
class Recipient:
    """
    Addressee of a notification.

    Exactly one of a user or a client; the kind is explicit so the two id
    spaces can never be confused.
    """
    kind: RecipientKind
    id: int

    @classmethod
    def user(cls, user_id: int) -> "Recipient":
        return cls(RecipientKind.USER, user_id)

    @classmethod
    def client(cls, client_id: int) -> "Recipient":
        return cls(RecipientKind.CLIENT, client_id)

    @property
    def key(self) -> str:
        """Stable string key, e.g. ``user:42``."""
        return f"{self.kind.value}:{self.id}"


# Columns frozen after insert
IMMUTABLE_COLUMNS = ("type", "message", "data", "user_id", "client_id")


class Notification(Base, GuidMixin):
    """
    Notification addressed to a single user or client.

    Attributes:
        type: NotificationType, fixes the payload shape
        message: Rendered human-readable text
        status: Read state (unread, read, archived)
        data: JSON payload validated per type before insert
        user_id / client_id: Recipient (exactly one is set)
        delivery_status: pending until channels ran, then delivered,
                         partial or failed
        delivery_error: Concatenated channel failure reasons, if any
        last_delivery_attempt: When channels last ran
        delivered_at: When at least one channel last delivered

    Lifecycle:
        Inserted by the notification service only. Afterwards only status
        and delivery bookkeeping may change; updated_at moves on status
        transitions only.
    """

    __tablename__ = "notifications"
    GUID_PREFIX = "ntf"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Recipient
    user_id = Column(
        Integer,
        ForeignKey("users.id", name="fk_notifications_user_id", ondelete="CASCADE"),
        nullable=True,
    )
    client_id = Column(
        Integer,
        ForeignKey("clients.id", name="fk_notifications_client_id", ondelete="CASCADE"),
        nullable=True,
    )

    # Content
    type = Column(
        Enum(
            NotificationType,
            name="notification_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    message = Column(Text, nullable=False)
    data = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=False, default=dict)

    # Read state
    status = Column(
        Enum(
            NotificationStatus,
            name="notification_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=NotificationStatus.UNREAD,
        nullable=False,
    )

    # Delivery bookkeeping
    delivery_status = Column(
        Enum(
            DeliveryStatus,
            name="notification_delivery_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=DeliveryStatus.PENDING,
        nullable=False,
    )
    delivery_error = Column(String(1000), nullable=True)
    last_delivery_attempt = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id])
    client = relationship("Client", foreign_keys=[client_id])

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND client_id IS NULL) OR "
            "(user_id IS NULL AND client_id IS NOT NULL)",
            name="ck_notifications_single_recipient",
        ),
        Index("ix_notifications_user_status", "user_id", "status"),
        Index("ix_notifications_client_status", "client_id", "status"),
    )

    @property
    def recipient(self) -> Recipient:
        if self.user_id is not None:
            return Recipient.user(self.user_id)
        return Recipient.client(self.client_id)

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, type={self.type}, "
            f"status={self.status}, recipient={self.recipient.key})>"
        )


@event.listens_for(Notification, "before_update")
def _reject_content_changes(mapper, connection, target):
    state = inspect(target)
    changed = [
        column for column in IMMUTABLE_COLUMNS
        if state.attrs[column].history.has_changes()
    ]
    if changed:
        raise ValueError(
            f"Notification {target.id} is immutable after insert "
            f"(attempted to change: {', '.join(changed)})"
        )
