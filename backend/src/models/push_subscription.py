"""
PushSubscription model for Web Push notification subscriptions.

Stores the push service endpoint and encryption keys needed to deliver
push notifications to one device/browser of a user or a client.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin
from backend.src.models.notification import Recipient


class PushSubscription(Base, GuidMixin):
    """
    Web Push subscription for one device/browser.

    Attributes:
        endpoint: Push service URL (unique per subscription)
        p256dh_key: ECDH public key for payload encryption (Base64url)
        auth_key: Auth secret for message authentication (Base64url)
        device_name: Optional user-friendly label (e.g., "Pixel 8")
        last_used_at: Timestamp of last successful push delivery

    Lifecycle:
        Upserted by endpoint when a device subscribes (last write wins).
        Removed on unsubscribe, or when the push service answers
        404/410 for the endpoint.
    """

    __tablename__ = "push_subscriptions"
    GUID_PREFIX = "sub"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Owner (exactly one)
    user_id = Column(
        Integer,
        ForeignKey("users.id", name="fk_push_subscriptions_user_id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    client_id = Column(
        Integer,
        ForeignKey("clients.id", name="fk_push_subscriptions_client_id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    # Push subscription data
    endpoint = Column(String(1024), nullable=False, unique=True)
    p256dh_key = Column(String(255), nullable=False)
    auth_key = Column(String(255), nullable=False)

    device_name = Column(String(100), nullable=True)

    last_used_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    user = relationship("User", foreign_keys=[user_id])
    client = relationship("Client", foreign_keys=[client_id])

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND client_id IS NULL) OR "
            "(user_id IS NULL AND client_id IS NOT NULL)",
            name="ck_push_subscriptions_single_owner",
        ),
    )

    @property
    def owner(self) -> Recipient:
        if self.user_id is not None:
            return Recipient.user(self.user_id)
        return Recipient.client(self.client_id)
