"""
Notification service for creating, delivering, and querying notifications.

Provides business logic for:
- Validating a notification payload against the shape of its type
- Persisting the notification (status unread, delivery pending)
- Delivering it over push and real-time channels in parallel
- Recording delivery bookkeeping from the channel results
- Listing a recipient's feed and counting unread notifications

Only this service inserts notification rows. Read-state changes live in
ReadStateService.
"""

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.src.config.settings import AppSettings
from backend.src.models.client import Client
from backend.src.models.notification import (
    DeliveryStatus,
    Notification,
    NotificationStatus,
    NotificationType,
    Recipient,
    RecipientKind,
)
from backend.src.models.user import User
from backend.src.schemas.notification_payloads import PAYLOAD_MODELS
from backend.src.services.delivery_channels import (
    ChannelName,
    ChannelOutcome,
    ChannelResult,
    DEFAULT_PUSH_TITLE,
    PushChannel,
    RealtimeChannel,
)
from backend.src.services.exceptions import NotFoundError, ValidationError
from backend.src.utils.logging_config import get_logger
from backend.src.utils.realtime import RealtimeHub


logger = get_logger("services")

MAX_DELIVERY_ERROR_LENGTH = 1000


def recipient_filter(recipient: Recipient):
    """SQLAlchemy filter selecting the notifications of ``recipient``."""
    if recipient.kind is RecipientKind.USER:
        return Notification.user_id == recipient.id
    return Notification.client_id == recipient.id


def validate_payload(
    notification_type: NotificationType,
    payload: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Check ``payload`` against the shape registered for ``notification_type``.

    Args:
        notification_type: Type of the notification being created
        payload: Raw payload (None is treated as an empty payload)

    Returns:
        Copy of the payload exactly as given (extras included, nothing
        coerced or defaulted)

    Raises:
        ValidationError: If a required key is missing or has the wrong type
    """
    model = PAYLOAD_MODELS[notification_type]
    if payload is not None and not isinstance(payload, dict):
        raise ValidationError(
            f"Payload for {notification_type.value} must be an object",
            field="data",
        )

    try:
        model.model_validate(payload or {})
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ValidationError(
            f"Invalid payload for {notification_type.value}: "
            f"{location or 'data'}: {first['msg']}",
            field=f"data.{location}" if location else "data",
        ) from e

    return copy.deepcopy(payload or {})


@dataclass
class DeliveryReport:
    """Result of create_and_deliver: the stored notification and channel outcomes."""

    notification: Notification
    results: List[ChannelResult] = field(default_factory=list)
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING

    def result_for(self, channel: ChannelName) -> Optional[ChannelResult]:
        for result in self.results:
            if result.channel is channel:
                return result
        return None


def summarize_delivery(results: Sequence[ChannelResult]) -> Tuple[DeliveryStatus, Optional[str]]:
    """
    Fold channel results into a delivery status and error text.

    Skipped channels do not count. With nothing attempted the notification
    is considered delivered (the persisted feed is the baseline channel).
    """
    attempted = [r for r in results if r.attempted]
    failed = [r for r in attempted if r.outcome is ChannelOutcome.FAILED]
    errors = "; ".join(
        f"{r.channel.value}: {r.reason or 'failed'}" for r in failed
    ) or None

    if not failed:
        return DeliveryStatus.DELIVERED, None
    if len(failed) == len(attempted):
        return DeliveryStatus.FAILED, errors
    return DeliveryStatus.PARTIAL, errors


class NotificationService:
    """
    Service for notification creation, delivery, and feed queries.

    Orchestrates the notification lifecycle:
    1. Validate the payload for the notification type
    2. Create the notification record in the database
    3. Deliver over push and real-time channels concurrently
    4. Record delivery bookkeeping
    """

    def __init__(
        self,
        db: Session,
        realtime_hub: Optional[RealtimeHub] = None,
        vapid_private_key: str = "",
        vapid_claims: Optional[Dict[str, str]] = None,
        push_title: str = DEFAULT_PUSH_TITLE,
        channels: Optional[Sequence[Any]] = None,
    ):
        """
        Initialize notification service.

        Args:
            db: SQLAlchemy database session
            realtime_hub: Hub of live SSE streams (None disables real-time)
            vapid_private_key: VAPID private key for push authentication
            vapid_claims: VAPID claims dict (e.g., {"sub": "mailto:..."})
            push_title: Default push message title
            channels: Explicit channel list, replacing push + real-time
        """
        self.db = db
        if channels is None:
            channels = (
                PushChannel(db, vapid_private_key, vapid_claims, title=push_title),
                RealtimeChannel(realtime_hub),
            )
        self.channels = list(channels)

    @classmethod
    def from_settings(
        cls,
        db: Session,
        settings: AppSettings,
        realtime_hub: Optional[RealtimeHub] = None,
    ) -> "NotificationService":
        """Service wired with the VAPID configuration from ``settings``."""
        return cls(
            db,
            realtime_hub=realtime_hub,
            vapid_private_key=settings.vapid_private_key if settings.vapid_configured else "",
            vapid_claims=settings.vapid_claims,
            push_title=settings.push_title,
        )

    # ========================================================================
    # Creation and delivery
    # ========================================================================

    async def create_and_deliver(
        self,
        notification_type: Union[NotificationType, str],
        message: str,
        recipient: Recipient,
        payload: Optional[Dict[str, Any]] = None,
    ) -> DeliveryReport:
        """
        Create a notification and deliver it over every channel.

        Args:
            notification_type: Type of the notification
            message: Rendered notification text
            recipient: The single user or client receiving it
            payload: Type-specific data

        Returns:
            DeliveryReport with the persisted notification and channel results

        Raises:
            ValidationError: Invalid type, message, recipient or payload
                (nothing is persisted)
            SQLAlchemyError: The insert failed (session rolled back)
        """
        notification = self.create_notification(notification_type, message, recipient, payload)

        outcomes = await asyncio.gather(
            *(channel.deliver(notification) for channel in self.channels),
            return_exceptions=True,
        )
        results = [
            self._as_result(channel, outcome)
            for channel, outcome in zip(self.channels, outcomes)
        ]

        status = self._record_delivery(notification, results)
        return DeliveryReport(notification, results, status)

    def create_notification(
        self,
        notification_type: Union[NotificationType, str],
        message: str,
        recipient: Recipient,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """
        Validate and persist a notification without delivering it.

        Raises:
            ValidationError: Invalid type, message, recipient or payload
            SQLAlchemyError: The insert failed (session rolled back)
        """
        notification_type = self._coerce_type(notification_type)
        if not message or not message.strip():
            raise ValidationError("Notification message cannot be empty", field="message")
        self._validate_recipient(recipient)
        data = validate_payload(notification_type, payload)

        now = datetime.utcnow()
        notification = Notification(
            type=notification_type,
            message=message,
            data=data,
            user_id=recipient.id if recipient.kind is RecipientKind.USER else None,
            client_id=recipient.id if recipient.kind is RecipientKind.CLIENT else None,
            status=NotificationStatus.UNREAD,
            delivery_status=DeliveryStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(
                "Failed to persist notification",
                extra={"type": notification_type.value, "recipient": recipient.key},
                exc_info=True,
            )
            raise
        self.db.refresh(notification)

        logger.info(
            "Created notification",
            extra={
                "guid": notification.guid,
                "type": notification_type.value,
                "recipient": recipient.key,
            },
        )
        return notification

    def _coerce_type(self, notification_type: Union[NotificationType, str]) -> NotificationType:
        if isinstance(notification_type, NotificationType):
            return notification_type
        try:
            return NotificationType(notification_type)
        except ValueError:
            raise ValidationError(
                f"Unknown notification type: {notification_type}", field="type"
            )

    def _validate_recipient(self, recipient: Recipient) -> None:
        if not isinstance(recipient, Recipient):
            raise ValidationError("A notification needs exactly one recipient", field="recipient")

        model = User if recipient.kind is RecipientKind.USER else Client
        exists = self.db.query(model.id).filter(model.id == recipient.id).first()
        if exists is None:
            raise ValidationError(
                f"Recipient {recipient.key} does not exist", field="recipient"
            )

    def _as_result(self, channel: Any, outcome: Any) -> ChannelResult:
        if isinstance(outcome, ChannelResult):
            return outcome
        name = channel.name
        logger.error(
            f"Delivery channel raised: {outcome}",
            extra={"channel": name.value},
        )
        return ChannelResult(name, ChannelOutcome.FAILED, str(outcome))

    def _record_delivery(
        self,
        notification: Notification,
        results: Sequence[ChannelResult],
    ) -> DeliveryStatus:
        status, error = summarize_delivery(results)
        now = datetime.utcnow()

        values: Dict[Any, Any] = {
            Notification.delivery_status: status,
            Notification.delivery_error: error[:MAX_DELIVERY_ERROR_LENGTH] if error else None,
            Notification.last_delivery_attempt: now,
        }
        if any(r.outcome is ChannelOutcome.DELIVERED for r in results):
            values[Notification.delivered_at] = now

        try:
            self.db.query(Notification).filter(
                Notification.id == notification.id
            ).update(values, synchronize_session="fetch")
            self.db.commit()
        except SQLAlchemyError:
            # Bookkeeping is best-effort; the notification itself is stored
            self.db.rollback()
            logger.error(
                "Failed to record delivery status",
                extra={"guid": notification.guid},
                exc_info=True,
            )
            return status

        if status is not DeliveryStatus.DELIVERED:
            logger.warning(
                "Notification delivery incomplete",
                extra={
                    "guid": notification.guid,
                    "delivery_status": status.value,
                    "error": error,
                },
            )
        return status

    # ========================================================================
    # Queries
    # ========================================================================

    def get_notification(self, guid: str) -> Notification:
        """
        Get a notification by GUID.

        Raises:
            NotFoundError: If the GUID is malformed or unknown
        """
        uuid_value = Notification.try_parse_guid(guid)
        if uuid_value is None:
            raise NotFoundError("Notification", guid)

        notification = (
            self.db.query(Notification)
            .filter(Notification.uuid == uuid_value)
            .first()
        )
        if not notification:
            raise NotFoundError("Notification", guid)
        return notification

    def list_notifications(
        self,
        recipient: Recipient,
        limit: int = 20,
        offset: int = 0,
        status: Optional[NotificationStatus] = None,
    ) -> Tuple[List[Notification], int]:
        """
        List a recipient's notifications, newest first.

        Args:
            recipient: Whose feed to read
            limit: Maximum results
            offset: Number to skip
            status: Optional read-state filter

        Returns:
            Tuple of (notifications list, total count)
        """
        query = self.db.query(Notification).filter(recipient_filter(recipient))
        if status is not None:
            query = query.filter(Notification.status == status)

        total = query.count()
        notifications = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return notifications, total

    def get_unread_count(self, recipient: Recipient) -> int:
        """Number of unread notifications, always counted in the store."""
        return (
            self.db.query(func.count(Notification.id))
            .filter(
                recipient_filter(recipient),
                Notification.status == NotificationStatus.UNREAD,
            )
            .scalar()
        )
