"""
Read-state service for notifications.

Owns every write to Notification.status. All transitions are conditional
updates (``UPDATE ... WHERE status = <expected>``) so concurrent requests
for the same notification, or for the same recipient, never apply a
transition twice and never move a notification backwards.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from backend.src.models.notification import Notification, NotificationStatus, Recipient
from backend.src.services.exceptions import InvalidStatusTransitionError, NotFoundError
from backend.src.services.notification_service import recipient_filter
from backend.src.utils.logging_config import get_logger


logger = get_logger("services")


@dataclass(frozen=True)
class ReadState:
    """Notification GUID and its status after a read-state call."""

    id: str
    status: NotificationStatus


class ReadStateService:
    """Marks notifications read and archived."""

    def __init__(self, db: Session):
        self.db = db

    def _load(self, guid: str) -> Notification:
        uuid_value = Notification.try_parse_guid(guid)
        if uuid_value is None:
            raise NotFoundError("Notification", guid)
        notification = (
            self.db.query(Notification)
            .filter(Notification.uuid == uuid_value)
            .first()
        )
        if notification is None:
            raise NotFoundError("Notification", guid)
        return notification

    def _transition(
        self,
        notification: Notification,
        source: NotificationStatus,
        target: NotificationStatus,
    ) -> bool:
        updated = (
            self.db.query(Notification)
            .filter(
                Notification.id == notification.id,
                Notification.status == source,
            )
            .update(
                {Notification.status: target, Notification.updated_at: datetime.utcnow()},
                synchronize_session="fetch",
            )
        )
        self.db.commit()
        return updated == 1

    def mark_as_read(self, guid: str) -> ReadState:
        """
        Mark a notification as read (idempotent).

        Only an unread notification is written; a read or archived one is
        returned unchanged without touching the store.

        Raises:
            NotFoundError: If the GUID is malformed or unknown
        """
        notification = self._load(guid)
        if notification.status is not NotificationStatus.UNREAD:
            return ReadState(notification.guid, notification.status)

        if self._transition(notification, NotificationStatus.UNREAD, NotificationStatus.READ):
            logger.info("Notification marked as read", extra={"guid": notification.guid})
            return ReadState(notification.guid, NotificationStatus.READ)

        # Lost the race: report whatever the winner wrote
        self.db.refresh(notification)
        return ReadState(notification.guid, notification.status)

    def mark_all_as_read(self, recipient: Recipient) -> int:
        """
        Mark every unread notification of ``recipient`` as read.

        Returns:
            Number of notifications that changed from unread to read
        """
        updated = (
            self.db.query(Notification)
            .filter(
                recipient_filter(recipient),
                Notification.status == NotificationStatus.UNREAD,
            )
            .update(
                {
                    Notification.status: NotificationStatus.READ,
                    Notification.updated_at: datetime.utcnow(),
                },
                synchronize_session="fetch",
            )
        )
        self.db.commit()
        logger.info(
            "Marked all notifications as read",
            extra={"recipient": recipient.key, "updated_count": updated},
        )
        return updated

    def archive(self, guid: str) -> ReadState:
        """
        Archive a read notification (idempotent on archived ones).

        Raises:
            NotFoundError: If the GUID is malformed or unknown
            InvalidStatusTransitionError: If the notification is still unread
        """
        notification = self._load(guid)
        current = notification.status
        if current is NotificationStatus.ARCHIVED:
            return ReadState(notification.guid, current)
        if not current.can_transition_to(NotificationStatus.ARCHIVED):
            raise InvalidStatusTransitionError(
                notification.guid, current.value, NotificationStatus.ARCHIVED.value
            )

        if not self._transition(notification, NotificationStatus.READ, NotificationStatus.ARCHIVED):
            self.db.refresh(notification)
            if notification.status is not NotificationStatus.ARCHIVED:
                raise InvalidStatusTransitionError(
                    notification.guid,
                    notification.status.value,
                    NotificationStatus.ARCHIVED.value,
                )
        logger.info("Notification archived", extra={"guid": notification.guid})
        return ReadState(notification.guid, NotificationStatus.ARCHIVED)
