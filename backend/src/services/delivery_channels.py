"""
Delivery channels for persisted notifications.

Each channel takes a freshly created Notification and tries to get it in
front of the recipient:

- PushChannel: Web Push to every subscription of the recipient (pywebpush,
  VAPID). Subscriptions the push service reports as gone (404/410) are
  deleted.
- RealtimeChannel: publishes to the recipient's live SSE stream, if any.

Channels are best-effort. They never raise; every outcome is reported as
a ChannelResult so the notification service can record delivery status.

The session is only used on the event loop thread, in synchronous blocks
between awaits. Worker threads receive plain dicts, never ORM instances.
"""

import asyncio
import enum
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pywebpush import webpush, WebPushException
from sqlalchemy.orm import Session

from backend.src.models.notification import Notification, Recipient, RecipientKind
from backend.src.models.push_subscription import PushSubscription
from backend.src.schemas.notifications import NotificationResponse
from backend.src.services.exceptions import PushDeliveryError, PushGoneError
from backend.src.utils.logging_config import get_logger
from backend.src.utils.realtime import RealtimeHub


logger = get_logger("services")

PUSH_TTL_SECONDS = 86400
DEFAULT_PUSH_TITLE = "What's Next Please"
REALTIME_EVENT = "notification"


class ChannelName(enum.Enum):
    PUSH = "push"
    REALTIME = "realtime"


class ChannelOutcome(enum.Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ChannelResult:
    """Outcome of one channel for one notification."""

    channel: ChannelName
    outcome: ChannelOutcome
    reason: Optional[str] = None

    @property
    def attempted(self) -> bool:
        return self.outcome is not ChannelOutcome.SKIPPED


def subscription_filter(recipient: Recipient):
    """SQLAlchemy filter selecting the push subscriptions of ``recipient``."""
    if recipient.kind is RecipientKind.USER:
        return PushSubscription.user_id == recipient.id
    return PushSubscription.client_id == recipient.id


def build_push_payload(notification: Notification, default_title: str) -> Dict[str, Any]:
    """
    Push message for a notification.

    ``data.push_notification`` may override title and body; otherwise the
    configured title and the notification message are used.
    """
    data = dict(notification.data or {})
    override = data.pop("push_notification", None) or {}
    created_at = notification.created_at or datetime.utcnow()

    return {
        "title": override.get("title") or default_title,
        "body": override.get("body") or notification.message,
        "data": {
            **data,
            "notification_id": notification.guid,
            "type": notification.type.value,
            "url": data.get("url") or "/notifications",
            "timestamp": created_at.isoformat() + "Z",
        },
    }


class PushChannel:
    """
    Web Push delivery to all subscriptions of a recipient.

    Each subscription is sent to in a worker thread (pywebpush is blocking);
    sends for one notification run concurrently.
    """

    name = ChannelName.PUSH

    def __init__(
        self,
        db: Session,
        vapid_private_key: str = "",
        vapid_claims: Optional[Dict[str, str]] = None,
        title: str = DEFAULT_PUSH_TITLE,
        ttl: int = PUSH_TTL_SECONDS,
    ):
        self.db = db
        self.vapid_private_key = vapid_private_key
        self.vapid_claims = vapid_claims or {}
        self.title = title
        self.ttl = ttl

    async def deliver(self, notification: Notification) -> ChannelResult:
        try:
            return await self._deliver(notification)
        except Exception as e:
            logger.error(
                f"Push channel error: {e}",
                extra={"notification_guid": notification.guid},
                exc_info=True,
            )
            return ChannelResult(ChannelName.PUSH, ChannelOutcome.FAILED, str(e))

    async def _deliver(self, notification: Notification) -> ChannelResult:
        if not self.vapid_private_key:
            return ChannelResult(ChannelName.PUSH, ChannelOutcome.SKIPPED, "push not configured")

        recipient = notification.recipient
        subscriptions = (
            self.db.query(PushSubscription)
            .filter(subscription_filter(recipient))
            .all()
        )
        if not subscriptions:
            return ChannelResult(ChannelName.PUSH, ChannelOutcome.SKIPPED, "no subscriptions")

        # Plain copies: ORM instances are not touched outside this thread
        targets = [
            {
                "endpoint": sub.endpoint,
                "keys": {"p256dh": sub.p256dh_key, "auth": sub.auth_key},
            }
            for sub in subscriptions
        ]
        payload_json = json.dumps(build_push_payload(notification, self.title), default=str)
        notification_guid = notification.guid

        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self._send_push, target, payload_json) for target in targets),
            return_exceptions=True,
        )

        delivered, gone, failures = self._classify(targets, outcomes)
        self._record(delivered, gone)

        logger.info(
            "Push delivery summary",
            extra={
                "notification_guid": notification_guid,
                "recipient": recipient.key,
                "total": len(targets),
                "success": len(delivered),
                "failed": len(failures),
                "removed": len(gone),
            },
        )

        if delivered:
            reason = f"{len(failures) + len(gone)} of {len(targets)} failed" if (failures or gone) else None
            return ChannelResult(ChannelName.PUSH, ChannelOutcome.DELIVERED, reason)
        reasons = failures + [f"subscription gone: {endpoint[:60]}" for endpoint in gone]
        return ChannelResult(ChannelName.PUSH, ChannelOutcome.FAILED, "; ".join(reasons))

    def _classify(
        self,
        targets: List[Dict[str, Any]],
        outcomes: List[Any],
    ) -> Tuple[List[str], List[str], List[str]]:
        delivered, gone, failures = [], [], []
        for target, outcome in zip(targets, outcomes):
            endpoint = target["endpoint"]
            if isinstance(outcome, PushGoneError):
                gone.append(endpoint)
            elif isinstance(outcome, BaseException):
                failures.append(str(outcome))
                logger.warning(
                    f"Push delivery failed: {outcome}",
                    extra={"endpoint": endpoint[:60]},
                )
            else:
                delivered.append(endpoint)
        return delivered, gone, failures

    def _record(self, delivered: List[str], gone: List[str]) -> None:
        if not delivered and not gone:
            return
        if delivered:
            self.db.query(PushSubscription).filter(
                PushSubscription.endpoint.in_(delivered)
            ).update(
                {PushSubscription.last_used_at: datetime.utcnow()},
                synchronize_session="fetch",
            )
        if gone:
            logger.info(
                "Removing expired push subscriptions",
                extra={"endpoints": [endpoint[:60] for endpoint in gone]},
            )
            # Bulk delete by endpoint is a no-op when another delivery
            # already removed the row.
            self.db.query(PushSubscription).filter(
                PushSubscription.endpoint.in_(gone)
            ).delete(synchronize_session="fetch")
        self.db.commit()

    def _send_push(self, subscription_info: Dict[str, Any], payload_json: str) -> None:
        """
        Send a push notification to a single subscription via pywebpush.

        Runs in a worker thread.

        Raises:
            PushGoneError: If the push service answered 404 or 410
            PushDeliveryError: If delivery failed for other reasons
        """
        endpoint = subscription_info["endpoint"]
        try:
            webpush(
                subscription_info=subscription_info,
                data=payload_json,
                vapid_private_key=self.vapid_private_key,
                vapid_claims=dict(self.vapid_claims),
                ttl=self.ttl,
                headers={"Urgency": "high"},
            )
        except WebPushException as e:
            status_code = None
            if getattr(e, "response", None) is not None:
                status_code = e.response.status_code
                if status_code in (404, 410):
                    raise PushGoneError(endpoint, str(e), status_code) from e
            raise PushDeliveryError(endpoint, str(e), status_code) from e
        except Exception as e:
            raise PushDeliveryError(endpoint, str(e)) from e


class RealtimeChannel:
    """Publishes the serialized notification to the recipient's live stream."""

    name = ChannelName.REALTIME

    def __init__(self, hub: Optional[RealtimeHub]):
        self.hub = hub

    async def deliver(self, notification: Notification) -> ChannelResult:
        if self.hub is None:
            return ChannelResult(ChannelName.REALTIME, ChannelOutcome.SKIPPED, "realtime disabled")
        try:
            payload = NotificationResponse.from_notification(notification).model_dump(mode="json")
            if self.hub.publish(notification.recipient, REALTIME_EVENT, payload):
                return ChannelResult(ChannelName.REALTIME, ChannelOutcome.DELIVERED)
            return ChannelResult(ChannelName.REALTIME, ChannelOutcome.SKIPPED, "recipient offline")
        except Exception as e:
            logger.error(
                f"Realtime channel error: {e}",
                extra={"notification_guid": notification.guid},
                exc_info=True,
            )
            return ChannelResult(ChannelName.REALTIME, ChannelOutcome.FAILED, str(e))
