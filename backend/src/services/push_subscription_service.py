"""
Push subscription service for managing Web Push subscriptions.

Provides business logic for subscribing and unsubscribing devices of users
and clients. Subscriptions the push service reports as gone are removed by
the push delivery channel, not here.
"""

from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.src.models.notification import Recipient, RecipientKind
from backend.src.models.push_subscription import PushSubscription
from backend.src.services.delivery_channels import subscription_filter
from backend.src.services.exceptions import NotFoundError
from backend.src.utils.logging_config import get_logger


logger = get_logger("services")


class PushSubscriptionService:
    """
    Service for managing Web Push subscriptions.

    Handles subscription lifecycle:
    - Subscribe (upsert by endpoint, last write wins)
    - Unsubscribe (by endpoint + owner)
    - List (by owner)
    """

    def __init__(self, db: Session):
        self.db = db

    def subscribe(
        self,
        recipient: Recipient,
        endpoint: str,
        p256dh_key: str,
        auth_key: str,
        device_name: Optional[str] = None,
    ) -> PushSubscription:
        """
        Create or replace the push subscription for ``endpoint``.

        An endpoint identifies one browser install, so an existing row for
        the same endpoint is overwritten, including its owner (a device that
        switches accounts moves its subscription).

        Args:
            recipient: Owning user or client
            endpoint: Push service endpoint URL
            p256dh_key: ECDH public key (Base64url)
            auth_key: Auth secret (Base64url)
            device_name: Optional user-friendly device label

        Returns:
            Created or updated PushSubscription
        """
        existing = self._find_by_endpoint(endpoint)
        if existing is None:
            subscription = PushSubscription(endpoint=endpoint)
            self._apply(subscription, recipient, p256dh_key, auth_key, device_name)
            self.db.add(subscription)
            try:
                self.db.commit()
            except IntegrityError:
                # Concurrent subscribe inserted the endpoint first
                self.db.rollback()
                existing = self._find_by_endpoint(endpoint)
                if existing is None:
                    raise
            else:
                self.db.refresh(subscription)
                logger.info(
                    "Created push subscription",
                    extra={"guid": subscription.guid, "recipient": recipient.key},
                )
                return subscription

        self._apply(existing, recipient, p256dh_key, auth_key, device_name)
        self.db.commit()
        self.db.refresh(existing)
        logger.info(
            "Updated push subscription",
            extra={"endpoint_prefix": endpoint[:60], "recipient": recipient.key},
        )
        return existing

    def unsubscribe(self, recipient: Recipient, endpoint: str) -> None:
        """
        Remove a push subscription by endpoint for a specific owner.

        Raises:
            NotFoundError: If no subscription matches endpoint + owner
        """
        deleted = (
            self.db.query(PushSubscription)
            .filter(
                PushSubscription.endpoint == endpoint,
                subscription_filter(recipient),
            )
            .delete(synchronize_session="fetch")
        )
        self.db.commit()

        if not deleted:
            raise NotFoundError("PushSubscription", endpoint[:60])

        logger.info(
            "Removed push subscription",
            extra={"endpoint_prefix": endpoint[:60], "recipient": recipient.key},
        )

    def list_subscriptions(self, recipient: Recipient) -> List[PushSubscription]:
        return (
            self.db.query(PushSubscription)
            .filter(subscription_filter(recipient))
            .order_by(PushSubscription.created_at.desc())
            .all()
        )

    def _find_by_endpoint(self, endpoint: str) -> Optional[PushSubscription]:
        return (
            self.db.query(PushSubscription)
            .filter(PushSubscription.endpoint == endpoint)
            .first()
        )

    @staticmethod
    def _apply(
        subscription: PushSubscription,
        recipient: Recipient,
        p256dh_key: str,
        auth_key: str,
        device_name: Optional[str],
    ) -> None:
        subscription.user_id = recipient.id if recipient.kind is RecipientKind.USER else None
        subscription.client_id = recipient.id if recipient.kind is RecipientKind.CLIENT else None
        subscription.p256dh_key = p256dh_key
        subscription.auth_key = auth_key
        subscription.device_name = device_name
