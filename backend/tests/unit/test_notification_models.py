"""
Unit tests for the Notification and PushSubscription models.

Covers the read-state machine, recipient constraints, the immutability
guard and GUID handling.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from backend.src.models import (
    DeliveryStatus,
    Notification,
    NotificationStatus,
    NotificationType,
    PushSubscription,
    Recipient,
    RecipientKind,
)


class TestNotificationStatusTransitions:
    """Tests for NotificationStatus.can_transition_to."""

    @pytest.mark.parametrize("source,target", [
        (NotificationStatus.UNREAD, NotificationStatus.READ),
        (NotificationStatus.READ, NotificationStatus.ARCHIVED),
    ])
    def test_allowed_edges(self, source, target):
        assert source.can_transition_to(target)

    @pytest.mark.parametrize("source,target", [
        (NotificationStatus.READ, NotificationStatus.UNREAD),
        (NotificationStatus.ARCHIVED, NotificationStatus.READ),
        (NotificationStatus.ARCHIVED, NotificationStatus.UNREAD),
        (NotificationStatus.UNREAD, NotificationStatus.ARCHIVED),
        (NotificationStatus.UNREAD, NotificationStatus.UNREAD),
    ])
    def test_rejected_edges(self, source, target):
        assert not source.can_transition_to(target)


class TestRecipient:
    """Tests for the Recipient value object."""

    def test_user_and_client_with_same_id_differ(self):
        assert Recipient.user(7) != Recipient.client(7)

    def test_key(self):
        assert Recipient.user(42).key == "user:42"
        assert Recipient.client(3).key == "client:3"

    def test_hashable(self):
        slots = {Recipient.user(1): "a", Recipient.client(1): "b"}
        assert slots[Recipient(RecipientKind.USER, 1)] == "a"


class TestNotificationModel:
    """Tests for Notification persistence rules."""

    def test_defaults(self, sample_notification, test_user):
        notification = sample_notification(user=test_user)

        assert notification.status == NotificationStatus.UNREAD
        assert notification.delivery_status == DeliveryStatus.PENDING
        assert notification.delivered_at is None
        assert notification.guid.startswith("ntf_")
        assert notification.recipient == Recipient.user(test_user.id)

    def test_client_recipient(self, sample_notification, test_client_account):
        notification = sample_notification(client=test_client_account)
        assert notification.recipient == Recipient.client(test_client_account.id)

    def test_requires_exactly_one_recipient(self, test_db_session, test_user, test_client_account):
        notification = Notification(
            user_id=test_user.id,
            client_id=test_client_account.id,
            type=NotificationType.SYSTEM_ALERT,
            message="Both",
            data={},
        )
        test_db_session.add(notification)
        with pytest.raises(IntegrityError):
            test_db_session.commit()
        test_db_session.rollback()

    def test_requires_a_recipient(self, test_db_session):
        notification = Notification(
            type=NotificationType.SYSTEM_ALERT,
            message="Nobody",
            data={},
        )
        test_db_session.add(notification)
        with pytest.raises(IntegrityError):
            test_db_session.commit()
        test_db_session.rollback()

    def test_content_is_immutable(self, test_db_session, sample_notification, test_user):
        notification = sample_notification(user=test_user, message="Original")

        notification.message = "Edited"
        with pytest.raises(ValueError, match="immutable"):
            test_db_session.commit()
        test_db_session.rollback()

        test_db_session.refresh(notification)
        assert notification.message == "Original"

    def test_recipient_is_immutable(self, test_db_session, sample_notification, sample_user, test_user):
        other = sample_user()
        notification = sample_notification(user=test_user)

        notification.user_id = other.id
        with pytest.raises(ValueError, match="user_id"):
            test_db_session.commit()
        test_db_session.rollback()

    def test_status_may_change(self, test_db_session, sample_notification, test_user):
        notification = sample_notification(user=test_user)

        notification.status = NotificationStatus.READ
        test_db_session.commit()
        test_db_session.refresh(notification)

        assert notification.status == NotificationStatus.READ

    def test_enums_stored_as_values(self, test_db_session, sample_notification, test_user):
        from sqlalchemy import text

        sample_notification(user=test_user, notification_type=NotificationType.COMMENT_MENTION,
                            data={"task_id": "tsk_1", "comment_id": "c1"})
        row = test_db_session.execute(
            text("SELECT type, status, delivery_status FROM notifications")
        ).one()

        assert tuple(row) == ("comment_mention", "unread", "pending")


class TestGuid:
    """Tests for GUID parsing on the notification models."""

    def test_round_trip(self, sample_notification, test_user):
        notification = sample_notification(user=test_user)
        assert Notification.parse_guid(notification.guid) == notification.uuid

    def test_wrong_prefix(self, sample_notification, test_user):
        notification = sample_notification(user=test_user)
        wrong = "sub_" + notification.guid.split("_", 1)[1]

        with pytest.raises(ValueError, match="Invalid prefix"):
            Notification.parse_guid(wrong)
        assert Notification.try_parse_guid(wrong) is None

    def test_malformed(self):
        assert Notification.try_parse_guid("ntf_short") is None
        assert Notification.try_parse_guid("") is None

    def test_subscription_prefix(self, sample_subscription, test_user):
        subscription = sample_subscription(user=test_user)
        assert subscription.guid.startswith("sub_")
        assert subscription.owner == Recipient.user(test_user.id)

    def test_subscription_requires_single_owner(self, test_db_session, test_user, test_client_account):
        subscription = PushSubscription(
            user_id=test_user.id,
            client_id=test_client_account.id,
            endpoint="https://push.example.com/both",
            p256dh_key="p",
            auth_key="a",
        )
        test_db_session.add(subscription)
        with pytest.raises(IntegrityError):
            test_db_session.commit()
        test_db_session.rollback()
