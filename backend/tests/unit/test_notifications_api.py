"""
Tests for the notifications API endpoints.

Push delivery is disabled in the test environment (no VAPID keys), so
creating a notification only exercises the real-time channel.
"""

from unittest.mock import MagicMock, patch

import pytest

from backend.src.config.settings import get_settings
from backend.src.models.notification import Notification, NotificationStatus
from backend.src.models.push_subscription import PushSubscription


UNKNOWN_USER = "usr_" + "0" * 26
ENDPOINT = "https://fcm.googleapis.com/fcm/send/device-1"


def subscription_body(recipient_guid, endpoint=ENDPOINT):
    return {
        "recipient_guid": recipient_guid,
        "endpoint": endpoint,
        "p256dh_key": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA",
        "auth_key": "tBHItJI5svbpez7KI4CCXg",
        "device_name": "Chrome on Mac",
    }


class TestCreateNotification:
    """Tests for POST /api/notifications."""

    def test_creates_and_returns_notification(self, test_client, test_user, test_db_session):
        response = test_client.post("/api/notifications", json={
            "type": "task_assigned",
            "message": 'Task "Fix login" has been assigned to you',
            "recipient_guid": test_user.guid,
            "data": {"task_id": "tsk_1", "name": "Sam"},
        })

        assert response.status_code == 201
        body = response.json()
        assert body["guid"].startswith("ntf_")
        assert body["status"] == "unread"
        assert body["type"] == "task_assigned"
        assert body["recipient_guid"] == test_user.guid
        assert body["data"]["task_id"] == "tsk_1"
        assert body["created_at"].endswith("Z")
        assert test_db_session.query(Notification).count() == 1

    def test_feed_returns_created_data_unchanged(self, test_client, test_user):
        data = {
            "task_id": "tsk_1",
            "comment_id": "c42",
            "url": "/taskOfferings/tsk_1#comment-c42",
            "details": {"comment_preview": "Can you check?"},
            "push_notification": {"title": "WNP", "body": "Jane mentioned you", "icon": "/i.png"},
        }
        created = test_client.post("/api/notifications", json={
            "type": "comment_mention",
            "message": 'Jane Doe mentioned you in a comment on "Fix login"',
            "recipient_guid": test_user.guid,
            "data": data,
        })

        feed = test_client.get(f"/api/notifications/{test_user.guid}")

        assert created.status_code == 201
        assert created.json()["data"] == data
        listed = feed.json()["notifications"]
        assert len(listed) == 1
        assert listed[0]["guid"] == created.json()["guid"]
        assert listed[0]["type"] == "comment_mention"
        assert listed[0]["message"] == 'Jane Doe mentioned you in a comment on "Fix login"'
        assert listed[0]["data"] == data

    def test_coerced_value_is_rejected(self, test_client, test_user):
        response = test_client.post("/api/notifications", json={
            "type": "payment_received",
            "message": "Payment received",
            "recipient_guid": test_user.guid,
            "data": {"amount": "12.50"},
        })

        assert response.status_code == 400

    def test_client_recipient(self, test_client, test_client_account):
        response = test_client.post("/api/notifications", json={
            "type": "payment_received",
            "message": "Payment received",
            "recipient_guid": test_client_account.guid,
            "data": {"amount": 120.5},
        })

        assert response.status_code == 201
        assert response.json()["recipient_guid"] == test_client_account.guid

    def test_invalid_payload_is_rejected(self, test_client, test_user, test_db_session):
        response = test_client.post("/api/notifications", json={
            "type": "task_assigned",
            "message": "Missing task id",
            "recipient_guid": test_user.guid,
            "data": {},
        })

        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "data.task_id"
        assert test_db_session.query(Notification).count() == 0

    def test_unknown_type(self, test_client, test_user):
        response = test_client.post("/api/notifications", json={
            "type": "birthday",
            "message": "Hi",
            "recipient_guid": test_user.guid,
        })

        assert response.status_code == 422

    def test_unknown_recipient(self, test_client):
        response = test_client.post("/api/notifications", json={
            "type": "system_alert",
            "message": "Hi",
            "recipient_guid": UNKNOWN_USER,
        })

        assert response.status_code == 404

    def test_malformed_recipient(self, test_client):
        response = test_client.post("/api/notifications", json={
            "type": "system_alert",
            "message": "Hi",
            "recipient_guid": "usr_nope",
        })

        assert response.status_code == 400


class TestFeed:
    """Tests for listing, unread count and read-state endpoints."""

    def test_list_with_unread_count(self, test_client, sample_notification, test_user):
        sample_notification(user=test_user, message="one")
        sample_notification(user=test_user, message="two", status=NotificationStatus.READ)

        response = test_client.get(f"/api/notifications/{test_user.guid}")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["unread_count"] == 1
        assert len(body["notifications"]) == 2

    def test_list_status_filter_and_paging(self, test_client, sample_notification, test_user):
        for i in range(3):
            sample_notification(user=test_user, message=f"n{i}")

        response = test_client.get(
            f"/api/notifications/{test_user.guid}",
            params={"status": "unread", "limit": 2, "offset": 0},
        )

        body = response.json()
        assert body["total"] == 3
        assert len(body["notifications"]) == 2

    def test_unread_count(self, test_client, sample_notification, test_client_account):
        sample_notification(client=test_client_account)

        response = test_client.get(f"/api/notifications/{test_client_account.guid}/unread-count")

        assert response.status_code == 200
        assert response.json() == {"unread_count": 1}

    def test_role_client_requires_client_guid(self, test_client, test_user):
        response = test_client.get(
            f"/api/notifications/{test_user.guid}/unread-count", params={"role": "client"}
        )

        assert response.status_code == 400

    def test_mark_as_read_is_idempotent(self, test_client, sample_notification, test_user):
        notification = sample_notification(user=test_user)

        first = test_client.patch(f"/api/notifications/{notification.guid}/read")
        second = test_client.patch(f"/api/notifications/{notification.guid}/read")

        assert first.status_code == 200
        assert first.json() == {"id": notification.guid, "status": "read"}
        assert second.json() == first.json()

    def test_mark_as_read_unknown(self, test_client):
        response = test_client.patch(f"/api/notifications/ntf_{'0' * 26}/read")

        assert response.status_code == 404

    def test_read_all(self, test_client, sample_notification, test_user):
        for _ in range(2):
            sample_notification(user=test_user)

        response = test_client.patch(f"/api/notifications/{test_user.guid}/readAll")
        again = test_client.patch(f"/api/notifications/{test_user.guid}/readAll")

        assert response.json()["updated_count"] == 2
        assert again.json()["updated_count"] == 0

    def test_archive_requires_read(self, test_client, sample_notification, test_user):
        notification = sample_notification(user=test_user)

        conflict = test_client.patch(f"/api/notifications/{notification.guid}/archive")
        test_client.patch(f"/api/notifications/{notification.guid}/read")
        archived = test_client.patch(f"/api/notifications/{notification.guid}/archive")

        assert conflict.status_code == 409
        assert archived.status_code == 200
        assert archived.json()["status"] == "archived"


class TestPushSubscriptionEndpoints:
    """Tests for push subscription registration and removal."""

    def test_subscribe(self, test_client, test_user, test_db_session):
        response = test_client.post(
            "/api/notifications/push-subscription", json=subscription_body(test_user.guid)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["guid"].startswith("sub_")
        assert body["endpoint"] == ENDPOINT
        assert test_db_session.query(PushSubscription).count() == 1

    def test_subscribe_requires_https(self, test_client, test_user):
        response = test_client.post(
            "/api/notifications/push-subscription",
            json=subscription_body(test_user.guid, endpoint="http://push.example.com/x"),
        )

        assert response.status_code == 422

    def test_unsubscribe(self, test_client, test_user, test_db_session):
        test_client.post(
            "/api/notifications/push-subscription", json=subscription_body(test_user.guid)
        )

        response = test_client.request(
            "DELETE",
            "/api/notifications/push-subscription",
            params={"recipient_guid": test_user.guid},
            json={"endpoint": ENDPOINT},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert test_db_session.query(PushSubscription).count() == 0

    def test_unsubscribe_unknown(self, test_client, test_user):
        response = test_client.request(
            "DELETE",
            "/api/notifications/push-subscription",
            params={"recipient_guid": test_user.guid},
            json={"endpoint": ENDPOINT},
        )

        assert response.status_code == 404

    def test_rate_limited(self, test_client, test_user):
        statuses = [
            test_client.post(
                "/api/notifications/push-subscription",
                json=subscription_body(test_user.guid, endpoint=f"{ENDPOINT}-{i}"),
            ).status_code
            for i in range(11)
        ]

        assert statuses[:10] == [201] * 10
        assert statuses[10] == 429


class TestVapidKey:
    def test_not_configured(self, test_client):
        response = test_client.get("/api/notifications/vapid-public-key")

        assert response.status_code == 503

    def test_configured(self, test_client):
        settings = get_settings().model_copy(update={"vapid_public_key": "BPublicKey"})

        with patch("backend.src.api.notifications.get_settings", return_value=settings):
            response = test_client.get("/api/notifications/vapid-public-key")

        assert response.status_code == 200
        assert response.json() == {"vapid_public_key": "BPublicKey"}


class TestOverdueCheck:
    """Tests for POST /api/notifications/overdue-check."""

    @pytest.fixture
    def scheduler(self, test_client):
        original = test_client.app.state.overdue_scheduler
        mock_scheduler = MagicMock()
        test_client.app.state.overdue_scheduler = mock_scheduler
        yield mock_scheduler
        test_client.app.state.overdue_scheduler = original

    def test_accepted(self, test_client, scheduler):
        scheduler.run_now.return_value = True

        response = test_client.post("/api/notifications/overdue-check")

        assert response.status_code == 202
        assert response.json()["accepted"] is True
        scheduler.run_now.assert_called_once_with()

    def test_already_running(self, test_client, scheduler):
        scheduler.run_now.return_value = False

        response = test_client.post("/api/notifications/overdue-check")

        assert response.status_code == 409


class TestStream:
    """Stream endpoint error cases; live streaming is covered by the hub tests."""

    def test_unknown_recipient(self, test_client):
        response = test_client.get(f"/api/notifications/stream/{UNKNOWN_USER}")

        assert response.status_code == 404

    def test_malformed_recipient(self, test_client):
        response = test_client.get("/api/notifications/stream/not-a-guid")

        assert response.status_code == 400


class TestHealth:
    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["realtime_connections"] == 0
        assert body["overdue_scan_in_progress"] is False
