from firebase_admin import messaging

from conftest import bearer
from sighting_api.models import PostStatus
from sighting_api.services import notifications
from sighting_api.services.post_status import SightingNotification


def test_sighting_message_payload():
    message = notifications.build_sighting_message(
        SightingNotification(post_id=12, user_name="Lucía", latitude=-42.5, longitude=-64.3),
        "sightings",
    )

    assert message.topic == "sightings"
    assert "Lucía" in message.notification.body
    assert message.data == {"postId": "12", "latitude": "-42.5", "longitude": "-64.3", "type": "new_sighting"}
    assert message.android.priority == "high"
    assert message.android.notification.channel_id == "sightings"
    assert message.apns.payload.aps.badge == 1


def test_missing_coordinates_are_empty_strings():
    message = notifications.build_sighting_message(SightingNotification(post_id=3, user_name="Usuario"), "sightings")

    assert message.data["latitude"] == ""
    assert message.data["longitude"] == ""


def test_send_failure_is_absorbed(monkeypatch):
    def broken_send(message, app=None):
        raise RuntimeError("FCM unavailable")

    monkeypatch.setattr(notifications, "get_firebase_app", lambda: None)
    monkeypatch.setattr(messaging, "send", broken_send)

    assert notifications.send_sighting_notification(SightingNotification(post_id=1, user_name="Lucía")) is None


def test_send_returns_message_id(monkeypatch):
    sent = []

    def fake_send(message, app=None):
        sent.append(message)
        return "projects/demo/messages/1"

    monkeypatch.setattr(notifications, "get_firebase_app", lambda: None)
    monkeypatch.setattr(messaging, "send", fake_send)

    result = notifications.send_sighting_notification(SightingNotification(post_id=1, user_name="Lucía"))

    assert result == "projects/demo/messages/1"
    assert sent[0].data["postId"] == "1"


# ============================================================================
# Endpoints
# ============================================================================

def test_test_endpoint_resends_post_notification(admin_client, user, post_factory, monkeypatch):
    sent = []
    monkeypatch.setattr(notifications, "send_sighting_notification", lambda n: sent.append(n) or "msg-1")
    post = post_factory(user, status=PostStatus.ACTIVO, images=[(-42.5, -64.3)])

    response = admin_client.post("/api/notifications/test", json={"postId": post.id})

    assert response.status_code == 200
    assert response.json()["messageId"] == "msg-1"
    assert sent[0].latitude == -42.5


def test_test_endpoint_reports_send_failure(admin_client, user, post_factory, monkeypatch):
    monkeypatch.setattr(notifications, "send_sighting_notification", lambda n: None)
    post = post_factory(user)

    response = admin_client.post("/api/notifications/test", json={"postId": post.id})

    assert response.status_code == 502
    assert response.json()["code"] == "NOTIFICATION_FAILED"


def test_test_endpoint_unknown_post(admin_client):
    assert admin_client.post("/api/notifications/test", json={"postId": 404}).status_code == 404


def test_simple_test_notification(admin_client, monkeypatch):
    monkeypatch.setattr(notifications, "send_test_message", lambda: "msg-2")

    response = admin_client.post("/api/notifications/test-simple")

    assert response.json() == {"message": "Notification sent", "messageId": "msg-2"}


def test_notifications_are_admin_only(client, user):
    assert client.post("/api/notifications/test-simple", headers=bearer(user)).status_code == 401
