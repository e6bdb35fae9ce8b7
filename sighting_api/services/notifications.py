"""
Push notifications through Firebase Cloud Messaging.

Sighting notifications go to a topic every app install subscribes to. They are
sent from FastAPI background tasks after the response has been returned, so
send_sighting_notification never raises: failures are only logged.
"""

import logging
from typing import Optional

from firebase_admin import messaging

from sighting_api.config import get_settings
from sighting_api.services.firebase import get_firebase_app
from sighting_api.services.post_status import SightingNotification

logger = logging.getLogger(__name__)

SIGHTING_TITLE = "🐋 Nuevo avistamiento de cetáceos!"
SIGHTING_BODY = "{user_name} ha registrado un avistaje. Toca para ver."


def _coordinate(value: Optional[float]) -> str:
    # FCM data values must be strings
    return "" if value is None else str(value)


def build_sighting_message(notification: SightingNotification, topic: str) -> messaging.Message:
    """Build the FCM message announcing an approved sighting."""
    return messaging.Message(
        topic=topic,
        notification=messaging.Notification(
            title=SIGHTING_TITLE,
            body=SIGHTING_BODY.format(user_name=notification.user_name),
        ),
        data={
            "postId": str(notification.post_id),
            "latitude": _coordinate(notification.latitude),
            "longitude": _coordinate(notification.longitude),
            "type": "new_sighting",
        },
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                channel_id="sightings",
                sound="default",
                priority="high",
            ),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
        ),
    )


def send_sighting_notification(notification: SightingNotification) -> Optional[str]:
    """
    Send a sighting notification to the configured topic.

    Returns:
        FCM message id, or None if sending failed (the error is logged)
    """
    try:
        topic = get_settings().notification_topic
        message = build_sighting_message(notification, topic)
        message_id = messaging.send(message, app=get_firebase_app())
        logger.info(f"Sighting notification sent for post {notification.post_id}: {message_id}")
        return message_id
    except Exception:
        logger.exception(f"Error sending FCM notification for post {notification.post_id}")
        return None


def send_test_message() -> str:
    """Send a bare test notification to the topic. Errors propagate."""
    message = messaging.Message(
        topic=get_settings().notification_topic,
        notification=messaging.Notification(
            title="🐋 Prueba de notificación",
            body="Esta es una notificación de prueba",
        ),
        data={"type": "test"},
    )
    return messaging.send(message, app=get_firebase_app())
