"""
Notifications Router - Manual push notification checks (admin only)

Endpoints:
  POST /api/notifications/test         - Re-send the sighting notification of a post
  POST /api/notifications/test-simple  - Send a bare test notification
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sighting_api.database.connection import get_db
from sighting_api.dependencies import require_admin_principal
from sighting_api.errors import NotFound, UpstreamError
from sighting_api.models import Post
from sighting_api.services import notifications
from sighting_api.services.post_status import build_sighting_notification

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_principal)])


class TestNotificationRequest(BaseModel):
    postId: int


@router.post("/test")
async def send_test_notification(body: TestNotificationRequest, db: Session = Depends(get_db)):
    """Send the sighting notification for a post, whatever its status."""
    post = db.get(Post, body.postId)
    if not post:
        raise NotFound(f"Post {body.postId} not found")

    message_id = notifications.send_sighting_notification(build_sighting_notification(db, post))
    if message_id is None:
        raise UpstreamError("Error sending notification", code="NOTIFICATION_FAILED")

    return {"message": "Test notification sent", "postId": post.id, "messageId": message_id}


@router.post("/test-simple")
async def send_simple_notification():
    """Send a bare test notification to the sightings topic."""
    try:
        message_id = notifications.send_test_message()
    except Exception as e:
        logger.exception("Error sending test notification")
        raise UpstreamError("Error sending notification", code="NOTIFICATION_FAILED") from e

    return {"message": "Notification sent", "messageId": message_id}
