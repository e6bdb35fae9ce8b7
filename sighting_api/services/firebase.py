"""
Firebase Admin SDK access.

The app is initialised lazily from the service-account JSON named by
FIREBASE_CREDENTIALS and shared by ID-token verification and Cloud Messaging.
"""

import logging
import os

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials

from sighting_api.config import get_settings

logger = logging.getLogger(__name__)


class FirebaseTokenError(Exception):
    """The Firebase ID token could not be verified"""


def get_firebase_app() -> firebase_admin.App:
    """Return the default Firebase app, initialising it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    credentials_path = get_settings().firebase_credentials
    if not credentials_path:
        raise RuntimeError("FIREBASE_CREDENTIALS is not set")
    if not os.path.exists(credentials_path):
        raise RuntimeError(f"Firebase credentials file not found: {credentials_path}")

    app = firebase_admin.initialize_app(credentials.Certificate(credentials_path))
    logger.info(f"Firebase app initialised for project {app.project_id}")
    return app


def verify_id_token(id_token: str) -> dict:
    """
    Verify a Firebase ID token (including revocation).

    Returns:
        Decoded token claims (uid, email_verified, ...)

    Raises:
        FirebaseTokenError: if the token is invalid, expired, revoked or the
            account is disabled
    """
    try:
        return firebase_auth.verify_id_token(id_token, app=get_firebase_app(), check_revoked=True)
    except (
        firebase_auth.InvalidIdTokenError,
        firebase_auth.UserDisabledError,
        firebase_auth.CertificateFetchError,
        ValueError,
    ) as e:
        raise FirebaseTokenError(str(e))
