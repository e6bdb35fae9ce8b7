"""
User Auth Router - Mobile app authentication through Firebase

Endpoints:
  POST /user-auth/register       - Register with a Firebase ID token
  POST /user-auth/login          - Login with a Firebase ID token
  POST /user-auth/refresh-token  - Rotate tokens using a refresh token
  POST /user-auth/logout         - Stateless logout

Tokens are returned in the response body (the app keeps them in secure
storage) and sent back as "Authorization: Bearer <accessToken>".
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from sighting_api.auth import Role, TokenError, TokenPair, TokenUse, issue_token_pair, verify_token
from sighting_api.config import Settings, get_settings
from sighting_api.database.connection import get_db
from sighting_api.errors import Conflict, InvalidRefreshToken, NotFound, RefreshTokenExpired, Unauthenticated
from sighting_api.models import User, UserRead, UserType
from sighting_api.services import firebase

logger = logging.getLogger(__name__)

router = APIRouter()


class FirebaseRegisterRequest(BaseModel):
    idToken: str = Field(min_length=1)
    username: str = Field(min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9._-]+$")
    name: str = Field(min_length=1, max_length=100)
    userTypeName: Optional[str] = Field(None, max_length=50)
    image: Optional[str] = Field(None, max_length=500)


class FirebaseLoginRequest(BaseModel):
    idToken: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refreshToken: Optional[str] = None


def _verify_firebase_token(id_token: str) -> str:
    """Verify a Firebase ID token and return its uid."""
    try:
        decoded = firebase.verify_id_token(id_token)
    except firebase.FirebaseTokenError as e:
        logger.info(f"Firebase token rejected: {e}")
        raise Unauthenticated("Invalid Firebase token", code="FIREBASE_TOKEN_INVALID")

    if decoded.get("email_verified") is False:
        raise Unauthenticated("Email not verified in Firebase", code="EMAIL_NOT_VERIFIED")
    return decoded["uid"]


def _token_response(tokens: TokenPair, message: str, user: Optional[User] = None) -> dict:
    body = {
        "message": message,
        "accessToken": tokens.access_token,
        "refreshToken": tokens.refresh_token,
    }
    if user is not None:
        body["user"] = UserRead.model_validate(user).model_dump(mode="json")
    return body


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: FirebaseRegisterRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Create the local account for a Firebase identity.

    ``userTypeName`` is optional; an unknown name leaves the user without a type.
    """
    uid = _verify_firebase_token(body.idToken)

    if db.query(User).filter(User.firebase_uid == uid).first():
        raise Conflict("User already registered", code="ALREADY_REGISTERED")
    if db.query(User).filter(User.username == body.username).first():
        raise Conflict("Username already in use", code="USERNAME_EXISTS")

    user_type_id = None
    if body.userTypeName:
        user_type = db.query(UserType).filter(UserType.name == body.userTypeName).first()
        if user_type:
            user_type_id = user_type.id

    user = User(
        firebase_uid=uid,
        name=body.name,
        username=body.username,
        image=body.image,
        user_type_id=user_type_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} registered")

    return _token_response(issue_token_pair(user.id, Role.USER, settings), "User registered", user)


@router.post("/login")
async def login(
    body: FirebaseLoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Login with a Firebase ID token. Unknown identities must register first."""
    uid = _verify_firebase_token(body.idToken)

    user = db.query(User).filter(User.firebase_uid == uid).first()
    if not user:
        raise NotFound("User not registered, use /user-auth/register", code="NOT_REGISTERED")

    return _token_response(issue_token_pair(user.id, Role.USER, settings), "Login successful", user)


@router.post("/refresh-token")
async def refresh_token(
    body: RefreshRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Exchange a refresh token for a new access + refresh token pair."""
    if not body.refreshToken:
        raise Unauthenticated("Missing refresh token")

    try:
        claims = verify_token(body.refreshToken, Role.USER, TokenUse.REFRESH, settings)
    except TokenError as e:
        if e.expired:
            raise RefreshTokenExpired()
        raise InvalidRefreshToken()

    user = db.get(User, claims.subject_id)
    if not user:
        raise InvalidRefreshToken()

    return _token_response(issue_token_pair(user.id, Role.USER, settings), "Token refreshed")


@router.post("/logout")
async def logout():
    """Tokens are stateless; the app discards them from its storage."""
    return {"message": "Logged out"}
