"""
Authentication primitives for admins and app users.

Two credential families share one signing key:
- admins log in with email/username + password and carry their tokens in
  HttpOnly cookies (adminToken / adminRefreshToken)
- app users exchange a Firebase ID token for our own tokens, returned in the
  response body and sent back as "Authorization: Bearer <token>"

Tokens are HS256 JWTs whose "type" claim says which family they belong to and
whose "use" claim separates access tokens (short lived) from refresh tokens.
A user token is therefore never accepted where an admin token is expected,
even though both are signed with the same secret.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

import bcrypt
import jwt
from fastapi import Request, Response

from sighting_api.config import Settings
from sighting_api.models import Admin, User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

ADMIN_ACCESS_COOKIE = "adminToken"
ADMIN_REFRESH_COOKIE = "adminRefreshToken"
USER_ACCESS_COOKIE = "userToken"

BCRYPT_ROUNDS = 10


class Role(str, Enum):
    """Role class of a principal, also the "type" claim of its tokens"""
    ADMIN = "admin"
    USER = "user"


class TokenUse(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenError(Exception):
    """A token failed verification. ``expired`` is set when only the expiry check failed."""

    def __init__(self, reason: str, expired: bool = False):
        super().__init__(reason)
        self.reason = reason
        self.expired = expired


@dataclass(frozen=True)
class TokenClaims:
    subject_id: int
    role: Role
    use: TokenUse
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


# ============================================================================
# Principals
# ============================================================================

@dataclass(frozen=True)
class AdminPrincipal:
    admin: Admin

    @property
    def kind(self) -> Role:
        return Role.ADMIN

    @property
    def id(self) -> int:
        return self.admin.id

    @property
    def display_name(self) -> str:
        return self.admin.name or self.admin.username or self.admin.email


@dataclass(frozen=True)
class UserPrincipal:
    user: User

    @property
    def kind(self) -> Role:
        return Role.USER

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def display_name(self) -> str:
        return self.user.name or self.user.username or "Usuario"


Principal = Union[AdminPrincipal, UserPrincipal]


# ============================================================================
# Passwords
# ============================================================================

def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against a stored bcrypt hash.

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ============================================================================
# Tokens
# ============================================================================

def create_token(
    subject_id: int,
    role: Role,
    use: TokenUse,
    settings: Settings,
    now: Optional[datetime] = None,
) -> str:
    """
    Create a signed token for an admin or user.

    Access tokens expire after ``access_token_minutes``, refresh tokens after
    ``refresh_token_days``.
    """
    issued_at = now or datetime.now(timezone.utc)
    if use == TokenUse.ACCESS:
        expires_at = issued_at + timedelta(minutes=settings.access_token_minutes)
    else:
        expires_at = issued_at + timedelta(days=settings.refresh_token_days)

    payload = {
        "sub": str(subject_id),
        "type": role.value,
        "use": use.value,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def issue_token_pair(subject_id: int, role: Role, settings: Settings) -> TokenPair:
    """Issue a fresh access + refresh token pair."""
    return TokenPair(
        access_token=create_token(subject_id, role, TokenUse.ACCESS, settings),
        refresh_token=create_token(subject_id, role, TokenUse.REFRESH, settings),
    )


def verify_token(token: str, role: Role, use: TokenUse, settings: Settings) -> TokenClaims:
    """
    Verify signature, expiry and the type/use discriminators of a token.

    Raises:
        TokenError: if the token is unusable for the expected role and use
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token expired", expired=True)
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != role.value:
        raise TokenError(f"Token type mismatch: expected {role.value}")
    if payload.get("use") != use.value:
        raise TokenError(f"Token use mismatch: expected {use.value}")

    try:
        subject_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise TokenError("Invalid token subject")

    return TokenClaims(
        subject_id=subject_id,
        role=role,
        use=use,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


# ============================================================================
# Request / response helpers
# ============================================================================

def get_bearer_token(request: Request) -> Optional[str]:
    """
    Extract the user token from a request, checking the Authorization header
    first, then the userToken cookie.
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None

    return request.cookies.get(USER_ACCESS_COOKIE)


def set_admin_cookies(response: Response, tokens: TokenPair, settings: Settings) -> None:
    """Set the admin access and refresh cookies."""
    common = {
        "httponly": True,
        "samesite": "none" if settings.is_production else "lax",
        "secure": settings.is_production,
        "path": "/",
    }
    response.set_cookie(
        key=ADMIN_ACCESS_COOKIE,
        value=tokens.access_token,
        max_age=settings.access_token_minutes * 60,
        **common,
    )
    response.set_cookie(
        key=ADMIN_REFRESH_COOKIE,
        value=tokens.refresh_token,
        max_age=settings.refresh_token_days * 24 * 60 * 60,
        **common,
    )


def clear_admin_cookies(response: Response) -> None:
    response.delete_cookie(key=ADMIN_ACCESS_COOKIE, path="/")
    response.delete_cookie(key=ADMIN_REFRESH_COOKIE, path="/")
