"""
FastAPI Dependencies for request authentication

Resolves the credentials on a request into exactly one Principal:
- admin access token from the adminToken cookie (tried first)
- user access token from the Authorization bearer header / userToken cookie

Route families pick the dependency matching their audience:
- get_current_principal: admins or users (dual fallback)
- require_admin_principal: admin cookie only
- require_user_principal: user bearer token only
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from sighting_api.auth import (
    ADMIN_ACCESS_COOKIE,
    AdminPrincipal,
    Principal,
    Role,
    TokenError,
    TokenUse,
    UserPrincipal,
    get_bearer_token,
    verify_token,
)
from sighting_api.config import Settings, get_settings
from sighting_api.database.connection import get_db
from sighting_api.errors import Unauthenticated
from sighting_api.models import Admin, User
from sighting_api.services.status_catalog import StatusCatalog

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _token_failure(error: TokenError) -> Unauthenticated:
    if error.expired:
        return Unauthenticated("Access token expired", code="TOKEN_EXPIRED")
    return Unauthenticated("Invalid token", code="TOKEN_INVALID")


def resolve_admin(db: Session, token: str, settings: Settings) -> AdminPrincipal:
    """Verify an admin access token and load the admin it names."""
    try:
        claims = verify_token(token, Role.ADMIN, TokenUse.ACCESS, settings)
    except TokenError as e:
        logger.debug(f"Admin token rejected: {e.reason}")
        raise _token_failure(e)

    admin = db.get(Admin, claims.subject_id)
    if not admin:
        raise Unauthenticated("Admin not found", code="PRINCIPAL_NOT_FOUND")
    return AdminPrincipal(admin)


def resolve_user(db: Session, token: str, settings: Settings) -> UserPrincipal:
    """Verify a user access token and load the user it names."""
    try:
        claims = verify_token(token, Role.USER, TokenUse.ACCESS, settings)
    except TokenError as e:
        logger.debug(f"User token rejected: {e.reason}")
        raise _token_failure(e)

    user = db.get(User, claims.subject_id)
    if not user:
        raise Unauthenticated("User not found", code="PRINCIPAL_NOT_FOUND")
    return UserPrincipal(user)


def resolve_principal(request: Request, db: Session, settings: Settings) -> Principal:
    """
    Classify the request as admin, user or unauthenticated.

    The admin cookie wins when valid; an invalid admin cookie falls through to
    the user token. When both fail, the last failure is reported so an expired
    token still surfaces as TOKEN_EXPIRED.
    """
    failure: Optional[Unauthenticated] = None

    admin_token = request.cookies.get(ADMIN_ACCESS_COOKIE)
    if admin_token:
        try:
            return resolve_admin(db, admin_token, settings)
        except Unauthenticated as e:
            failure = e

    user_token = get_bearer_token(request)
    if user_token:
        try:
            return resolve_user(db, user_token, settings)
        except Unauthenticated as e:
            failure = e

    raise failure or Unauthenticated("Authentication required")


async def get_current_principal(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """FastAPI dependency - admins or users, raises 401 otherwise."""
    return resolve_principal(request, db, settings)


async def require_admin_principal(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AdminPrincipal:
    """FastAPI dependency - raises 401 unless a valid admin cookie is present."""
    token = request.cookies.get(ADMIN_ACCESS_COOKIE)
    if not token:
        raise Unauthenticated("Admin authentication required")
    return resolve_admin(db, token, settings)


async def require_user_principal(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UserPrincipal:
    """FastAPI dependency - raises 401 unless a valid user token is present."""
    token = get_bearer_token(request)
    if not token:
        raise Unauthenticated("User authentication required")
    return resolve_user(db, token, settings)


def get_status_catalog(request: Request) -> StatusCatalog:
    """The status catalog loaded at startup."""
    return request.app.state.status_catalog


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.page_size)


def get_pagination(page: int = 1, page_size: int = 20) -> Pagination:
    """Query-string paging, clamped to page >= 1 and 1 <= page_size <= 100."""
    return Pagination(page=max(1, page), page_size=min(MAX_PAGE_SIZE, max(1, page_size)))
