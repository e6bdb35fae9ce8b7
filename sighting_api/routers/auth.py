"""
Auth Router - Admin authentication endpoints

Endpoints:
  POST /auth/register       - Create an admin and set session cookies
  POST /auth/login          - Verify email/username + password and set session cookies
  POST /auth/refresh-token  - Rotate the cookie tokens using the refresh cookie
  POST /auth/logout         - Clear session cookies
  GET  /auth/status         - Check if currently authenticated as admin
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from sighting_api.auth import (
    ADMIN_ACCESS_COOKIE,
    ADMIN_REFRESH_COOKIE,
    Role,
    TokenError,
    TokenUse,
    clear_admin_cookies,
    hash_password,
    issue_token_pair,
    set_admin_cookies,
    verify_password,
    verify_token,
)
from sighting_api.config import Settings, get_settings
from sighting_api.database.connection import get_db
from sighting_api.dependencies import resolve_admin
from sighting_api.errors import (
    Conflict,
    InvalidRefreshToken,
    RefreshTokenExpired,
    Unauthenticated,
    ValidationFailed,
)
from sighting_api.models import Admin, AdminRead

logger = logging.getLogger(__name__)

router = APIRouter()


class AdminRegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    username: str = Field(min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9._-]+$")
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=100)
    image: Optional[str] = Field(None, max_length=500)


class LoginRequest(BaseModel):
    email: Optional[str] = None
    username: Optional[str] = None
    password: str


def find_admin_by_identifier(db: Session, identifier: str) -> Optional[Admin]:
    """Look up an admin by email or username."""
    return db.query(Admin).filter(
        or_(Admin.email == identifier, Admin.username == identifier)
    ).first()


def _admin_payload(admin: Admin) -> dict:
    return AdminRead.model_validate(admin).model_dump(mode="json")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: AdminRegisterRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Register a new admin and log them in."""
    if find_admin_by_identifier(db, body.email) or find_admin_by_identifier(db, body.username):
        raise Conflict("Email or username already exists")

    admin = Admin(
        email=body.email,
        username=body.username,
        password_hash=hash_password(body.password),
        name=body.name,
        image=body.image,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info(f"Admin {admin.id} registered")

    set_admin_cookies(response, issue_token_pair(admin.id, Role.ADMIN, settings), settings)
    return {"message": "Admin created", "admin": _admin_payload(admin)}


@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Login with email or username and password.

    Unknown identifiers and wrong passwords get the same answer.
    """
    identifier = body.email or body.username
    if not identifier:
        raise ValidationFailed("Email or username is required")

    admin = find_admin_by_identifier(db, identifier)
    if not admin or not verify_password(body.password, admin.password_hash):
        logger.info(f"Failed admin login for {identifier}")
        raise ValidationFailed("Invalid credentials", code="INVALID_CREDENTIALS")

    set_admin_cookies(response, issue_token_pair(admin.id, Role.ADMIN, settings), settings)
    return {"message": "Login successful", "admin": _admin_payload(admin)}


@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Exchange the refresh cookie for a new access + refresh cookie pair."""
    token = request.cookies.get(ADMIN_REFRESH_COOKIE)
    if not token:
        raise Unauthenticated("Missing refresh token")

    try:
        claims = verify_token(token, Role.ADMIN, TokenUse.REFRESH, settings)
    except TokenError as e:
        if e.expired:
            raise RefreshTokenExpired()
        raise InvalidRefreshToken()

    admin = db.get(Admin, claims.subject_id)
    if not admin:
        raise InvalidRefreshToken()

    set_admin_cookies(response, issue_token_pair(admin.id, Role.ADMIN, settings), settings)
    return {"message": "Token refreshed"}


@router.post("/logout")
async def logout(response: Response):
    """Clear session cookies."""
    clear_admin_cookies(response)
    return {"message": "Logged out"}


@router.get("/status")
async def auth_status(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Check whether the admin cookie is present and valid."""
    token = request.cookies.get(ADMIN_ACCESS_COOKIE)
    if not token:
        return {"authenticated": False}

    try:
        principal = resolve_admin(db, token, settings)
    except Unauthenticated as e:
        return {"authenticated": False, "code": e.code}

    return {"authenticated": True, "admin": _admin_payload(principal.admin)}
