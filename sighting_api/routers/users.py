"""
Users Router - Mobile app user profiles

Endpoints:
  GET    /api/users        - List users (admin, paginated)
  GET    /api/users/me     - My profile (user)
  GET    /api/users/{id}   - Get a user (owner or admin)
  PATCH  /api/users/{id}   - Update a user (owner or admin)
  DELETE /api/users/{id}   - Delete a user without posts (admin)
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from sighting_api.auth import AdminPrincipal, Principal, Role, UserPrincipal
from sighting_api.database.connection import get_db
from sighting_api.dependencies import (
    Pagination,
    get_current_principal,
    get_pagination,
    require_admin_principal,
    require_user_principal,
)
from sighting_api.errors import Conflict, Forbidden, NotFound, ValidationFailed
from sighting_api.models import Post, User, UserPage, UserRead, UserType, UserUpdate, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

# Only admins may change these
ADMIN_ONLY_FIELDS = ("user_type_id", "points")


def _get_user_for(db: Session, user_id: int, principal: Principal) -> User:
    if principal.kind == Role.USER and principal.id != user_id:
        raise Forbidden("Access denied")

    user = db.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")
    return user


@router.get("", response_model=UserPage)
async def list_users(
    paging: Pagination = Depends(get_pagination),
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """List all users ordered by ID"""
    total = db.query(func.count(User.id)).scalar() or 0
    users = db.query(User).order_by(User.id).offset(paging.offset).limit(paging.page_size).all()
    return UserPage(page=paging.page, page_size=paging.page_size, total=total, users=users)


@router.get("/me", response_model=UserRead)
async def get_me(principal: UserPrincipal = Depends(require_user_principal)):
    """Profile of the logged-in user"""
    return principal.user


@router.get("/{user_id}", response_model=UserRead)
async def get_user(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Get a user profile. Users can only read their own."""
    return _get_user_for(db, user_id, principal)


@router.patch("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: int,
    body: UserUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """
    Update a user profile.

    Owners can change name, username and image. Admins can additionally set
    user_type_id and points (negative points are stored as 0); those fields
    are ignored when a user sends them.
    """
    user = _get_user_for(db, user_id, principal)

    update_data = body.model_dump(exclude_unset=True)
    if principal.kind != Role.ADMIN:
        for field in ADMIN_ONLY_FIELDS:
            update_data.pop(field, None)
    if not update_data:
        raise ValidationFailed("Nothing to update")

    username = update_data.get("username")
    if username:
        taken = db.query(User).filter(User.username == username, User.id != user_id).first()
        if taken:
            raise Conflict("Username already in use", code="USERNAME_EXISTS")

    if update_data.get("user_type_id") is not None and not db.get(UserType, update_data["user_type_id"]):
        raise ValidationFailed(f"Invalid user_type_id: {update_data['user_type_id']}")

    if "points" in update_data:
        update_data["points"] = max(0, update_data["points"] or 0)

    for key, value in update_data.items():
        setattr(user, key, value)
    user.updated_at = utcnow()

    db.commit()
    db.refresh(user)
    logger.info(f"User {user_id} updated by {principal.kind.value} {principal.id}")
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """
    Delete a user who has no posts.

    Posts are kept forever (deleting one only marks it ELIMINADO), so users
    who ever posted cannot be removed.
    """
    user = db.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")

    post_count = db.query(func.count(Post.id)).filter(Post.user_id == user_id).scalar() or 0
    if post_count:
        raise Conflict(f"User {user_id} has {post_count} posts and cannot be deleted", code="USER_HAS_POSTS")

    db.delete(user)
    db.commit()
    logger.info(f"Admin {admin.id} deleted user {user_id}")
