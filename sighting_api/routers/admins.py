"""
Admins Router - Administrator accounts (admin only)

Endpoints:
  GET    /api/admins        - List admins (paginated)
  GET    /api/admins/me     - My admin profile
  GET    /api/admins/{id}   - Get an admin
  POST   /api/admins        - Create another admin
  PATCH  /api/admins/{id}   - Update my own profile
  DELETE /api/admins/{id}   - Delete my own account (never the last admin)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from sighting_api.auth import AdminPrincipal, clear_admin_cookies, hash_password
from sighting_api.database.connection import get_db
from sighting_api.dependencies import Pagination, get_pagination, require_admin_principal
from sighting_api.errors import Conflict, Forbidden, NotFound, ValidationFailed
from sighting_api.models import Admin, AdminPage, AdminRead, AdminUpdate, utcnow
from sighting_api.routers.auth import AdminRegisterRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_admin_duplicate(db: Session, field, value: str, exclude_id: Optional[int] = None) -> None:
    """Raise 409 if another admin already uses this email/username."""
    query = db.query(Admin).filter(field == value)
    if exclude_id is not None:
        query = query.filter(Admin.id != exclude_id)
    if query.first():
        raise Conflict(f"{field.key.capitalize()} '{value}' is already in use")


def _ensure_self(admin: AdminPrincipal, admin_id: int, action: str) -> None:
    if admin.id != admin_id:
        raise Forbidden(f"You can only {action} your own account")


@router.get("", response_model=AdminPage)
async def list_admins(
    paging: Pagination = Depends(get_pagination),
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """List all admins ordered by ID"""
    total = db.query(func.count(Admin.id)).scalar() or 0
    admins = db.query(Admin).order_by(Admin.id).offset(paging.offset).limit(paging.page_size).all()
    return AdminPage(page=paging.page, page_size=paging.page_size, total=total, admins=admins)


@router.get("/me", response_model=AdminRead)
async def get_my_profile(admin: AdminPrincipal = Depends(require_admin_principal)):
    """Profile of the logged-in admin"""
    return admin.admin


@router.get("/{admin_id}", response_model=AdminRead)
async def get_admin(
    admin_id: int,
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """Get a specific admin by ID"""
    found = db.get(Admin, admin_id)
    if not found:
        raise NotFound(f"Admin {admin_id} not found")
    return found


@router.post("", response_model=AdminRead, status_code=status.HTTP_201_CREATED)
async def create_admin(
    body: AdminRegisterRequest,
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """Create a new admin. Any admin may create others."""
    _check_admin_duplicate(db, Admin.email, body.email)
    _check_admin_duplicate(db, Admin.username, body.username)

    new_admin = Admin(
        email=body.email,
        username=body.username,
        password_hash=hash_password(body.password),
        name=body.name,
        image=body.image,
    )
    db.add(new_admin)
    db.commit()
    db.refresh(new_admin)

    logger.info(f"Admin {admin.id} created admin {new_admin.id}")
    return new_admin


@router.patch("/{admin_id}", response_model=AdminRead)
async def update_admin(
    admin_id: int,
    body: AdminUpdate,
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """
    Update my own profile.

    A new ``password`` is hashed before storing; email and username must stay
    unique.
    """
    _ensure_self(admin, admin_id, "update")

    update_data = body.model_dump(exclude_unset=True)
    if not update_data:
        raise ValidationFailed("Nothing to update")

    db_admin = db.get(Admin, admin_id)
    if "email" in update_data:
        if not update_data["email"]:
            raise ValidationFailed("Email cannot be empty")
        _check_admin_duplicate(db, Admin.email, update_data["email"], exclude_id=admin_id)
    if update_data.get("username"):
        _check_admin_duplicate(db, Admin.username, update_data["username"], exclude_id=admin_id)

    password = update_data.pop("password", None)
    if password:
        db_admin.password_hash = hash_password(password)

    for key, value in update_data.items():
        setattr(db_admin, key, value)
    db_admin.updated_at = utcnow()

    db.commit()
    db.refresh(db_admin)
    return db_admin


@router.delete("/{admin_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_admin(
    admin_id: int,
    response: Response,
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """Delete my own account and log out. The last remaining admin cannot be deleted."""
    _ensure_self(admin, admin_id, "delete")

    total = db.query(func.count(Admin.id)).scalar() or 0
    if total <= 1:
        raise ValidationFailed("Cannot delete the only admin", code="LAST_ADMIN")

    db.delete(db.get(Admin, admin_id))
    db.commit()
    logger.info(f"Admin {admin_id} deleted their account")

    clear_admin_cookies(response)
