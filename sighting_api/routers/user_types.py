"""
User Types Router - Profile categories users pick when registering

Endpoints:
  GET    /api/user-types        - List user types (public)
  GET    /api/user-types/{id}   - Get a user type (public)
  POST   /api/user-types        - Create user type (admin)
  PUT    /api/user-types/{id}   - Update user type (admin)
  DELETE /api/user-types/{id}   - Delete user type (admin)
"""

import re
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sighting_api.database.connection import get_db
from sighting_api.dependencies import require_admin_principal
from sighting_api.errors import Conflict, NotFound, ValidationFailed
from sighting_api.models import UserType, UserTypeCreate, UserTypeRead, UserTypeUpdate

router = APIRouter()

NAME_PATTERN = re.compile(r"^[a-z_]+$")


def _validate_name(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
    if not NAME_PATTERN.match(name):
        raise ValidationFailed("Name may only contain lowercase letters and underscores")

    query = db.query(UserType).filter(UserType.name == name)
    if exclude_id is not None:
        query = query.filter(UserType.id != exclude_id)
    if query.first():
        raise Conflict(f"A user type named '{name}' already exists")


def _get_user_type(db: Session, user_type_id: int) -> UserType:
    user_type = db.get(UserType, user_type_id)
    if not user_type:
        raise NotFound(f"User type {user_type_id} not found")
    return user_type


@router.get("", response_model=List[UserTypeRead])
async def get_user_types(db: Session = Depends(get_db)):
    """Get all user types ordered by public name"""
    return db.query(UserType).order_by(UserType.public_name).all()


@router.get("/{user_type_id}", response_model=UserTypeRead)
async def get_user_type(user_type_id: int, db: Session = Depends(get_db)):
    """Get a specific user type by ID"""
    return _get_user_type(db, user_type_id)


@router.post(
    "",
    response_model=UserTypeRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_principal)],
)
async def create_user_type(body: UserTypeCreate, db: Session = Depends(get_db)):
    """Create a new user type"""
    _validate_name(db, body.name)

    user_type = UserType(name=body.name, public_name=body.public_name)
    db.add(user_type)
    db.commit()
    db.refresh(user_type)
    return user_type


@router.put("/{user_type_id}", response_model=UserTypeRead, dependencies=[Depends(require_admin_principal)])
async def update_user_type(user_type_id: int, body: UserTypeUpdate, db: Session = Depends(get_db)):
    """Update a user type"""
    user_type = _get_user_type(db, user_type_id)

    update_data = body.model_dump(exclude_unset=True, exclude_none=True)
    if not update_data:
        raise ValidationFailed("Nothing to update")
    if "name" in update_data:
        _validate_name(db, update_data["name"], exclude_id=user_type_id)

    for key, value in update_data.items():
        setattr(user_type, key, value)

    db.commit()
    db.refresh(user_type)
    return user_type


@router.delete(
    "/{user_type_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin_principal)],
)
async def delete_user_type(user_type_id: int, db: Session = Depends(get_db)):
    """Delete a user type. Users of that type are left without one."""
    user_type = _get_user_type(db, user_type_id)
    db.delete(user_type)
    db.commit()
