"""
Species Router - API endpoints for the species guide

Endpoints:
  GET    /api/species              - List species (search, month, paginated)
  POST   /api/species              - Create new species (admin)
  GET    /api/species/{id}         - Get specific species
  PUT    /api/species/{id}         - Update species (admin)
  DELETE /api/species/{id}         - Delete species (admin)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from sighting_api.auth import AdminPrincipal, Principal
from sighting_api.database.connection import get_db
from sighting_api.dependencies import (
    Pagination,
    get_current_principal,
    get_pagination,
    require_admin_principal,
)
from sighting_api.errors import Conflict, NotFound, ValidationFailed
from sighting_api.models import Species, SpeciesCreate, SpeciesPage, SpeciesRead, SpeciesUpdate, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_species_duplicate(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
    """Raise 409 if a species with the same name (case-insensitive) exists."""
    query = db.query(Species).filter(func.lower(Species.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Species.id != exclude_id)
    if query.first():
        raise Conflict(f"A species named '{name}' already exists")


def _in_season(month: int):
    """
    Filter for species whose sighting season includes ``month``.

    Seasons may wrap the year end (e.g. November to March). A missing bound
    leaves that side of the season open.
    """
    start, end = Species.sighting_start_month, Species.sighting_end_month
    return or_(
        and_(start.is_(None), end.is_(None)),
        and_(start.is_(None), end >= month),
        and_(end.is_(None), start <= month),
        and_(start <= end, start <= month, end >= month),
        and_(start > end, or_(start <= month, end >= month)),
    )


def _get_species(db: Session, species_id: int) -> Species:
    species = db.get(Species, species_id)
    if not species:
        raise NotFound(f"Species {species_id} not found")
    return species


@router.get("", response_model=SpeciesPage)
async def get_species(
    search: Optional[str] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    paging: Pagination = Depends(get_pagination),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """
    Get species ordered by name.

    Args:
        search: Case-insensitive substring of the name. Optional.
        month: Only species usually seen in this month (1-12). Optional.
    """
    query = db.query(Species)

    if search and search.strip():
        query = query.filter(Species.name.ilike(f"%{search.strip()}%"))
    if month is not None:
        query = query.filter(_in_season(month))

    total = query.with_entities(func.count(Species.id)).scalar() or 0
    species = query.order_by(Species.name).offset(paging.offset).limit(paging.page_size).all()

    return SpeciesPage(
        page=paging.page,
        page_size=paging.page_size,
        total=total,
        total_pages=paging.total_pages(total),
        species=species,
    )


@router.get("/{species_id}", response_model=SpeciesRead)
async def get_species_by_id(
    species_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Get a specific species by ID"""
    return _get_species(db, species_id)


@router.post("", response_model=SpeciesRead, status_code=status.HTTP_201_CREATED)
async def create_species(
    species: SpeciesCreate,
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """Create a new species"""
    _check_species_duplicate(db, species.name)

    db_species = Species(**species.model_dump())
    db.add(db_species)
    db.commit()
    db.refresh(db_species)

    logger.info(f"Admin {admin.id} created species {db_species.id} ({db_species.name})")
    return db_species


@router.put("/{species_id}", response_model=SpeciesRead)
async def update_species(
    species_id: int,
    species: SpeciesUpdate,
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """Update an existing species"""
    db_species = _get_species(db, species_id)

    update_data = species.model_dump(exclude_unset=True)
    if not update_data:
        raise ValidationFailed("Nothing to update")

    for field in ("name", "description", "how_to_recognise"):
        if field in update_data and update_data[field] is None:
            raise ValidationFailed(f"{field} cannot be empty")
    if "name" in update_data and update_data["name"] != db_species.name:
        _check_species_duplicate(db, update_data["name"], exclude_id=species_id)

    for key, value in update_data.items():
        setattr(db_species, key, value)
    db_species.updated_at = utcnow()

    db.commit()
    db.refresh(db_species)
    return db_species


@router.delete("/{species_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_species(
    species_id: int,
    admin: AdminPrincipal = Depends(require_admin_principal),
    db: Session = Depends(get_db),
):
    """Delete a species"""
    db_species = _get_species(db, species_id)
    db.delete(db_species)
    db.commit()
    logger.info(f"Admin {admin.id} deleted species {species_id}")
