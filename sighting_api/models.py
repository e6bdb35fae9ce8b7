"""
SQLModel Database Models

Unified models using SQLModel (SQLAlchemy + Pydantic) for both:
- Database ORM operations
- FastAPI request/response validation
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from sqlmodel import Field, SQLModel, Relationship
import sqlalchemy as sa


def utcnow() -> datetime:
    """Current time as an aware UTC datetime, the only kind stored in the database."""
    return datetime.now(timezone.utc)


class PostStatus(str, Enum):
    """Post lifecycle status. ELIMINADO is terminal."""
    BORRADOR = "BORRADOR"
    REVISION = "REVISION"
    ACTIVO = "ACTIVO"
    RECHAZADO = "RECHAZADO"
    ELIMINADO = "ELIMINADO"


# ============================================================================
# Admin Models
# ============================================================================

class AdminBase(SQLModel):
    """Base admin fields - shared between Create and Read"""
    email: str = Field(max_length=255, description="Admin email address")
    username: Optional[str] = Field(None, max_length=30, description="Login username")
    name: Optional[str] = Field(None, max_length=100, description="Display name")
    image: Optional[str] = Field(None, max_length=500, description="Avatar URL")


class Admin(AdminBase, table=True):
    """Admin database model"""
    __tablename__ = "admins"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True)
    username: Optional[str] = Field(None, max_length=30, unique=True, index=True)
    password_hash: str = Field(max_length=255)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")}
    )
    updated_at: Optional[datetime] = Field(None, sa_type=sa.DateTime(timezone=True))


class AdminRead(AdminBase):
    """Model for reading an admin (never includes the password hash)"""
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class AdminUpdate(SQLModel):
    """Model for updating an admin profile (all fields optional)"""
    email: Optional[str] = Field(None, max_length=255)
    username: Optional[str] = Field(None, min_length=3, max_length=30)
    password: Optional[str] = Field(None, min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=100)
    image: Optional[str] = Field(None, max_length=500)


class AdminPage(SQLModel):
    """Paginated list of admins"""
    page: int
    page_size: int
    total: int
    admins: List[AdminRead] = Field(default_factory=list)


# ============================================================================
# User Type Models
# ============================================================================

class UserTypeBase(SQLModel):
    """Base user type fields"""
    name: str = Field(min_length=2, max_length=50, description="Internal name (lowercase, underscores)")
    public_name: str = Field(min_length=2, max_length=100, description="Name shown in the app")


class UserType(UserTypeBase, table=True):
    """User type database model"""
    __tablename__ = "user_types"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=50, unique=True, index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")}
    )
    updated_at: Optional[datetime] = Field(None, sa_type=sa.DateTime(timezone=True))


class UserTypeCreate(UserTypeBase):
    """Model for creating a user type"""
    pass


class UserTypeUpdate(SQLModel):
    """Model for updating a user type (all fields optional)"""
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    public_name: Optional[str] = Field(None, min_length=2, max_length=100)


class UserTypeRead(UserTypeBase):
    """Model for reading a user type (includes ID)"""
    id: int


# ============================================================================
# User Models
# ============================================================================

class User(SQLModel, table=True):
    """Mobile app user, identified by their Firebase UID"""
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    firebase_uid: str = Field(max_length=128, unique=True, index=True)
    name: Optional[str] = Field(None, max_length=100)
    username: Optional[str] = Field(None, max_length=30, unique=True, index=True)
    image: Optional[str] = Field(None, max_length=500)
    user_type_id: Optional[int] = Field(None, foreign_key="user_types.id", ondelete="SET NULL")
    points: int = Field(default=0, ge=0)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")}
    )
    updated_at: Optional[datetime] = Field(None, sa_type=sa.DateTime(timezone=True))

    # Relationships
    # posts are never physically deleted, so neither is a user who has any
    posts: List["Post"] = Relationship(back_populates="owner")


class UserRead(SQLModel):
    """Model for reading a user"""
    id: int
    firebase_uid: str
    name: Optional[str] = None
    username: Optional[str] = None
    image: Optional[str] = None
    user_type_id: Optional[int] = None
    points: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None


class UserUpdate(SQLModel):
    """
    Model for updating a user profile (all fields optional).

    user_type_id and points are only honoured when an admin makes the change.
    """
    name: Optional[str] = Field(None, max_length=100)
    username: Optional[str] = Field(None, min_length=3, max_length=30)
    image: Optional[str] = Field(None, max_length=500)
    user_type_id: Optional[int] = None
    points: Optional[int] = None


class UserPage(SQLModel):
    """Paginated list of users"""
    page: int
    page_size: int
    total: int
    users: List[UserRead] = Field(default_factory=list)


# ============================================================================
# Species Models
# ============================================================================

class SpeciesBase(SQLModel):
    """Base species fields"""
    name: str = Field(min_length=2, max_length=255, description="Species name")
    description: str = Field(min_length=1, description="General description")
    how_to_recognise: str = Field(min_length=1, description="Identification hints")
    curious_info: Optional[str] = Field(None, description="Curious facts")
    sighting_start_month: Optional[int] = Field(None, ge=1, le=12, description="First month of the sighting season")
    sighting_end_month: Optional[int] = Field(None, ge=1, le=12, description="Last month of the sighting season")
    high_season_specimens: Optional[int] = Field(None, ge=0, description="Typical specimens seen in high season")


class Species(SpeciesBase, table=True):
    """Species database model"""
    __tablename__ = "species"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255, unique=True, index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")}
    )
    updated_at: Optional[datetime] = Field(None, sa_type=sa.DateTime(timezone=True))


class SpeciesCreate(SpeciesBase):
    """Model for creating a new species"""
    pass


class SpeciesUpdate(SQLModel):
    """Model for updating a species (all fields optional)"""
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    how_to_recognise: Optional[str] = Field(None, min_length=1)
    curious_info: Optional[str] = None
    sighting_start_month: Optional[int] = Field(None, ge=1, le=12)
    sighting_end_month: Optional[int] = Field(None, ge=1, le=12)
    high_season_specimens: Optional[int] = Field(None, ge=0)


class SpeciesRead(SpeciesBase):
    """Model for reading a species (includes ID)"""
    id: int


class SpeciesPage(SQLModel):
    """Paginated list of species"""
    page: int
    page_size: int
    total: int
    total_pages: int
    species: List[SpeciesRead] = Field(default_factory=list)


# ============================================================================
# Post Models
# ============================================================================

class PostStatusRecord(SQLModel, table=True):
    """Lookup table of the statuses a post can be in"""
    __tablename__ = "post_status"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=20, unique=True)
    description: str = Field(default="", max_length=255)


class Post(SQLModel, table=True):
    """Sighting post database model"""
    __tablename__ = "posts"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, ondelete="RESTRICT")
    title: str = Field(max_length=200)
    description: str
    status: PostStatus = Field(
        default=PostStatus.BORRADOR,
        sa_column=sa.Column(
            sa.Enum(PostStatus, native_enum=False, length=20),
            sa.ForeignKey("post_status.name"),
            nullable=False,
            index=True,
        ),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")}
    )
    updated_at: Optional[datetime] = Field(None, sa_type=sa.DateTime(timezone=True))

    # Relationships
    owner: "User" = Relationship(back_populates="posts")
    images: List["PostImage"] = Relationship(
        back_populates="post",
        sa_relationship_kwargs={"order_by": "PostImage.image_order", "cascade": "all, delete-orphan"},
    )


class PostCreate(SQLModel):
    """Model for creating a new post"""
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    status: str = Field(
        default=PostStatus.BORRADOR.value,
        max_length=20,
        description="Initial status: BORRADOR, or REVISION to submit straight away (any case)",
    )


class PostUpdate(SQLModel):
    """Model for editing post content (all fields optional)"""
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=5000)


class PostStatusChange(SQLModel):
    """Body of a status transition request"""
    status: str = Field(min_length=1, max_length=20)


class PostImage(SQLModel, table=True):
    """Photo attached to a post, optionally geotagged"""
    __tablename__ = "post_images"

    id: Optional[int] = Field(default=None, primary_key=True)
    post_id: int = Field(foreign_key="posts.id", index=True, ondelete="CASCADE")
    image_path: str = Field(max_length=500)
    image_order: int = Field(default=0, ge=0)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")}
    )

    # Relationships
    post: "Post" = Relationship(back_populates="images")


class PostImageRead(SQLModel):
    """Model for reading a post image"""
    id: int
    image_path: str
    image_order: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class PostRead(SQLModel):
    """Post with owner details and ordered images"""
    id: int
    user_id: int
    title: str
    description: str
    status: PostStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    user_name: Optional[str] = None
    user_username: Optional[str] = None
    user_image: Optional[str] = None
    images: List[PostImageRead] = Field(default_factory=list)


class PostPage(SQLModel):
    """Paginated list of posts"""
    page: int
    page_size: int
    total: int
    total_pages: int
    posts: List[PostRead] = Field(default_factory=list)
