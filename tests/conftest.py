import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from sighting_api.auth import (
    ADMIN_ACCESS_COOKIE,
    Role,
    TokenUse,
    create_token,
    hash_password,
)
from sighting_api.config import Settings, get_settings
from sighting_api.database.connection import get_db
from sighting_api.main import app
from sighting_api.models import Admin, Post, PostImage, PostStatus, PostStatusRecord, User, UserType
from sighting_api.services.status_catalog import DEFAULT_DESCRIPTIONS, StatusCatalog

TEST_SETTINGS = Settings(database_url="sqlite://", jwt_secret="test-secret")


@pytest.fixture
def settings():
    return TEST_SETTINGS


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)

    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    for status, description in DEFAULT_DESCRIPTIONS.items():
        session.add(PostStatusRecord(name=status.value, description=description))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def catalog():
    return StatusCatalog.default()


@pytest.fixture
def app_overrides(db, catalog):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: TEST_SETTINGS
    app.state.status_catalog = catalog
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_overrides):
    return TestClient(app)


@pytest.fixture
def admin(db):
    admin = Admin(
        email="moderadora@example.org",
        username="moderadora",
        name="Ana Moderadora",
        password_hash=hash_password("correct-horse"),
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture
def user_factory(db):
    def make_user(username="ballena", name="Lucía", firebase_uid=None):
        user = User(firebase_uid=firebase_uid or f"uid-{username}", username=username, name=name)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return make_user


@pytest.fixture
def user(user_factory):
    return user_factory()


@pytest.fixture
def other_user(user_factory):
    return user_factory(username="delfin", name="Mateo")


@pytest.fixture
def post_factory(db):
    def make_post(owner, status=PostStatus.BORRADOR, title="Orcas frente a la costa", images=()):
        post = Post(user_id=owner.id, title=title, description="Grupo de cinco orcas", status=status)
        db.add(post)
        db.commit()
        for order, (lat, lon) in enumerate(images):
            db.add(PostImage(post_id=post.id, image_path=f"posts/{post.id}/{order}.jpg",
                             image_order=order, latitude=lat, longitude=lon))
        db.commit()
        db.refresh(post)
        return post

    return make_post


@pytest.fixture
def user_type(db):
    user_type = UserType(name="navegante", public_name="Navegante")
    db.add(user_type)
    db.commit()
    db.refresh(user_type)
    return user_type


def access_token(principal_id, role, now=None):
    return create_token(principal_id, role, TokenUse.ACCESS, TEST_SETTINGS, now=now)


def refresh_token(principal_id, role, now=None):
    return create_token(principal_id, role, TokenUse.REFRESH, TEST_SETTINGS, now=now)


def expired(days=0, minutes=0):
    """An issue time far enough in the past that a token is already expired."""
    return datetime.now(timezone.utc) - timedelta(days=days, minutes=minutes)


def bearer(user):
    return {"Authorization": f"Bearer {access_token(user.id, Role.USER)}"}


@pytest.fixture
def make_client(app_overrides):
    """Test client carrying the given cookies on every request."""
    def make(**cookies):
        return TestClient(app, cookies=cookies)

    return make


@pytest.fixture
def admin_client(make_client, admin):
    return make_client(**{ADMIN_ACCESS_COOKIE: access_token(admin.id, Role.ADMIN)})


@pytest.fixture
def notifications_sent(monkeypatch):
    """Record sighting notifications instead of sending them through FCM."""
    sent = []
    monkeypatch.setattr("sighting_api.routers.posts.send_sighting_notification", sent.append)
    return sent
