import pytest

from conftest import TEST_SETTINGS, expired, refresh_token
from sighting_api.auth import Role, TokenUse, verify_token
from sighting_api.models import User
from sighting_api.services import firebase


@pytest.fixture
def firebase_tokens(monkeypatch):
    """Map fake Firebase ID tokens to decoded claims."""
    tokens = {
        "good-token": {"uid": "firebase-uid-1", "email_verified": True},
        "unverified-token": {"uid": "firebase-uid-2", "email_verified": False},
    }

    def fake_verify(id_token):
        if id_token not in tokens:
            raise firebase.FirebaseTokenError("Could not verify token")
        return tokens[id_token]

    monkeypatch.setattr(firebase, "verify_id_token", fake_verify)
    return tokens


def _register(client, **overrides):
    body = {"idToken": "good-token", "username": "orca_fan", "name": "Sofía"}
    body.update(overrides)
    return client.post("/user-auth/register", json=body)


def test_register_returns_tokens(client, db, firebase_tokens, user_type):
    response = _register(client, userTypeName="navegante")

    assert response.status_code == 201
    data = response.json()
    claims = verify_token(data["accessToken"], Role.USER, TokenUse.ACCESS, TEST_SETTINGS)
    user = db.get(User, claims.subject_id)
    assert user.firebase_uid == "firebase-uid-1"
    assert user.user_type_id == user_type.id
    assert data["user"]["username"] == "orca_fan"


def test_register_with_unknown_user_type(client, firebase_tokens):
    response = _register(client, userTypeName="astronauta")

    assert response.status_code == 201
    assert response.json()["user"]["user_type_id"] is None


def test_register_twice(client, firebase_tokens):
    _register(client)

    response = _register(client, username="otro_nombre")

    assert response.status_code == 409
    assert response.json()["code"] == "ALREADY_REGISTERED"


def test_register_taken_username(client, firebase_tokens, user):
    response = _register(client, username=user.username)

    assert response.status_code == 409
    assert response.json()["code"] == "USERNAME_EXISTS"


def test_register_with_invalid_username(client, firebase_tokens):
    response = _register(client, username="no spaces!")

    assert response.status_code == 400


def test_register_unverified_email(client, firebase_tokens):
    response = _register(client, idToken="unverified-token")

    assert response.status_code == 401


def test_register_with_bad_firebase_token(client, firebase_tokens):
    response = _register(client, idToken="forged")

    assert response.status_code == 401


def test_login(client, firebase_tokens, user_factory):
    user = user_factory(username="sofia", firebase_uid="firebase-uid-1")

    response = client.post("/user-auth/login", json={"idToken": "good-token"})

    assert response.status_code == 200
    assert response.json()["user"]["id"] == user.id
    assert response.json()["accessToken"]


def test_login_not_registered(client, firebase_tokens):
    response = client.post("/user-auth/login", json={"idToken": "good-token"})

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_REGISTERED"


def test_refresh_rotates_tokens(client, user):
    old = refresh_token(user.id, Role.USER)

    response = client.post("/user-auth/refresh-token", json={"refreshToken": old})

    assert response.status_code == 200
    data = response.json()
    assert data["refreshToken"] != old
    verify_token(data["accessToken"], Role.USER, TokenUse.ACCESS, TEST_SETTINGS)


def test_expired_refresh_token(client, user):
    old = refresh_token(user.id, Role.USER, now=expired(days=8))

    response = client.post("/user-auth/refresh-token", json={"refreshToken": old})

    assert response.status_code == 403
    data = response.json()
    assert data["code"] == "REFRESH_TOKEN_EXPIRED"
    assert "accessToken" not in data
    assert "refreshToken" not in data


def test_admin_refresh_token_is_not_accepted(client, admin):
    response = client.post("/user-auth/refresh-token", json={"refreshToken": refresh_token(admin.id, Role.ADMIN)})

    assert response.status_code == 403
    assert response.json()["code"] == "INVALID_REFRESH_TOKEN"


def test_refresh_for_deleted_user(client):
    response = client.post("/user-auth/refresh-token", json={"refreshToken": refresh_token(999, Role.USER)})

    assert response.status_code == 403


def test_refresh_without_token(client):
    response = client.post("/user-auth/refresh-token", json={})

    assert response.status_code == 401


def test_logout(client):
    assert client.post("/user-auth/logout").status_code == 200
