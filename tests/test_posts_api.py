import pytest
from boto3.exceptions import S3UploadFailedError

from conftest import access_token, bearer, expired
from sighting_api.auth import Role
from sighting_api.models import Post, PostImage, PostStatus


# ============================================================================
# Creation and reads
# ============================================================================

def test_create_post_as_draft(client, user):
    response = client.post(
        "/api/posts",
        json={"title": "Ballenas en el golfo", "description": "Madre y cría"},
        headers=bearer(user),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "BORRADOR"
    assert data["user_id"] == user.id
    assert data["user_username"] == "ballena"
    assert data["images"] == []


def test_create_post_status_is_case_insensitive(client, user):
    response = client.post(
        "/api/posts",
        json={"title": "Ballenas en el golfo", "description": "Madre y cría", "status": "revision"},
        headers=bearer(user),
    )

    assert response.status_code == 201
    assert response.json()["status"] == "REVISION"


def test_create_post_with_published_status_is_400(client, user):
    response = client.post(
        "/api/posts",
        json={"title": "Ballenas en el golfo", "description": "Madre y cría", "status": "activo"},
        headers=bearer(user),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATUS"


def test_timestamps_are_stored_and_read_back(client, db, user):
    created = client.post(
        "/api/posts",
        json={"title": "Ballenas en el golfo", "description": "Madre y cría"},
        headers=bearer(user),
    ).json()
    post_id = created["id"]

    changed = client.patch(f"/api/posts/{post_id}/status", json={"status": "REVISION"}, headers=bearer(user))

    assert changed.status_code == 200
    db.expire_all()
    stored = db.get(Post, post_id)
    assert stored.created_at is not None
    assert stored.updated_at is not None
    # SQLite drops the offset; both values are UTC
    assert stored.updated_at.replace(tzinfo=None) >= stored.created_at.replace(tzinfo=None)
    assert changed.json()["updated_at"] is not None


def test_create_post_requires_authentication(client):
    response = client.post("/api/posts", json={"title": "Sin token", "description": "x"})

    assert response.status_code == 401
    assert response.json() == {"message": "Authentication required", "code": "TOKEN_MISSING"}


def test_create_post_with_short_title_is_400(client, user):
    response = client.post("/api/posts", json={"title": "ab", "description": "x"}, headers=bearer(user))

    assert response.status_code == 400
    assert "message" in response.json()


def test_admin_cannot_create_post(admin_client):
    response = admin_client.post("/api/posts", json={"title": "Desde el panel", "description": "x"})

    assert response.status_code == 403


def test_feed_shows_users_only_published_posts(client, user, other_user, post_factory):
    published = post_factory(other_user, status=PostStatus.ACTIVO)
    post_factory(other_user, status=PostStatus.REVISION)
    post_factory(user, status=PostStatus.BORRADOR)

    response = client.get("/api/posts", headers=bearer(user))

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert [p["id"] for p in data["posts"]] == [published.id]


def test_admin_feed_filters_by_status(admin_client, user, post_factory):
    post_factory(user, status=PostStatus.ACTIVO)
    pending = post_factory(user, status=PostStatus.REVISION)
    post_factory(user, status=PostStatus.ELIMINADO)

    everything = admin_client.get("/api/posts").json()
    queue = admin_client.get("/api/posts", params={"status": "revision"}).json()

    assert everything["total"] == 2
    assert [p["id"] for p in queue["posts"]] == [pending.id]


def test_admin_feed_rejects_unknown_status(admin_client):
    response = admin_client.get("/api/posts", params={"status": "PUBLICADO"})

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATUS"


def test_feed_pagination_is_clamped(client, user, post_factory):
    for i in range(3):
        post_factory(user, status=PostStatus.ACTIVO, title=f"Avistaje {i}")

    data = client.get("/api/posts", params={"page": 0, "page_size": 500}, headers=bearer(user)).json()

    assert data["page"] == 1
    assert data["page_size"] == 100
    assert data["total"] == 3
    assert data["total_pages"] == 1

    second = client.get("/api/posts", params={"page": 2, "page_size": 2}, headers=bearer(user)).json()
    assert len(second["posts"]) == 1
    assert second["total_pages"] == 2


def test_my_posts_excludes_deleted(client, user, post_factory):
    draft = post_factory(user)
    post_factory(user, status=PostStatus.ELIMINADO)

    data = client.get("/api/posts/me", headers=bearer(user)).json()

    assert [p["id"] for p in data["posts"]] == [draft.id]


def test_other_users_posts_only_show_published(client, user, other_user, post_factory):
    published = post_factory(other_user, status=PostStatus.ACTIVO)
    post_factory(other_user)

    data = client.get(f"/api/posts/user/{other_user.id}", headers=bearer(user)).json()

    assert [p["id"] for p in data["posts"]] == [published.id]


def test_get_post_hides_other_users_drafts(client, user, other_user, post_factory):
    draft = post_factory(other_user)

    response = client.get(f"/api/posts/{draft.id}", headers=bearer(user))

    assert response.status_code == 404


def test_get_post_includes_ordered_images(client, user, post_factory):
    post = post_factory(user, images=[(-42.1, -64.1), (None, None)])

    data = client.get(f"/api/posts/{post.id}", headers=bearer(user)).json()

    assert [img["image_order"] for img in data["images"]] == [0, 1]
    assert data["images"][0]["latitude"] == -42.1
    assert data["images"][1]["latitude"] is None


def test_list_statuses(client, user):
    data = client.get("/api/posts/statuses", headers=bearer(user)).json()

    assert [s["name"] for s in data] == ["BORRADOR", "REVISION", "ACTIVO", "RECHAZADO", "ELIMINADO"]


# ============================================================================
# Status changes
# ============================================================================

def test_owner_submits_for_review(client, user, post_factory):
    post = post_factory(user)

    response = client.patch(f"/api/posts/{post.id}/status", json={"status": "REVISION"}, headers=bearer(user))

    assert response.status_code == 200
    assert response.json()["status"] == "REVISION"


def test_invalid_transition_is_400(client, user, post_factory):
    post = post_factory(user, status=PostStatus.REVISION)

    response = client.patch(f"/api/posts/{post.id}/status", json={"status": "ACTIVO"}, headers=bearer(user))

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_TRANSITION"


def test_non_owner_status_change_is_403(client, other_user, user, post_factory):
    post = post_factory(user)

    response = client.patch(f"/api/posts/{post.id}/status", json={"status": "ELIMINADO"}, headers=bearer(other_user))

    assert response.status_code == 403


def test_missing_post_is_404(client, user):
    response = client.patch("/api/posts/4242/status", json={"status": "REVISION"}, headers=bearer(user))

    assert response.status_code == 404


def test_expired_access_token(client, user):
    token = access_token(user.id, Role.USER, now=expired(minutes=20))

    response = client.get("/api/posts", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_EXPIRED"


def test_admin_approves_and_notifies(admin_client, user, post_factory, notifications_sent):
    post = post_factory(user, status=PostStatus.REVISION, images=[(-42.5, -64.3)])

    response = admin_client.post(f"/api/posts/{post.id}/approve")

    assert response.status_code == 200
    assert response.json()["status"] == "ACTIVO"
    assert len(notifications_sent) == 1
    assert notifications_sent[0].post_id == post.id
    assert notifications_sent[0].latitude == -42.5


def test_approving_twice_notifies_once(admin_client, user, post_factory, notifications_sent):
    post = post_factory(user, status=PostStatus.REVISION)

    first = admin_client.post(f"/api/posts/{post.id}/approve")
    second = admin_client.post(f"/api/posts/{post.id}/approve")

    assert first.status_code == 200
    assert second.status_code == 400
    assert len(notifications_sent) == 1


def test_admin_rejects(admin_client, user, post_factory, notifications_sent):
    post = post_factory(user, status=PostStatus.REVISION)

    response = admin_client.post(f"/api/posts/{post.id}/reject")

    assert response.json()["status"] == "RECHAZADO"
    assert notifications_sent == []


def test_users_cannot_use_approve_shortcut(client, user, post_factory):
    post = post_factory(user, status=PostStatus.REVISION)

    response = client.post(f"/api/posts/{post.id}/approve", headers=bearer(user))

    assert response.status_code == 401


# ============================================================================
# Edits and deletion
# ============================================================================

def test_edit_draft(client, user, post_factory):
    post = post_factory(user)

    response = client.patch(f"/api/posts/{post.id}", json={"description": "Eran seis"}, headers=bearer(user))

    assert response.status_code == 200
    assert response.json()["description"] == "Eran seis"


def test_edit_under_review_is_403(client, user, post_factory):
    post = post_factory(user, status=PostStatus.REVISION)

    response = client.patch(f"/api/posts/{post.id}", json={"title": "Nuevo título"}, headers=bearer(user))

    assert response.status_code == 403
    assert response.json()["code"] == "POST_NOT_EDITABLE"


def test_delete_then_delete_again(client, db, user, post_factory):
    post = post_factory(user, status=PostStatus.ACTIVO)

    first = client.delete(f"/api/posts/{post.id}", headers=bearer(user))
    second = client.delete(f"/api/posts/{post.id}", headers=bearer(user))

    assert first.status_code == 200
    assert first.json()["status"] == "ELIMINADO"
    assert second.status_code == 400
    assert second.json()["code"] == "ALREADY_DELETED"
    db.expire_all()
    assert db.get(Post, post.id) is not None


# ============================================================================
# Images
# ============================================================================

@pytest.fixture
def uploads(monkeypatch):
    keys = []

    def fake_upload(file_data, post_id, extension, content_type):
        key = f"posts/{post_id}/{len(keys)}{extension}"
        keys.append((key, content_type))
        return key

    monkeypatch.setattr("sighting_api.routers.posts.upload_post_image", fake_upload)
    return keys


def _files(*names):
    return [("files", (name, b"\xff\xd8\xff", "image/jpeg")) for name in names]


def test_upload_images_with_coordinates(client, user, post_factory, uploads):
    post = post_factory(user)

    response = client.post(
        f"/api/posts/{post.id}/images",
        files=_files("a.jpg", "b.PNG"),
        data={"latitudes": ["-42.5", "-42.6"], "longitudes": ["-64.3", "-64.4"]},
        headers=bearer(user),
    )

    assert response.status_code == 201
    images = response.json()["images"]
    assert [img["image_order"] for img in images] == [0, 1]
    assert images[1]["longitude"] == -64.4
    assert uploads[1] == (f"posts/{post.id}/1.png", "image/png")


def test_upload_after_image_delete_does_not_reuse_order(client, db, user, post_factory, uploads):
    post = post_factory(user, images=[(None, None), (None, None)])
    db.delete(post.images[0])
    db.commit()

    response = client.post(f"/api/posts/{post.id}/images", files=_files("c.jpg"), headers=bearer(user))

    assert response.status_code == 201
    assert [img["image_order"] for img in response.json()["images"]] == [1, 2]


def test_failed_upload_removes_stored_files(client, db, user, post_factory, monkeypatch):
    stored = []
    removed = []

    def flaky_upload(file_data, post_id, extension, content_type):
        if stored:
            raise S3UploadFailedError("connection reset")
        stored.append(f"posts/{post_id}/first{extension}")
        return stored[-1]

    monkeypatch.setattr("sighting_api.routers.posts.upload_post_image", flaky_upload)
    monkeypatch.setattr("sighting_api.routers.posts.delete_image_file", lambda key: removed.append(key) or True)
    post = post_factory(user)

    response = client.post(f"/api/posts/{post.id}/images", files=_files("a.jpg", "b.jpg"), headers=bearer(user))

    assert response.status_code == 502
    assert response.json()["code"] == "STORAGE_FAILED"
    assert removed == stored
    assert db.query(PostImage).filter(PostImage.post_id == post.id).count() == 0


def test_upload_rejects_unknown_extension(client, user, post_factory, uploads):
    post = post_factory(user)

    response = client.post(f"/api/posts/{post.id}/images", files=_files("notes.pdf"), headers=bearer(user))

    assert response.status_code == 400
    assert uploads == []


def test_upload_limit(client, db, user, post_factory, uploads):
    post = post_factory(user, images=[(None, None)] * 9)

    response = client.post(f"/api/posts/{post.id}/images", files=_files("a.jpg", "b.jpg"), headers=bearer(user))

    assert response.status_code == 400
    assert db.query(PostImage).filter(PostImage.post_id == post.id).count() == 9


def test_upload_by_non_owner_is_403(client, user, other_user, post_factory, uploads):
    post = post_factory(user)

    response = client.post(f"/api/posts/{post.id}/images", files=_files("a.jpg"), headers=bearer(other_user))

    assert response.status_code == 403


def test_upload_to_post_under_review_is_403(client, user, post_factory, uploads):
    post = post_factory(user, status=PostStatus.REVISION)

    response = client.post(f"/api/posts/{post.id}/images", files=_files("a.jpg"), headers=bearer(user))

    assert response.status_code == 403


def test_delete_image(client, db, user, post_factory, monkeypatch):
    removed = []
    monkeypatch.setattr("sighting_api.routers.posts.delete_image_file", lambda key: removed.append(key) or True)
    post = post_factory(user, images=[(None, None)])
    image_id = post.images[0].id

    response = client.delete(f"/api/posts/{post.id}/images/{image_id}", headers=bearer(user))

    assert response.status_code == 204
    assert removed == [f"posts/{post.id}/0.jpg"]
    assert db.get(PostImage, image_id) is None


def test_image_url(client, user, post_factory, monkeypatch):
    monkeypatch.setattr(
        "sighting_api.routers.posts.generate_image_presigned_url",
        lambda key, expires_in: f"https://r2.example/{key}?expires={expires_in}",
    )
    post = post_factory(user, status=PostStatus.ACTIVO, images=[(None, None)])

    response = client.get(f"/api/posts/{post.id}/images/{post.images[0].id}/url", headers=bearer(user))

    assert response.json() == {"url": f"https://r2.example/posts/{post.id}/0.jpg?expires=3600", "expires_in": 3600}


def test_image_url_without_storage(client, user, post_factory, monkeypatch):
    def unconfigured(key, expires_in):
        raise ValueError("R2 credentials not configured")

    monkeypatch.setattr("sighting_api.routers.posts.generate_image_presigned_url", unconfigured)
    post = post_factory(user, images=[(None, None)])

    response = client.get(f"/api/posts/{post.id}/images/{post.images[0].id}/url", headers=bearer(user))

    assert response.status_code == 502
    assert response.json()["code"] == "STORAGE_FAILED"
