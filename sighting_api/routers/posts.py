"""
Posts Router - Sighting posts and their moderation workflow

Endpoints:
  GET    /api/posts                              - Feed (users: ACTIVO only, admins: filter by status)
  GET    /api/posts/statuses                     - Valid statuses
  GET    /api/posts/me                           - My posts (users)
  GET    /api/posts/user/{user_id}               - Posts of a user
  GET    /api/posts/{id}                         - Get post
  POST   /api/posts                              - Create post (users)
  PATCH  /api/posts/{id}                         - Edit title/description (BORRADOR/ACTIVO only)
  PATCH  /api/posts/{id}/status                  - Change status
  DELETE /api/posts/{id}                         - Soft delete (-> ELIMINADO)
  POST   /api/posts/{id}/approve                 - Admin: REVISION -> ACTIVO
  POST   /api/posts/{id}/reject                  - Admin: -> RECHAZADO
  POST   /api/posts/{id}/images                  - Upload images
  DELETE /api/posts/{id}/images/{image_id}       - Delete image
  GET    /api/posts/{id}/images/{image_id}/url   - Presigned image URL
"""

import logging
from pathlib import Path
from typing import List, Optional

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from sighting_api.auth import AdminPrincipal, Principal, Role
from sighting_api.database.connection import get_db
from sighting_api.dependencies import (
    Pagination,
    get_current_principal,
    get_pagination,
    get_status_catalog,
    require_admin_principal,
)
from sighting_api.errors import Forbidden, NotFound, UpstreamError, ValidationFailed
from sighting_api.models import (
    Post,
    PostCreate,
    PostImage,
    PostImageRead,
    PostPage,
    PostRead,
    PostStatus,
    PostStatusChange,
    PostUpdate,
)
from sighting_api.services.notifications import send_sighting_notification
from sighting_api.services.post_status import PostStatusMachine, SightingNotification, is_visible_to
from sighting_api.services.r2_storage import delete_image_file, generate_image_presigned_url, upload_post_image
from sighting_api.services.status_catalog import StatusCatalog

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_IMAGES_PER_POST = 10
IMAGE_URL_EXPIRY = 3600  # seconds

# Accepted image extensions
CONTENT_TYPE_MAP = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def get_status_machine(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    catalog: StatusCatalog = Depends(get_status_catalog),
) -> PostStatusMachine:
    """Status machine whose approval notifications run as background tasks."""
    def dispatch(notification: SightingNotification) -> None:
        background_tasks.add_task(send_sighting_notification, notification)

    return PostStatusMachine(db, catalog, dispatch)


def _post_to_read(post: Post) -> PostRead:
    """Convert a post (with owner and images loaded) to PostRead"""
    owner = post.owner
    return PostRead(
        id=post.id,
        user_id=post.user_id,
        title=post.title,
        description=post.description,
        status=post.status,
        created_at=post.created_at,
        updated_at=post.updated_at,
        user_name=owner.name if owner else None,
        user_username=owner.username if owner else None,
        user_image=owner.image if owner else None,
        images=[
            PostImageRead(
                id=image.id,
                image_path=image.image_path,
                image_order=image.image_order,
                latitude=image.latitude,
                longitude=image.longitude,
            )
            for image in post.images
        ],
    )


def _paginate(query, paging: Pagination) -> PostPage:
    """Run the query one page at a time, newest first."""
    total = query.order_by(None).with_entities(func.count(Post.id)).scalar() or 0
    posts = (
        query.options(selectinload(Post.owner), selectinload(Post.images))
        .order_by(Post.created_at.desc(), Post.id.desc())
        .offset(paging.offset)
        .limit(paging.page_size)
        .all()
    )

    return PostPage(
        page=paging.page,
        page_size=paging.page_size,
        total=total,
        total_pages=paging.total_pages(total),
        posts=[_post_to_read(p) for p in posts],
    )


# ============================================================================
# Reads
# ============================================================================

@router.get("", response_model=PostPage)
async def list_posts(
    paging: Pagination = Depends(get_pagination),
    post_status: Optional[str] = Query(None, alias="status"),
    principal: Principal = Depends(get_current_principal),
    catalog: StatusCatalog = Depends(get_status_catalog),
    db: Session = Depends(get_db),
):
    """
    Post feed, newest first.

    Users only ever see published (ACTIVO) posts. Admins see every post that
    is not deleted, or only the posts in ``?status=`` (e.g. REVISION for
    the moderation queue).
    """
    query = db.query(Post)

    if principal.kind == Role.USER:
        query = query.filter(Post.status == PostStatus.ACTIVO)
    elif post_status:
        query = query.filter(Post.status == catalog.parse(post_status))
    else:
        query = query.filter(Post.status != PostStatus.ELIMINADO)

    return _paginate(query, paging)


@router.get("/statuses")
async def list_statuses(
    principal: Principal = Depends(get_current_principal),
    catalog: StatusCatalog = Depends(get_status_catalog),
):
    """List the statuses a post can be in."""
    return catalog.describe()


@router.get("/me", response_model=PostPage)
async def list_my_posts(
    paging: Pagination = Depends(get_pagination),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Posts of the calling user, in any status except ELIMINADO."""
    if principal.kind == Role.ADMIN:
        raise Forbidden("Admins do not have posts of their own")

    query = db.query(Post).filter(Post.user_id == principal.id, Post.status != PostStatus.ELIMINADO)
    return _paginate(query, paging)


@router.get("/user/{user_id}", response_model=PostPage)
async def list_user_posts(
    user_id: int,
    paging: Pagination = Depends(get_pagination),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Posts of a given user. Other users only see that user's published posts."""
    query = db.query(Post).filter(Post.user_id == user_id)

    if principal.kind == Role.USER and principal.id != user_id:
        query = query.filter(Post.status == PostStatus.ACTIVO)
    else:
        query = query.filter(Post.status != PostStatus.ELIMINADO)

    return _paginate(query, paging)


@router.get("/{post_id}", response_model=PostRead)
async def get_post(
    post_id: int,
    principal: Principal = Depends(get_current_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Get a specific post. Posts the caller may not see are reported as missing."""
    post = machine.get_post(post_id)
    if not is_visible_to(post, principal):
        raise NotFound(f"Post {post_id} not found")
    return _post_to_read(post)


# ============================================================================
# Writes
# ============================================================================

@router.post("", response_model=PostRead, status_code=status.HTTP_201_CREATED)
async def create_post(
    body: PostCreate,
    principal: Principal = Depends(get_current_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Create a post as a draft (or straight into REVISION)."""
    post = machine.create_post(principal, body)
    return _post_to_read(post)


@router.patch("/{post_id}", response_model=PostRead)
async def update_post(
    post_id: int,
    body: PostUpdate,
    principal: Principal = Depends(get_current_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Edit title and/or description. Owner or admin, BORRADOR/ACTIVO posts only."""
    post = machine.edit_content(post_id, principal, body)
    return _post_to_read(post)


@router.patch("/{post_id}/status", response_model=PostRead)
async def change_post_status(
    post_id: int,
    body: PostStatusChange,
    principal: Principal = Depends(get_current_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Move a post to another status, subject to the caller's role."""
    post = machine.request_transition(post_id, principal, body.status)
    return _post_to_read(post)


@router.delete("/{post_id}", response_model=PostRead)
async def delete_post(
    post_id: int,
    principal: Principal = Depends(get_current_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Soft-delete a post. Deleting an already deleted post is an error."""
    post = machine.delete_post(post_id, principal)
    return _post_to_read(post)


@router.post("/{post_id}/approve", response_model=PostRead)
async def approve_post(
    post_id: int,
    admin: AdminPrincipal = Depends(require_admin_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Publish a post under review and notify app users."""
    post = machine.request_transition(post_id, admin, PostStatus.ACTIVO)
    return _post_to_read(post)


@router.post("/{post_id}/reject", response_model=PostRead)
async def reject_post(
    post_id: int,
    admin: AdminPrincipal = Depends(require_admin_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Reject a post under review (or take down a published one)."""
    post = machine.request_transition(post_id, admin, PostStatus.RECHAZADO)
    return _post_to_read(post)


# ============================================================================
# Images
# ============================================================================

@router.post("/{post_id}/images", response_model=PostRead, status_code=status.HTTP_201_CREATED)
async def upload_post_images(
    post_id: int,
    files: List[UploadFile] = File(...),
    latitudes: Optional[List[float]] = Form(None),
    longitudes: Optional[List[float]] = Form(None),
    principal: Principal = Depends(get_current_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """
    Attach photos to a post.

    ``latitudes`` / ``longitudes`` are optional and, when given, must have one
    entry per file. Images are appended after the existing ones.
    """
    post = machine.get_post(post_id)
    if principal.kind == Role.ADMIN:
        raise Forbidden("Admins cannot add images to posts")
    machine.authorize(post, principal, "add images to")
    machine.ensure_editable(post)

    for name, values in (("latitudes", latitudes), ("longitudes", longitudes)):
        if values is not None and len(values) != len(files):
            raise ValidationFailed(f"{name} must have one value per file")
    for lat in latitudes or []:
        if not -90 <= lat <= 90:
            raise ValidationFailed(f"Invalid latitude: {lat}")
    for lon in longitudes or []:
        if not -180 <= lon <= 180:
            raise ValidationFailed(f"Invalid longitude: {lon}")

    if len(post.images) + len(files) > MAX_IMAGES_PER_POST:
        raise ValidationFailed(f"A post can have at most {MAX_IMAGES_PER_POST} images")

    extensions = []
    for file in files:
        ext = Path(file.filename or "").suffix.lower()
        if ext not in CONTENT_TYPE_MAP:
            raise ValidationFailed(
                f"Invalid file type: {file.filename}. Accepted: {', '.join(sorted(CONTENT_TYPE_MAP))}"
            )
        extensions.append(ext)

    # orders of deleted images are never reused
    next_order = max((image.image_order for image in post.images), default=-1) + 1

    db = machine.db
    uploaded = []
    for index, (file, ext) in enumerate(zip(files, extensions)):
        try:
            r2_key = upload_post_image(file.file, post.id, ext, CONTENT_TYPE_MAP[ext])
        except (ClientError, S3UploadFailedError, ValueError) as e:
            db.rollback()
            logger.exception(f"Upload of {file.filename} for post {post.id} failed")
            for key in uploaded:
                if not delete_image_file(key):
                    logger.warning(f"Could not remove {key} after the failed upload")
            raise UpstreamError("Image storage unavailable", code="STORAGE_FAILED") from e
        uploaded.append(r2_key)
        db.add(PostImage(
            post_id=post.id,
            image_path=r2_key,
            image_order=next_order + index,
            latitude=latitudes[index] if latitudes else None,
            longitude=longitudes[index] if longitudes else None,
        ))

    db.commit()
    db.refresh(post)
    logger.info(f"Added {len(files)} images to post {post.id}")
    return _post_to_read(post)


def _get_post_image(machine: PostStatusMachine, post: Post, image_id: int) -> PostImage:
    image = machine.db.get(PostImage, image_id)
    if not image or image.post_id != post.id:
        raise NotFound(f"Image {image_id} not found")
    return image


@router.delete("/{post_id}/images/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post_image(
    post_id: int,
    image_id: int,
    principal: Principal = Depends(get_current_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Remove a photo from a post (owner or admin, editable posts only)."""
    post = machine.get_post(post_id)
    machine.authorize(post, principal, "remove images from")
    machine.ensure_editable(post)
    image = _get_post_image(machine, post, image_id)

    if not delete_image_file(image.image_path):
        logger.warning(f"Could not delete {image.image_path} from storage")

    machine.db.delete(image)
    machine.db.commit()


@router.get("/{post_id}/images/{image_id}/url")
async def get_post_image_url(
    post_id: int,
    image_id: int,
    principal: Principal = Depends(get_current_principal),
    machine: PostStatusMachine = Depends(get_status_machine),
):
    """Presigned URL to download a post image, valid for one hour."""
    post = machine.get_post(post_id)
    if not is_visible_to(post, principal):
        raise NotFound(f"Post {post_id} not found")
    image = _get_post_image(machine, post, image_id)

    try:
        url = generate_image_presigned_url(image.image_path, expires_in=IMAGE_URL_EXPIRY)
    except (ClientError, ValueError) as e:
        raise UpstreamError("Image storage unavailable", code="STORAGE_FAILED") from e

    return {"url": url, "expires_in": IMAGE_URL_EXPIRY}
