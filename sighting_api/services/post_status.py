"""
Post moderation status machine.

    BORRADOR --> REVISION --> ACTIVO
        ^            |          |
        |            v          v
        +------- RECHAZADO <----+

    any status --> ELIMINADO (terminal)

Which arrows a caller may follow depends on its role: users can submit their
drafts for review and delete their own posts; admins moderate (approve,
reject, send back to draft). Approving a post under review (admin,
REVISION -> ACTIVO) notifies app users about the new sighting.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional, Tuple, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from sighting_api.auth import Principal, Role
from sighting_api.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    PersistenceError,
    PostAlreadyDeleted,
    ValidationFailed,
)
from sighting_api.models import Post, PostCreate, PostImage, PostStatus, PostUpdate, utcnow
from sighting_api.services.status_catalog import StatusCatalog

logger = logging.getLogger(__name__)

_B, _R, _A, _X, _E = (
    PostStatus.BORRADOR,
    PostStatus.REVISION,
    PostStatus.ACTIVO,
    PostStatus.RECHAZADO,
    PostStatus.ELIMINADO,
)

TRANSITIONS: Dict[Tuple[Role, PostStatus], FrozenSet[PostStatus]] = {
    (Role.USER, _B): frozenset({_R, _E}),
    (Role.USER, _A): frozenset({_E}),
    (Role.USER, _X): frozenset({_E}),
    (Role.USER, _R): frozenset({_E}),
    (Role.USER, _E): frozenset(),
    (Role.ADMIN, _B): frozenset({_R, _E}),
    (Role.ADMIN, _A): frozenset({_X, _E}),
    (Role.ADMIN, _X): frozenset({_B, _E}),
    (Role.ADMIN, _R): frozenset({_A, _X, _E}),
    (Role.ADMIN, _E): frozenset(),
}

# Title/description can only change while a post is a draft or published
EDITABLE_STATUSES = frozenset({PostStatus.BORRADOR, PostStatus.ACTIVO})

# Statuses a post may be created in
INITIAL_STATUSES = frozenset({PostStatus.BORRADOR, PostStatus.REVISION})


def allowed_transitions(role: Role, from_status: PostStatus) -> FrozenSet[PostStatus]:
    """Target statuses reachable from ``from_status`` for the given role."""
    return TRANSITIONS.get((role, PostStatus(from_status)), frozenset())


def is_visible_to(post: Post, principal: Principal) -> bool:
    """Admins see everything; users see published posts and their own live ones."""
    if principal.kind == Role.ADMIN:
        return True
    if post.status == PostStatus.ACTIVO:
        return True
    return post.user_id == principal.id and post.status != PostStatus.ELIMINADO


@dataclass(frozen=True)
class SightingNotification:
    """Payload announcing a newly approved sighting"""
    post_id: int
    user_name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


NotificationDispatcher = Callable[[SightingNotification], None]


def build_sighting_notification(db: Session, post: Post) -> SightingNotification:
    """Owner name and the coordinates of the post's first image (if any)."""
    first_image = (
        db.query(PostImage)
        .filter(PostImage.post_id == post.id)
        .order_by(PostImage.image_order, PostImage.id)
        .first()
    )
    owner = post.owner
    user_name = (owner.name or owner.username) if owner else None

    return SightingNotification(
        post_id=post.id,
        user_name=user_name or "Usuario",
        latitude=first_image.latitude if first_image else None,
        longitude=first_image.longitude if first_image else None,
    )


class PostStatusMachine:
    """
    Creates posts and moves them through their lifecycle.

    Args:
        db: Session used for loading and persisting posts
        catalog: Statuses accepted by this deployment
        dispatch: Called with the notification payload when an admin approves
            a post under review. Expected to schedule the send and return
            immediately; any exception it raises is logged and swallowed.
    """

    def __init__(
        self,
        db: Session,
        catalog: StatusCatalog,
        dispatch: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.catalog = catalog
        self.dispatch = dispatch

    def get_post(self, post_id: int) -> Post:
        post = self.db.get(Post, post_id)
        if not post:
            raise NotFound(f"Post {post_id} not found")
        return post

    def authorize(self, post: Post, principal: Principal, action: str) -> None:
        # admins may act on any post
        if principal.kind == Role.USER and post.user_id != principal.id:
            raise Forbidden(f"You do not have permission to {action} this post")

    def ensure_editable(self, post: Post) -> None:
        if post.status not in EDITABLE_STATUSES:
            raise Forbidden(
                f"Posts in status {PostStatus(post.status).value} cannot be edited",
                code="POST_NOT_EDITABLE",
            )

    # ------------------------------------------------------------------
    # Creation and content edits
    # ------------------------------------------------------------------

    def create_post(self, principal: Principal, data: PostCreate) -> Post:
        if principal.kind == Role.ADMIN:
            raise Forbidden("Admins cannot create posts, use a user account")

        initial = self.catalog.parse(data.status)
        if initial not in INITIAL_STATUSES:
            raise ValidationFailed(
                f"Posts can only be created as {' or '.join(sorted(s.value for s in INITIAL_STATUSES))}",
                code="INVALID_STATUS",
            )

        post = Post(
            user_id=principal.id,
            title=data.title,
            description=data.description,
            status=initial,
        )
        self.db.add(post)
        self.db.commit()
        self.db.refresh(post)

        logger.info(f"User {principal.id} created post {post.id} as {initial.value}")
        return post

    def edit_content(self, post_id: int, principal: Principal, changes: PostUpdate) -> Post:
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)
        if not fields:
            raise ValidationFailed("Nothing to update")

        post = self.get_post(post_id)
        self.authorize(post, principal, "edit")
        self.ensure_editable(post)

        for key, value in fields.items():
            setattr(post, key, value)
        post.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(post)
        return post

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def request_transition(
        self,
        post_id: int,
        principal: Principal,
        target: Union[str, PostStatus],
    ) -> Post:
        """
        Move a post to ``target`` if the caller's role allows it.

        Raises:
            ValidationFailed: target is not a known status
            NotFound: post does not exist
            Forbidden: a user acting on someone else's post
            InvalidTransition: the table has no such arrow for this role
            Conflict: the status changed underneath us
            PersistenceError: the post disappeared while updating
        """
        target_status = self.catalog.parse(target)
        post = self.get_post(post_id)
        self.authorize(post, principal, "change the status of")
        return self._transition(post, principal, target_status)

    def delete_post(self, post_id: int, principal: Principal) -> Post:
        """Soft-delete a post (transition to ELIMINADO). Deleting twice is an error."""
        post = self.get_post(post_id)
        self.authorize(post, principal, "delete")

        if post.status == PostStatus.ELIMINADO:
            raise PostAlreadyDeleted(PostStatus.ELIMINADO.value)

        return self._transition(post, principal, PostStatus.ELIMINADO)

    def _transition(self, post: Post, principal: Principal, target: PostStatus) -> Post:
        before = PostStatus(post.status)

        if target not in allowed_transitions(principal.kind, before):
            logger.info(
                f"Rejected {principal.kind.value} {principal.id} moving post {post.id} "
                f"from {before.value} to {target.value}"
            )
            raise InvalidTransition(before.value, target.value)

        self._persist_status(post, before, target)
        logger.info(
            f"Post {post.id}: {before.value} -> {target.value} by {principal.kind.value} {principal.id}"
        )

        if principal.kind == Role.ADMIN and before == PostStatus.REVISION and target == PostStatus.ACTIVO:
            self._notify_approval(post)

        return post

    def _persist_status(self, post: Post, before: PostStatus, target: PostStatus) -> None:
        # Single-row compare-and-set on the previous status
        post_id = post.id
        result = self.db.execute(
            update(Post)
            .where(Post.id == post_id, Post.status == before)
            .values(status=target, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            self.db.rollback()
            current = self.db.query(Post.status).filter(Post.id == post_id).scalar()
            if current is None:
                raise PersistenceError(f"Post {post_id} vanished while changing its status")
            raise Conflict(
                f"Post {post_id} changed to {PostStatus(current).value} concurrently, reload and retry",
                code="STATUS_CONFLICT",
            )

        self.db.commit()
        self.db.refresh(post)

    def _notify_approval(self, post: Post) -> None:
        if self.dispatch is None:
            return
        try:
            self.dispatch(build_sighting_notification(self.db, post))
        except Exception:
            logger.exception(f"Could not dispatch sighting notification for post {post.id}")
