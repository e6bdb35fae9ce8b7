"""
Catalog of valid post statuses.

Loaded once from the post_status table at startup and handed to whoever
needs it (the status machine, the /posts/statuses endpoint). Tests build one
directly with StatusCatalog.default().
"""

import logging
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from sighting_api.errors import ValidationFailed
from sighting_api.models import PostStatus, PostStatusRecord

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTIONS: Dict[PostStatus, str] = {
    PostStatus.BORRADOR: "Draft, only visible to its author",
    PostStatus.REVISION: "Waiting for moderator review",
    PostStatus.ACTIVO: "Approved and published in the feed",
    PostStatus.RECHAZADO: "Rejected by a moderator",
    PostStatus.ELIMINADO: "Deleted",
}


class StatusCatalog:
    """The set of statuses this deployment accepts, with their descriptions."""

    def __init__(self, statuses: Iterable[PostStatus], descriptions: Optional[Dict[PostStatus, str]] = None):
        self._statuses = tuple(statuses)
        self._descriptions = dict(descriptions or {})

    @classmethod
    def default(cls) -> "StatusCatalog":
        return cls(list(PostStatus), DEFAULT_DESCRIPTIONS)

    def __contains__(self, status: object) -> bool:
        return status in self._statuses

    def __len__(self) -> int:
        return len(self._statuses)

    @property
    def names(self) -> List[str]:
        return [s.value for s in self._statuses]

    def describe(self) -> List[dict]:
        return [
            {"name": s.value, "description": self._descriptions.get(s, "")}
            for s in self._statuses
        ]

    def parse(self, value: Union[str, PostStatus]) -> PostStatus:
        """
        Convert a client-supplied status name into a PostStatus.

        Raises:
            ValidationFailed: if the name is not a status of this catalog
        """
        try:
            status = PostStatus(value.strip().upper() if isinstance(value, str) else value)
        except ValueError:
            status = None

        if status is None or status not in self._statuses:
            raise ValidationFailed(
                f"Invalid status '{value}'. Valid statuses: {', '.join(self.names)}",
                code="INVALID_STATUS",
            )
        return status


def load_status_catalog(db: Session) -> StatusCatalog:
    """
    Read the post_status table into a StatusCatalog.

    Unknown names in the table are ignored; an empty table falls back to the
    built-in statuses so a fresh database still works.
    """
    rows = db.query(PostStatusRecord).order_by(PostStatusRecord.id).all()

    statuses = []
    descriptions = {}
    for row in rows:
        try:
            status = PostStatus(row.name)
        except ValueError:
            logger.warning(f"Ignoring unknown post status in database: {row.name}")
            continue
        statuses.append(status)
        descriptions[status] = row.description

    if not statuses:
        logger.warning("post_status table is empty, using built-in statuses")
        return StatusCatalog.default()

    missing = set(PostStatus) - set(statuses)
    if missing:
        logger.warning(f"post_status table lacks: {', '.join(sorted(s.value for s in missing))}")

    logger.info(f"Loaded {len(statuses)} post statuses")
    return StatusCatalog(statuses, descriptions)
