"""Repository for the posts that notes are drawn on.

Posts are owned elsewhere; the annotation store only reads their size and
lock flag and maintains the derived ``last_noted_at`` column. Methods taking
a ``session`` run inside the caller's transaction.
"""
import datetime
import logging
from typing import Optional

from sqlalchemy import exists, select, update
from sqlalchemy.orm import Session

from imgnote.models.db_models import DBNote, DBPost
from imgnote.models.schema import Post
from imgnote.storage.base import transaction

logger = logging.getLogger(__name__)


class PostRepository:
    """Read access to posts plus the ``last_noted_at`` aggregate."""

    def __init__(self, session_factory):
        """Initialize the post repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def add(self, post: Post) -> Post:
        """Register a post (used for seeding and tests)."""
        with transaction(self.session_factory, "add_post") as session:
            session.add(
                DBPost(
                    id=post.id,
                    image_width=post.image_width,
                    image_height=post.image_height,
                    is_note_locked=post.is_note_locked,
                    last_noted_at=post.last_noted_at,
                    tag_string=post.tag_string,
                )
            )
        logger.debug(f"Added post {post.id}")
        return post

    def set_note_locked(self, post_id: int, locked: bool = True) -> None:
        with transaction(self.session_factory, "set_note_locked") as session:
            session.execute(
                update(DBPost).where(DBPost.id == post_id).values(is_note_locked=locked)
            )

    def fetch(self, post_id: int) -> Optional[Post]:
        """Get a post in a session of its own."""
        with self.session_factory() as session:
            return self.get(session, post_id)

    # Collaborator interface, used inside note transactions

    def exists(self, session: Session, post_id: int) -> bool:
        return bool(session.scalar(select(exists().where(DBPost.id == post_id))))

    def get(self, session: Session, post_id: int) -> Optional[Post]:
        db_post = session.get(DBPost, post_id)
        if db_post is None:
            return None
        return Post(
            id=db_post.id,
            image_width=db_post.image_width,
            image_height=db_post.image_height,
            is_note_locked=db_post.is_note_locked,
            last_noted_at=db_post.last_noted_at,
            tag_string=db_post.tag_string or "",
        )

    def is_note_locked(self, session: Session, post_id: int) -> bool:
        return bool(
            session.scalar(
                select(
                    exists().where(DBPost.id == post_id, DBPost.is_note_locked.is_(True))
                )
            )
        )

    def has_active_note(self, session: Session, post_id: int) -> bool:
        return bool(
            session.scalar(
                select(
                    exists().where(DBNote.post_id == post_id, DBNote.is_active.is_(True))
                )
            )
        )

    def set_last_noted_at(
        self, session: Session, post_id: int, noted_at: Optional[datetime.datetime]
    ) -> None:
        """Set or clear (``None``) the post's last-noted timestamp."""
        session.execute(
            update(DBPost).where(DBPost.id == post_id).values(last_noted_at=noted_at)
        )
