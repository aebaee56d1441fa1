"""Repository for users as seen by the annotation store."""
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from imgnote.models.db_models import DBUser, unicode_lower
from imgnote.models.schema import User
from imgnote.storage.base import transaction

logger = logging.getLogger(__name__)


def normalize_user_name(name: str) -> str:
    """Stored user names use underscores where people type spaces."""
    return name.strip().replace(" ", "_")


class UserRepository:
    """Name lookups and the per-user note edit counter."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def add(self, user: User) -> User:
        """Register a user (used for seeding and tests)."""
        with transaction(self.session_factory, "add_user") as session:
            session.add(
                DBUser(
                    id=user.id,
                    name=normalize_user_name(user.name),
                    note_update_count=user.note_update_count,
                )
            )
        return user

    def get(self, user_id: int) -> Optional[User]:
        with self.session_factory() as session:
            db_user = session.get(DBUser, user_id)
            if db_user is None:
                return None
            return User(
                id=db_user.id,
                name=db_user.name,
                note_update_count=db_user.note_update_count,
            )

    def resolve_id_by_name(self, name: str) -> Optional[int]:
        """Case-insensitive lookup of a user ID by display or stored name."""
        with self.session_factory() as session:
            return session.scalar(
                select(DBUser.id).where(
                    unicode_lower(DBUser.name) == normalize_user_name(name).lower()
                )
            )

    def id_to_name(self, user_id: int) -> Optional[str]:
        with self.session_factory() as session:
            return session.scalar(select(DBUser.name).where(DBUser.id == user_id))

    def increment_note_update_count(self, session: Session, user_id: int) -> None:
        """Bump the user's edit counter inside the caller's transaction.

        Unknown users are ignored; the store does not own user records.
        """
        result = session.execute(
            update(DBUser)
            .where(DBUser.id == user_id)
            .values(note_update_count=DBUser.note_update_count + 1)
        )
        if result.rowcount == 0:
            logger.debug(f"No user row for {user_id}; edit counter not updated")
