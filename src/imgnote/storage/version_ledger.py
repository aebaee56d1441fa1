"""Append-only version history for notes."""
import logging
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from imgnote.models.db_models import DBNote, DBNoteVersion
from imgnote.models.schema import Actor, NoteVersion, utc_now
from imgnote.storage.user_repository import UserRepository

logger = logging.getLogger(__name__)


def version_to_model(db_version: DBNoteVersion) -> NoteVersion:
    return NoteVersion(
        id=db_version.id,
        note_id=db_version.note_id,
        post_id=db_version.post_id,
        updater_id=db_version.updater_id,
        updater_ip_addr=db_version.updater_ip_addr,
        x=db_version.x,
        y=db_version.y,
        width=db_version.width,
        height=db_version.height,
        body=db_version.body,
        is_active=db_version.is_active,
        version=db_version.version,
        created_at=db_version.created_at,
    )


class VersionLedger:
    """Writes one snapshot per successful note mutation.

    Snapshots are never updated. The only deletion path is
    purge_by_updater, used by undo.
    """

    def __init__(self, users: UserRepository):
        self.users = users

    def bump_version(self, session: Session, db_note: DBNote) -> int:
        """Increment the note's version counter with a direct UPDATE.

        This is an internal bookkeeping write, not an edit: it skips
        validation, leaves updated_at alone and must never create a
        version of its own.
        """
        session.execute(
            update(DBNote)
            .where(DBNote.id == db_note.id)
            .values(version=DBNote.version + 1)
            .execution_options(synchronize_session=False)
        )
        new_version = session.scalar(select(DBNote.version).where(DBNote.id == db_note.id))
        # Reflect the new value without marking the row dirty
        set_committed_value(db_note, "version", new_version)
        return new_version

    def append(self, session: Session, db_note: DBNote, actor: Actor) -> NoteVersion:
        """Bump the counter, count the edit and snapshot the note.

        The note must already be flushed so that it has an id.
        """
        version = self.bump_version(session, db_note)
        self.users.increment_note_update_count(session, actor.id)

        db_version = DBNoteVersion(
            note_id=db_note.id,
            post_id=db_note.post_id,
            updater_id=db_note.updater_id,
            updater_ip_addr=db_note.updater_ip_addr,
            x=db_note.x,
            y=db_note.y,
            width=db_note.width,
            height=db_note.height,
            body=db_note.body,
            is_active=db_note.is_active,
            version=version,
            created_at=utc_now(),
        )
        session.add(db_version)
        session.flush()
        logger.debug(f"Note {db_note.id} is now at version {version}")
        return version_to_model(db_version)

    def list_for_note(self, session: Session, note_id: int) -> List[NoteVersion]:
        """Snapshots of one note, oldest first."""
        rows = session.scalars(
            select(DBNoteVersion)
            .where(DBNoteVersion.note_id == note_id)
            .order_by(DBNoteVersion.id.asc())
        ).all()
        return [version_to_model(row) for row in rows]

    def earliest_for_note(self, session: Session, note_id: int) -> Optional[NoteVersion]:
        row = session.scalars(
            select(DBNoteVersion)
            .where(DBNoteVersion.note_id == note_id)
            .order_by(DBNoteVersion.id.asc())
            .limit(1)
        ).first()
        return version_to_model(row) if row is not None else None

    def get(self, session: Session, version_id: int) -> Optional[NoteVersion]:
        row = session.get(DBNoteVersion, version_id)
        return version_to_model(row) if row is not None else None

    def note_ids_by_updater(self, session: Session, user_id: int) -> List[int]:
        """Distinct notes with at least one snapshot written by the user."""
        return list(
            session.scalars(
                select(DBNoteVersion.note_id)
                .where(DBNoteVersion.updater_id == user_id)
                .distinct()
                .order_by(DBNoteVersion.note_id)
            ).all()
        )

    def purge_by_updater(self, session: Session, user_id: int) -> int:
        """Delete every snapshot written by the user. Returns the row count."""
        result = session.execute(
            delete(DBNoteVersion)
            .where(DBNoteVersion.updater_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
