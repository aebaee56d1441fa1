"""Create/update lifecycle for notes."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from imgnote.config import config
from imgnote.exceptions import NoteNotFoundError
from imgnote.models.db_models import DBNote
from imgnote.models.schema import (
    Actor,
    Note,
    NoteDraft,
    NotePatch,
    NoteVersion,
    SaveResult,
    utc_now,
)
from imgnote.services.validation import run_validation
from imgnote.storage.base import transaction
from imgnote.storage.post_repository import PostRepository
from imgnote.storage.user_repository import UserRepository
from imgnote.storage.version_ledger import VersionLedger

logger = logging.getLogger(__name__)

# Attributes a caller may set; everything else is derived
EDITABLE_FIELDS = ("post_id", "x", "y", "width", "height", "body", "is_active")


def note_to_model(db_note: DBNote) -> Note:
    return Note(
        id=db_note.id,
        post_id=db_note.post_id,
        creator_id=db_note.creator_id,
        updater_id=db_note.updater_id,
        updater_ip_addr=db_note.updater_ip_addr,
        x=db_note.x,
        y=db_note.y,
        width=db_note.width,
        height=db_note.height,
        body=db_note.body,
        is_active=db_note.is_active,
        version=db_note.version,
        created_at=db_note.created_at,
        updated_at=db_note.updated_at,
    )


class NoteStore:
    """Validated persistence of notes.

    Every successful save runs in one transaction: validation, the row
    write, a ledger snapshot and the post's ``last_noted_at`` refresh.
    Validation failures write nothing and come back inside a SaveResult.

    The ``*_in_session`` methods do the same work inside a transaction
    owned by the caller, so several saves can commit or roll back together.
    """

    def __init__(
        self,
        session_factory,
        posts: Optional[PostRepository] = None,
        users: Optional[UserRepository] = None,
        ledger: Optional[VersionLedger] = None,
        empty_body: Optional[str] = None,
    ):
        """Initialize the store.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
            posts: Post collaborator. Created from session_factory if None.
            users: User collaborator. Created from session_factory if None.
            ledger: Version ledger. Created over ``users`` if None.
            empty_body: Placeholder stored for blank bodies.
                        Defaults to config.empty_body.
        """
        self.session_factory = session_factory
        self.posts = posts or PostRepository(session_factory)
        self.users = users or UserRepository(session_factory)
        self.ledger = ledger or VersionLedger(self.users)
        self.empty_body = empty_body or config.empty_body

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create(self, draft: NoteDraft, actor: Actor) -> SaveResult:
        """Create a note authored by ``actor``."""
        with transaction(self.session_factory, "create_note") as session:
            return self.create_in_session(session, draft.model_dump(), actor)

    def update(self, note_id: int, patch: NotePatch, actor: Actor) -> SaveResult:
        """Apply the fields set in ``patch`` to an existing note.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with transaction(self.session_factory, "update_note") as session:
            db_note = self.get_for_update(session, note_id)
            return self.update_in_session(session, db_note, patch.changes(), actor)

    def get(self, note_id: int) -> Optional[Note]:
        with self.session_factory() as session:
            db_note = session.get(DBNote, note_id)
            return note_to_model(db_note) if db_note is not None else None

    def get_versions(self, note_id: int) -> List[NoteVersion]:
        """Version history of a note, oldest first."""
        with self.session_factory() as session:
            return self.ledger.list_for_note(session, note_id)

    def get_version(self, version_id: int) -> Optional[NoteVersion]:
        with self.session_factory() as session:
            return self.ledger.get(session, version_id)

    # ------------------------------------------------------------------
    # Transaction-scoped operations
    # ------------------------------------------------------------------

    def get_for_update(self, session: Session, note_id: int) -> DBNote:
        """Load a note row for modification, locking it where supported."""
        db_note = session.scalars(
            select(DBNote).where(DBNote.id == note_id).with_for_update()
        ).first()
        if db_note is None:
            raise NoteNotFoundError(note_id)
        return db_note

    def create_in_session(
        self, session: Session, attrs: Dict[str, Any], actor: Actor
    ) -> SaveResult:
        candidate = {name: attrs.get(name) for name in EDITABLE_FIELDS}
        if candidate["is_active"] is None:
            candidate["is_active"] = True
        candidate["body"] = self._body_or_placeholder(candidate["body"])
        candidate["creator_id"] = actor.id
        candidate["updater_id"] = actor.id
        candidate["updater_ip_addr"] = actor.ip_addr

        errors = run_validation(session, self.posts, candidate)
        if errors:
            logger.info(
                f"Note rejected for post {candidate['post_id']}: "
                f"{[e.full_message() for e in errors]}"
            )
            return SaveResult(errors=errors)

        now = utc_now()
        db_note = DBNote(version=0, created_at=now, updated_at=now, **candidate)
        session.add(db_note)
        session.flush()
        self._after_save(session, db_note, actor)
        logger.info(f"Created note {db_note.id} on post {db_note.post_id}")
        return SaveResult(note=note_to_model(db_note))

    def update_in_session(
        self,
        session: Session,
        db_note: DBNote,
        changes: Dict[str, Any],
        actor: Actor,
    ) -> SaveResult:
        candidate = {name: getattr(db_note, name) for name in EDITABLE_FIELDS}
        for name, value in changes.items():
            if name not in EDITABLE_FIELDS:
                raise ValueError(f"{name} is not an editable note attribute")
            candidate[name] = value
        if candidate["is_active"] is None:
            candidate["is_active"] = db_note.is_active
        candidate["body"] = self._body_or_placeholder(candidate["body"])
        candidate["creator_id"] = db_note.creator_id
        candidate["updater_id"] = actor.id
        candidate["updater_ip_addr"] = actor.ip_addr

        errors = run_validation(session, self.posts, candidate)
        if errors:
            logger.info(
                f"Update of note {db_note.id} rejected: "
                f"{[e.full_message() for e in errors]}"
            )
            return SaveResult(errors=errors)

        for name, value in candidate.items():
            setattr(db_note, name, value)
        db_note.updated_at = utc_now()
        session.flush()
        self._after_save(session, db_note, actor)
        logger.info(f"Updated note {db_note.id} (version {db_note.version})")
        return SaveResult(note=note_to_model(db_note))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _body_or_placeholder(self, body: Optional[str]) -> str:
        if body is None or not body.strip():
            return self.empty_body
        return body

    def _after_save(self, session: Session, db_note: DBNote, actor: Actor) -> None:
        """Append the version snapshot, then refresh the post aggregate."""
        self.ledger.append(session, db_note, actor)
        if self.posts.has_active_note(session, db_note.post_id):
            self.posts.set_last_noted_at(session, db_note.post_id, db_note.updated_at)
        else:
            self.posts.set_last_noted_at(session, db_note.post_id, None)
