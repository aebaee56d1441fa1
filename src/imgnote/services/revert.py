"""Restoring a note to one of its earlier versions."""
import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from imgnote.exceptions import VersionNotFoundError
from imgnote.models.schema import Actor, Note, NoteVersion, SaveResult
from imgnote.storage.base import transaction
from imgnote.storage.note_store import NoteStore

logger = logging.getLogger(__name__)

# Attributes restored from a snapshot; the updater comes from the acting user
RESTORED_FIELDS = ("x", "y", "post_id", "body", "width", "height", "is_active")


def restored_attributes(version: NoteVersion) -> Dict[str, Any]:
    return {name: getattr(version, name) for name in RESTORED_FIELDS}


class RevertEngine:
    """Reverts go through the normal update path, so they are validated,
    versioned and stamped with the user performing the revert.
    """

    def __init__(self, store: NoteStore):
        self.store = store

    def revert_to(self, note_id: int, version_id: int, actor: Actor) -> SaveResult:
        """Revert a note to one of its versions.

        Returns:
            SaveResult with the reverted note, or the validation errors
            (for instance when the version's post is now note-locked).

        Raises:
            NoteNotFoundError: If the note does not exist.
            VersionNotFoundError: If the version does not exist or
                belongs to another note.
        """
        with transaction(self.store.session_factory, "revert_note") as session:
            version = self._load_version(session, note_id, version_id)
            return self.revert_in_session(session, note_id, version, actor)

    def revert_to_strict(self, note_id: int, version_id: int, actor: Actor) -> Note:
        """Like revert_to, but raises NoteValidationError on failure."""
        with transaction(self.store.session_factory, "revert_note") as session:
            version = self._load_version(session, note_id, version_id)
            return self.revert_in_session_strict(session, note_id, version, actor)

    def revert_in_session(
        self, session: Session, note_id: int, version: NoteVersion, actor: Actor
    ) -> SaveResult:
        db_note = self.store.get_for_update(session, note_id)
        result = self.store.update_in_session(
            session, db_note, restored_attributes(version), actor
        )
        if result.success:
            logger.info(
                f"Reverted note {note_id} to version {version.version} (id {version.id})"
            )
        return result

    def revert_in_session_strict(
        self, session: Session, note_id: int, version: NoteVersion, actor: Actor
    ) -> Note:
        return self.revert_in_session(session, note_id, version, actor).raise_for_errors(
            note_id=note_id
        )

    def _load_version(self, session: Session, note_id: int, version_id: int) -> NoteVersion:
        version = self.store.ledger.get(session, version_id)
        if version is None or version.note_id != note_id:
            raise VersionNotFoundError(version_id, note_id=note_id)
        return version
