"""Undoing every note change made by one user."""
import logging

from imgnote.exceptions import (
    BulkOperationError,
    ErrorCode,
    NoteNotFoundError,
    NoteValidationError,
)
from imgnote.models.schema import Actor, UndoResult
from imgnote.services.revert import RevertEngine
from imgnote.storage.base import transaction

logger = logging.getLogger(__name__)


class UndoCoordinator:
    """Atomic bulk undo keyed by the user who made the changes.

    All of the user's versions are deleted first, so the earliest version
    that survives on each note was written by someone else. Each touched
    note is reverted to that version. A note whose whole history belonged
    to the user keeps its current state, since nothing earlier is left to
    restore.
    """

    def __init__(self, reverter: RevertEngine):
        self.reverter = reverter
        self.store = reverter.store

    def undo_changes_by_user(self, user_id: int, actor: Actor) -> UndoResult:
        """Remove the user's versions and revert the notes they touched.

        Args:
            user_id: The user whose changes are undone.
            actor: The user performing the undo; reverts are stamped with it.

        Returns:
            UndoResult summarizing what changed.

        Raises:
            BulkOperationError: If any revert fails validation. Nothing is
                changed in that case, including the version deletions.
            StorageError: On database failure, also with full rollback.
        """
        result = UndoResult(user_id=user_id)
        ledger = self.store.ledger

        with transaction(self.store.session_factory, "undo_changes_by_user") as session:
            note_ids = ledger.note_ids_by_updater(session, user_id)
            result.versions_deleted = ledger.purge_by_updater(session, user_id)

            for note_id in note_ids:
                first = ledger.earliest_for_note(session, note_id)
                if first is None:
                    result.untouched_note_ids.append(note_id)
                    continue
                try:
                    self.reverter.revert_in_session_strict(session, note_id, first, actor)
                except (NoteValidationError, NoteNotFoundError) as e:
                    logger.error(
                        f"Undo of user {user_id} failed on note {note_id}: {e}. "
                        "Rolling back."
                    )
                    raise BulkOperationError(
                        f"Could not revert note {note_id}; undo rolled back",
                        operation="undo_changes_by_user",
                        total_count=len(note_ids),
                        failed_ids=[note_id],
                        code=ErrorCode.BULK_OPERATION_FAILED,
                        original_error=e,
                    ) from e
                result.reverted_note_ids.append(note_id)

        logger.info(
            f"Undid changes by user {user_id}: {result.versions_deleted} versions deleted, "
            f"{len(result.reverted_note_ids)} notes reverted, "
            f"{len(result.untouched_note_ids)} left as is"
        )
        return result
