"""Copying a note onto another post."""
import logging

from imgnote.exceptions import ErrorCode, FieldError, NoteNotFoundError
from imgnote.models.db_models import DBNote
from imgnote.models.schema import Actor, Rect, SaveResult
from imgnote.storage.base import transaction
from imgnote.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


class CopyEngine:
    """Duplicates notes across posts, rescaling to the target image size."""

    def __init__(self, store: NoteStore):
        self.store = store

    def copy_to(self, note_id: int, target_post_id: int, actor: Actor) -> SaveResult:
        """Copy a note onto ``target_post_id``.

        Geometry is scaled by the ratio of the two image sizes and rounded
        half up. The copy starts a fresh version history and is saved through
        the create path, so the scaled rectangle is validated against the
        target image like any new note.

        Raises:
            NoteNotFoundError: If the source note does not exist.
        """
        with transaction(self.store.session_factory, "copy_note") as session:
            source = session.get(DBNote, note_id)
            if source is None:
                raise NoteNotFoundError(note_id)

            source_post = self.store.posts.get(session, source.post_id)
            target_post = self.store.posts.get(session, target_post_id)
            if source_post is None or target_post is None:
                return SaveResult(
                    errors=[FieldError("post", "must exist", ErrorCode.POST_NOT_FOUND)]
                )
            if source_post.image_width <= 0 or source_post.image_height <= 0:
                logger.info(
                    f"Cannot copy note {note_id}: post {source_post.id} has no image size"
                )
                return SaveResult(
                    errors=[
                        FieldError(
                            "post", "has no image size to scale from",
                            ErrorCode.POST_HAS_NO_SIZE,
                        )
                    ]
                )

            rect = Rect(source.x, source.y, source.width, source.height).scaled(
                source_post.image_width,
                source_post.image_height,
                target_post.image_width,
                target_post.image_height,
            )

            result = self.store.create_in_session(
                session,
                {
                    "post_id": target_post.id,
                    "x": rect.x,
                    "y": rect.y,
                    "width": rect.width,
                    "height": rect.height,
                    "body": source.body,
                    "is_active": source.is_active,
                },
                actor,
            )
            if result.success:
                logger.info(
                    f"Copied note {note_id} to post {target_post.id} as note {result.note.id}"
                )
            return result
