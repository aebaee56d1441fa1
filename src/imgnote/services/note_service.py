"""Service layer tying the note store, ledger, engines and search together."""
import logging
from typing import Any, List, Optional

from imgnote.models.db_models import get_session_factory, init_db
from imgnote.models.schema import (
    Actor,
    Note,
    NoteDraft,
    NotePatch,
    NoteSearchParams,
    NoteVersion,
    SaveResult,
    UndoResult,
)
from imgnote.observability import traced
from imgnote.services.copy import CopyEngine
from imgnote.services.revert import RevertEngine
from imgnote.services.undo import UndoCoordinator
from imgnote.storage.note_store import NoteStore
from imgnote.storage.post_repository import PostRepository
from imgnote.storage.search_index import SearchIndex
from imgnote.storage.user_repository import UserRepository
from imgnote.storage.version_ledger import VersionLedger

logger = logging.getLogger(__name__)


class NoteService:
    """Entry point for callers such as an API layer or the CLI."""

    def __init__(self, engine: Optional[Any] = None, empty_body: Optional[str] = None):
        """Initialize the service.

        Args:
            engine: Pre-configured SQLAlchemy engine. When None, init_db()
                    creates one from config.
            empty_body: Placeholder for blank note bodies (config default).
        """
        self.engine = engine if engine is not None else init_db()
        self.session_factory = get_session_factory(self.engine)

        self.posts = PostRepository(self.session_factory)
        self.users = UserRepository(self.session_factory)
        self.ledger = VersionLedger(self.users)
        self.store = NoteStore(
            self.session_factory,
            posts=self.posts,
            users=self.users,
            ledger=self.ledger,
            empty_body=empty_body,
        )
        self.reverter = RevertEngine(self.store)
        self.copier = CopyEngine(self.store)
        self.undoer = UndoCoordinator(self.reverter)
        self.search_index = SearchIndex(self.session_factory)
        logger.debug("NoteService initialized")

    @traced("create_note")
    def create_note(self, draft: NoteDraft, actor: Actor) -> SaveResult:
        return self.store.create(draft, actor)

    @traced("update_note")
    def update_note(self, note_id: int, patch: NotePatch, actor: Actor) -> SaveResult:
        return self.store.update(note_id, patch, actor)

    def get_note(self, note_id: int) -> Optional[Note]:
        return self.store.get(note_id)

    def get_history(self, note_id: int) -> List[NoteVersion]:
        return self.store.get_versions(note_id)

    @traced("revert_note")
    def revert_note(self, note_id: int, version_id: int, actor: Actor) -> SaveResult:
        return self.reverter.revert_to(note_id, version_id, actor)

    @traced("revert_note")
    def revert_note_strict(self, note_id: int, version_id: int, actor: Actor) -> Note:
        return self.reverter.revert_to_strict(note_id, version_id, actor)

    @traced("copy_note")
    def copy_note(self, note_id: int, target_post_id: int, actor: Actor) -> SaveResult:
        return self.copier.copy_to(note_id, target_post_id, actor)

    @traced("undo_changes_by_user")
    def undo_changes_by_user(self, user_id: int, actor: Actor) -> UndoResult:
        return self.undoer.undo_changes_by_user(user_id, actor)

    @traced("search_notes")
    def search_notes(
        self,
        params: Optional[NoteSearchParams] = None,
        actor: Optional[Actor] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Note]:
        return self.search_index.search(params, actor, limit=limit, offset=offset)

    def count_notes(
        self, params: Optional[NoteSearchParams] = None, actor: Optional[Actor] = None
    ) -> int:
        return self.search_index.count(params, actor)

    def creator_name(self, note: Note) -> Optional[str]:
        """Display name of the note's creator, with spaces for underscores."""
        name = self.users.id_to_name(note.creator_id)
        return name.replace("_", " ") if name is not None else None
