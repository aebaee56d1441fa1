"""Composable note search over the notes table and its FTS5 indexes.

Each filter is a plain function taking and returning a ``Select``;
``composite`` applies the ones whose parameters are present.
"""
import logging
import re
from typing import List, Optional

from sqlalchemy import false, func, literal_column, select
from sqlalchemy.exc import OperationalError as SQLAlchemyOperationalError
from sqlalchemy.sql import Select, column, table

from imgnote.exceptions import ErrorCode, SearchError
from imgnote.models.db_models import DBNote, DBPost, DBUser, unicode_lower
from imgnote.models.schema import Actor, Note, NoteSearchParams
from imgnote.storage.note_store import note_to_model
from imgnote.storage.user_repository import normalize_user_name

logger = logging.getLogger(__name__)

WILDCARD = "*"

# Lightweight handles on the FTS5 virtual tables
_note_body_fts = table("note_body_fts", column("rowid"))
_post_tags_fts = table("post_tags_fts", column("rowid"))


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards so they match literally.

    Example:
        >>> escape_like_pattern("100% complete")
        '100\\\\% complete'
    """
    escape_table = str.maketrans(
        {
            "\\": "\\\\",
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)


def to_escaped_for_sql_like(query: str) -> str:
    """Turn a user wildcard query into a LIKE pattern (``*`` means any run)."""
    return escape_like_pattern(query).replace(WILDCARD, "%")


def to_fts_terms(query: str) -> Optional[str]:
    """Build an FTS5 query requiring every whitespace-separated term.

    Each term is quoted so operators and punctuation in user input are
    matched literally. Returns None when no term has a word character.
    """
    terms = []
    for token in query.split():
        if not re.search(r"\w", token):
            continue
        terms.append('"' + token.replace('"', '""') + '"')
    return " ".join(terms) if terms else None


def _fts_rowids(fts_table, query: str) -> Optional[Select]:
    terms = to_fts_terms(query)
    if terms is None:
        return None
    return select(fts_table.c.rowid).where(
        literal_column(fts_table.name).op("MATCH")(terms)
    )


def active(query: Select) -> Select:
    return query.where(DBNote.is_active.is_(True))


def body_matches(query: Select, text: str, actor: Optional[Actor] = None) -> Select:
    """Match note bodies.

    Privileged users may use ``*`` wildcards for a case-insensitive pattern
    match over the whole body; everyone else gets a full-text match.
    """
    if WILDCARD in text and actor is not None and actor.is_privileged:
        pattern = to_escaped_for_sql_like(text).lower()
        return query.where(unicode_lower(DBNote.body).like(pattern, escape="\\"))

    rowids = _fts_rowids(_note_body_fts, text)
    if rowids is None:
        return query.where(false())
    return query.where(DBNote.id.in_(rowids))


def post_tags_match(query: Select, text: str) -> Select:
    """Match notes whose post's tags contain every term."""
    rowids = _fts_rowids(_post_tags_fts, text)
    if rowids is None:
        return query.where(false())
    return query.join(DBPost, DBNote.post_id == DBPost.id).where(DBPost.id.in_(rowids))


def creator_name(query: Select, name: str) -> Select:
    """Match notes created by the named user (case-insensitive)."""
    creator_id = (
        select(DBUser.id)
        .where(unicode_lower(DBUser.name) == normalize_user_name(name).lower())
        .scalar_subquery()
    )
    return query.where(DBNote.creator_id == creator_id)


def composite(
    params: Optional[NoteSearchParams] = None,
    actor: Optional[Actor] = None,
    query: Optional[Select] = None,
) -> Select:
    """Apply every filter whose parameter is present and not blank."""
    q = query if query is not None else select(DBNote)
    if params is None:
        return q

    if params.active_only:
        q = active(q)
    if params.body_matches:
        q = body_matches(q, params.body_matches, actor)
    if params.post_id is not None:
        q = q.where(DBNote.post_id == params.post_id)
    if params.post_tags_match:
        q = post_tags_match(q, params.post_tags_match)
    if params.creator_name:
        q = creator_name(q, params.creator_name)
    if params.creator_id is not None:
        q = q.where(DBNote.creator_id == params.creator_id)
    return q


class SearchIndex:
    """Runs composite note searches."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def search(
        self,
        params: Optional[NoteSearchParams] = None,
        actor: Optional[Actor] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Note]:
        """Return matching notes in ascending id order."""
        query = composite(params, actor).order_by(DBNote.id.asc())
        if offset > 0:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        with self.session_factory() as session:
            db_notes = self._run(params, lambda: session.scalars(query).all())
            return [note_to_model(n) for n in db_notes]

    def count(
        self, params: Optional[NoteSearchParams] = None, actor: Optional[Actor] = None
    ) -> int:
        query = composite(params, actor, query=select(func.count(DBNote.id)).select_from(DBNote))
        with self.session_factory() as session:
            return self._run(params, lambda: session.scalar(query)) or 0

    @staticmethod
    def _run(params: Optional[NoteSearchParams], execute):
        """Execute a search query, reporting SQLite rejections as SearchError."""
        try:
            return execute()
        except SQLAlchemyOperationalError as e:
            logger.warning(f"Note search failed for {params!r}: {e}")
            raise SearchError(
                f"Search failed: {e.orig}",
                query=str(params.model_dump(exclude_none=True)) if params else None,
                code=ErrorCode.SEARCH_INVALID_QUERY,
            ) from e
