"""SQLAlchemy database models for imgnote."""
import logging
from typing import Optional

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        String, Text, create_engine, event, func, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from imgnote.config import config
from imgnote.models.schema import utc_now

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBPost(Base):
    """Database model for a post (the annotated image)."""
    __tablename__ = "posts"
    id = Column(Integer, primary_key=True)
    image_width = Column(Integer, nullable=False)
    image_height = Column(Integer, nullable=False)
    is_note_locked = Column(Boolean, default=False, nullable=False)
    last_noted_at = Column(DateTime(timezone=True), nullable=True)
    tag_string = Column(Text, default="", nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Post(id={self.id}, size={self.image_width}x{self.image_height}, "
            f"note_locked={self.is_note_locked})>"
        )


class DBUser(Base):
    """Database model for a user."""
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    note_update_count = Column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name='{self.name}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False, index=True)
    creator_id = Column(Integer, nullable=False, index=True)
    updater_id = Column(Integer, nullable=True)
    updater_ip_addr = Column(String(64), nullable=True)
    x = Column(Integer, nullable=False)
    y = Column(Integer, nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    body = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, post_id={self.post_id}, version={self.version})>"


class DBNoteVersion(Base):
    """Database model for an immutable note snapshot."""
    __tablename__ = "note_versions"
    id = Column(Integer, primary_key=True)
    note_id = Column(Integer, ForeignKey("notes.id"), nullable=False)
    post_id = Column(Integer, nullable=False)
    updater_id = Column(Integer, nullable=True, index=True)
    updater_ip_addr = Column(String(64), nullable=True)
    x = Column(Integer, nullable=False)
    y = Column(Integer, nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    body = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    # Per-note history is always scanned in insertion order
    __table_args__ = (
        Index("ix_note_versions_note_id_id", "note_id", "id"),
    )

    def __repr__(self) -> str:
        return (
            f"<NoteVersion(id={self.id}, note_id={self.note_id}, "
            f"version={self.version}, updater_id={self.updater_id})>"
        )


# SQL name of the Unicode-aware lower() registered on every connection.
# SQLite's built-in lower() only folds ASCII letters.
UNICODE_LOWER = "py_lower"


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def unicode_lower(expr):
    """SQL expression lowering ``expr`` the same way ``str.lower`` does."""
    return getattr(func, UNICODE_LOWER)(expr)


def _install_sqlite_hooks(engine: Engine, busy_timeout_ms: int) -> None:
    """Take over SQLite transaction handling.

    pysqlite's own BEGIN is disabled so that every transaction starts with
    BEGIN IMMEDIATE and holds the write lock from its first statement.
    Each connection also gets the ``py_lower`` function used by
    case-insensitive lookups.
    """

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.create_function(
            UNICODE_LOWER, 1, _unicode_lower, deterministic=True
        )
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(db_url: Optional[str] = None) -> Engine:
    """Create an engine for the configured (or given) SQLite URL."""
    url = db_url or config.get_db_url()
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout gets an empty database
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )
    _install_sqlite_hooks(engine, config.busy_timeout_ms)
    return engine


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create the engine, the tables and the full-text indexes."""
    engine = create_db_engine(db_url)
    Base.metadata.create_all(engine)
    init_fts5(engine)
    logger.debug(f"Database initialized: {engine.url}")
    return engine


def init_fts5(engine: Engine) -> None:
    """Create FTS5 tables over note bodies and post tags.

    Both are external-content tables kept in sync by triggers, so the
    indexed rowid is the id of the source row.
    """
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS note_body_fts USING fts5(
                body,
                content='notes',
                content_rowid='id'
            )
        """))
        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_body_ai AFTER INSERT ON notes BEGIN
                INSERT INTO note_body_fts(rowid, body) VALUES (NEW.id, NEW.body);
            END
        """))
        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_body_ad AFTER DELETE ON notes BEGIN
                INSERT INTO note_body_fts(note_body_fts, rowid, body)
                VALUES ('delete', OLD.id, OLD.body);
            END
        """))
        # Only body changes touch the index; version bumps do not
        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_body_au AFTER UPDATE OF body ON notes BEGIN
                INSERT INTO note_body_fts(note_body_fts, rowid, body)
                VALUES ('delete', OLD.id, OLD.body);
                INSERT INTO note_body_fts(rowid, body) VALUES (NEW.id, NEW.body);
            END
        """))

        # Tags keep their underscores as part of the token
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS post_tags_fts USING fts5(
                tag_string,
                content='posts',
                content_rowid='id',
                tokenize="unicode61 tokenchars '_'"
            )
        """))
        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS posts_tags_ai AFTER INSERT ON posts BEGIN
                INSERT INTO post_tags_fts(rowid, tag_string)
                VALUES (NEW.id, NEW.tag_string);
            END
        """))
        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS posts_tags_ad AFTER DELETE ON posts BEGIN
                INSERT INTO post_tags_fts(post_tags_fts, rowid, tag_string)
                VALUES ('delete', OLD.id, OLD.tag_string);
            END
        """))
        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS posts_tags_au AFTER UPDATE OF tag_string ON posts BEGIN
                INSERT INTO post_tags_fts(post_tags_fts, rowid, tag_string)
                VALUES ('delete', OLD.id, OLD.tag_string);
                INSERT INTO post_tags_fts(rowid, tag_string)
                VALUES (NEW.id, NEW.tag_string);
            END
        """))

        conn.commit()


def rebuild_fts_index(engine: Engine) -> int:
    """Rebuild both FTS5 indexes from their content tables.

    Returns:
        Number of notes indexed.
    """
    with engine.connect() as conn:
        conn.execute(text("INSERT INTO note_body_fts(note_body_fts) VALUES('rebuild')"))
        conn.execute(text("INSERT INTO post_tags_fts(post_tags_fts) VALUES('rebuild')"))
        conn.commit()
        count = conn.execute(text("SELECT COUNT(*) FROM notes")).scalar()
    return count or 0


def get_session_factory(engine: Engine) -> sessionmaker:
    """Get a session factory for the database.

    Loaded objects stay usable after commit so results can be converted
    to pydantic models outside the transaction.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)
