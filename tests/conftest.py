"""Common test fixtures for imgnote."""

import pytest

from imgnote.models.db_models import init_db
from imgnote.models.schema import Actor, NoteDraft, Post, User
from imgnote.observability import metrics
from imgnote.services.note_service import NoteService

ALICE = 1
BOB = 2
ADMIN = 3


@pytest.fixture
def db_url(tmp_path):
    """A fresh SQLite database file per test."""
    return f"sqlite:///{tmp_path / 'test_imgnote.db'}"


@pytest.fixture
def engine(db_url):
    engine = init_db(db_url)
    yield engine
    engine.dispose()


@pytest.fixture
def note_service(engine):
    """A NoteService with three posts and three users.

    Post 1 is 100x100, post 2 is 200x200, post 3 is 100x100 and note-locked.
    """
    service = NoteService(engine=engine)
    service.posts.add(Post(id=1, image_width=100, image_height=100,
                           tag_string="long_hair blue_eyes"))
    service.posts.add(Post(id=2, image_width=200, image_height=200,
                           tag_string="short_hair"))
    service.posts.add(Post(id=3, image_width=100, image_height=100,
                           is_note_locked=True, tag_string="long_hair"))
    service.users.add(User(id=ALICE, name="alice"))
    service.users.add(User(id=BOB, name="bob smith"))
    service.users.add(User(id=ADMIN, name="admin"))
    metrics.reset()
    yield service


@pytest.fixture
def alice():
    return Actor(id=ALICE, ip_addr="10.0.0.1")


@pytest.fixture
def bob():
    return Actor(id=BOB, ip_addr="10.0.0.2")


@pytest.fixture
def admin():
    return Actor(id=ADMIN, ip_addr="10.0.0.3", is_privileged=True)


@pytest.fixture
def make_note(note_service):
    """Create a note and return it, failing the test on validation errors."""

    def _make(actor, post_id=1, x=10, y=10, width=20, height=20, body="a note", **kw):
        result = note_service.create_note(
            NoteDraft(post_id=post_id, x=x, y=y, width=width, height=height,
                      body=body, **kw),
            actor,
        )
        assert result.success, result.error_messages()
        return result.note

    return _make
