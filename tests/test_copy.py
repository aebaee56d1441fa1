"""Tests for copying notes between posts."""
import pytest

from imgnote.exceptions import ErrorCode, NoteNotFoundError
from imgnote.models.schema import NotePatch, Post


class TestCopyNote:
    """Tests for CopyEngine through the service."""

    def test_copy_scales_to_target(self, note_service, make_note, alice, bob):
        source = make_note(alice, x=10, y=10, width=20, height=20, body="copy me")

        result = note_service.copy_note(source.id, 2, bob)

        assert result.success
        copy = result.note
        assert copy.id != source.id
        assert copy.post_id == 2
        assert (copy.x, copy.y, copy.width, copy.height) == (20, 20, 40, 40)
        assert copy.body == "copy me"
        assert copy.creator_id == bob.id
        assert copy.updater_id == bob.id

    def test_copy_starts_fresh_history(self, note_service, make_note, alice, bob):
        """The copy's counter restarts at 0 and the save bumps it, so it is stored at 1."""
        source = make_note(alice)
        note_service.update_note(source.id, NotePatch(body="v2"), alice)

        copy = note_service.copy_note(source.id, 2, bob).note

        assert copy.version == 1
        history = note_service.get_history(copy.id)
        assert len(history) == 1
        assert history[0].updater_id == bob.id
        assert note_service.get_note(source.id).version == 2

    def test_copy_rounds_half_up(self, note_service, make_note, alice):
        note_service.posts.add(Post(id=4, image_width=150, image_height=50))
        source = make_note(alice, x=1, y=3, width=3, height=5)

        copy = note_service.copy_note(source.id, 4, alice).note

        assert (copy.x, copy.y, copy.width, copy.height) == (2, 2, 5, 3)

    def test_copy_updates_target_last_noted_at(self, note_service, make_note, alice):
        source = make_note(alice)
        copy = note_service.copy_note(source.id, 2, alice).note
        assert note_service.posts.fetch(2).last_noted_at == copy.updated_at

    def test_copy_rounds_exact_half_up(self, note_service, make_note, alice):
        note_service.posts.add(Post(id=7, image_width=29, image_height=100))
        source = make_note(alice, x=50, y=0, width=10, height=10)

        copy = note_service.copy_note(source.id, 7, alice).note

        assert (copy.x, copy.y, copy.width, copy.height) == (15, 0, 3, 10)

    def test_copy_from_post_without_size(self, note_service, make_note, alice):
        note_service.posts.add(Post(id=6, image_width=0, image_height=0))
        source = make_note(alice, post_id=6, x=0, y=0, width=0, height=0)

        result = note_service.copy_note(source.id, 2, alice)

        assert not result.success
        assert [e.code for e in result.errors] == [ErrorCode.POST_HAS_NO_SIZE]
        assert note_service.count_notes() == 1

    def test_copy_overflowing_target(self, note_service, make_note, alice):
        note_service.posts.add(Post(id=5, image_width=50, image_height=50))
        source = make_note(alice, x=33, y=0, width=67, height=10)

        result = note_service.copy_note(source.id, 5, alice)

        assert not result.success
        assert [e.code for e in result.errors] == [ErrorCode.NOTE_OUT_OF_BOUNDS]
        assert note_service.count_notes() == 1

    def test_copy_to_locked_post(self, note_service, make_note, alice):
        source = make_note(alice)
        result = note_service.copy_note(source.id, 3, alice)
        assert [e.code for e in result.errors] == [ErrorCode.POST_NOTE_LOCKED]

    def test_copy_to_missing_post(self, note_service, make_note, alice):
        source = make_note(alice)
        result = note_service.copy_note(source.id, 404, alice)
        assert [e.code for e in result.errors] == [ErrorCode.POST_NOT_FOUND]

    def test_copy_missing_note(self, note_service, alice):
        with pytest.raises(NoteNotFoundError):
            note_service.copy_note(777, 2, alice)
