"""Tests for the note create/update lifecycle."""
import pytest

from imgnote.exceptions import ErrorCode, NoteNotFoundError, NoteValidationError
from imgnote.models.schema import NoteDraft, NotePatch
from imgnote.services.note_service import NoteService


class TestCreateNote:
    """Tests for creating notes."""

    def test_create_stamps_actor_and_versions(self, note_service, alice):
        result = note_service.create_note(
            NoteDraft(post_id=1, x=10, y=10, width=20, height=20, body="hello"),
            alice,
        )

        assert result.success
        note = result.note
        assert note.id is not None
        assert note.version == 1
        assert note.creator_id == alice.id
        assert note.updater_id == alice.id
        assert note.updater_ip_addr == "10.0.0.1"
        assert note.is_active

        history = note_service.get_history(note.id)
        assert len(history) == 1
        snap = history[0]
        assert snap.version == 1
        assert snap.body == "hello"
        assert (snap.x, snap.y, snap.width, snap.height) == (10, 10, 20, 20)
        assert snap.updater_id == alice.id

    def test_persisted_note_matches_result(self, note_service, make_note, alice):
        note = make_note(alice, body="persisted")
        stored = note_service.get_note(note.id)
        assert stored.body == "persisted"
        assert stored.version == note.version

    @pytest.mark.parametrize("body", [None, "", "   \n"])
    def test_blank_body_becomes_placeholder(self, note_service, make_note, alice, body):
        note = make_note(alice, body=body)
        assert note.body == "(empty)"

    def test_custom_placeholder(self, engine, note_service, alice):
        service = NoteService(engine=engine, empty_body="[blank]")
        result = service.create_note(
            NoteDraft(post_id=1, x=0, y=0, width=1, height=1, body=""), alice
        )
        assert result.note.body == "[blank]"

    def test_missing_fields_reported_together(self, note_service, alice):
        result = note_service.create_note(NoteDraft(post_id=1), alice)

        assert not result.success
        assert result.note is None
        fields = {e.field for e in result.errors}
        assert fields == {"x", "y", "width", "height"}
        assert all(e.code == ErrorCode.FIELD_REQUIRED for e in result.errors)
        assert note_service.count_notes() == 0

    def test_missing_post(self, note_service, alice):
        result = note_service.create_note(
            NoteDraft(post_id=999, x=0, y=0, width=10, height=10), alice
        )

        assert not result.success
        assert [e.code for e in result.errors] == [ErrorCode.POST_NOT_FOUND]
        assert "post must exist" in result.error_messages()

    def test_note_locked_post(self, note_service, alice):
        result = note_service.create_note(
            NoteDraft(post_id=3, x=0, y=0, width=10, height=10, body="x"), alice
        )

        assert not result.success
        assert ErrorCode.POST_NOTE_LOCKED in [e.code for e in result.errors]
        assert note_service.count_notes() == 0

    def test_out_of_bounds(self, note_service, alice):
        result = note_service.create_note(
            NoteDraft(post_id=1, x=90, y=0, width=11, height=10), alice
        )

        assert not result.success
        assert [e.code for e in result.errors] == [ErrorCode.NOTE_OUT_OF_BOUNDS]
        assert result.errors[0].field == "note"

    def test_touching_border_is_valid(self, note_service, make_note, alice):
        note = make_note(alice, x=90, y=90, width=10, height=10)
        assert note.x + note.width == 100

    def test_raise_for_errors(self, note_service, alice):
        result = note_service.create_note(NoteDraft(post_id=999, x=0, y=0, width=1, height=1), alice)
        with pytest.raises(NoteValidationError) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.codes == [ErrorCode.POST_NOT_FOUND]

    def test_increments_updater_edit_count(self, note_service, make_note, alice, bob):
        make_note(alice)
        make_note(alice)
        assert note_service.users.get(alice.id).note_update_count == 2
        assert note_service.users.get(bob.id).note_update_count == 0


class TestUpdateNote:
    """Tests for updating notes."""

    def test_update_bumps_version_once(self, note_service, make_note, alice, bob):
        note = make_note(alice)

        result = note_service.update_note(note.id, NotePatch(x=30, body="moved"), bob)

        assert result.success
        updated = result.note
        assert updated.version == 2
        assert updated.x == 30
        assert updated.y == 10
        assert updated.body == "moved"
        assert updated.creator_id == alice.id
        assert updated.updater_id == bob.id
        assert updated.updater_ip_addr == "10.0.0.2"

        history = note_service.get_history(note.id)
        assert [v.version for v in history] == [1, 2]
        assert [v.updater_id for v in history] == [alice.id, bob.id]
        assert history[1].x == 30

    def test_each_update_appends_one_version(self, note_service, make_note, alice):
        note = make_note(alice)
        for i in range(3):
            note_service.update_note(note.id, NotePatch(body=f"edit {i}"), alice)

        assert note_service.get_note(note.id).version == 4
        assert len(note_service.get_history(note.id)) == 4

    def test_failed_update_changes_nothing(self, note_service, make_note, alice, bob):
        note = make_note(alice)

        result = note_service.update_note(note.id, NotePatch(width=500), bob)

        assert not result.success
        stored = note_service.get_note(note.id)
        assert stored.width == 20
        assert stored.version == 1
        assert stored.updater_id == alice.id
        assert len(note_service.get_history(note.id)) == 1
        assert note_service.users.get(bob.id).note_update_count == 0

    def test_update_on_locked_post_rejected(self, note_service, make_note, alice):
        note = make_note(alice)
        note_service.posts.set_note_locked(1)

        result = note_service.update_note(note.id, NotePatch(body="nope"), alice)

        assert not result.success
        assert [e.code for e in result.errors] == [ErrorCode.POST_NOTE_LOCKED]
        assert note_service.get_note(note.id).body == "a note"

    def test_update_to_missing_post(self, note_service, make_note, alice):
        note = make_note(alice)
        result = note_service.update_note(note.id, NotePatch(post_id=42), alice)
        assert [e.code for e in result.errors] == [ErrorCode.POST_NOT_FOUND]

    def test_blank_body_on_update(self, note_service, make_note, alice):
        note = make_note(alice)
        result = note_service.update_note(note.id, NotePatch(body="  "), alice)
        assert result.note.body == "(empty)"

    def test_update_missing_note(self, note_service, alice):
        with pytest.raises(NoteNotFoundError):
            note_service.update_note(12345, NotePatch(body="x"), alice)


class TestLastNotedAt:
    """Tests for the post's last_noted_at aggregate."""

    def test_set_on_create(self, note_service, make_note, alice):
        assert note_service.posts.fetch(1).last_noted_at is None
        note = make_note(alice)
        assert note_service.posts.fetch(1).last_noted_at == note.updated_at

    def test_refreshed_on_update(self, note_service, make_note, alice):
        note = make_note(alice)
        updated = note_service.update_note(note.id, NotePatch(body="again"), alice).note
        assert note_service.posts.fetch(1).last_noted_at == updated.updated_at

    def test_cleared_when_last_active_note_deactivated(self, note_service, make_note, alice):
        note = make_note(alice)
        note_service.update_note(note.id, NotePatch(is_active=False), alice)
        assert note_service.posts.fetch(1).last_noted_at is None

    def test_kept_while_another_note_active(self, note_service, make_note, alice):
        first = make_note(alice)
        make_note(alice)
        result = note_service.update_note(first.id, NotePatch(is_active=False), alice)
        assert note_service.posts.fetch(1).last_noted_at == result.note.updated_at

    def test_inactive_note_on_empty_post(self, note_service, make_note, alice):
        make_note(alice, post_id=2, is_active=False)
        assert note_service.posts.fetch(2).last_noted_at is None


class TestDisplayHelpers:
    """Tests for creator display names."""

    def test_creator_name_uses_spaces(self, note_service, make_note, bob):
        note = make_note(bob)
        assert note_service.creator_name(note) == "bob smith"

    def test_resolve_by_name(self, note_service, bob):
        assert note_service.users.resolve_id_by_name("Bob Smith") == bob.id
        assert note_service.users.resolve_id_by_name("nobody") is None
