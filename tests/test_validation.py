"""Tests for the ordered note validation steps."""
from imgnote.exceptions import ErrorCode
from imgnote.services.validation import (
    VALIDATION_STEPS,
    check_within_image,
    run_validation,
)


def candidate(**overrides):
    values = {
        "post_id": 1,
        "creator_id": 1,
        "updater_id": 1,
        "x": 0,
        "y": 0,
        "width": 10,
        "height": 10,
    }
    values.update(overrides)
    return values


class TestRunValidation:
    """Tests for run_validation against seeded posts."""

    def test_valid_candidate(self, note_service):
        with note_service.session_factory() as session:
            assert run_validation(session, note_service.posts, candidate()) == []

    def test_errors_accumulate_across_steps(self, note_service):
        with note_service.session_factory() as session:
            errors = run_validation(
                session, note_service.posts, candidate(post_id=3, width=500, updater_id=None)
            )
        assert [e.code for e in errors] == [
            ErrorCode.FIELD_REQUIRED,
            ErrorCode.POST_NOTE_LOCKED,
            ErrorCode.NOTE_OUT_OF_BOUNDS,
        ]
        assert errors[0].full_message() == "updater_id can't be blank"
        assert errors[2].full_message() == "note must be inside the image"

    def test_missing_post_skips_bounds(self, note_service):
        with note_service.session_factory() as session:
            errors = run_validation(
                session, note_service.posts, candidate(post_id=50, x=1000)
            )
        assert [e.code for e in errors] == [ErrorCode.POST_NOT_FOUND]

    def test_missing_post_id_only_reports_blank(self, note_service):
        with note_service.session_factory() as session:
            errors = run_validation(session, note_service.posts, candidate(post_id=None))
        assert [(e.field, e.code) for e in errors] == [("post_id", ErrorCode.FIELD_REQUIRED)]

    def test_custom_steps(self, note_service):
        steps = [("within_image", check_within_image)]
        with note_service.session_factory() as session:
            errors = run_validation(
                session, note_service.posts, candidate(post_id=3, x=95), steps=steps
            )
        assert [e.code for e in errors] == [ErrorCode.NOTE_OUT_OF_BOUNDS]

    def test_step_names(self):
        assert [name for name, _ in VALIDATION_STEPS] == [
            "required_fields",
            "post_exists",
            "post_not_note_locked",
            "within_image",
        ]
