"""Validation steps run before a note is written.

Each step is a named function returning the field errors it found. Steps run
in order and every error is collected, so a caller sees all violations at
once.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from imgnote.exceptions import ErrorCode, FieldError, GeometryError
from imgnote.models.schema import Post, Rect
from imgnote.services.geometry import validate_geometry
from imgnote.storage.post_repository import PostRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("post_id", "creator_id", "updater_id", "x", "y", "width", "height")
GEOMETRY_FIELDS = ("x", "y", "width", "height")


@dataclass
class ValidationContext:
    """The prospective note state and the collaborators the steps consult."""

    session: Session
    posts: PostRepository
    candidate: Dict[str, Any]
    _post: Optional[Post] = field(default=None, repr=False)
    _post_loaded: bool = field(default=False, repr=False)

    @property
    def post(self) -> Optional[Post]:
        if not self._post_loaded:
            post_id = self.candidate.get("post_id")
            self._post = self.posts.get(self.session, post_id) if post_id is not None else None
            self._post_loaded = True
        return self._post


def check_required_fields(ctx: ValidationContext) -> List[FieldError]:
    return [
        FieldError(name, "can't be blank", ErrorCode.FIELD_REQUIRED)
        for name in REQUIRED_FIELDS
        if ctx.candidate.get(name) is None
    ]


def check_post_exists(ctx: ValidationContext) -> List[FieldError]:
    post_id = ctx.candidate.get("post_id")
    if post_id is None:
        return []
    if not ctx.posts.exists(ctx.session, post_id):
        return [FieldError("post", "must exist", ErrorCode.POST_NOT_FOUND)]
    return []


def check_post_not_note_locked(ctx: ValidationContext) -> List[FieldError]:
    post_id = ctx.candidate.get("post_id")
    if post_id is None:
        return []
    if ctx.posts.is_note_locked(ctx.session, post_id):
        return [FieldError("post", "is note locked", ErrorCode.POST_NOTE_LOCKED)]
    return []


def check_within_image(ctx: ValidationContext) -> List[FieldError]:
    # Without a post or a complete rectangle there is nothing to measure
    post = ctx.post
    if post is None or any(ctx.candidate.get(f) is None for f in GEOMETRY_FIELDS):
        return []
    rect = Rect(*(ctx.candidate[f] for f in GEOMETRY_FIELDS))
    try:
        validate_geometry(rect, post.image_width, post.image_height)
    except GeometryError as e:
        return [FieldError("note", e.message, e.code)]
    return []


ValidationStep = Tuple[str, Callable[[ValidationContext], List[FieldError]]]

VALIDATION_STEPS: Sequence[ValidationStep] = (
    ("required_fields", check_required_fields),
    ("post_exists", check_post_exists),
    ("post_not_note_locked", check_post_not_note_locked),
    ("within_image", check_within_image),
)


def run_validation(
    session: Session,
    posts: PostRepository,
    candidate: Dict[str, Any],
    steps: Sequence[ValidationStep] = VALIDATION_STEPS,
) -> List[FieldError]:
    """Run every step against the candidate state and collect the errors."""
    ctx = ValidationContext(session=session, posts=posts, candidate=candidate)
    errors: List[FieldError] = []
    for name, step in steps:
        found = step(ctx)
        if found:
            logger.debug(f"Validation step {name} failed: {[e.full_message() for e in found]}")
        errors.extend(found)
    return errors
