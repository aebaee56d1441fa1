"""Data models for imgnote."""

import datetime
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from imgnote.exceptions import FieldError, NoteValidationError


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(
    dt_value: Optional[datetime.datetime],
) -> Optional[datetime.datetime]:
    """Treat naive datetimes read back from SQLite as UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, None if None.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


@dataclass(frozen=True)
class Rect:
    """Position and size of a note, in image pixels."""

    x: int
    y: int
    width: int
    height: int

    def scaled(
        self, from_width: int, from_height: int, to_width: int, to_height: int
    ) -> "Rect":
        """Rescale from one image size to another, rounding half up.

        Integer arithmetic keeps exact halves exact: 50 px scaled from a
        100 px image to a 29 px one is 14.5 and becomes 15.
        """
        if from_width <= 0 or from_height <= 0:
            raise ValueError("cannot scale from an image without a size")
        return Rect(
            x=_scale_half_up(self.x, to_width, from_width),
            y=_scale_half_up(self.y, to_height, from_height),
            width=_scale_half_up(self.width, to_width, from_width),
            height=_scale_half_up(self.height, to_height, from_height),
        )


def _scale_half_up(value: int, numerator: int, denominator: int) -> int:
    """``round(value * numerator / denominator)`` with halves away from zero."""
    scaled = (2 * abs(value) * numerator + denominator) // (2 * denominator)
    return scaled if value >= 0 else -scaled


class Actor(BaseModel):
    """The user performing an operation, passed explicitly to every mutation."""

    id: int = Field(..., description="User ID of the acting user")
    ip_addr: str = Field(default="127.0.0.1", description="Client IP address")
    is_privileged: bool = Field(
        default=False, description="May run wildcard body searches"
    )

    model_config = {"frozen": True}


class Post(BaseModel):
    """The image a note is drawn on."""

    id: int
    image_width: int
    image_height: int
    is_note_locked: bool = False
    last_noted_at: Optional[datetime.datetime] = None
    tag_string: str = ""

    @field_validator("last_noted_at")
    @classmethod
    def _aware(cls, v: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        return ensure_timezone_aware(v)


class User(BaseModel):
    """A user as seen by the annotation store."""

    id: int
    name: str
    note_update_count: int = 0


class NoteDraft(BaseModel):
    """Attributes supplied when creating a note.

    Coordinates are optional here so that missing values are reported as
    validation errors rather than rejected at construction time.
    """

    post_id: Optional[int] = None
    x: Optional[int] = None
    y: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    body: Optional[str] = None
    is_active: bool = True

    model_config = {"extra": "forbid"}


class NotePatch(BaseModel):
    """Attributes changed by an update; unset fields are left alone."""

    post_id: Optional[int] = None
    x: Optional[int] = None
    y: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    body: Optional[str] = None
    is_active: Optional[bool] = None

    model_config = {"extra": "forbid"}

    def changes(self) -> Dict[str, Any]:
        """Return only the fields that were explicitly set."""
        return self.model_dump(exclude_unset=True)


class Note(BaseModel):
    """Current state of a note."""

    id: int
    post_id: int
    creator_id: int
    updater_id: Optional[int] = None
    updater_ip_addr: Optional[str] = None
    x: int
    y: int
    width: int
    height: int
    body: str
    is_active: bool = True
    version: int = 0
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


class NoteVersion(BaseModel):
    """An immutable snapshot of a note taken after one mutation."""

    id: int
    note_id: int
    post_id: int
    updater_id: Optional[int] = None
    updater_ip_addr: Optional[str] = None
    x: int
    y: int
    width: int
    height: int
    body: str
    is_active: bool
    version: int
    created_at: datetime.datetime

    model_config = {"frozen": True}

    @field_validator("created_at")
    @classmethod
    def _aware(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)


class NoteSearchParams(BaseModel):
    """Search parameters; blank values are treated as absent."""

    body_matches: Optional[str] = None
    post_id: Optional[int] = None
    post_tags_match: Optional[str] = None
    creator_name: Optional[str] = None
    creator_id: Optional[int] = None
    active_only: bool = False

    model_config = {"extra": "ignore"}

    @field_validator(
        "body_matches", "post_id", "post_tags_match", "creator_name", "creator_id",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


@dataclass
class SaveResult:
    """Outcome of a create/update: the saved note or the validation errors."""

    note: Optional[Note] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def error_messages(self) -> List[str]:
        return [e.full_message() for e in self.errors]

    def raise_for_errors(self, note_id: Optional[int] = None) -> Note:
        """Return the saved note, or raise NoteValidationError."""
        if self.errors:
            raise NoteValidationError(self.errors, note_id=note_id)
        return self.note


@dataclass
class UndoResult:
    """Summary of an undo of every change made by one user."""

    user_id: int
    versions_deleted: int = 0
    reverted_note_ids: List[int] = field(default_factory=list)
    untouched_note_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "versions_deleted": self.versions_deleted,
            "reverted_note_ids": list(self.reverted_note_ids),
            "untouched_note_ids": list(self.untouched_note_ids),
        }
