"""Custom exceptions for imgnote.

Provides a structured exception hierarchy with error codes and
machine-readable error information.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    VERSION_NOT_FOUND = 1003

    # Field validation errors (2xxx)
    FIELD_REQUIRED = 2001
    POST_NOT_FOUND = 2002
    POST_NOTE_LOCKED = 2003
    NOTE_OUT_OF_BOUNDS = 2004
    POST_HAS_NO_SIZE = 2005

    # Storage errors (4xxx)
    STORAGE_WRITE_FAILED = 4002

    # Bulk operation errors (45xx)
    BULK_OPERATION_FAILED = 4501

    # Search errors (5xxx)
    SEARCH_FAILED = 5001
    SEARCH_INVALID_QUERY = 5002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001


@dataclass(frozen=True)
class FieldError:
    """A single validation failure scoped to one attribute."""

    field: str
    message: str
    code: ErrorCode

    def full_message(self) -> str:
        return f"{self.field} {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "message": self.message, "code": self.code.name}


class ImgnoteError(Exception):
    """Base exception for all imgnote errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.NOTE_VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteNotFoundError(ImgnoteError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Note {note_id} not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class VersionNotFoundError(ImgnoteError):
    """Raised when a note version does not exist or belongs to another note."""

    def __init__(self, version_id: int, note_id: Optional[int] = None):
        details: Dict[str, Any] = {"version_id": version_id}
        if note_id is not None:
            details["note_id"] = note_id
            message = f"Version {version_id} not found for note {note_id}"
        else:
            message = f"Version {version_id} not found"
        super().__init__(message, code=ErrorCode.VERSION_NOT_FOUND, details=details)
        self.version_id = version_id
        self.note_id = note_id


class NoteValidationError(ImgnoteError):
    """Raised when a note fails one or more validation steps.

    Carries every field error collected during validation so callers can
    present all violations at once.
    """

    def __init__(
        self,
        errors: Sequence[FieldError],
        note_id: Optional[int] = None,
        message: Optional[str] = None,
    ):
        self.errors: List[FieldError] = list(errors)
        details: Dict[str, Any] = {
            "errors": [e.full_message() for e in self.errors]
        }
        if note_id is not None:
            details["note_id"] = note_id
        super().__init__(
            message or "Validation failed: " + "; ".join(
                e.full_message() for e in self.errors
            ),
            code=ErrorCode.NOTE_VALIDATION_FAILED,
            details=details,
        )
        self.note_id = note_id

    @property
    def codes(self) -> List[ErrorCode]:
        return [e.code for e in self.errors]


class GeometryError(ImgnoteError):
    """Raised when a rectangle does not fit inside its image."""

    def __init__(self, message: str = "must be inside the image", **bounds: int):
        super().__init__(message, code=ErrorCode.NOTE_OUT_OF_BOUNDS, details=bounds)


class StorageError(ImgnoteError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class SearchError(ImgnoteError):
    """Raised for search-related errors."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        code: ErrorCode = ErrorCode.SEARCH_FAILED
    ):
        details = {}
        if query:
            details["query"] = query[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.query = query


class ConfigurationError(ImgnoteError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class BulkOperationError(ImgnoteError):
    """Raised when a multi-note operation fails and is rolled back.

    Attributes:
        operation: Name of the bulk operation (e.g. "undo_changes_by_user")
        total_count: Number of notes the operation covered
        failed_ids: IDs of the notes that caused the failure
        original_error: The underlying exception if applicable
    """

    def __init__(
        self,
        message: str,
        operation: str,
        total_count: int = 0,
        failed_ids: Optional[List[int]] = None,
        code: ErrorCode = ErrorCode.BULK_OPERATION_FAILED,
        original_error: Optional[Exception] = None
    ):
        if total_count < 0:
            raise ValueError("total_count must be non-negative")

        details: Dict[str, Any] = {
            "operation": operation,
            "total_count": total_count,
        }
        if failed_ids:
            details["failed_ids"] = failed_ids[:10]  # Truncate for safety
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.total_count = total_count
        self.failed_ids: List[int] = list(failed_ids) if failed_ids else []
        self.original_error = original_error
