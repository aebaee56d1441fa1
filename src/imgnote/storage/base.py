"""Shared transaction handling for the storage layer."""
import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from imgnote.exceptions import ErrorCode, StorageError

logger = logging.getLogger(__name__)


@contextmanager
def transaction(
    session_factory: Callable[[], Session],
    operation: str,
    code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
) -> Iterator[Session]:
    """Run a block in one transaction, committed on success.

    Any exception rolls the transaction back. Database errors are
    re-raised as StorageError; everything else propagates unchanged.
    """
    with session_factory() as session:
        try:
            with session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed, transaction rolled back: {e}")
            raise StorageError(
                f"Database error during {operation}",
                operation=operation,
                code=code,
                original_error=e,
            ) from e
