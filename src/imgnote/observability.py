"""Logging setup and per-operation metrics for imgnote.

Every public ``NoteService`` operation runs inside ``timed_operation``.
Each run ends with one outcome:

* ``ok``: the operation returned normally.
* ``rejected``: a save came back with validation errors. Nothing was
  written, but nothing went wrong either.
* ``error``: an exception escaped.
"""
import functools
import inspect
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from imgnote.models.schema import SaveResult, UndoResult

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "imgnote"
LOG_FILE_NAME = "imgnote.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Call arguments copied into the START/END log lines
TRACED_ARGUMENTS = ("note_id", "version_id", "target_post_id", "user_id")

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Union[str, Path],
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Write the ``imgnote`` loggers to a rotating ``imgnote.log`` in ``log_dir``.

    Configuring the same directory twice reuses its file handler instead of
    writing every record twice.

    Returns:
        Path of the log file.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = (log_path / LOG_FILE_NAME).resolve()

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = next(
        (
            h for h in package_logger.handlers
            if isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == log_file
        ),
        None,
    )
    if file_handler is None:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)
    file_handler.setLevel(level)

    if console and not any(type(h) is logging.StreamHandler for h in package_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    package_logger.info(f"Logging to {log_file}")
    return log_file


class Outcome(str, Enum):
    OK = "ok"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass
class OperationMetrics:
    """Counters for one operation name."""
    count: int = 0
    outcomes: Dict[Outcome, int] = field(default_factory=lambda: dict.fromkeys(Outcome, 0))
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    last_rejection: List[str] = field(default_factory=list)


class MetricsCollector:
    """Thread-safe in-process metrics keyed by operation name."""

    def __init__(self) -> None:
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()

    def record(
        self,
        operation: str,
        duration_ms: float,
        outcome: Outcome,
        detail: Any = None,
    ) -> None:
        """Record one run.

        ``detail`` is the error text for ``ERROR`` and the list of
        validation messages for ``REJECTED``.
        """
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.outcomes[outcome] += 1
            m.total_duration_ms += duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            if outcome is Outcome.ERROR:
                m.last_error = detail
                m.last_error_time = datetime.now(timezone.utc)
            elif outcome is Outcome.REJECTED:
                m.last_rejection = list(detail or [])

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation seen so far, JSON-serializable."""
        with self._lock:
            return {
                op: {
                    'count': m.count,
                    **{outcome.value: n for outcome, n in m.outcomes.items()},
                    'avg_duration_ms': round(m.total_duration_ms / m.count, 2),
                    'max_duration_ms': round(m.max_duration_ms, 2),
                    'last_error': m.last_error,
                    'last_error_time': (
                        m.last_error_time.isoformat() if m.last_error_time else None
                    ),
                    'last_rejection': list(m.last_rejection),
                }
                for op, m in self._metrics.items()
            }

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time an operation and record its outcome.

    The yielded dict is logged with the END line. Setting ``rejected`` in
    it to a non-empty list of messages marks the run as rejected.

    Example:
        with timed_operation('copy_note', note_id=4) as op:
            result = copier.copy_to(4, 9, actor)
            if not result.success:
                op['rejected'] = result.error_messages()
    """
    correlation_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()
    op: Dict[str, Any] = {}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    outcome = Outcome.OK
    detail: Any = None
    try:
        yield op
        if op.get('rejected'):
            outcome = Outcome.REJECTED
            detail = op['rejected']
    except Exception as e:
        outcome = Outcome.ERROR
        detail = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record(operation, duration_ms, outcome, detail)
        result_str = ', '.join(f'{k}={v}' for k, v in op.items())
        logger.debug(
            f"[{correlation_id}] END {operation} ({duration_ms:.2f}ms) "
            f"[{outcome.value}] {result_str}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run a service method inside timed_operation.

    Note, version, post and user ids are picked from the call arguments,
    positional or keyword. Rejected saves, undo summaries and result list
    sizes are added to the END line.
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            arguments = signature.bind_partial(*args, **kwargs).arguments
            context = {k: arguments[k] for k in TRACED_ARGUMENTS if k in arguments}

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, SaveResult):
                    if not result.success:
                        op['rejected'] = result.error_messages()
                elif isinstance(result, UndoResult):
                    op['versions_deleted'] = result.versions_deleted
                    op['reverted'] = len(result.reverted_note_ids)
                elif isinstance(result, list):
                    op['result_count'] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator
