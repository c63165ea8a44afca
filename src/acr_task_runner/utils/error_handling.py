"""Helpers for errors that are logged with context before being raised or dropped."""

import contextlib
import functools
import logging
from typing import Callable, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)

# Most specific first; OSError catches the rest
_FILESYSTEM_ERROR_LABELS = (
    (PermissionError, "Permission denied"),
    (NotADirectoryError, "Not a directory"),
    (FileNotFoundError, "Missing path"),
    (OSError, "OS error"),
)


def log_and_ignore(
    error: Exception,
    message: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> None:
    """Record a best-effort failure, such as a rejected cancel request."""
    (logger_instance or logger).log(level, f"{message}: {error}")


def handle_filesystem_errors(
    operation: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
) -> Callable[[F], F]:
    """Decorator that logs filesystem errors from the wrapped call, then re-raises.

    Args:
        operation: What the call was doing, e.g. "validate search root"
        logger_instance: Logger to use (defaults to module logger)
    """
    log = logger_instance or logger

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except OSError as e:
                label = next(text for kind, text in _FILESYSTEM_ERROR_LABELS if isinstance(e, kind))
                log.error(f"{label} during {operation}: {e}")
                raise

        return wrapper

    return decorator


@contextlib.contextmanager
def best_effort(
    operation: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> Iterator[None]:
    """Run a cleanup block whose OS errors are logged instead of raised.

    Usage:
        with best_effort("removing downloaded run log"):
            path.unlink(missing_ok=True)
    """
    try:
        yield
    except OSError as e:
        (logger_instance or logger).log(level, f"Error during {operation}: {e}")
