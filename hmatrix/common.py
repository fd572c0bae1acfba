"""Checks, logging and configuration shared by the hmatrix fixtures.

Every failed check raises :class:`MatrixCheckError`. A failed check means the
calling benchmark is broken or the device is out of resources, so callers are
not expected to recover from it.
"""

import inspect
import logging
import os
from contextlib import contextmanager

import torch

logger = logging.getLogger(__name__)

HALF = torch.float16
# comparisons run in double so half rounding does not hide the error
WIDE = torch.float64

DEFAULT_DEVICE_ENV = "HMATRIX_DEVICE"
LOG_LEVEL_ENV = "HMATRIX_LOG_LEVEL"


class MatrixCheckError(RuntimeError):
    """A fatal precondition or device failure."""


def _caller_location(depth: int = 2) -> str:
    frame = inspect.stack()[depth]
    return f"{os.path.basename(frame.filename)}:{frame.lineno} {frame.function}"


def _fail(message: str) -> None:
    location = _caller_location(3)
    logger.error("Check failed at %s: %s", location, message)
    raise MatrixCheckError(f"{location}: {message}")


def check(condition, message: str) -> None:
    """Raise MatrixCheckError with ``message`` unless ``condition`` holds."""
    if not condition:
        _fail(message)


def check_not_none(value, what: str) -> None:
    if value is None:
        _fail(f"{what} must not be None")


def check_int(value, what: str) -> None:
    # bool is an int subclass but never a valid dimension
    if not isinstance(value, int) or isinstance(value, bool):
        _fail(f"{what} must be an int, got {value!r}")


def check_gt(value, bound, what: str) -> None:
    if not value > bound:
        _fail(f"{what} > {bound} failed, got {value}")


def check_eq(value, expected, what: str) -> None:
    if value != expected:
        _fail(f"{what} == {expected} failed, got {value}")


@contextmanager
def device_call(operation: str):
    """Turn an accelerator error raised inside the block into MatrixCheckError.

    Args:
        operation: Short description of the device operation, used in the message

    Example:
        >>> with device_call("allocate device buffer"):
        ...     buf = torch.empty(16, dtype=HALF, device="cuda")
    """
    try:
        yield
    except torch.cuda.OutOfMemoryError as e:
        logger.error("Device out of memory during %s", operation)
        raise MatrixCheckError(f"{operation}: device out of memory") from e
    except RuntimeError as e:
        if isinstance(e, MatrixCheckError):
            raise
        logger.error("Device error during %s: %s", operation, e)
        raise MatrixCheckError(f"{operation}: {e}") from e


def synchronize(device: torch.device) -> None:
    """Block until all queued work on ``device`` has finished."""
    if device.type == "cuda":
        torch.cuda.synchronize(device)


def default_device() -> torch.device:
    """Device used when a fixture is created without one.

    Read from the ``HMATRIX_DEVICE`` environment variable, ``cuda`` otherwise.
    """
    return torch.device(os.environ.get(DEFAULT_DEVICE_ENV, "cuda"))


def default_log_level() -> str:
    return os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
