"""Domain errors raised by the time tracking services."""
import functools
import logging

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """
    Base error carrying the HTTP status it maps to.

    4xx errors are reported with status "fail", everything else with
    status "error".
    """

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(AppError):
    """Missing or inconsistent identifiers/timestamps."""

    status_code = 400


class NotFoundError(AppError):
    """No matching open timer, or no entry with the given id."""

    status_code = 404


class PersistenceError(AppError):
    """Store unreachable, or a conditional write lost a race."""

    status_code = 500


def translate_store_errors(func):
    """Re-raise driver errors from a service coroutine as PersistenceError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as e:
            logger.error("Store operation %s failed: %s", func.__name__, e)
            raise PersistenceError("Time entry store operation failed") from e

    return wrapper
