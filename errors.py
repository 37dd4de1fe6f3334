"""Error taxonomy shared by the service modules and the HTTP layer."""
import functools
import logging

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception for all domain errors."""

    status_code = 500

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400


class AuthError(AppError):
    """Missing/invalid credential or ownership violation."""

    status_code = 401


class IdentityError(AuthError):
    """An external identity assertion could not be resolved."""


class ForbiddenError(AuthError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """Duplicate registration or save."""

    status_code = 400


class ServerError(AppError):
    status_code = 500

    def __init__(self, message: str = "Server Error", *args: object) -> None:
        super().__init__(message, *args)


def storage_boundary(func):
    """Map document store failures raised inside ``func`` to ServerError."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PyMongoError as exc:
            logger.exception("Storage failure in %s", func.__qualname__)
            raise ServerError() from exc

    return wrapper
