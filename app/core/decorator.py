import logging
from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class DBException(Exception):
    error_type = "database_error"

    def __init__(self, message: str, status_code: int = 400, **extra):
        self.message = message
        self.status_code = status_code
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "type": self.error_type, **self.extra}


class ValidationFailed(DBException):
    error_type = "validation_error"

    def __init__(self, message: str, **extra):
        super().__init__(message, 400, **extra)


class NotAuthorized(DBException):
    error_type = "authorization_error"

    def __init__(self, message: str = "Not allowed to access this resource", **extra):
        super().__init__(message, 403, **extra)


class NotFound(DBException):
    error_type = "not_found"

    def __init__(self, message: str, **extra):
        super().__init__(message, 404, **extra)


class Conflict(DBException):
    error_type = "conflict"

    def __init__(self, message: str, **extra):
        super().__init__(message, 409, **extra)


class AttemptLimitReached(DBException):
    error_type = "attempt_limit_reached"

    def __init__(self, limit: int):
        super().__init__(
            "Attempt limit reached",
            403,
            detail=f"You have reached the maximum number of attempts ({limit}) for this exam.",
            attempt_limit=limit,
        )


class UpstreamError(DBException):
    error_type = "upstream_error"

    def __init__(self, message: str, **extra):
        super().__init__(message, 502, **extra)


def db_exception(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError as e:
            # Most likely a duplicate entry
            logger.warning(f"Integrity error in {func.__name__}: {e.orig}")
            raise Conflict("Duplicate entry: already exists")
        except SQLAlchemyError as e:
            logger.error(f"Database error in {func.__name__}: {e}", exc_info=True)
            raise DBException(f"Database error occurred: {type(e).__name__}", 500)

    return wrapper
