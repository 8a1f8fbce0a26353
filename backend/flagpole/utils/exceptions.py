"""Custom exceptions and error handling utilities."""
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from flagpole.utils.logger import logger

GENERIC_INTERNAL_MESSAGE = "Internal server error"


class AppException(Exception):
    """Base exception for application errors.

    Every subclass carries a stable ``code`` so SDKs and the CLI can branch on
    the category instead of parsing messages.
    """

    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = GENERIC_INTERNAL_MESSAGE

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(AppException):
    """Raised when no credential, or a garbled one, is presented."""
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class InvalidApiKeyError(AppException):
    """Raised when a well-formed API key is unknown or revoked."""
    code = "invalid_api_key"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid API key"


class InvalidCredentialsError(AppException):
    """Raised when a session token fails verification or a login fails."""
    code = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid credentials"


class NotFoundError(AppException):
    """Raised when a resource is not found (or belongs to another tenant)."""
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class BadRequestError(AppException):
    """Raised when validation fails."""
    code = "bad_request"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class ConflictError(AppException):
    """Raised when a uniquely named resource already exists."""
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class InternalError(AppException):
    """Raised on store invariant violations."""
    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = GENERIC_INTERNAL_MESSAGE


def not_found_error(resource: str, identifier: Optional[str] = None) -> NotFoundError:
    """
    Create a standardized not-found error.

    Args:
        resource: Name of the resource (e.g., "Flag", "Project")
        identifier: Optional identifier that was not found

    Returns:
        NotFoundError with a uniform message
    """
    if identifier:
        return NotFoundError(f"{resource} '{identifier}' not found")
    return NotFoundError(f"{resource} not found")


def handle_database_error(error: Exception, operation: str) -> AppException:
    """
    Convert database errors to application errors.

    Args:
        error: The database error
        operation: Description of the operation that failed

    Returns:
        ConflictError for unique violations, InternalError otherwise
    """
    if isinstance(error, IntegrityError):
        return ConflictError(f"Resource already exists: {operation}")

    logger.error(f"Database error during {operation}: {error}", exc_info=error)
    return InternalError()


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render an AppException as ``{"error": ..., "code": ...}``."""
    message = exc.message
    if isinstance(exc, InternalError):
        logger.error(
            f"Internal error on {request.method} {request.url.path}: {exc.message}",
            exc_info=exc,
        )
        message = GENERIC_INTERNAL_MESSAGE
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message, "code": exc.code},
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Render an unhandled database error without leaking its detail."""
    logger.error(
        f"Database error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": GENERIC_INTERNAL_MESSAGE, "code": InternalError.code},
    )
