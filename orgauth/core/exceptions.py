"""Custom exception classes for the access-control service."""

from typing import Optional

from fastapi import HTTPException, status


class AccessControlError(Exception):
    """Base exception for the access-control service."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(AccessControlError):
    """Raised for bad credentials, inactive accounts and invalid or reused tokens."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AccessControlError):
    """Raised when an authenticated principal lacks hierarchical authority."""
    status_code = status.HTTP_403_FORBIDDEN


class ResourceNotFoundError(AccessControlError):
    """Raised when a requested resource is not found."""
    status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictError(AccessControlError):
    """Raised when a resource already exists or a uniqueness rule is violated."""
    status_code = status.HTTP_409_CONFLICT


class ValidationError(AccessControlError):
    """Raised when input validation fails."""
    pass


class InternalError(AccessControlError):
    """Raised when a store or serialization call fails.

    The public message is always opaque; the original exception is kept on
    ``cause`` for logging.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, cause: Optional[BaseException] = None, context: str = ""):
        self.cause = cause
        self.context = context
        super().__init__("an unexpected error occurred")


# HTTP exception shortcuts
def forbidden(detail: str = "insufficient permissions") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )
