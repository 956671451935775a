"""Domain error taxonomy.

Each error carries the HTTP status it maps to and a generic message that is
safe to show to clients. Anything more specific is logged, never returned.
"""


class TodoApiError(Exception):
    """Base class for errors raised by the service and storage layers."""

    status_code = 500
    detail = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.detail)


class ValidationError(TodoApiError):
    status_code = 400
    detail = "Invalid request"


class NotFoundError(TodoApiError):
    status_code = 404
    detail = "Resource not found"


class UserNotFound(NotFoundError):
    detail = "User not found"


class TodoNotFound(NotFoundError):
    detail = "Todo not found"


class ConflictError(TodoApiError):
    status_code = 409
    detail = "Resource already exists"


class UserAlreadyExists(ConflictError):
    detail = "User already exists"


class AuthenticationError(TodoApiError):
    status_code = 401
    detail = "Not authenticated"


class InvalidCredentials(AuthenticationError):
    detail = "Invalid email or password"


class MissingToken(AuthenticationError):
    detail = "Authorization token required"


class InvalidToken(AuthenticationError):
    detail = "Invalid or expired token"


class AuthorizationError(TodoApiError):
    status_code = 403
    detail = "Forbidden"


class InsufficientRole(AuthorizationError):
    detail = "Admin access required"


class SelfActionError(TodoApiError):
    status_code = 400
    detail = "Action not allowed on your own account"


class CannotDeleteSelf(SelfActionError):
    detail = "Cannot delete your own account"


class StorageError(TodoApiError):
    detail = "Database error"


class HashingError(TodoApiError):
    detail = "Failed to process password"


class SigningError(TodoApiError):
    detail = "Failed to generate token"
