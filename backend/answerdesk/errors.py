"""
Domain error taxonomy.

Services raise these; the exception handlers registered in main.py turn
them into {"success": false, "error": ...} responses with the status code
carried by the exception.
"""


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or missing input."""
    status_code = 400
    default_message = "Invalid request"


class UnauthorizedError(AppError):
    """Missing or invalid caller identity."""
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    """Caller lacks access to the target resource."""
    status_code = 403
    default_message = "Access denied"


class NotFoundError(AppError):
    """Referenced entity absent or not owned by the caller."""
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    """Duplicate or concurrently modified record."""
    status_code = 409
    default_message = "Conflict"


class InvalidStateError(AppError):
    """Illegal state-machine transition."""
    status_code = 400
    default_message = "Invalid state transition"


class InternalError(AppError):
    """Unexpected store or runtime failure; the response carries a stack outside production."""
    status_code = 500
