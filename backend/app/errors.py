"""Domain error taxonomy.

Services raise these; each route translates them to an ``HTTPException`` in a
single step using ``status_code`` and ``detail``.
"""

from __future__ import annotations


class AppError(Exception):
    status_code = 500
    default_detail = "internal_server_error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(AppError):
    status_code = 400
    default_detail = "invalid_request"


class NotFoundError(AppError):
    status_code = 404
    default_detail = "not_found"


class ConflictError(AppError):
    status_code = 400
    default_detail = "conflict"


class InvalidReferenceError(AppError):
    """Foreign key violation: the payload points at a row that does not exist."""

    status_code = 400
    default_detail = "invalid_reference"


class UnexpectedError(AppError):
    pass


class AuthError(AppError):
    status_code = 401
    default_detail = "could_not_validate_credentials"


class InvalidCredentials(AuthError):
    default_detail = "invalid_credentials"


class InvalidToken(AuthError):
    default_detail = "invalid_token"


class Unauthenticated(AuthError):
    default_detail = "not_authenticated"


class Forbidden(AuthError):
    status_code = 403
    default_detail = "insufficient_permissions"


class ProjectNotFound(AuthError, NotFoundError):
    status_code = 404
    default_detail = "project_not_found"
