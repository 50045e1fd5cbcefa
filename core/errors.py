# core/errors.py
"""
Exception hierarchy shared by the audit workflow, and its HTTP mapping.

Business logic raises these; views translate them with `http_error`.
"""
from fastapi import HTTPException, status


class AuditError(Exception):
    """Base class for workflow errors surfaced to the caller."""

    status_code = status.HTTP_400_BAD_REQUEST


class ValidationFailedError(AuditError):
    """Raised with every violation found, never just the first one."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Validation failed: " + "; ".join(self.errors))


class NotFoundError(AuditError):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(AuditError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(AuditError):
    status_code = status.HTTP_409_CONFLICT


class TokenError(AuditError):
    """Portal access token missing, unknown or expired."""

    status_code = status.HTTP_401_UNAUTHORIZED


class EmployeeNotFoundError(NotFoundError):
    pass


def http_error(exc: AuditError) -> HTTPException:
    """Translate a workflow error into the matching HTTPException."""
    return HTTPException(status_code=exc.status_code, detail=str(exc))
