"""Domain-specific exceptions.

Every error the application raises on purpose carries an HTTP status and a
machine-readable code, so the presentation layer can map it without knowing
the concrete class.
"""

from typing import ClassVar


class DomainError(Exception):
    """Base exception for domain errors."""

    status_code: ClassVar[int] = 500
    error_code: ClassVar[str] = "DOMAIN_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    status_code = 400
    error_code = "VALIDATION_FAILED"


class NotFoundError(DomainError):
    """Raised when an entity does not exist."""

    status_code = 404
    error_code = "RESOURCE_NOT_FOUND"


class ConflictError(DomainError):
    """Raised when attempting to create a duplicate entity."""

    status_code = 409
    error_code = "RESOURCE_ALREADY_EXISTS"


class InvalidUndoTokenError(DomainError):
    """Raised when an undo token is unknown, consumed or in use."""

    status_code = 400
    error_code = "INVALID_UNDO_TOKEN"

    def __init__(self, message: str = "Invalid or expired undo token"):
        super().__init__(message)


class UndoTokenExpiredError(InvalidUndoTokenError):
    """Raised when an undo token is used after its window closed."""

    error_code = "UNDO_TOKEN_EXPIRED"

    def __init__(self, message: str = "Undo token has expired"):
        super().__init__(message)


class UndoTokenKindError(DomainError):
    """Raised when a single-entity token is used for a bulk undo or vice versa."""

    status_code = 400
    error_code = "UNDO_TOKEN_KIND_MISMATCH"


class OperationFailedError(DomainError):
    """Raised when a delete or restore fails for a non-domain reason."""

    status_code = 500
    error_code = "OPERATION_FAILED"
