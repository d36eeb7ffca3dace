"""Error taxonomy for the retro board.

Every error carries a machine-readable ``code`` so WebSocket and HTTP clients
can branch on it without parsing messages.
"""

from typing import Any, Optional

from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)


class RetroError(Exception):
    """Base class for all application-level errors."""

    code: str = "internal_error"
    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "detail": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(RetroError):
    """Bad input shape or content (unknown category, empty text, ...)."""

    code = "validation_error"
    status_code = HTTP_400_BAD_REQUEST


class NotFoundError(RetroError):
    """A request referenced an item that does not exist."""

    code = "not_found"
    status_code = HTTP_404_NOT_FOUND


class PersistenceError(RetroError):
    """The durable store failed; the mutation was rolled back."""

    code = "persistence_error"
    status_code = HTTP_503_SERVICE_UNAVAILABLE


class CollaboratorError(RetroError):
    """The external analyst failed. Never surfaced to clients."""

    code = "collaborator_error"


class CollaboratorTimeout(CollaboratorError):
    """The external analyst did not answer in time."""

    code = "collaborator_timeout"
