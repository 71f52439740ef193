"""Base exception for blobstore.

Every error raised by the package carries a human message, a stable
machine-readable code, an HTTP-style status and a details dict so callers
(e.g. an upload endpoint) can map it to a response without string matching.
"""

from typing import Any


class BlobStoreException(Exception):
    """Base exception for all blobstore errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        status_code: HTTP-style status suggested for the presentation layer.
        details: Additional error context (e.g. key, field). Never holds secrets.
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
            status_code: Optional override of the class default status.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the payload an HTTP layer would serialize."""
        return {
            "error": self.message,
            "code": self.error_code,
            "status": self.status_code,
            "details": self.details,
        }
