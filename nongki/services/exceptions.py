"""Domain errors raised by services and mapped to HTTP responses by the routers."""

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base exception for domain rule violations."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize DomainError.

        Args:
            message: Error message shown to the client
            details: Extra fields returned alongside the message
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(DomainError):
    """Raised when a referenced user, session or request does not exist."""

    status_code = 404


class ConflictError(DomainError):
    """Raised when the requested state already exists."""

    status_code = 409


class ForbiddenError(DomainError):
    """Raised when the caller may not act on the resource."""

    status_code = 403


class InvalidRequestError(DomainError):
    """Raised when the request is well-formed but not allowed in the current state."""

    status_code = 400


class AuthenticationError(DomainError):
    """Raised when an identity token or session token cannot be verified."""

    status_code = 401
