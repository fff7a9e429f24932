"""Exceptions for APNs push delivery."""

from nongki.push.reasons import is_permanently_invalid as is_invalid_token_reason


class PushError(Exception):
    """Base exception for all push delivery errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """
        Initialize PushError.

        Args:
            message: Error message
            status_code: Gateway HTTP status code if applicable
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class PushConfigurationError(PushError):
    """Raised when provider credentials or signing material are missing or malformed."""

    def __init__(self, message: str = "APNs configuration invalid") -> None:
        """Initialize PushConfigurationError."""
        super().__init__(message)


class PayloadValidationError(PushError):
    """Raised when a payload or its options violate APNs constraints before sending."""

    def __init__(self, message: str = "Push payload invalid") -> None:
        """Initialize PayloadValidationError."""
        super().__init__(message)


class TransientNetworkError(PushError):
    """Raised on connection failures, timeouts and unreadable gateway responses."""

    def __init__(self, message: str = "APNs network error", status_code: int | None = None) -> None:
        """Initialize TransientNetworkError."""
        super().__init__(message, status_code=status_code)


class ProtocolRejection(PushError):
    """Raised when the gateway answers with a structured rejection reason."""

    def __init__(
        self,
        reason: str,
        status_code: int,
        classification: str,
        timestamp: int | None = None,
    ) -> None:
        """
        Initialize ProtocolRejection.

        Args:
            reason: Gateway reason code (e.g. "BadDeviceToken")
            status_code: Gateway HTTP status code
            classification: One of the ReasonClass values
            timestamp: Milliseconds since epoch when the token became invalid (410 only)
        """
        self.reason = reason
        self.classification = classification
        self.timestamp = timestamp
        super().__init__(f"APNs rejected notification: {reason}", status_code=status_code)

    @property
    def is_permanently_invalid(self) -> bool:
        """Whether the endpoint will never accept a notification again."""
        return is_invalid_token_reason(self.reason)


class DispatchResolutionError(PushError):
    """Raised when recipients or endpoints for a dispatch could not be loaded."""

    def __init__(self, message: str = "Notification recipients could not be resolved") -> None:
        """Initialize DispatchResolutionError."""
        super().__init__(message)
