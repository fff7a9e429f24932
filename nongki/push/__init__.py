"""APNs delivery: transport, provider tokens, retries and fan-out."""

from nongki.push.auth_token import AuthTokenCache
from nongki.push.config import ApnsConfig
from nongki.push.dispatcher import FanoutDispatcher
from nongki.push.events import NotificationEventBuilder
from nongki.push.exceptions import (
    DispatchResolutionError,
    PayloadValidationError,
    ProtocolRejection,
    PushConfigurationError,
    PushError,
    TransientNetworkError,
)
from nongki.push.models import BatchResult, DeliveryOutcome, Endpoint, NotificationEvent
from nongki.push.retry import RetryPolicy
from nongki.push.transport import ApnsTransport

__all__ = [
    "ApnsConfig",
    "ApnsTransport",
    "AuthTokenCache",
    "BatchResult",
    "DeliveryOutcome",
    "DispatchResolutionError",
    "Endpoint",
    "FanoutDispatcher",
    "NotificationEvent",
    "NotificationEventBuilder",
    "PayloadValidationError",
    "ProtocolRejection",
    "PushConfigurationError",
    "PushError",
    "RetryPolicy",
    "TransientNetworkError",
]
