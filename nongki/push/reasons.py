"""APNs rejection reason classification.

Reason codes come from the ``reason`` field of the JSON body APNs returns with every
non-2xx response. See:
https://developer.apple.com/documentation/usernotifications/handling-notification-responses-from-apns
"""

import enum


class ReasonClass(str, enum.Enum):
    """How a gateway rejection should be treated by callers."""
    PERMANENT_INVALID = "permanent_invalid"  # purge the endpoint
    TRANSIENT = "transient"  # gateway-side trouble, endpoint still good
    REJECTED = "rejected"  # request problem (topic, provider token, payload, ...)


REASON_TABLE: dict[str, ReasonClass] = {
    # Device token problems
    "BadDeviceToken": ReasonClass.PERMANENT_INVALID,
    "DeviceTokenNotForTopic": ReasonClass.PERMANENT_INVALID,
    "Unregistered": ReasonClass.PERMANENT_INVALID,
    "ExpiredToken": ReasonClass.PERMANENT_INVALID,
    # Gateway availability
    "TooManyRequests": ReasonClass.TRANSIENT,
    "InternalServerError": ReasonClass.TRANSIENT,
    "ServiceUnavailable": ReasonClass.TRANSIENT,
    "Shutdown": ReasonClass.TRANSIENT,
    "IdleTimeout": ReasonClass.TRANSIENT,
    # Request problems
    "BadCollapseId": ReasonClass.REJECTED,
    "BadExpirationDate": ReasonClass.REJECTED,
    "BadMessageId": ReasonClass.REJECTED,
    "BadPriority": ReasonClass.REJECTED,
    "BadTopic": ReasonClass.REJECTED,
    "DuplicateHeaders": ReasonClass.REJECTED,
    "MissingDeviceToken": ReasonClass.REJECTED,
    "MissingTopic": ReasonClass.REJECTED,
    "PayloadEmpty": ReasonClass.REJECTED,
    "TopicDisallowed": ReasonClass.REJECTED,
    "BadCertificate": ReasonClass.REJECTED,
    "BadCertificateEnvironment": ReasonClass.REJECTED,
    "ExpiredProviderToken": ReasonClass.REJECTED,
    "Forbidden": ReasonClass.REJECTED,
    "InvalidProviderToken": ReasonClass.REJECTED,
    "MissingProviderToken": ReasonClass.REJECTED,
    "UnrelatedKeyIdInToken": ReasonClass.REJECTED,
    "BadPath": ReasonClass.REJECTED,
    "MethodNotAllowed": ReasonClass.REJECTED,
    "PayloadTooLarge": ReasonClass.REJECTED,
    "TooManyProviderTokenUpdates": ReasonClass.REJECTED,
}


def classify_reason(reason: str) -> ReasonClass:
    """Map a gateway reason code to its class; unknown codes are plain rejections."""
    return REASON_TABLE.get(reason, ReasonClass.REJECTED)


def is_permanently_invalid(reason: str) -> bool:
    """Whether a device token rejected with this reason will never be accepted again."""
    return classify_reason(reason) is ReasonClass.PERMANENT_INVALID


# Rejections of the provider token itself. TooManyProviderTokenUpdates keeps the cached token.
PROVIDER_TOKEN_REASONS = frozenset({"ExpiredProviderToken", "InvalidProviderToken"})


def is_provider_token_rejection(reason: str) -> bool:
    """Whether the gateway refused the provider token rather than the notification."""
    return reason in PROVIDER_TOKEN_REASONS
