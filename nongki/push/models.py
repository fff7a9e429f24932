"""Transport-agnostic push types shared by the dispatcher, retry policy and transport."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union


class Platform(str, enum.Enum):
    """Device platform an endpoint was registered from."""
    IOS = "ios"
    ANDROID = "android"


class PushType(str, enum.Enum):
    """Value of the ``apns-push-type`` header."""
    ALERT = "alert"
    BACKGROUND = "background"
    VOIP = "voip"


class Priority(int, enum.Enum):
    """Value of the ``apns-priority`` header."""
    POWER_SAVING = 5
    IMMEDIATE = 10


class DeliveryPath(int, enum.Enum):
    """Gateway port. 2197 is the alternate path for networks that block 443."""
    PRIMARY = 443
    ALTERNATE = 2197

    def alternate(self) -> "DeliveryPath":
        return DeliveryPath.ALTERNATE if self is DeliveryPath.PRIMARY else DeliveryPath.PRIMARY


class EventType(str, enum.Enum):
    """Types of social notifications."""
    NEW_SESSION = "new_session"
    SESSION_ENDED = "session_ended"
    SESSION_RESPONSE = "session_response"
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPTED = "friend_accepted"


class RecipientRule(str, enum.Enum):
    """How recipients of an event are resolved from the social graph."""
    ACCEPTED_FRIENDS = "accepted_friends"
    TARGET_USER = "target_user"


class DeliveryStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


class FailureKind(str, enum.Enum):
    """Why a delivery failed, in the order a send can fail."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    NETWORK_EXHAUSTED = "network_exhausted"
    REJECTED_PERMANENT = "rejected_permanent"
    REJECTED_TRANSIENT = "rejected_transient"
    REJECTED = "rejected"
    INTERNAL = "internal"


# =============================================================================
# Payload
# =============================================================================


@dataclass(frozen=True)
class SimpleAlert:
    """Alert rendered as a plain string."""
    text: str


@dataclass(frozen=True)
class DetailedAlert:
    """Alert rendered as an object with optional title and subtitle."""
    body: str
    title: Optional[str] = None
    subtitle: Optional[str] = None


Alert = Union[SimpleAlert, DetailedAlert]


@dataclass(frozen=True)
class PushPayload:
    """Notification content. Wire encoding happens in the transport."""
    alert: Optional[Alert] = None
    sound: Optional[str] = None
    badge: Optional[int] = None
    content_available: bool = False
    mutable_content: bool = False
    custom: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_background(self) -> bool:
        """Silent update: content-available set and no alert shown to the user."""
        return self.content_available and self.alert is None


@dataclass(frozen=True)
class PushOptions:
    """Per-notification delivery options. Unset values are derived from the payload."""
    push_type: Optional[PushType] = None
    priority: Optional[Priority] = None
    collapse_id: Optional[str] = None
    expiration: Optional[Union[int, datetime]] = None
    apns_id: Optional[uuid.UUID] = None


# =============================================================================
# Endpoints, events and outcomes
# =============================================================================


@dataclass(frozen=True)
class Endpoint:
    """A registered device token, detached from the database session."""
    id: int
    owner_id: int
    token: str
    platform: Platform
    last_updated: Optional[datetime] = None

    @property
    def short_token(self) -> str:
        """Token prefix safe for logs."""
        return f"{self.token[:10]}..."


@dataclass(frozen=True)
class Actor:
    """User performing a social action, as needed for notification copy."""
    id: int
    username: str
    full_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


@dataclass(frozen=True)
class NotificationEvent:
    """One social notification, built per triggering action and discarded after dispatch."""
    type: EventType
    actor_id: int
    payload: PushPayload
    options: PushOptions
    rule: RecipientRule
    target_user_id: Optional[int] = None
    platform: Platform = Platform.IOS


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of delivering one event to one endpoint, including all retries."""
    endpoint: Endpoint
    status: DeliveryStatus
    failure_reason: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    is_permanently_invalid: bool = False
    attempts: int = 1
    paths: Tuple[DeliveryPath, ...] = ()
    apns_id: Optional[str] = None
    status_code: Optional[int] = None
    # When the gateway last saw the token valid, reported with Unregistered
    invalid_since: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status is DeliveryStatus.SUCCESS

    @classmethod
    def success(cls, endpoint: Endpoint, apns_id: Optional[str] = None, status_code: int = 200) -> "DeliveryOutcome":
        return cls(endpoint=endpoint, status=DeliveryStatus.SUCCESS, apns_id=apns_id, status_code=status_code)

    @classmethod
    def failure(
        cls,
        endpoint: Endpoint,
        kind: FailureKind,
        reason: str,
        is_permanently_invalid: bool = False,
        status_code: Optional[int] = None,
        attempts: int = 1,
        invalid_since: Optional[datetime] = None,
    ) -> "DeliveryOutcome":
        return cls(
            endpoint=endpoint,
            status=DeliveryStatus.FAILED,
            failure_reason=reason,
            failure_kind=kind,
            is_permanently_invalid=is_permanently_invalid,
            status_code=status_code,
            attempts=attempts,
            invalid_since=invalid_since,
        )


@dataclass(frozen=True)
class BatchResult:
    """Aggregate of one dispatch batch."""
    success_count: int = 0
    failure_count: int = 0
    invalid_endpoints: FrozenSet[Endpoint] = frozenset()
    outcomes: Tuple[DeliveryOutcome, ...] = ()

    @property
    def attempted(self) -> int:
        return self.success_count + self.failure_count

    @classmethod
    def empty(cls) -> "BatchResult":
        return cls()

    @classmethod
    def from_outcomes(cls, outcomes: List[DeliveryOutcome]) -> "BatchResult":
        success_count = sum(1 for outcome in outcomes if outcome.succeeded)
        invalid = frozenset(
            outcome.endpoint for outcome in outcomes if outcome.is_permanently_invalid
        )
        return cls(
            success_count=success_count,
            failure_count=len(outcomes) - success_count,
            invalid_endpoints=invalid,
            outcomes=tuple(outcomes),
        )

    def invalid_since(self) -> Dict[str, datetime]:
        """Gateway invalidation times of invalid endpoints, by token, where reported."""
        return {
            outcome.endpoint.token: outcome.invalid_since
            for outcome in self.outcomes
            if outcome.is_permanently_invalid and outcome.invalid_since is not None
        }
