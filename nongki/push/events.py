"""Notification events for social actions.

Each builder maps one action to the alert copy, custom payload fields, recipient
rule and delivery options the iOS client expects. No I/O happens here.
"""

from typing import Any, Dict, Optional, Union

from nongki.push.models import (
    Actor,
    DetailedAlert,
    EventType,
    NotificationEvent,
    Priority,
    PushOptions,
    PushPayload,
    PushType,
    RecipientRule,
    SimpleAlert,
)

DEFAULT_SOUND = "default"

RESPONSE_MESSAGES = {
    "coming": "is coming!",
    "coming_5": "is coming in 5 minutes.",
    "done": "is done.",
}


def _options(collapse_id: Optional[str] = None) -> PushOptions:
    return PushOptions(push_type=PushType.ALERT, priority=Priority.IMMEDIATE, collapse_id=collapse_id)


def _session_collapse_id(session_id: int) -> str:
    return f"session-{session_id}"


def new_session(actor: Actor, session_id: int) -> NotificationEvent:
    """A user started a session: tell all accepted friends."""
    return NotificationEvent(
        type=EventType.NEW_SESSION,
        actor_id=actor.id,
        payload=PushPayload(
            alert=DetailedAlert(
                title="Nongki Session Started",
                body=f"{actor.display_name} has started a nongki session!",
            ),
            sound=DEFAULT_SOUND,
            custom={
                "notificationType": EventType.NEW_SESSION.value,
                "sessionId": session_id,
                "initiatorId": actor.id,
                "initiatorUsername": actor.username,
            },
        ),
        options=_options(_session_collapse_id(session_id)),
        rule=RecipientRule.ACCEPTED_FRIENDS,
    )


def session_ended(actor: Actor, session_id: int) -> NotificationEvent:
    """A user ended a session: replaces the start notification on friends' devices."""
    return NotificationEvent(
        type=EventType.SESSION_ENDED,
        actor_id=actor.id,
        payload=PushPayload(
            alert=SimpleAlert(f"{actor.display_name} has ended their nongki session."),
            sound=DEFAULT_SOUND,
            custom={
                "notificationType": EventType.SESSION_ENDED.value,
                "sessionId": session_id,
                "enderId": actor.id,
                "enderUsername": actor.username,
            },
        ),
        options=_options(_session_collapse_id(session_id)),
        rule=RecipientRule.ACCEPTED_FRIENDS,
    )


def session_response(actor: Actor, session_id: int, owner_id: int, response_type: str) -> NotificationEvent:
    """A friend responded to a session: tell only the session owner."""
    if response_type not in RESPONSE_MESSAGES:
        raise ValueError(f"Unknown response type: {response_type}")

    return NotificationEvent(
        type=EventType.SESSION_RESPONSE,
        actor_id=actor.id,
        payload=PushPayload(
            alert=DetailedAlert(
                title="Session Response",
                body=f"{actor.display_name} {RESPONSE_MESSAGES[response_type]}",
            ),
            sound=DEFAULT_SOUND,
            custom={
                "notificationType": EventType.SESSION_RESPONSE.value,
                "sessionId": session_id,
                "responderId": actor.id,
                "responderUsername": actor.username,
                "responseType": response_type,
            },
        ),
        options=_options(),
        rule=RecipientRule.TARGET_USER,
        target_user_id=owner_id,
    )


def friend_request(actor: Actor, target_user_id: int) -> NotificationEvent:
    return NotificationEvent(
        type=EventType.FRIEND_REQUEST,
        actor_id=actor.id,
        payload=PushPayload(
            alert=DetailedAlert(
                title="New Friend Request",
                body=f"{actor.display_name} wants to be your friend.",
            ),
            sound=DEFAULT_SOUND,
            custom={
                "notificationType": EventType.FRIEND_REQUEST.value,
                "requesterId": actor.id,
                "requesterUsername": actor.username,
            },
        ),
        options=_options(),
        rule=RecipientRule.TARGET_USER,
        target_user_id=target_user_id,
    )


def friend_accepted(actor: Actor, requester_id: int) -> NotificationEvent:
    return NotificationEvent(
        type=EventType.FRIEND_ACCEPTED,
        actor_id=actor.id,
        payload=PushPayload(
            alert=DetailedAlert(
                title="Friend Request Accepted",
                body=f"{actor.display_name} accepted your friend request.",
            ),
            sound=DEFAULT_SOUND,
            custom={
                "notificationType": EventType.FRIEND_ACCEPTED.value,
                "accepterId": actor.id,
                "accepterUsername": actor.username,
            },
        ),
        options=_options(),
        rule=RecipientRule.TARGET_USER,
        target_user_id=requester_id,
    )


class NotificationEventBuilder:
    """Build events by action name, for callers that route on a string."""

    def build(self, action: Union[EventType, str], actor: Actor, context: Dict[str, Any]) -> NotificationEvent:
        """
        Build the event for an action.

        Args:
            action: Which social action happened, as an EventType or its value
            actor: User who performed it
            context: Action-specific values (session_id, owner_id, response_type,
                target_user_id, requester_id)

        Raises:
            ValueError: If the action is unknown or the context lacks a value it needs
        """
        try:
            action = EventType(action)
        except ValueError:
            raise ValueError(f"Unsupported notification action: {action}") from None

        try:
            if action == EventType.NEW_SESSION:
                return new_session(actor, context["session_id"])
            if action == EventType.SESSION_ENDED:
                return session_ended(actor, context["session_id"])
            if action == EventType.SESSION_RESPONSE:
                return session_response(
                    actor, context["session_id"], context["owner_id"], context["response_type"]
                )
            if action == EventType.FRIEND_REQUEST:
                return friend_request(actor, context["target_user_id"])
            if action == EventType.FRIEND_ACCEPTED:
                return friend_accepted(actor, context["requester_id"])
        except KeyError as e:
            raise ValueError(f"Missing {e.args[0]} for {action.value} notification") from e

        raise ValueError(f"Unsupported notification action: {action}")
