"""Nongki session lifecycle: start, end and respond."""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from sqlalchemy.orm import Session

from nongki.database.models import HangoutSession, ResponseType, SessionResponse, User
from nongki.push import events
from nongki.push.models import Actor
from nongki.services.exceptions import ConflictError, ForbiddenError, InvalidRequestError, NotFoundError
from nongki.services.notifier import Notifier
from nongki.services.social_graph import are_friends

logger = structlog.get_logger()


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, username=user.username, full_name=user.full_name)


class SessionService:
    """Session operations. Each one commits before notifying friends."""

    def __init__(self, db: Session, notifier: Notifier):
        self.db = db
        self.notifier = notifier

    def _active_session_of(self, user_id: int):
        return self.db.query(HangoutSession).filter(
            HangoutSession.user_id == user_id,
            HangoutSession.end_time.is_(None),
        ).first()

    async def start(self, user: User) -> Dict[str, Any]:
        """
        Start a session and notify accepted friends.

        Raises:
            ConflictError: If the user already has an active session
        """
        active = self._active_session_of(user.id)
        if active is not None:
            raise ConflictError(
                "You already have an active nongki session",
                details={"sessionId": active.id},
            )

        session = HangoutSession(user_id=user.id)
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        logger.info("session_started", session_id=session.id, user_id=user.id)

        summary = await self.notifier.notify(self.db, events.new_session(actor_for(user), session.id))

        return {
            "sessionId": session.id,
            "message": "Nongki session started.",
            "notifications": summary.to_dict(),
        }

    async def end(self, user: User, session_id: int) -> Dict[str, Any]:
        """
        End the user's session and notify accepted friends.

        Raises:
            NotFoundError: If the session does not exist
            ForbiddenError: If the session belongs to someone else
            InvalidRequestError: If the session already ended
        """
        session = self.db.query(HangoutSession).filter(HangoutSession.id == session_id).first()
        if session is None:
            raise NotFoundError("Session not found")
        if session.user_id != user.id:
            raise ForbiddenError("You are not the owner of this session")
        if not session.is_active:
            raise InvalidRequestError("This session has already ended")

        session.end_time = datetime.now(timezone.utc)
        self.db.commit()
        logger.info("session_ended", session_id=session.id, user_id=user.id)

        summary = await self.notifier.notify(self.db, events.session_ended(actor_for(user), session.id))

        return {
            "sessionId": session.id,
            "message": "Nongki session ended.",
            "notifications": summary.to_dict(),
        }

    async def respond(self, user: User, session_id: int, response_type: ResponseType) -> Dict[str, Any]:
        """
        Record the user's response to a friend's active session and notify its owner.

        A second response from the same user replaces the first.

        Raises:
            NotFoundError: If no active session has this ID
            ForbiddenError: If the user owns the session or is not an accepted friend
                of its owner
        """
        session = self._active_by_id(session_id)
        if session is None:
            raise NotFoundError("Active session not found")
        if session.user_id == user.id:
            raise ForbiddenError("Cannot respond to your own session")
        if not are_friends(self.db, user.id, session.user_id):
            raise ForbiddenError("You are not friends with the session creator")

        response = self.db.query(SessionResponse).filter(
            SessionResponse.session_id == session.id,
            SessionResponse.responder_id == user.id,
        ).first()
        if response is None:
            response = SessionResponse(session_id=session.id, responder_id=user.id, response_type=response_type)
            self.db.add(response)
        else:
            response.response_type = response_type
            response.timestamp = datetime.now(timezone.utc)
        self.db.commit()
        logger.info(
            "session_response_recorded",
            session_id=session.id,
            responder_id=user.id,
            response_type=response_type.value,
        )

        event = events.session_response(actor_for(user), session.id, session.user_id, response_type.value)
        summary = await self.notifier.notify(self.db, event)

        return {
            "message": "Response recorded",
            "responseType": response_type.value,
            "notifications": summary.to_dict(),
        }

    def _active_by_id(self, session_id: int):
        return self.db.query(HangoutSession).filter(
            HangoutSession.id == session_id,
            HangoutSession.end_time.is_(None),
        ).first()
