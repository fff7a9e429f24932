"""Friend requests and acceptance."""

from typing import Any, Dict

import structlog
from sqlalchemy.orm import Session

from nongki.database.models import Friendship, FriendshipStatus, User
from nongki.push import events
from nongki.services.exceptions import ConflictError, InvalidRequestError, NotFoundError
from nongki.services.notifier import Notifier
from nongki.services.session_service import actor_for
from nongki.services.social_graph import friendship_between

logger = structlog.get_logger()


class FriendService:
    """Friend graph mutations that notify the other party."""

    def __init__(self, db: Session, notifier: Notifier):
        self.db = db
        self.notifier = notifier

    async def request(self, user: User, username: str) -> Dict[str, Any]:
        """
        Send a friend request by username.

        If the target already sent a pending request to the user, that request is
        accepted instead and the target is told so.

        Raises:
            NotFoundError: If no user has that username
            InvalidRequestError: If the user targets themselves
            ConflictError: If the two are already friends or the request was already sent
        """
        target = self.db.query(User).filter(User.username == username).first()
        if target is None:
            raise NotFoundError("User not found")
        if target.id == user.id:
            raise InvalidRequestError("You cannot add yourself as a friend")

        existing = friendship_between(self.db, user.id, target.id)
        if existing is not None:
            if existing.status == FriendshipStatus.accepted:
                raise ConflictError("You are already friends with this user")
            if existing.user_id_1 == user.id:
                raise ConflictError("Friend request already sent")

            existing.status = FriendshipStatus.accepted
            self.db.commit()
            logger.info("friend_request_auto_accepted", user_id=user.id, requester_id=target.id)

            summary = await self.notifier.notify(self.db, events.friend_accepted(actor_for(user), target.id))
            return {
                "message": "Friend request accepted",
                "status": FriendshipStatus.accepted.value,
                "notifications": summary.to_dict(),
            }

        self.db.add(Friendship(user_id_1=user.id, user_id_2=target.id, status=FriendshipStatus.pending))
        self.db.commit()
        logger.info("friend_request_sent", user_id=user.id, target_id=target.id)

        summary = await self.notifier.notify(self.db, events.friend_request(actor_for(user), target.id))
        return {
            "message": "Friend request sent",
            "status": FriendshipStatus.pending.value,
            "notifications": summary.to_dict(),
        }

    async def accept(self, user: User, requester_id: int) -> Dict[str, Any]:
        """
        Accept a pending request from ``requester_id``.

        Raises:
            NotFoundError: If there is no pending request from that user
        """
        friendship = self.db.query(Friendship).filter(
            Friendship.user_id_1 == requester_id,
            Friendship.user_id_2 == user.id,
            Friendship.status == FriendshipStatus.pending,
        ).first()
        if friendship is None:
            raise NotFoundError("Friend request not found")

        friendship.status = FriendshipStatus.accepted
        self.db.commit()
        logger.info("friend_request_accepted", user_id=user.id, requester_id=requester_id)

        summary = await self.notifier.notify(self.db, events.friend_accepted(actor_for(user), requester_id))
        return {
            "message": "Friend request accepted",
            "status": FriendshipStatus.accepted.value,
            "notifications": summary.to_dict(),
        }
