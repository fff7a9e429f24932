"""SQLAlchemy-backed recipient resolution and endpoint storage."""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nongki.database.models import DevicePlatform, DeviceToken, Friendship, FriendshipStatus
from nongki.push.models import Endpoint, NotificationEvent, Platform, RecipientRule

logger = structlog.get_logger()


def friendship_between(db: Session, user_a: int, user_b: int) -> Optional[Friendship]:
    """Return the edge between two users in either direction, if any."""
    return db.query(Friendship).filter(
        or_(
            and_(Friendship.user_id_1 == user_a, Friendship.user_id_2 == user_b),
            and_(Friendship.user_id_1 == user_b, Friendship.user_id_2 == user_a),
        )
    ).first()


def are_friends(db: Session, user_a: int, user_b: int) -> bool:
    friendship = friendship_between(db, user_a, user_b)
    return friendship is not None and friendship.status == FriendshipStatus.accepted


def accepted_friend_ids(db: Session, user_id: int) -> Set[int]:
    """IDs of users with an accepted edge to ``user_id``, whichever side sent the request."""
    rows = db.query(Friendship.user_id_1, Friendship.user_id_2).filter(
        Friendship.status == FriendshipStatus.accepted,
        or_(Friendship.user_id_1 == user_id, Friendship.user_id_2 == user_id),
    ).all()

    friend_ids = {user_id_2 if user_id_1 == user_id else user_id_1 for user_id_1, user_id_2 in rows}
    friend_ids.discard(user_id)
    return friend_ids


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored times are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_endpoint(row: DeviceToken) -> Endpoint:
    return Endpoint(
        id=row.id,
        owner_id=row.user_id,
        token=row.token,
        platform=Platform(row.platform.value),
        last_updated=row.last_updated,
    )


class SqlRecipientResolver:
    """Resolve an event's recipient user IDs from the friendship table."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, event: NotificationEvent) -> Set[int]:
        if event.rule is RecipientRule.TARGET_USER:
            if event.target_user_id is None:
                raise ValueError(f"{event.type.value} event has no target user")
            return {event.target_user_id}

        return accepted_friend_ids(self.db, event.actor_id)


class SqlEndpointStore:
    """Device token persistence."""

    def __init__(self, db: Session):
        self.db = db

    def endpoints_for(self, owner_ids: Iterable[int], platform: Platform) -> List[Endpoint]:
        owner_ids = list(owner_ids)
        if not owner_ids:
            return []

        rows = self.db.query(DeviceToken).filter(
            DeviceToken.user_id.in_(owner_ids),
            DeviceToken.platform == DevicePlatform(platform.value),
        ).order_by(DeviceToken.id).all()
        return [to_endpoint(row) for row in rows]

    def upsert(self, user_id: int, token: str, platform: str) -> DeviceToken:
        """
        Register a device token for a user.

        A token already registered to another user is reassigned to ``user_id``.
        Concurrent registrations of the same token resolve to a single row.
        """
        device = self._update_existing(user_id, token)
        if device is not None:
            return device

        device = DeviceToken(
            user_id=user_id,
            token=token,
            platform=DevicePlatform(platform),
            last_updated=datetime.now(timezone.utc),
        )
        self.db.add(device)
        try:
            self.db.commit()
        except IntegrityError:
            # Registered concurrently; fall back to updating that row
            self.db.rollback()
            device = self._update_existing(user_id, token)
            if device is None:
                raise
            return device

        self.db.refresh(device)
        logger.info("device_token_registered", user_id=user_id, token=f"{token[:10]}...")
        return device

    def _update_existing(self, user_id: int, token: str) -> Optional[DeviceToken]:
        device = self.db.query(DeviceToken).filter(DeviceToken.token == token).first()
        if device is None:
            return None

        if device.user_id != user_id:
            logger.info(
                "device_token_reassigned",
                token=f"{token[:10]}...",
                previous_user_id=device.user_id,
                user_id=user_id,
            )
        device.user_id = user_id
        device.last_updated = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(device)
        return device

    def delete(self, user_id: int, token: str) -> bool:
        """Remove a token owned by ``user_id``. Returns whether a row was deleted."""
        deleted = self.db.query(DeviceToken).filter(
            DeviceToken.token == token,
            DeviceToken.user_id == user_id,
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def purge(
        self,
        endpoints: Iterable[Endpoint],
        invalid_since: Optional[Dict[str, datetime]] = None,
    ) -> int:
        """
        Delete endpoints the gateway reported as permanently invalid.

        Args:
            endpoints: Endpoints to delete, matched by token
            invalid_since: Gateway invalidation time per token. A row registered
                after that time belongs to a reinstalled app and is kept.
        """
        tokens = [endpoint.token for endpoint in endpoints]
        if not tokens:
            return 0
        invalid_since = invalid_since or {}

        rows = self.db.query(DeviceToken).filter(DeviceToken.token.in_(tokens)).all()
        deleted = 0
        for row in rows:
            since = invalid_since.get(row.token)
            if since is not None and _as_utc(row.last_updated) > since:
                logger.info("device_token_purge_skipped", token=f"{row.token[:10]}...", user_id=row.user_id)
                continue
            self.db.delete(row)
            deleted += 1

        self.db.commit()
        logger.info("device_tokens_purged", count=deleted)
        return deleted
