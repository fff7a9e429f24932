"""Database models for Nongki"""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from nongki.database.database import Base


class FriendshipStatus(str, enum.Enum):
    """Friend request state."""
    pending = "pending"
    accepted = "accepted"


class ResponseType(str, enum.Enum):
    """How a friend answered a session."""
    coming = "coming"
    done = "done"
    coming_5 = "coming_5"


class DevicePlatform(str, enum.Enum):
    """Platform a device token was registered from."""
    ios = "ios"
    android = "android"


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    apple_id = Column(String, unique=True, index=True, nullable=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    email = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    sessions = relationship("HangoutSession", back_populates="user", cascade="all, delete-orphan")
    device_tokens = relationship("DeviceToken", back_populates="user", cascade="all, delete-orphan")


class Friendship(Base):
    """
    Friend edge between two users.

    user_id_1 sent the request and user_id_2 received it. Accepted edges are
    symmetric for everything except who gets the acceptance notification.
    """
    __tablename__ = "friendships"

    user_id_1 = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    user_id_2 = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    status = Column(
        Enum(FriendshipStatus, name="friendship_status_enum"),
        nullable=False,
        default=FriendshipStatus.pending
    )
    created_at = Column(DateTime, server_default=func.now())


class HangoutSession(Base):
    """Nongki session; active while end_time is null"""
    __tablename__ = "hangout_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(DateTime, server_default=func.now(), nullable=False)
    end_time = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="sessions")
    responses = relationship("SessionResponse", back_populates="session", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.end_time is None


class SessionResponse(Base):
    """A friend's answer to a session; one per responder, replaced on re-answer"""
    __tablename__ = "session_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("hangout_sessions.id", ondelete="CASCADE"), nullable=False)
    responder_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    response_type = Column(Enum(ResponseType, name="response_type_enum"), nullable=False)
    timestamp = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    session = relationship("HangoutSession", back_populates="responses")

    __table_args__ = (
        UniqueConstraint("session_id", "responder_id", name="uq_session_responder"),
    )


class DeviceToken(Base):
    """Registered push endpoint; a token belongs to one user at a time"""
    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String, unique=True, index=True, nullable=False)
    platform = Column(Enum(DevicePlatform, name="device_platform_enum"), nullable=False)
    last_updated = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="device_tokens")
