"""Pytest configuration and fixtures"""

import os

os.environ["APP_ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")

from typing import Callable, List, Optional

import httpx
import pytest
import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nongki.database.database import Base
from nongki.database.models import DevicePlatform, DeviceToken, Friendship, FriendshipStatus, User
from nongki.push.config import ApnsConfig
from nongki.push.dispatcher import FanoutDispatcher
from nongki.push.models import Endpoint, Platform
from nongki.push.transport import ApnsTransport


# Test database URL (in-memory SQLite for unit tests)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(autouse=True)
def configure_structlog():
    """Configure structlog for testing."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


# =============================================================================
# APNs fixtures
# =============================================================================


def generate_ec_key_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def ec_key_pem() -> str:
    """PKCS#8 P-256 key standing in for an APNs .p8 file"""
    return generate_ec_key_pem()


@pytest.fixture
def apns_config(ec_key_pem) -> ApnsConfig:
    return ApnsConfig(
        key_id="ABC123DEFG",
        team_id="TEAM123456",
        private_key=ec_key_pem,
        topic="com.example.nongki",
        environment="development",
        retry_delay=0,
    )


def ok_response(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers={"apns-id": request.headers.get("apns-id", "gateway-id")})


def rejection(status_code: int, reason: str, **extra) -> httpx.Response:
    return httpx.Response(status_code, json={"reason": reason, **extra})


class FakeGateway:
    """Records APNs requests and answers them with a programmable responder."""

    def __init__(self, responder: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: List[httpx.Request] = []
        self.responder = responder or ok_response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def tokens(self) -> List[str]:
        return [request.url.path.rsplit("/", 1)[-1] for request in self.requests]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def transport(apns_config, gateway) -> ApnsTransport:
    return ApnsTransport(apns_config, client=gateway.client())


@pytest.fixture
def dispatcher(apns_config, transport) -> FanoutDispatcher:
    return FanoutDispatcher(apns_config, transport=transport)


def make_endpoint(index: int, owner_id: int = 1, token: Optional[str] = None) -> Endpoint:
    return Endpoint(
        id=index,
        owner_id=owner_id,
        token=token or f"{index:064x}",
        platform=Platform.IOS,
    )


# =============================================================================
# Database helpers
# =============================================================================


def create_user(db, username: str, full_name: Optional[str] = None) -> User:
    user = User(apple_id=f"apple-{username}", username=username, full_name=full_name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def befriend(db, requester: User, recipient: User, status: FriendshipStatus = FriendshipStatus.accepted) -> Friendship:
    friendship = Friendship(user_id_1=requester.id, user_id_2=recipient.id, status=status)
    db.add(friendship)
    db.commit()
    return friendship


def register_device(db, user: User, token: str, platform: DevicePlatform = DevicePlatform.ios) -> DeviceToken:
    device = DeviceToken(user_id=user.id, token=token, platform=platform)
    db.add(device)
    db.commit()
    db.refresh(device)
    return device
