"""Sign in with Apple and the service's own session tokens."""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from sqlalchemy.orm import Session

from nongki.config import settings
from nongki.database.models import User
from nongki.services.exceptions import AuthenticationError

logger = structlog.get_logger()

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_JWKS_URL = "https://appleid.apple.com/auth/keys"


@dataclass
class AppleIdentity:
    """Verified claims from an Apple ID token."""

    subject: str
    email: Optional[str] = None


class AppleIdentityVerifier:
    """Verify Apple ID tokens against Apple's published signing keys."""

    def __init__(self, audience: str, verify: bool = True, jwks_client: Optional[jwt.PyJWKClient] = None):
        self.audience = audience
        self.verify_enabled = verify
        self._jwks_client = jwks_client

    def _get_jwks_client(self) -> jwt.PyJWKClient:
        if self._jwks_client is None:
            self._jwks_client = jwt.PyJWKClient(APPLE_JWKS_URL)
        return self._jwks_client

    def verify(self, id_token: str) -> AppleIdentity:
        """
        Verify an ID token and return its subject.

        With verification disabled the raw token is used as the subject, which only
        makes sense for local development.

        Raises:
            AuthenticationError: If the signature, issuer, audience or expiry is invalid
        """
        if not self.verify_enabled:
            return AppleIdentity(subject=id_token)

        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(id_token)
            claims = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.audience,
                issuer=APPLE_ISSUER,
            )
        except jwt.PyJWTError as e:
            logger.warning("apple_token_verification_failed", error=str(e))
            raise AuthenticationError(f"Apple token verification failed: {e}") from e

        return AppleIdentity(subject=claims["sub"], email=claims.get("email"))


def create_access_token(user_id: int, now: Optional[datetime] = None) -> str:
    """Issue the HS256 bearer token clients send on every request."""
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "exp": now + timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user ID carried by a session token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired") from e
    except jwt.PyJWTError as e:
        raise AuthenticationError("Could not validate credentials") from e

    user_id = payload.get("user_id")
    if not isinstance(user_id, int):
        raise AuthenticationError("Could not validate credentials")
    return user_id


def _unique_username(db: Session, email: Optional[str]) -> str:
    base = email.split("@")[0] if email else f"user_{secrets.token_hex(4)}"
    username = base
    while db.query(User.id).filter(User.username == username).first() is not None:
        username = f"{base}_{secrets.randbelow(1000)}"
    return username


def sign_in_with_apple(
    db: Session,
    identity: AppleIdentity,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
) -> User:
    """
    Find or create the user for an Apple identity.

    Apple only sends the user's name on the first sign-in, so names and email are
    filled in when provided and never cleared.
    """
    email = email or identity.email
    full_name = f"{first_name} {last_name}" if first_name and last_name else None

    user = db.query(User).filter(User.apple_id == identity.subject).first()
    if user is None:
        user = User(
            apple_id=identity.subject,
            username=_unique_username(db, email),
            full_name=full_name,
            email=_available_email(db, email),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("user_created", user_id=user.id, username=user.username)
        return user

    if full_name:
        user.full_name = full_name
    if email and not user.email:
        user.email = _available_email(db, email)
    db.commit()
    db.refresh(user)
    return user


def _available_email(db: Session, email: Optional[str]) -> Optional[str]:
    if email and db.query(User.id).filter(User.email == email).first() is None:
        return email
    return None
