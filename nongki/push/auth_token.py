"""APNs provider authentication tokens.

APNs accepts an ES256-signed JWT as the bearer credential for every request on a
connection. Tokens are valid for one hour and Apple throttles regeneration, so one
token is generated per batch and may be reused by later batches while it is fresh.

See: https://developer.apple.com/documentation/usernotifications/establishing-a-token-based-connection-to-apns
"""

import hashlib
import time
from typing import Callable, Optional

import jwt
import structlog
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey

from nongki.push.config import ApnsConfig
from nongki.push.exceptions import PushConfigurationError

logger = structlog.get_logger()

# Apple rejects provider tokens older than an hour
TOKEN_MAX_AGE_SECONDS = 3600


class AuthTokenCache:
    """Generate and reuse the provider token shared by all sends of a batch."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._token: Optional[str] = None
        self._issued_at: float = 0.0
        self._signer: Optional[tuple[str, str, str]] = None
        self.generated_count = 0

    def get_token(self, config: ApnsConfig) -> str:
        """
        Return a provider token for the given configuration.

        Args:
            config: APNs configuration holding key ID, team ID and private key

        Returns:
            Signed JWT for the ``authorization: bearer`` header

        Raises:
            PushConfigurationError: If credentials are missing or the key is malformed
        """
        config.require_credentials()

        signer = (config.key_id, config.team_id, key_fingerprint(config.private_key))
        max_age = min(config.token_refresh_seconds, TOKEN_MAX_AGE_SECONDS - 1)
        now = self._clock()

        if self._token and self._signer == signer and now - self._issued_at < max_age:
            return self._token

        self._token = self._generate(config, now)
        self._issued_at = now
        self._signer = signer
        return self._token

    def invalidate(self) -> None:
        """Drop the cached token so the next batch signs a new one."""
        self._token = None
        self._signer = None

    def _generate(self, config: ApnsConfig, now: float) -> str:
        signing_key = load_signing_key(config.private_key)
        token = jwt.encode(
            {"iss": config.team_id, "iat": int(now)},
            signing_key,
            algorithm="ES256",
            headers={"kid": config.key_id},
        )
        self.generated_count += 1
        logger.info("apns_token_generated", key_id=config.key_id, team_id=config.team_id)
        return token


def key_fingerprint(pem: str) -> str:
    return hashlib.sha256(pem.encode()).hexdigest()


def load_signing_key(pem: str) -> EllipticCurvePrivateKey:
    """Parse a .p8 key, rejecting anything that is not an EC private key."""
    try:
        key = serialization.load_pem_private_key(pem.encode(), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        logger.error("apns_signing_key_invalid", error=str(e))
        raise PushConfigurationError(f"APNs signing key is malformed: {e}") from e

    if not isinstance(key, EllipticCurvePrivateKey):
        raise PushConfigurationError("APNs signing key must be an EC (P-256) private key")

    return key
