"""APNs provider configuration."""

from dataclasses import dataclass

from nongki.push.exceptions import PushConfigurationError

APNS_PRODUCTION_HOST = "api.push.apple.com"
APNS_SANDBOX_HOST = "api.sandbox.push.apple.com"


@dataclass
class ApnsConfig:
    """
    Credentials and delivery settings for the APNs gateway.

    Missing credentials are not rejected here: a dispatch batch validates them when
    it asks for a provider token, so the failure is reported per batch instead of
    breaking application start.

    Attributes:
        key_id: Key ID of the .p8 signing key
        team_id: Apple developer team ID (token issuer)
        private_key: PEM-encoded PKCS#8 EC private key
        topic: App bundle ID sent as ``apns-topic``
        environment: "development" (sandbox) or "production"
        timeout: Per-attempt request timeout in seconds
        max_retries: Retries after the first attempt on transient network errors
        retry_delay: Fixed wait between attempts in seconds
        port_fallback: Alternate between ports 443 and 2197 on retries
        max_concurrency: Upper bound on in-flight sends per batch
        token_refresh_seconds: Reuse a provider token while younger than this
    """

    key_id: str = ""
    team_id: str = ""
    private_key: str = ""
    topic: str = ""
    environment: str = "development"
    timeout: float = 10.0
    max_retries: int = 2
    retry_delay: float = 1.0
    port_fallback: bool = True
    max_concurrency: int = 100
    token_refresh_seconds: int = 3000

    def __post_init__(self) -> None:
        """Normalize key material and validate delivery settings."""
        # Keys pasted into env vars usually carry literal "\n" sequences
        self.private_key = self.private_key.replace("\\n", "\n").strip()

        if self.timeout <= 0:
            raise ValueError("timeout must be greater than 0")

        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")

        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")

        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    @property
    def host(self) -> str:
        return APNS_PRODUCTION_HOST if self.environment == "production" else APNS_SANDBOX_HOST

    def require_credentials(self) -> None:
        """Raise PushConfigurationError naming every missing credential."""
        missing = [
            name
            for name, value in (
                ("key_id", self.key_id),
                ("team_id", self.team_id),
                ("private_key", self.private_key),
                ("topic", self.topic),
            )
            if not value
        ]
        if missing:
            raise PushConfigurationError(f"APNs configuration missing: {', '.join(missing)}")

    @classmethod
    def from_settings(cls, settings) -> "ApnsConfig":
        return cls(
            key_id=settings.APNS_KEY_ID,
            team_id=settings.APNS_TEAM_ID,
            private_key=settings.APNS_PRIVATE_KEY,
            topic=settings.APPLE_BUNDLE_ID,
            environment=settings.APNS_ENVIRONMENT,
            timeout=settings.APNS_TIMEOUT_SECONDS,
            max_retries=settings.APNS_MAX_RETRIES,
            retry_delay=settings.APNS_RETRY_DELAY_SECONDS,
            port_fallback=settings.APNS_PORT_FALLBACK_ENABLED,
            max_concurrency=settings.APNS_MAX_CONCURRENCY,
            token_refresh_seconds=settings.APNS_TOKEN_REFRESH_SECONDS,
        )
