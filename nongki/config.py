"""Configuration settings for the Nongki service"""

from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    # Hosting platforms may provide PORT dynamically
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./nongki.db")

    # Session tokens issued by this service
    JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-key-change-in-production")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 30

    # Sign in with Apple
    APPLE_BUNDLE_ID: str = os.getenv("APPLE_BUNDLE_ID", "")
    # Local development only: treat the raw identity token as the Apple subject
    APPLE_VERIFY_ID_TOKEN: bool = True

    # APNs provider credentials (.p8 key)
    APNS_KEY_ID: str = os.getenv("APNS_KEY_ID", "")
    APNS_TEAM_ID: str = os.getenv("APNS_TEAM_ID", "")
    APNS_PRIVATE_KEY: str = os.getenv("APNS_PRIVATE_KEY", "")
    # "development" targets the sandbox gateway
    APNS_ENVIRONMENT: str = os.getenv("APNS_ENVIRONMENT", "development")

    # APNs delivery
    APNS_TIMEOUT_SECONDS: float = 10.0
    APNS_MAX_RETRIES: int = 2
    APNS_RETRY_DELAY_SECONDS: float = 1.0
    APNS_PORT_FALLBACK_ENABLED: bool = True
    APNS_MAX_CONCURRENCY: int = 100
    # Provider tokens are valid for one hour; reuse below that
    APNS_TOKEN_REFRESH_SECONDS: int = 3000

    # Notification dispatch: "await" reports counts, "detach" fires and forgets
    NOTIFICATION_DISPATCH_MODE: str = "await"
    PURGE_INVALID_DEVICE_TOKENS: bool = True

    # Monitoring
    SENTRY_DSN: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
