"""Main FastAPI application for the Nongki service"""

import structlog
from fastapi import FastAPI

from nongki.api.routes import auth, friends, sessions, users
from nongki.config import settings
from nongki.database.database import Base, engine
from nongki.logging_config import configure_logging
from nongki.monitoring.metrics import router as metrics_router
from nongki.monitoring.sentry_config import init_sentry
from nongki.services.notifier import shutdown_notifier

configure_logging(level=settings.LOG_LEVEL, json_logs=settings.APP_ENV == "production")
logger = structlog.get_logger()

# Initialize Sentry if DSN is provided
init_sentry()

app = FastAPI(
    title="Nongki API",
    description="Hangout sessions with friends, delivered as push notifications",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Include routers
app.include_router(auth.router, tags=["auth"])
app.include_router(users.router, tags=["users"])
app.include_router(friends.router, tags=["friends"])
app.include_router(sessions.router, tags=["sessions"])
app.include_router(metrics_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "nongki"}


@app.on_event("startup")
async def startup_event():
    """Startup event handler"""
    logger.info("nongki_starting", environment=settings.APP_ENV)
    # Tests create their own schema on an in-memory database
    if settings.APP_ENV != "test":
        Base.metadata.create_all(bind=engine)


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown event handler"""
    logger.info("nongki_shutting_down")
    await shutdown_notifier()
