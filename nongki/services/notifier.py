"""Post-commit notification dispatch.

Domain operations commit first and then hand their event to the notifier. Whatever
happens during dispatch, the notifier returns a summary and never raises, so a
gateway outage cannot fail or roll back the operation that triggered it.
"""

import asyncio
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional, Set

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nongki.config import settings
from nongki.database.database import SessionLocal
from nongki.monitoring.metrics import push_dispatch_errors
from nongki.push.config import ApnsConfig
from nongki.push.dispatcher import FanoutDispatcher
from nongki.push.exceptions import DispatchResolutionError
from nongki.push.models import BatchResult, Endpoint, NotificationEvent
from nongki.services.social_graph import SqlEndpointStore, SqlRecipientResolver

logger = structlog.get_logger()

DISPATCH_MODES = ("await", "detach")
RESOLUTION_FAILED = "resolution_failed"
DELIVERY_FAILED = "delivery_failed"


@dataclass
class NotificationSummary:
    """Notification counts returned to API clients."""
    attempted: int = 0
    successful: int = 0
    failed: int = 0
    invalid: int = 0
    dispatched: bool = False
    # Set when dispatch could not run: "resolution_failed" or "delivery_failed"
    error: Optional[str] = None

    @classmethod
    def from_batch(cls, result: BatchResult) -> "NotificationSummary":
        return cls(
            attempted=result.attempted,
            successful=result.success_count,
            failed=result.failure_count,
            invalid=len(result.invalid_endpoints),
            dispatched=True,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class Notifier:
    """Run dispatches for committed domain operations."""

    def __init__(
        self,
        dispatcher: FanoutDispatcher,
        mode: str = "await",
        purge_invalid: bool = True,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        if mode not in DISPATCH_MODES:
            raise ValueError(f"Unknown dispatch mode: {mode}")

        self.dispatcher = dispatcher
        self.mode = mode
        self.purge_invalid = purge_invalid
        self.session_factory = session_factory
        self._background: Set[asyncio.Task] = set()

    async def notify(self, db: Session, event: NotificationEvent) -> NotificationSummary:
        """
        Dispatch an event after its domain change has been committed.

        Endpoints are resolved with the caller's session. In ``detach`` mode the
        delivery runs as a background task and only the endpoint count is reported.

        Returns:
            Counts for the API response. ``dispatched`` is False when delivery did
            not complete within the call, and ``error`` says why when it could not run.
        """
        try:
            endpoints = self.dispatcher.resolve_endpoints(
                event, SqlRecipientResolver(db), SqlEndpointStore(db)
            )
        except DispatchResolutionError as e:
            logger.error("notification_dispatch_skipped", event_type=event.type.value, error=e.message)
            push_dispatch_errors.labels(event_type=event.type.value, error_type="resolution").inc()
            return NotificationSummary(error=RESOLUTION_FAILED)

        if self.mode == "detach":
            task = asyncio.create_task(self._deliver_detached(event, endpoints))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return NotificationSummary(attempted=len(endpoints))

        try:
            result = await self.dispatcher.deliver(event, endpoints)
        except Exception as e:
            logger.error("notification_dispatch_failed", event_type=event.type.value, error=str(e), exc_info=True)
            push_dispatch_errors.labels(event_type=event.type.value, error_type=type(e).__name__).inc()
            return NotificationSummary(attempted=len(endpoints), error=DELIVERY_FAILED)

        if self.purge_invalid and result.invalid_endpoints:
            self._purge(db, result)

        return NotificationSummary.from_batch(result)

    async def drain(self) -> None:
        """Wait for detached deliveries still in flight."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _deliver_detached(self, event: NotificationEvent, endpoints: List[Endpoint]) -> None:
        try:
            result = await self.dispatcher.deliver(event, endpoints)
        except Exception as e:
            logger.error("notification_dispatch_failed", event_type=event.type.value, error=str(e), exc_info=True)
            push_dispatch_errors.labels(event_type=event.type.value, error_type=type(e).__name__).inc()
            return

        if self.purge_invalid and result.invalid_endpoints:
            db = self.session_factory()
            try:
                self._purge(db, result)
            finally:
                db.close()

    def _purge(self, db: Session, result: BatchResult) -> None:
        try:
            SqlEndpointStore(db).purge(result.invalid_endpoints, result.invalid_since())
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("device_token_purge_failed", count=len(result.invalid_endpoints), error=str(e))


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Return the process-wide notifier, built from settings on first use."""
    global _notifier
    if _notifier is None:
        dispatcher = FanoutDispatcher(ApnsConfig.from_settings(settings))
        _notifier = Notifier(
            dispatcher,
            mode=settings.NOTIFICATION_DISPATCH_MODE,
            purge_invalid=settings.PURGE_INVALID_DEVICE_TOKENS,
        )
    return _notifier


async def shutdown_notifier() -> None:
    """Finish detached deliveries and close the gateway connection pool."""
    global _notifier
    if _notifier is None:
        return
    await _notifier.drain()
    await _notifier.dispatcher.transport.close()
    _notifier = None
