"""Fan-out of one notification event to every endpoint of its recipients."""

import asyncio
import time
from typing import Iterable, List, Optional, Protocol, Set

import structlog

from nongki.monitoring.metrics import (
    push_batch_duration,
    push_batches,
    push_deliveries,
    push_invalid_endpoints,
)
from nongki.push.auth_token import AuthTokenCache
from nongki.push.config import ApnsConfig
from nongki.push.exceptions import DispatchResolutionError, PushConfigurationError
from nongki.push.models import (
    BatchResult,
    DeliveryOutcome,
    Endpoint,
    FailureKind,
    NotificationEvent,
    Platform,
)
from nongki.push.reasons import is_provider_token_rejection
from nongki.push.retry import RetryPolicy
from nongki.push.transport import ApnsTransport

logger = structlog.get_logger()


class RecipientResolver(Protocol):
    def resolve(self, event: NotificationEvent) -> Set[int]:
        ...


class EndpointStore(Protocol):
    def endpoints_for(self, owner_ids: Iterable[int], platform: Platform) -> List[Endpoint]:
        ...


class FanoutDispatcher:
    """
    Deliver one event to all endpoints of its recipients.

    One provider token signs every send of a batch. Sends run concurrently, bounded
    by ``max_concurrency``, and each one is isolated: a failing endpoint never affects
    the others. Permanently invalid endpoints are reported in the result and left
    for the caller to purge.
    """

    def __init__(
        self,
        config: ApnsConfig,
        transport: Optional[ApnsTransport] = None,
        token_cache: Optional[AuthTokenCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.config = config
        self.transport = transport or ApnsTransport(config)
        self.token_cache = token_cache or AuthTokenCache()
        self.retry_policy = retry_policy or RetryPolicy(
            self.transport,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            port_fallback=config.port_fallback,
        )

    def resolve_endpoints(
        self,
        event: NotificationEvent,
        resolver: RecipientResolver,
        store: EndpointStore,
    ) -> List[Endpoint]:
        """
        Load the endpoints an event should reach.

        Raises:
            DispatchResolutionError: If recipients or endpoints could not be loaded
        """
        try:
            recipients = resolver.resolve(event)
            if not recipients:
                return []
            return list(store.endpoints_for(recipients, event.platform))
        except DispatchResolutionError:
            raise
        except Exception as e:
            logger.error("notification_resolution_failed", event_type=event.type.value, error=str(e))
            raise DispatchResolutionError(f"Could not resolve recipients for {event.type.value}: {e}") from e

    async def deliver(self, event: NotificationEvent, endpoints: List[Endpoint]) -> BatchResult:
        """Send the event to the given endpoints and aggregate the outcomes."""
        push_batches.labels(event_type=event.type.value).inc()

        if not endpoints:
            logger.info("notification_batch_empty", event_type=event.type.value, actor_id=event.actor_id)
            return BatchResult.empty()

        start = time.perf_counter()
        try:
            credential = self.token_cache.get_token(self.config)
        except PushConfigurationError as e:
            logger.error("notification_batch_unconfigured", event_type=event.type.value, error=e.message)
            outcomes = [
                DeliveryOutcome.failure(endpoint, FailureKind.CONFIGURATION, e.message, attempts=0)
                for endpoint in endpoints
            ]
        else:
            outcomes = await self._send_all(credential, event, endpoints)
            self._check_provider_token(outcomes)

        result = BatchResult.from_outcomes(outcomes)
        duration = time.perf_counter() - start
        self._record(event, result, duration)

        logger.info(
            "notification_batch_completed",
            event_type=event.type.value,
            actor_id=event.actor_id,
            attempted=result.attempted,
            successful=result.success_count,
            failed=result.failure_count,
            invalid=len(result.invalid_endpoints),
            duration_ms=round(duration * 1000, 2),
        )
        return result

    async def dispatch(
        self,
        event: NotificationEvent,
        resolver: RecipientResolver,
        store: EndpointStore,
    ) -> BatchResult:
        """Resolve recipients and deliver in one call."""
        endpoints = self.resolve_endpoints(event, resolver, store)
        return await self.deliver(event, endpoints)

    async def _send_all(
        self,
        credential: str,
        event: NotificationEvent,
        endpoints: List[Endpoint],
    ) -> List[DeliveryOutcome]:
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def send_with_limit(endpoint: Endpoint) -> DeliveryOutcome:
            async with semaphore:
                return await self.retry_policy.attempt(credential, endpoint, event.payload, event.options)

        results = await asyncio.gather(
            *(send_with_limit(endpoint) for endpoint in endpoints),
            return_exceptions=True,
        )

        outcomes: List[DeliveryOutcome] = []
        for endpoint, result in zip(endpoints, results):
            if isinstance(result, DeliveryOutcome):
                outcomes.append(result)
            elif isinstance(result, Exception):
                logger.error(
                    "notification_send_crashed",
                    token=endpoint.short_token,
                    error=str(result),
                    exc_info=result,
                )
                outcomes.append(DeliveryOutcome.failure(endpoint, FailureKind.INTERNAL, str(result)))
            else:
                raise result
        return outcomes

    def _check_provider_token(self, outcomes: List[DeliveryOutcome]) -> None:
        """Drop a provider token the gateway refused so the next batch signs a new one."""
        rejected = [
            outcome for outcome in outcomes
            if outcome.failure_reason and is_provider_token_rejection(outcome.failure_reason)
        ]
        if rejected:
            logger.warning(
                "apns_provider_token_rejected",
                reason=rejected[0].failure_reason,
                endpoints=len(rejected),
            )
            self.token_cache.invalidate()

    def _record(self, event: NotificationEvent, result: BatchResult, duration: float) -> None:
        push_batch_duration.labels(event_type=event.type.value).observe(duration)
        for outcome in result.outcomes:
            push_deliveries.labels(
                event_type=event.type.value,
                status=outcome.status.value,
                failure_kind=outcome.failure_kind.value if outcome.failure_kind else "",
            ).inc()
        if result.invalid_endpoints:
            push_invalid_endpoints.inc(len(result.invalid_endpoints))
