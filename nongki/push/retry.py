"""Per-endpoint retry with gateway port fallback."""

import dataclasses
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from nongki.push.exceptions import PayloadValidationError, ProtocolRejection, TransientNetworkError
from nongki.push.models import DeliveryOutcome, DeliveryPath, Endpoint, FailureKind, PushOptions, PushPayload
from nongki.push.reasons import ReasonClass
from nongki.push.transport import ApnsTransport

logger = structlog.get_logger()

REJECTION_KINDS = {
    ReasonClass.PERMANENT_INVALID.value: FailureKind.REJECTED_PERMANENT,
    ReasonClass.TRANSIENT.value: FailureKind.REJECTED_TRANSIENT,
    ReasonClass.REJECTED.value: FailureKind.REJECTED,
}


def _gateway_time(timestamp: Optional[int]) -> Optional[datetime]:
    """Convert an APNs millisecond timestamp to an aware UTC datetime."""
    if timestamp is None:
        return None
    try:
        return datetime.fromtimestamp(int(timestamp) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _log_retry(retry_state: RetryCallState) -> None:
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "apns_send_retrying",
        attempt=retry_state.attempt_number,
        error=str(exception) if exception else None,
    )


class RetryPolicy:
    """
    Wrap single sends in bounded retries.

    Only transient network errors are retried. When port fallback is enabled each
    retry switches between port 443 and port 2197.
    """

    def __init__(
        self,
        transport: ApnsTransport,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        port_fallback: bool = True,
    ):
        self.transport = transport
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.port_fallback = port_fallback

    async def attempt(
        self,
        credential: str,
        endpoint: Endpoint,
        payload: PushPayload,
        options: PushOptions,
    ) -> DeliveryOutcome:
        """
        Deliver to one endpoint, retrying transient failures.

        Returns:
            The final outcome. Per-endpoint failures are returned, never raised.
        """
        path = DeliveryPath.PRIMARY
        paths: List[DeliveryPath] = []

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_fixed(self.retry_delay),
                retry=retry_if_exception_type(TransientNetworkError),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    if paths and self.port_fallback:
                        path = path.alternate()
                    paths.append(path)
                    outcome = await self.transport.send(credential, endpoint, payload, options, path)
                    return dataclasses.replace(outcome, attempts=len(paths), paths=tuple(paths))
        except PayloadValidationError as e:
            outcome = DeliveryOutcome.failure(endpoint, FailureKind.VALIDATION, e.message)
        except ProtocolRejection as e:
            outcome = DeliveryOutcome.failure(
                endpoint,
                REJECTION_KINDS.get(e.classification, FailureKind.REJECTED),
                e.reason,
                is_permanently_invalid=e.is_permanently_invalid,
                status_code=e.status_code,
                invalid_since=_gateway_time(e.timestamp),
            )
        except TransientNetworkError as e:
            logger.warning(
                "apns_send_exhausted",
                token=endpoint.short_token,
                attempts=len(paths),
                error=e.message,
            )
            outcome = DeliveryOutcome.failure(
                endpoint,
                FailureKind.NETWORK_EXHAUSTED,
                e.message,
                status_code=e.status_code,
            )

        return dataclasses.replace(outcome, attempts=len(paths), paths=tuple(paths))
