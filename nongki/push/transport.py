"""APNs HTTP/2 transport: one request per call, no retries.

See: https://developer.apple.com/documentation/usernotifications/sending-notification-requests-to-apns
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import httpx
import structlog

from nongki.push.config import ApnsConfig
from nongki.push.exceptions import PayloadValidationError, ProtocolRejection, TransientNetworkError
from nongki.push.models import (
    Alert,
    DeliveryOutcome,
    DeliveryPath,
    Endpoint,
    Priority,
    PushOptions,
    PushPayload,
    PushType,
    SimpleAlert,
)
from nongki.push.reasons import classify_reason

logger = structlog.get_logger()

# Maximum payload size in bytes per push type
PAYLOAD_LIMITS: Dict[PushType, int] = {
    PushType.ALERT: 4096,
    PushType.BACKGROUND: 4096,
    PushType.VOIP: 5120,
}
MAX_COLLAPSE_ID_BYTES = 64


def encode_alert(alert: Alert) -> Any:
    if isinstance(alert, SimpleAlert):
        return alert.text

    encoded: Dict[str, str] = {}
    if alert.title is not None:
        encoded["title"] = alert.title
    if alert.subtitle is not None:
        encoded["subtitle"] = alert.subtitle
    encoded["body"] = alert.body
    return encoded


def encode_payload(payload: PushPayload) -> Dict[str, Any]:
    """Build the JSON document APNs expects: ``aps`` plus top-level custom keys."""
    aps: Dict[str, Any] = {}
    if payload.alert is not None:
        aps["alert"] = encode_alert(payload.alert)
    if payload.sound is not None:
        aps["sound"] = payload.sound
    if payload.badge is not None:
        aps["badge"] = payload.badge
    if payload.content_available:
        aps["content-available"] = 1
    if payload.mutable_content:
        aps["mutable-content"] = 1

    document = {key: value for key, value in payload.custom.items() if key != "aps"}
    document["aps"] = aps
    return document


def resolve_push_type(payload: PushPayload, options: PushOptions) -> PushType:
    if options.push_type is not None:
        return options.push_type
    return PushType.BACKGROUND if payload.is_background else PushType.ALERT


def resolve_priority(push_type: PushType, options: PushOptions) -> Priority:
    if options.priority is not None:
        return options.priority
    return Priority.POWER_SAVING if push_type is PushType.BACKGROUND else Priority.IMMEDIATE


def _expiration_seconds(expiration) -> int:
    if isinstance(expiration, datetime):
        return int(expiration.timestamp())
    return int(expiration)


class ApnsTransport:
    """Low-level client for single APNs requests."""

    def __init__(self, config: ApnsConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the transport.

        Args:
            config: APNs configuration (host, topic, timeout)
            client: Preconfigured HTTP client. If None, an HTTP/2 client is created
                lazily and owned by the transport.
        """
        self.config = config
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled HTTP/2 client."""
        if self._client is None:
            self._client = httpx.AsyncClient(http2=True, timeout=self.config.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def build_url(self, endpoint: Endpoint, path: DeliveryPath) -> str:
        if path is DeliveryPath.PRIMARY:
            return f"https://{self.config.host}/3/device/{endpoint.token}"
        return f"https://{self.config.host}:{path.value}/3/device/{endpoint.token}"

    def build_request(
        self,
        credential: str,
        payload: PushPayload,
        options: PushOptions,
    ) -> Tuple[Dict[str, str], bytes]:
        """
        Validate a notification and build its headers and body.

        Raises:
            PayloadValidationError: If the payload or options break APNs rules
        """
        push_type = resolve_push_type(payload, options)
        priority = resolve_priority(push_type, options)

        if push_type is PushType.BACKGROUND and not payload.content_available:
            raise PayloadValidationError("Background pushes must set content-available")
        if priority is Priority.IMMEDIATE and (push_type is PushType.BACKGROUND or payload.is_background):
            raise PayloadValidationError("Background pushes must use priority 5")

        if options.collapse_id is not None and len(options.collapse_id.encode("utf-8")) > MAX_COLLAPSE_ID_BYTES:
            raise PayloadValidationError(f"apns-collapse-id exceeds {MAX_COLLAPSE_ID_BYTES} bytes")

        body = json.dumps(encode_payload(payload), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        limit = PAYLOAD_LIMITS[push_type]
        if len(body) > limit:
            raise PayloadValidationError(f"Payload is {len(body)} bytes, limit for {push_type.value} is {limit}")

        topic = self.config.topic
        if push_type is PushType.VOIP and not topic.endswith(".voip"):
            topic = f"{topic}.voip"

        headers = {
            "authorization": f"bearer {credential}",
            "apns-topic": topic,
            "apns-push-type": push_type.value,
            "apns-priority": str(priority.value),
            "content-type": "application/json",
        }
        if options.apns_id is not None:
            headers["apns-id"] = str(options.apns_id)
        if options.collapse_id is not None:
            headers["apns-collapse-id"] = options.collapse_id
        if options.expiration is not None:
            headers["apns-expiration"] = str(_expiration_seconds(options.expiration))

        return headers, body

    async def send(
        self,
        credential: str,
        endpoint: Endpoint,
        payload: PushPayload,
        options: PushOptions,
        path: DeliveryPath = DeliveryPath.PRIMARY,
    ) -> DeliveryOutcome:
        """
        Send one notification to one device.

        Args:
            credential: Provider token from AuthTokenCache
            endpoint: Target device
            payload: Notification content
            options: Push type, priority, collapse ID, expiration
            path: Gateway port to use

        Returns:
            Success outcome carrying the gateway ``apns-id``

        Raises:
            PayloadValidationError: Before any network I/O, for invalid notifications
            ProtocolRejection: When APNs answers with a reason code
            TransientNetworkError: On connection errors, timeouts and unreadable responses
        """
        headers, body = self.build_request(credential, payload, options)
        url = self.build_url(endpoint, path)

        try:
            response = await self._get_client().post(url, headers=headers, content=body)
        except httpx.TimeoutException as e:
            logger.warning("apns_timeout", token=endpoint.short_token, port=path.value)
            raise TransientNetworkError(f"APNs request timed out on port {path.value}: {e}") from e
        except httpx.RequestError as e:
            logger.warning("apns_request_failed", token=endpoint.short_token, port=path.value, error=str(e))
            raise TransientNetworkError(f"APNs request failed on port {path.value}: {e}") from e

        if 200 <= response.status_code < 300:
            logger.debug("apns_notification_sent", token=endpoint.short_token, port=path.value)
            return DeliveryOutcome.success(
                endpoint,
                apns_id=response.headers.get("apns-id"),
                status_code=response.status_code,
            )

        self._raise_rejection(endpoint, response)

    def _raise_rejection(self, endpoint: Endpoint, response: httpx.Response) -> None:
        """
        Turn a non-2xx response into ProtocolRejection.

        Raises:
            ProtocolRejection: For responses carrying a reason code
            TransientNetworkError: For responses without a readable reason
        """
        try:
            data = response.json()
            reason = data["reason"]
        except (ValueError, KeyError, TypeError):
            raise TransientNetworkError(
                f"Malformed APNs response (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        classification = classify_reason(reason)
        logger.warning(
            "apns_notification_rejected",
            token=endpoint.short_token,
            status_code=response.status_code,
            reason=reason,
            classification=classification.value,
        )
        raise ProtocolRejection(
            reason=reason,
            status_code=response.status_code,
            classification=classification.value,
            timestamp=data.get("timestamp"),
        )
