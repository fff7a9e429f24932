"""Unit tests for FanoutDispatcher."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from nongki.push.auth_token import AuthTokenCache
from nongki.push.config import ApnsConfig
from nongki.push.dispatcher import FanoutDispatcher
from nongki.push.events import new_session
from nongki.push.exceptions import DispatchResolutionError
from nongki.push.models import (
    Actor,
    BatchResult,
    DeliveryOutcome,
    FailureKind,
    NotificationEvent,
    Platform,
    Priority,
    PushOptions,
    PushPayload,
)
from nongki.push.transport import ApnsTransport
from tests.conftest import make_endpoint, ok_response, rejection

pytestmark = pytest.mark.unit

ACTOR = Actor(id=1, username="budi", full_name="Budi Santoso")


@pytest.fixture
def event() -> NotificationEvent:
    return new_session(ACTOR, session_id=42)


def by_token(responses):
    """Answer each device token with its own response; unknown tokens succeed."""
    def responder(request):
        token = request.url.path.rsplit("/", 1)[-1]
        if token in responses:
            return responses[token]
        return ok_response(request)
    return responder


class TestDeliver:
    @pytest.mark.asyncio
    async def test_no_endpoints_means_no_token_and_no_requests(self, dispatcher, gateway, event):
        result = await dispatcher.deliver(event, [])

        assert result == BatchResult.empty()
        assert (result.success_count, result.failure_count, result.invalid_endpoints) == (0, 0, frozenset())
        assert dispatcher.token_cache.generated_count == 0
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_one_credential_per_batch(self, dispatcher, gateway, event):
        endpoints = [make_endpoint(i, owner_id=i) for i in range(1, 6)]

        result = await dispatcher.deliver(event, endpoints)

        assert result.success_count == 5
        assert dispatcher.token_cache.generated_count == 1
        assert len({request.headers["authorization"] for request in gateway.requests}) == 1
        assert sorted(gateway.tokens) == sorted(endpoint.token for endpoint in endpoints)

    @pytest.mark.asyncio
    async def test_partial_failures_are_isolated(self, dispatcher, gateway, event):
        good, bad, gone, busy = (make_endpoint(i) for i in range(1, 5))
        gateway.responder = by_token({
            bad.token: rejection(400, "BadDeviceToken"),
            gone.token: rejection(410, "Unregistered"),
            busy.token: rejection(429, "TooManyRequests"),
        })

        result = await dispatcher.deliver(event, [good, bad, gone, busy])

        assert result.success_count == 1
        assert result.failure_count == 3
        assert result.attempted == 4
        assert result.invalid_endpoints == frozenset({bad, gone})
        kinds = {outcome.endpoint: outcome.failure_kind for outcome in result.outcomes}
        assert kinds[good] is None
        assert kinds[busy] is FailureKind.REJECTED_TRANSIENT

    @pytest.mark.asyncio
    async def test_refused_provider_token_is_replaced_next_batch(self, dispatcher, gateway, event):
        gateway.responder = lambda request: rejection(403, "InvalidProviderToken")

        first = await dispatcher.deliver(event, [make_endpoint(1)])
        second = await dispatcher.deliver(event, [make_endpoint(1)])

        assert first.failure_count == 1
        assert second.failure_count == 1
        assert dispatcher.token_cache.generated_count == 2

    @pytest.mark.asyncio
    async def test_token_throttling_keeps_cached_token(self, dispatcher, gateway, event):
        gateway.responder = lambda request: rejection(429, "TooManyProviderTokenUpdates")

        await dispatcher.deliver(event, [make_endpoint(1)])
        await dispatcher.deliver(event, [make_endpoint(1)])

        assert dispatcher.token_cache.generated_count == 1

    @pytest.mark.asyncio
    async def test_oversized_payload_fails_every_endpoint_without_network(self, dispatcher, gateway):
        event = NotificationEvent(
            type=new_session(ACTOR, 1).type,
            actor_id=ACTOR.id,
            payload=PushPayload(custom={"blob": "x" * 5000}, sound="default"),
            options=PushOptions(),
            rule=new_session(ACTOR, 1).rule,
        )

        result = await dispatcher.deliver(event, [make_endpoint(1), make_endpoint(2)])

        assert result.failure_count == 2
        assert all(outcome.failure_kind is FailureKind.VALIDATION for outcome in result.outcomes)
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_background_priority_10_rejected_pre_send(self, dispatcher, gateway):
        event = NotificationEvent(
            type=new_session(ACTOR, 1).type,
            actor_id=ACTOR.id,
            payload=PushPayload(content_available=True),
            options=PushOptions(priority=Priority.IMMEDIATE),
            rule=new_session(ACTOR, 1).rule,
        )

        result = await dispatcher.deliver(event, [make_endpoint(1)])

        outcome = result.outcomes[0]
        assert outcome.failure_kind is FailureKind.VALIDATION
        assert outcome.attempts == 1
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_transient_then_alternate_port(self, dispatcher, gateway, event):
        calls = {"n": 0}

        def flaky(request):
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ConnectError("blocked", request=request)
            return ok_response(request)

        gateway.responder = flaky

        result = await dispatcher.deliver(event, [make_endpoint(1)])

        outcome = result.outcomes[0]
        assert result.success_count == 1
        assert outcome.attempts == 2
        assert {path.value for path in outcome.paths} == {443, 2197}

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_whole_batch(self, gateway, event):
        config = ApnsConfig(topic="com.example.nongki", retry_delay=0)
        dispatcher = FanoutDispatcher(config, transport=ApnsTransport(config, client=gateway.client()))

        result = await dispatcher.deliver(event, [make_endpoint(1), make_endpoint(2)])

        assert result.failure_count == 2
        assert all(outcome.failure_kind is FailureKind.CONFIGURATION for outcome in result.outcomes)
        assert all(outcome.attempts == 0 for outcome in result.outcomes)
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_malformed_key_fails_whole_batch(self, gateway, event):
        config = ApnsConfig(key_id="K", team_id="T", private_key="garbage", topic="com.example.nongki")
        dispatcher = FanoutDispatcher(config, transport=ApnsTransport(config, client=gateway.client()))

        result = await dispatcher.deliver(event, [make_endpoint(1)])

        assert result.outcomes[0].failure_kind is FailureKind.CONFIGURATION
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, apns_config, event):
        good, broken = make_endpoint(1), make_endpoint(2)

        async def attempt(credential, endpoint, payload, options):
            if endpoint == broken:
                raise RuntimeError("bug")
            return DeliveryOutcome.success(endpoint)

        retry_policy = MagicMock()
        retry_policy.attempt = AsyncMock(side_effect=attempt)
        dispatcher = FanoutDispatcher(apns_config, transport=MagicMock(), retry_policy=retry_policy)

        result = await dispatcher.deliver(event, [good, broken])

        assert result.success_count == 1
        failed = [outcome for outcome in result.outcomes if not outcome.succeeded]
        assert failed[0].endpoint == broken
        assert failed[0].failure_kind is FailureKind.INTERNAL

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, apns_config, event):
        apns_config.max_concurrency = 2
        in_flight = {"now": 0, "max": 0}

        async def slow(request):
            in_flight["now"] += 1
            in_flight["max"] = max(in_flight["max"], in_flight["now"])
            await asyncio.sleep(0.01)
            in_flight["now"] -= 1
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow))
        dispatcher = FanoutDispatcher(apns_config, transport=ApnsTransport(apns_config, client=client))

        result = await dispatcher.deliver(event, [make_endpoint(i) for i in range(1, 7)])

        assert result.success_count == 6
        assert in_flight["max"] == 2

    @pytest.mark.asyncio
    async def test_token_cache_shared_across_batches(self, apns_config, gateway, event):
        cache = AuthTokenCache()
        dispatcher = FanoutDispatcher(
            apns_config, transport=ApnsTransport(apns_config, client=gateway.client()), token_cache=cache
        )

        await dispatcher.deliver(event, [make_endpoint(1)])
        await dispatcher.deliver(event, [make_endpoint(2)])

        assert cache.generated_count == 1


class TestResolve:
    def test_resolution_error_is_wrapped(self, dispatcher, event):
        resolver = MagicMock()
        resolver.resolve.side_effect = RuntimeError("database is locked")

        with pytest.raises(DispatchResolutionError, match="database is locked"):
            dispatcher.resolve_endpoints(event, resolver, MagicMock())

    def test_store_error_is_wrapped(self, dispatcher, event):
        resolver = MagicMock()
        resolver.resolve.return_value = {2}
        store = MagicMock()
        store.endpoints_for.side_effect = RuntimeError("connection lost")

        with pytest.raises(DispatchResolutionError):
            dispatcher.resolve_endpoints(event, resolver, store)

    def test_no_recipients_skips_store(self, dispatcher, event):
        resolver = MagicMock()
        resolver.resolve.return_value = set()
        store = MagicMock()

        assert dispatcher.resolve_endpoints(event, resolver, store) == []
        store.endpoints_for.assert_not_called()

    def test_endpoints_loaded_for_event_platform(self, dispatcher, event):
        resolver = MagicMock()
        resolver.resolve.return_value = {2, 3}
        store = MagicMock()
        store.endpoints_for.return_value = [make_endpoint(1, owner_id=2)]

        endpoints = dispatcher.resolve_endpoints(event, resolver, store)

        assert endpoints == [make_endpoint(1, owner_id=2)]
        store.endpoints_for.assert_called_once_with({2, 3}, Platform.IOS)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_invalid_endpoints_reported_not_purged(self, dispatcher, gateway, event):
        endpoint = make_endpoint(1, owner_id=2)
        gateway.responder = lambda request: rejection(410, "Unregistered")
        resolver = MagicMock()
        resolver.resolve.return_value = {2}
        store = MagicMock()
        store.endpoints_for.return_value = [endpoint]

        result = await dispatcher.dispatch(event, resolver, store)

        assert result.invalid_endpoints == frozenset({endpoint})
        assert result.outcomes[0].attempts == 1
        store.purge.assert_not_called()
        store.delete.assert_not_called()
