"""Unit tests for AuthTokenCache."""

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from nongki.push.auth_token import AuthTokenCache, load_signing_key
from nongki.push.config import ApnsConfig
from nongki.push.exceptions import PushConfigurationError
from tests.conftest import generate_ec_key_pem

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return AuthTokenCache(clock=clock)


class TestGenerate:
    def test_token_is_es256_with_kid_and_team_issuer(self, apns_config):
        token = AuthTokenCache().get_token(apns_config)

        header = jwt.get_unverified_header(token)
        assert header["alg"] == "ES256"
        assert header["kid"] == "ABC123DEFG"

        public_key = load_signing_key(apns_config.private_key).public_key()
        claims = jwt.decode(token, public_key, algorithms=["ES256"])
        assert claims["iss"] == "TEAM123456"
        assert isinstance(claims["iat"], int)

    def test_escaped_newlines_in_key_are_accepted(self, ec_key_pem):
        config = ApnsConfig(
            key_id="K",
            team_id="T",
            private_key=ec_key_pem.replace("\n", "\\n"),
            topic="com.example.nongki",
        )

        assert AuthTokenCache().get_token(config)


class TestReuse:
    def test_reused_within_refresh_window(self, cache, clock, apns_config):
        first = cache.get_token(apns_config)
        clock.now += 2999

        assert cache.get_token(apns_config) == first
        assert cache.generated_count == 1

    def test_regenerated_after_refresh_window(self, cache, clock, apns_config):
        first = cache.get_token(apns_config)
        clock.now += 3000

        second = cache.get_token(apns_config)

        assert second != first
        assert cache.generated_count == 2

    def test_refresh_window_clamped_below_one_hour(self, cache, clock, apns_config):
        apns_config.token_refresh_seconds = 7200
        cache.get_token(apns_config)
        clock.now += 3599

        cache.get_token(apns_config)

        assert cache.generated_count == 2

    def test_new_signer_forces_regeneration(self, cache, apns_config):
        cache.get_token(apns_config)
        apns_config.key_id = "ZZZ999ZZZZ"

        token = cache.get_token(apns_config)

        assert jwt.get_unverified_header(token)["kid"] == "ZZZ999ZZZZ"
        assert cache.generated_count == 2

    def test_rotated_key_under_same_key_id_forces_regeneration(self, cache, apns_config):
        first = cache.get_token(apns_config)
        rotated_pem = generate_ec_key_pem()
        apns_config.private_key = rotated_pem

        token = cache.get_token(apns_config)

        assert token != first
        assert cache.generated_count == 2
        public_key = load_signing_key(rotated_pem).public_key()
        assert jwt.decode(token, public_key, algorithms=["ES256"])["iss"] == "TEAM123456"

    def test_invalidate(self, cache, apns_config):
        cache.get_token(apns_config)
        cache.invalidate()
        cache.get_token(apns_config)

        assert cache.generated_count == 2


class TestConfigurationErrors:
    def test_missing_credentials_are_named(self, cache):
        config = ApnsConfig(topic="com.example.nongki")

        with pytest.raises(PushConfigurationError) as exc_info:
            cache.get_token(config)

        assert "key_id" in exc_info.value.message
        assert "team_id" in exc_info.value.message
        assert "private_key" in exc_info.value.message
        assert cache.generated_count == 0

    def test_missing_topic(self, cache, ec_key_pem):
        config = ApnsConfig(key_id="K", team_id="T", private_key=ec_key_pem)

        with pytest.raises(PushConfigurationError, match="topic"):
            cache.get_token(config)

    def test_malformed_key(self, cache):
        config = ApnsConfig(key_id="K", team_id="T", private_key="not a key", topic="com.example.nongki")

        with pytest.raises(PushConfigurationError, match="malformed"):
            cache.get_token(config)

    def test_rsa_key_rejected(self, cache):
        rsa_pem = rsa.generate_private_key(public_exponent=65537, key_size=2048).private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()
        config = ApnsConfig(key_id="K", team_id="T", private_key=rsa_pem, topic="com.example.nongki")

        with pytest.raises(PushConfigurationError, match="EC"):
            cache.get_token(config)


class TestApnsConfig:
    def test_sandbox_and_production_hosts(self):
        assert ApnsConfig().host == "api.sandbox.push.apple.com"
        assert ApnsConfig(environment="production").host == "api.push.apple.com"

    @pytest.mark.parametrize(
        "kwargs",
        [{"timeout": 0}, {"max_retries": -1}, {"retry_delay": -1}, {"max_concurrency": 0}],
    )
    def test_invalid_delivery_settings(self, kwargs):
        with pytest.raises(ValueError):
            ApnsConfig(**kwargs)
