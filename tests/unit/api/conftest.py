"""API test fixtures"""

import pytest
from fastapi.testclient import TestClient

from nongki.api.routes.auth import get_apple_verifier
from nongki.database.database import get_db
from nongki.main import app
from nongki.services.identity import AppleIdentityVerifier
from nongki.services.notifier import Notifier, get_notifier


@pytest.fixture
def override_get_db(db_session):
    """Override get_db dependency"""
    def _get_db():
        try:
            yield db_session
        finally:
            pass
    return _get_db


@pytest.fixture
def api_notifier(dispatcher, db_session):
    return Notifier(dispatcher, mode="await", purge_invalid=True, session_factory=lambda: db_session)


@pytest.fixture
def client(override_get_db, api_notifier):
    """Create test client"""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: api_notifier
    app.dependency_overrides[get_apple_verifier] = lambda: AppleIdentityVerifier("com.example.nongki", verify=False)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def sign_in(client, apple_id: str, first_name: str = None, last_name: str = None, email: str = None) -> dict:
    body = {"idToken": apple_id}
    if first_name:
        body["firstName"] = first_name
    if last_name:
        body["lastName"] = last_name
    if email:
        body["email"] = email
    response = client.post("/auth/apple", json=body)
    assert response.status_code == 200, response.text
    data = response.json()
    data["headers"] = {"Authorization": f"Bearer {data['token']}"}
    return data
