"""
Pytest configuration and shared fixtures.

Environment variables are set here, before any app import, so the engine and
settings are created against the test database.
"""

import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_sms_console.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("TELNYX_API_KEY", "test-telnyx-key")
os.environ.setdefault("SEND_PIN", "4321")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")

import httpx
import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings
get_settings.cache_clear()

from app.main import app
from app.provider import TelnyxGateway, get_gateway
from app.storage import Base, engine


TEST_PIN = os.environ["SEND_PIN"]

HU_MAIN = "+36204515510"
HU_SEC = "+36304733451"
US_LINE = "+16692856302"


class FakeTelnyx:
    """
    Records requests sent to Telnyx and answers them with a canned response.

    Set `response` to (status_code, body) or `error` to an httpx exception.
    """

    def __init__(self):
        self.requests = []
        self.response = (200, {"data": {"id": "telnyx-msg-1", "record_type": "message"}})
        self.error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        status_code, body = self.response
        return httpx.Response(status_code, json=body)

    @property
    def payloads(self) -> list:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def telnyx():
    """Fake Telnyx API wired into the app through a dependency override."""
    fake = FakeTelnyx()
    gateway = TelnyxGateway(
        api_key="test-telnyx-key",
        api_url="https://api.telnyx.test/v2/messages",
        transport=httpx.MockTransport(fake.handler),
    )
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield fake
    app.dependency_overrides.pop(get_gateway, None)


@pytest.fixture(scope="function")
def client(telnyx):
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def auth_client(client):
    """Client with an authenticated operator session."""
    response = client.post("/login", json={"pin": TEST_PIN})
    assert response.status_code == 200
    return client


@pytest.fixture
def db_session(client):
    """Direct database session for asserting on stored rows."""
    from app.storage import SessionLocal

    with SessionLocal() as session:
        yield session


def received_event(from_number, to_number, text="hello", message_id="inbound-1"):
    """Telnyx message.received envelope."""
    payload = {"id": message_id, "text": text}
    if from_number is not None:
        payload["from"] = {"phone_number": from_number}
    if to_number is not None:
        payload["to"] = [{"phone_number": to_number}]
    return {"data": {"event_type": "message.received", "payload": payload}}


def status_event(event_type, message_id):
    """Telnyx delivery status envelope."""
    payload = {} if message_id is None else {"id": message_id}
    return {"data": {"event_type": event_type, "payload": payload}}
