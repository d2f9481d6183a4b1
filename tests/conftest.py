"""
Pytest configuration and fixtures
"""
import asyncio
import base64
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.errors import ConfigurationError, StorageUnavailable
from app.main import create_app
from app.schemas import BookingRecord


class FakeChannel:
    """Delivery channel double that records messages instead of sending them"""

    def __init__(self):
        self.sent = []
        self.timeouts = []
        self.error = None
        self.verify_error = None
        self.verify_calls = 0
        self.closed = False

    async def send(self, message, timeout=None):
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        self.timeouts.append(timeout)
        return f"<message-{len(self.sent)}@test.local>"

    async def verify(self):
        self.verify_calls += 1
        if self.verify_error is not None:
            raise ConfigurationError(self.verify_error)

    async def close(self):
        self.closed = True


class FakeStore:
    """Booking store double keeping rows in a list"""

    def __init__(self):
        self.records = []
        self.error = None
        self.available = True

    async def create_schema(self):
        if not self.available:
            raise StorageUnavailable("Database unavailable")

    async def insert(self, record):
        if self.error is not None:
            raise self.error
        self.records.append(record)
        return len(self.records)

    async def ping(self):
        return self.available

    async def close(self):
        pass


class FakeSMTP:
    """Stand-in for aiosmtplib.SMTP with scripted failures"""

    def __init__(self, *, login_error=None, send_error=None, send_delay=0.0, noop_delay=0.0, **options):
        self.options = options
        self.login_error = login_error
        self.send_error = send_error
        self.send_delay = send_delay
        self.noop_delay = noop_delay
        self.is_connected = False
        self.closed = False
        self.logged_in_as = None
        self.sent = []

    async def connect(self):
        self.is_connected = True

    async def login(self, username, password):
        if self.login_error is not None:
            raise self.login_error
        self.logged_in_as = username

    async def send_message(self, message):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)
        return {}, "250 2.0.0 OK"

    async def noop(self):
        if self.noop_delay:
            await asyncio.sleep(self.noop_delay)
        return "250 OK"

    async def quit(self):
        self.is_connected = False

    def close(self):
        self.is_connected = False
        self.closed = True


class FakeSMTPFactory:
    """Callable passed as smtp_factory; remembers every client it built"""

    def __init__(self, **behaviour):
        self.behaviour = behaviour
        self.clients = []

    def __call__(self, **options):
        client = FakeSMTP(**self.behaviour, **options)
        self.clients.append(client)
        return client


VALID_BOOKING = {
    "orderId": "A1",
    "callType": "video",
    "startTime": "2024-01-01T10:00:00Z",
    "endTime": "2024-01-01T10:30:00Z",
    "duration": 30,
    "userId": "U1",
    "price": 49.99,
}


@pytest.fixture
def booking_payload():
    """Fresh copy of a valid booking request body"""
    return dict(VALID_BOOKING)


@pytest.fixture
def sample_record():
    return BookingRecord(
        order_id="A1",
        call_type="video",
        start_time=datetime(2024, 1, 1, 10, 0),
        end_time=datetime(2024, 1, 1, 10, 30),
        duration=30,
        user_id="U1",
        price=49.99,
    )


@pytest.fixture
def encode_attachment():
    def _encode(size: int) -> str:
        return base64.b64encode(b"\x00" * size).decode("ascii")

    return _encode


@pytest.fixture
def test_settings():
    return Settings(
        environment="test",
        email_user="bookings@example.com",
        email_password="app-password",
        notification_recipient="booking@example.org",
        database_url_override="sqlite+aiosqlite://",
        relay_verify_interval_seconds=0,
    )


@pytest.fixture
def production_settings(test_settings):
    return test_settings.model_copy(update={"environment": "production"})


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def smtp_factory():
    return FakeSMTPFactory()


@pytest.fixture
def client(test_settings, fake_channel, fake_store):
    """Test client wired to in-memory collaborators"""
    app = create_app(test_settings, channel=fake_channel, store=fake_store)
    with TestClient(app) as test_client:
        yield test_client


# Test markers
def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
