import os

os.environ["ENVIRONMENT"] = "test"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "s3cret"
os.environ["SEED_SAMPLE_DATA"] = "false"
for name in ("DATABASE_URL", "MONGODB_URI", "EMAIL_HOST", "COOKIE_DOMAIN"):
    os.environ.pop(name, None)

import pytest
from fastapi.testclient import TestClient

from main import app
from repositories import InMemoryBookingRepository, InMemoryMessageRepository
from security import FixedWindowRateLimiter
from sessions import MemorySessionStore


@pytest.fixture
def client():
    app.state.bookings = InMemoryBookingRepository()
    app.state.messages = InMemoryMessageRepository()
    app.state.session_store = MemorySessionStore()
    app.state.rate_limiter = FixedWindowRateLimiter(200, 15 * 60)
    return TestClient(app)


@pytest.fixture
def bookings(client):
    return app.state.bookings


@pytest.fixture
def messages(client):
    return app.state.messages


def fetch_token(client) -> str:
    return client.get("/api/csrf-token").json()["token"]


def login(client, username="admin", password="s3cret"):
    return client.post("/api/admin/login", json={"username": username, "password": password})


@pytest.fixture
def admin(client):
    assert login(client).status_code == 200
    return client
