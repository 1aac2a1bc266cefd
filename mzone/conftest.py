# mzone/conftest.py
import pytest
from fastapi.testclient import TestClient

from mzone.core.config import settings
from mzone.core.database import create_all_tables, dispose_engine, init_engine

TEST_JWT_SECRET = "test-jwt-secret-0123456789abcdef"
TEST_PAYSTACK_SECRET = "sk_test_0123456789"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings for every test; never reads a developer .env."""
    monkeypatch.setattr(settings, "ENV", "test")
    monkeypatch.setattr(settings, "JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "PAYSTACK_SECRET_KEY", TEST_PAYSTACK_SECRET)
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(settings, "FRONTEND_URL", "https://app.mzone.test")
    monkeypatch.setattr(settings, "PAYMENT_CURRENCY", "NGN")
    yield settings


@pytest.fixture(autouse=True)
def db(tmp_path):
    """
    Fresh SQLite database per test.

    A file (not :memory:) so threads and the TestClient's worker threads
    share one database through separate connections.
    """
    engine = init_engine(f"sqlite:///{tmp_path / 'mzone_test.db'}")
    create_all_tables()
    yield engine
    dispose_engine()


@pytest.fixture
def gateway(monkeypatch):
    """FakeGateway wired into the payment service."""
    from mzone.tests.mocks import FakeGateway

    fake = FakeGateway(secret_key=TEST_PAYSTACK_SECRET)
    monkeypatch.setattr("mzone.features.payments.service.get_gateway", lambda: fake)
    return fake


@pytest.fixture
def client():
    from mzone.main import app

    return TestClient(app)


@pytest.fixture
def make_user():
    """Register a user through the identity service; returns (user, token)."""
    from mzone.features.users.service import register_user

    counter = {"n": 0}

    def _make(email=None, full_name="Ada Obi", password="correcthorse42"):
        counter["n"] += 1
        return register_user(full_name, email or f"user{counter['n']}@example.com", password)

    return _make


@pytest.fixture
def auth_headers():
    def _headers(token: str):
        return {"Authorization": f"Bearer {token}"}

    return _headers
