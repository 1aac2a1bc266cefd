from fastapi.testclient import TestClient

import mzone.api.health as health_api
from mzone.core.config import settings
from mzone.main import app

client = TestClient(app)


def test_health_reports_configuration():
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "MZone backend running"
    assert body["database"] == "Connected"
    assert body["paystack"] == "Configured"
    assert body["timestamp"]


def test_health_never_leaks_secrets():
    text = client.get("/health").text
    assert "sk_test_" not in text
    assert "sqlite" not in text


def test_health_without_paystack(monkeypatch):
    monkeypatch.setattr(settings, "PAYSTACK_SECRET_KEY", None)
    assert client.get("/health").json()["paystack"] == "Not configured"


def test_health_database_unavailable(monkeypatch):
    monkeypatch.setattr(health_api, "check_connection", lambda: False)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["database"] == "Unavailable"


def test_health_database_not_configured(monkeypatch):
    monkeypatch.setattr(health_api, "database_configured", lambda: False)
    assert client.get("/health").json()["database"] == "Not configured"


def test_root_lists_endpoints():
    body = client.get("/").json()
    assert body["success"] is True
    assert body["version"] == "1.0.0"
    assert "POST /payment/webhook" in body["endpoints"]["payment"]
