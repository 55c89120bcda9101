"""
Unit tests for the application endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from call_options import config, main
from call_options.config import Settings, set_settings
from call_options.handlers import decision_handler


@pytest.fixture
def client(monkeypatch):
    """Test client running the app lifespan on an in-memory database."""
    previous = config._settings
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    set_settings(Settings(_env_file=None, database_url="sqlite://"))

    with TestClient(main.app) as client:
        yield client

    config._settings = previous
    decision_handler.init_handler(None)


def test_health(client):
    """Test health with a reachable database and ARI disabled."""
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "ok"
    assert data["ari"] == "disabled"


def test_decide_abstains_on_special_extension(client):
    """Test the decision route is wired at startup."""
    response = client.post(
        "/v1/decide",
        json={"call_id": "1733832000.42", "dialed_number": "h", "account_id": "42"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "abstained"


def test_reload_keeps_store_when_connection_unchanged(client):
    """Test reload without database change keeps the store."""
    store = main.policy_store

    response = client.post("/admin/reload")

    assert response.status_code == 200
    assert response.json()["store_rebuilt"] is False
    assert main.policy_store is store


def test_reload_rebuilds_store_on_connection_change(client, monkeypatch):
    """Test reload with a new database replaces the store and controller."""
    store = main.policy_store
    monkeypatch.setenv("DB_POOL_RECYCLE", "60")

    response = client.post("/admin/reload")

    assert response.status_code == 200
    assert response.json()["store_rebuilt"] is True
    assert main.policy_store is not store
    assert decision_handler.call_controller is main.call_controller


def test_reload_rejects_invalid_configuration(client, monkeypatch):
    """Test invalid configuration is refused and the old one kept."""
    previous = config.get_settings()
    monkeypatch.setenv("DB_PORT", "99999")

    response = client.post("/admin/reload")

    assert response.status_code == 400
    assert config.get_settings() is previous


def test_reload_keeps_everything_when_new_store_fails(client, monkeypatch):
    """Test a store that cannot be created leaves settings and store in place."""
    previous = config.get_settings()
    store = main.policy_store
    monkeypatch.setenv("DATABASE_URL", "nosuchdialect://x")

    first = client.post("/admin/reload")
    second = client.post("/admin/reload")

    assert first.status_code == 500
    assert second.status_code == 500
    assert config.get_settings() is previous
    assert main.policy_store is store
    assert client.get("/health").json()["database"] == "ok"
