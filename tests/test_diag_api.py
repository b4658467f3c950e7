"""Tests for health and diagnostics routes."""

import pytest
from fastapi.testclient import TestClient

from helpai.app.core.config import Settings
from helpai.app.main import create_app
from helpai.app.providers.mock import MockProvider
from helpai.app.services.llm import build_llm_runtime, get_llm_runtime


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="",
        openai_model="gpt-4o-mini",
        llm_min_gap_ms=0,
        llm_retry_base_delay_ms=1,
        llm_retry_max_delay_ms=5,
        llm_retry_jitter_ms=0,
    )


@pytest.fixture
def make_client(api_settings):
    clients = []

    def factory(*script, provider=None):
        provider = provider or MockProvider(script=script)
        runtime = build_llm_runtime(api_settings, provider=provider)
        client = TestClient(create_app(runtime))
        client.__enter__()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.__exit__(None, None, None)


class TestHealth:
    """Test /health."""

    def test_health(self, make_client):
        client = make_client()

        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "hasKey": False, "model": "gpt-4o-mini"}


class TestDiagLimits:
    """Test /diag/rpm and /diag/limits."""

    def test_fresh_state(self, make_client):
        client = make_client()

        resp = client.get("/diag/limits")

        assert resp.status_code == 200
        data = resp.json()
        assert data["ok"] is True
        assert data["rpm"]["limit"] == 3
        assert data["rpm"]["used"] == 0
        assert data["tpm"] == {"limit": 12_000, "used": 0}
        assert data["cooldownMs"] == 0
        assert data["serializer"] == {"busy": False, "overlaps": 0}
        assert data["lastUsage"] is None

    def test_rpm(self, make_client):
        client = make_client()

        data = client.get("/diag/rpm").json()

        assert data == {"ok": True, "limit": 3, "used": 0, "nextFreeMs": 0}

    def test_limits_after_probe(self, make_client):
        client = make_client()
        client.get("/diag/llm")

        data = client.get("/diag/limits").json()

        assert data["rpm"]["used"] == 1
        assert data["tpm"]["used"] > 0
        assert data["lastUsage"] > 0


class TestDiagLlm:
    """Test the live /diag/llm probe."""

    def test_probe_ok(self, make_client):
        client = make_client()

        resp = client.get("/diag/llm")

        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "answer": "ok"}

    def test_probe_rate_limited(self, make_client, rate_limit_error):
        client = make_client(rate_limit_error(retry_after="12"))

        resp = client.get("/diag/llm")

        assert resp.status_code == 429
        assert resp.headers["retry-after"] == "12"
        data = resp.json()
        assert data["ok"] is False
        assert data["error"] == "rate_limit"
        assert data["retryAfterSec"] == 12
        assert 11_000 < data["cooldownMs"] <= 12_000

        limits = client.get("/diag/limits").json()
        assert limits["cooldownMs"] > 0

    def test_probe_insufficient_quota(self, make_client, quota_error):
        client = make_client(quota_error())

        resp = client.get("/diag/llm")

        assert resp.status_code == 429
        assert "retry-after" not in resp.headers
        data = resp.json()
        assert data["error"] == "insufficient_quota"
        assert data["cooldownMs"] == 0

    def test_probe_failure_is_502(self, make_client, status_error):
        client = make_client(status_error(500), status_error(500), status_error(500))

        resp = client.get("/diag/llm")

        assert resp.status_code == 502
        assert resp.json()["error"] == "llm_failed"

    def test_probe_without_key_is_setup_error(self, make_client):
        client = make_client(provider=MockProvider(api_key=""))

        resp = client.get("/diag/llm")

        assert resp.status_code == 500
        data = resp.json()
        assert data["error"] == "llm_setup_error"
        assert "OPENAI_API_KEY" in data["detail"]

        limits = client.get("/diag/limits").json()
        assert limits["rpm"]["used"] == 0


class TestLifespan:
    """Test runtime wiring through the application lifespan."""

    def test_runtime_installed_on_app_state(self, api_settings):
        runtime = build_llm_runtime(api_settings, provider=MockProvider())
        app = create_app(runtime)

        with TestClient(app):
            assert app.state.llm is runtime
            assert get_llm_runtime() is runtime
