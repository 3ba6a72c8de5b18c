"""Tests for authentication, rate limiting and response sanitization."""

import os
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient

from collective_ledger.api import app
from collective_ledger.auth import RECONCILIATION_RATE_LIMIT, limiter, rate_limit_key
from collective_ledger.connectors.stripe_connector import SENSITIVE_FIELDS
from collective_ledger.database import get_db
from collective_ledger.reconciliation import ReconciliationReport


async def fake_db():
    yield MagicMock()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def client():
    """Create test client."""
    app.dependency_overrides[get_db] = fake_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mock_job():
    with patch("collective_ledger.reconciliation.api.ReconciliationJob") as MockJob:
        MockJob.return_value.run = AsyncMock(return_value=ReconciliationReport(id="report-1"))
        yield MockJob


class TestAPIKeyAuthentication:
    """Tests for API key authentication."""

    def test_valid_api_key_accepts_request(self, client, auth_headers, mock_job):
        response = client.post("/reconciliation/jobs", json={}, headers=auth_headers)
        assert response.status_code == 200

    def test_invalid_api_key_rejects_request(self, client, mock_job):
        response = client.post(
            "/reconciliation/jobs",
            json={},
            headers={"Authorization": "Bearer invalid_key_12345"},
        )
        assert response.status_code == 401
        assert "Invalid API key" in response.json()["detail"]
        mock_job.assert_not_called()

    def test_missing_authorization_header(self, client, mock_job):
        response = client.post("/orders/1/process")
        assert response.status_code in (401, 403)

    def test_empty_bearer_token(self, client, mock_job):
        response = client.post("/reconciliation/jobs", json={}, headers={"Authorization": "Bearer "})
        assert response.status_code in (401, 403)

    def test_api_key_not_configured_returns_500(self, client, mock_job):
        """Test that missing API_KEY env var returns 500."""
        with patch.dict(os.environ, {"API_KEY": ""}):
            response = client.post(
                "/reconciliation/jobs",
                json={},
                headers={"Authorization": "Bearer some_key"},
            )
        assert response.status_code == 500
        assert "configuration error" in response.json()["detail"].lower()


class TestRateLimiting:
    """Tests for rate limiting."""

    def test_rate_limiter_is_configured(self):
        assert app.state.limiter is limiter

    def test_rate_limit_key_uses_bearer_fingerprint(self):
        request = MagicMock()
        request.headers = {"Authorization": "Bearer secret_key"}

        key = rate_limit_key(request)

        assert key.startswith("key:")
        assert "secret_key" not in key
        request.headers = {"Authorization": "Bearer other_key"}
        assert rate_limit_key(request) != key

    def test_rate_limit_key_falls_back_to_client_address(self):
        request = MagicMock()
        request.headers = {}
        request.client.host = "10.0.0.7"

        assert rate_limit_key(request) == "10.0.0.7"

    def test_reconciliation_jobs_are_rate_limited(self, client, auth_headers, mock_job):
        allowed = int(RECONCILIATION_RATE_LIMIT.split("/")[0])
        for _ in range(allowed):
            assert client.post("/reconciliation/jobs", json={}, headers=auth_headers).status_code == 200

        response = client.post("/reconciliation/jobs", json={}, headers=auth_headers)

        assert response.status_code == 429
        assert "Rate limit exceeded" in response.json()["detail"]


class TestSensitiveDataFiltering:
    """Card data never reaches the ledger."""

    def test_sensitive_fields_list(self):
        for field in ("client_secret", "source", "card", "bank_account", "payment_method_details"):
            assert field in SENSITIVE_FIELDS

    def test_sensitive_fields_are_frozen(self):
        assert isinstance(SENSITIVE_FIELDS, frozenset)
