"""Tests for API endpoints."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient

from collective_ledger.api import app, get_gateway
from collective_ledger.auth import limiter
from collective_ledger.connectors import SimulatorGateway
from collective_ledger.database import get_db
from collective_ledger.errors import GatewayError, HostAccountMissing, OrderNotFound, PairingError
from collective_ledger.reconciliation import ReconciliationReport, ReconciliationStatus
from collective_ledger.services import OrderWorkflowState, ProcessingStep


async def fake_db():
    yield MagicMock()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def client():
    """Create test client with the database and gateway replaced."""
    app.dependency_overrides[get_db] = fake_db
    app.dependency_overrides[get_gateway] = lambda: SimulatorGateway()
    yield TestClient(app)
    app.dependency_overrides.clear()


def mock_transaction(type, amount):
    tr = MagicMock()
    tr.to_dict.return_value = {"id": 1 if type == "CREDIT" else 2, "type": type, "amount": amount}
    return tr


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_reconciliation_health(self, client):
        response = client.get("/reconciliation/health")

        assert response.json() == {"status": "healthy", "service": "reconciliation"}

    def test_gateway_health(self, client):
        """The configured gateway reports itself."""
        response = client.get("/gateway/health")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["provider"] == "simulator"
        assert data["call_count"] == 0


class TestProcessOrderEndpoint:
    """Tests for POST /orders/{order_id}/process."""

    def test_process_order_success(self, client, auth_headers):
        """Test a processed order returns its ledger pair."""
        with patch("collective_ledger.api.OrderProcessor") as MockProcessor:
            MockProcessor.return_value.process_order = AsyncMock(return_value=[
                mock_transaction("CREDIT", 1000),
                mock_transaction("DEBIT", -791),
            ])

            response = client.post("/orders/5/process", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["order_id"] == 5
        assert data["processed"] is True
        assert [t["type"] for t in data["transactions"]] == ["CREDIT", "DEBIT"]
        MockProcessor.return_value.process_order.assert_awaited_once_with(5)
        assert isinstance(MockProcessor.call_args[0][1], SimulatorGateway)

    def test_order_not_found(self, client, auth_headers):
        with patch("collective_ledger.api.OrderProcessor") as MockProcessor:
            MockProcessor.return_value.process_order = AsyncMock(side_effect=OrderNotFound(5))

            response = client.post("/orders/5/process", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Order 5 not found"

    def test_host_account_missing(self, client, auth_headers):
        error = HostAccountMissing(7)
        error.workflow = OrderWorkflowState(order_id=5, failed_step=ProcessingStep.RESOLVE_HOST_ACCOUNT)
        with patch("collective_ledger.api.OrderProcessor") as MockProcessor:
            MockProcessor.return_value.process_order = AsyncMock(side_effect=error)

            response = client.post("/orders/5/process", headers=auth_headers)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert "collective 7" in detail["message"]
        assert detail["workflow"] == {
            "completed_steps": [],
            "failed_step": "resolve_host_account",
            "charged": False,
        }

    def test_gateway_error_after_charge(self, client, auth_headers):
        """The response tells whether the card was charged."""
        error = GatewayError("Simulated create_subscription failure", operation="create_subscription")
        error.workflow = OrderWorkflowState(
            order_id=5,
            completed_steps=[
                ProcessingStep.RESOLVE_HOST_ACCOUNT,
                ProcessingStep.ENSURE_PLATFORM_CUSTOMER,
                ProcessingStep.CREATE_HOST_TOKEN,
                ProcessingStep.CHARGE,
            ],
            failed_step=ProcessingStep.SUBSCRIBE,
        )
        with patch("collective_ledger.api.OrderProcessor") as MockProcessor:
            MockProcessor.return_value.process_order = AsyncMock(side_effect=error)

            response = client.post("/orders/5/process", headers=auth_headers)

        assert response.status_code == 402
        detail = response.json()["detail"]
        assert detail["operation"] == "create_subscription"
        assert detail["workflow"]["charged"] is True
        assert detail["workflow"]["failed_step"] == "subscribe"

    def test_invalid_order_id(self, client, auth_headers):
        response = client.post("/orders/abc/process", headers=auth_headers)

        assert response.status_code == 422


class TestReconciliationEndpoint:
    """Tests for POST /reconciliation/jobs."""

    @pytest.fixture
    def report(self):
        return ReconciliationReport(
            id="report-1",
            status=ReconciliationStatus.COMPLETED,
            total_count=4,
            rows_scanned=4,
            pairs_checked=2,
            corrected_pairs=1,
            rows_changed=1,
        )

    def test_summary(self, client, auth_headers, report):
        with patch("collective_ledger.reconciliation.api.ReconciliationJob") as MockJob:
            MockJob.return_value.run = AsyncMock(return_value=report)

            response = client.post("/reconciliation/jobs", json={}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "report-1"
        assert data["status"] == "completed"
        assert data["dry_run"] is True
        assert data["pairs_checked"] == 2
        assert data["corrected_pairs"] == 1
        options = MockJob.call_args[0][1]
        assert options.dry_run is True
        assert options.batch_size == 100

    def test_options_from_body(self, client, auth_headers, report):
        with patch("collective_ledger.reconciliation.api.ReconciliationJob") as MockJob:
            MockJob.return_value.run = AsyncMock(return_value=report)

            client.post(
                "/reconciliation/jobs",
                json={"dry_run": False, "limit": 500, "batch_size": 50},
                headers=auth_headers,
            )

        options = MockJob.call_args[0][1]
        assert options.dry_run is False
        assert options.limit == 500
        assert options.batch_size == 50

    def test_include_details(self, client, auth_headers, report):
        with patch("collective_ledger.reconciliation.api.ReconciliationJob") as MockJob:
            MockJob.return_value.run = AsyncMock(return_value=report)

            response = client.post(
                "/reconciliation/jobs?include_details=true", json={}, headers=auth_headers
            )

        data = response.json()
        assert data["statistics"]["pairs_checked"] == 2
        assert data["corrections"] == []
        assert data["inconsistencies"] == []

    def test_text_format(self, client, auth_headers, report):
        with patch("collective_ledger.reconciliation.api.ReconciliationJob") as MockJob:
            MockJob.return_value.run = AsyncMock(return_value=report)
            MockJob.return_value.generate_report.return_value = "FEE RECONCILIATION REPORT SUMMARY"

            response = client.post("/reconciliation/jobs?format=text", json={}, headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "FEE RECONCILIATION REPORT SUMMARY" in response.text

    def test_invalid_format(self, client, auth_headers):
        with patch("collective_ledger.reconciliation.api.ReconciliationJob") as MockJob:
            response = client.post("/reconciliation/jobs?format=xml", json={}, headers=auth_headers)

        assert response.status_code == 400
        MockJob.assert_not_called()

    def test_invalid_batch_size(self, client, auth_headers):
        response = client.post("/reconciliation/jobs", json={"batch_size": 0}, headers=auth_headers)

        assert response.status_code == 422

    def test_pairing_error(self, client, auth_headers):
        """A transaction without its pair aborts the job with 409."""
        with patch("collective_ledger.reconciliation.api.ReconciliationJob") as MockJob:
            MockJob.return_value.run = AsyncMock(side_effect=PairingError(42, "group-x", "group-y"))

            response = client.post("/reconciliation/jobs", json={}, headers=auth_headers)

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["transaction_id"] == 42
        assert detail["transaction_group"] == "group-x"
        assert "Cannot find pair" in detail["message"]
