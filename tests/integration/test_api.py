"""Integration tests for API endpoints"""

import pytest
import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from invoicefin_gateway.api.dependencies import get_orchestrator
from invoicefin_gateway.domain.assessment import parse_fraud_signal, parse_risk_assessment
from invoicefin_gateway.domain.exceptions import RiskProviderError
from invoicefin_gateway.services.financing import FinancingOrchestrator

LP_WALLET = "0x" + "a" * 40
SELLER_WALLET = "0x" + "b" * 40
OTHER_WALLET = "0x" + "d" * 40


@pytest.fixture
def seller(client: TestClient) -> dict:
    response = client.post(
        "/v1/businesses",
        json={
            "wallet_address": SELLER_WALLET,
            "company_name": "Acme Supplies",
            "tax_id": "12-3456789",
            "industry": "wholesale",
            "country": "US",
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def pending_invoice(client: TestClient, seller: dict) -> dict:
    response = client.post(
        "/v1/invoices",
        json={
            "business_id": seller["id"],
            "invoice_number": "INV-0001",
            "buyer_name": "Globex Corp",
            "amount_cents": 1_000_000,
            "issue_date": "2026-02-01",
            "due_date": "2026-03-03",
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture(autouse=True)
def mock_ledger():
    """Keep ledger webhooks off the network; background tasks would otherwise retry against localhost"""
    with patch("invoicefin_gateway.infrastructure.clients.ledger.LedgerClient.send_event", new_callable=AsyncMock) as mock:
        yield mock


def deposit(client: TestClient, amount_cents: int, wallet: str = LP_WALLET):
    return client.post("/v1/liquidity/deposit", json={"wallet_address": wallet, "amount_cents": amount_cents})


def verify_with(client: TestClient, invoice_id: str, score: int = 50, recommendation: str = "approve"):
    return client.post(
        f"/v1/invoices/{invoice_id}/verify",
        json={"assessment": {"overallScore": score, "recommendation": recommendation}},
    )


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "invoicefin_financing_operations_total" in response.text


def test_request_id_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_full_financing_flow(client: TestClient, mock_ledger: AsyncMock, pending_invoice: dict, seller: dict):
    """Deposit, verify, finance, retry, repay: pool ends up with the fee"""
    assert deposit(client, 10_000_000).status_code == 201
    invoice_id = pending_invoice["id"]

    verified = verify_with(client, invoice_id)
    assert verified.status_code == 200
    assert verified.json()["status"] == "verified"
    assert verified.json()["risk_score"] == 50

    financed = client.post(f"/v1/invoices/{invoice_id}/finance", json={"external_tx_ref": "0xpayout"})
    assert financed.status_code == 200
    data = financed.json()
    assert data["advance_amount_cents"] == 738_750
    assert data["fee_amount_cents"] == 11_250
    assert data["advance_rate_pct"] == 75
    assert data["invoice"]["status"] == "financed"
    assert data["invoice"]["required_repayment_cents"] == 750_000
    assert data["pool_balance_cents"] == 10_000_000 - 738_750
    assert mock_ledger.call_args_list[-1].args[0] == "INVOICE_FINANCED"

    retry = client.post(f"/v1/invoices/{invoice_id}/finance", json={"external_tx_ref": "0xpayout"})
    assert retry.status_code == 409
    assert retry.json()["error"] == "already_processed"

    short = client.post(f"/v1/invoices/{invoice_id}/repay", json={"amount_cents": 749_999})
    assert short.status_code == 422
    assert short.json()["error"] == "insufficient_repayment"
    assert short.json()["details"]["required_cents"] == 750_000

    repaid = client.post(f"/v1/invoices/{invoice_id}/repay", json={"amount_cents": 750_000, "external_tx_ref": "0xrepay"})
    assert repaid.status_code == 200
    assert repaid.json()["status"] == "repaid"
    assert mock_ledger.call_args_list[-1].args[0] == "INVOICE_REPAID"

    pool = client.get("/v1/pool").json()
    assert pool["balance_cents"] == 10_011_250
    assert pool["deployed_cents"] == 0

    transfers = client.get(f"/v1/businesses/{seller['id']}/transfers").json()["transfers"]
    assert sorted(t["kind"] for t in transfers) == ["finance", "repay"]

    business = client.get(f"/v1/businesses/{seller['id']}").json()
    assert business["invoices_repaid"] == 1
    assert business["risk_score"] == 52


@patch("invoicefin_gateway.infrastructure.clients.risk.RiskProviderClient.assess")
def test_verify_calls_risk_provider(mock_assess: AsyncMock, client: TestClient, pending_invoice: dict):
    mock_assess.return_value = (
        parse_risk_assessment({"overallScore": 64, "recommendation": "review"}),
        parse_fraud_signal({"isSuspicious": False, "riskLevel": "low", "riskScore": 8}),
    )

    response = client.post(f"/v1/invoices/{pending_invoice['id']}/verify")

    assert response.status_code == 200
    assert response.json()["status"] == "verified"
    assert response.json()["risk_score"] == 64
    assert response.json()["fraud_detection_result"]["riskLevel"] == "low"


@patch("invoicefin_gateway.infrastructure.clients.risk.RiskProviderClient.assess")
def test_verify_risk_provider_down(mock_assess: AsyncMock, client: TestClient, pending_invoice: dict):
    mock_assess.side_effect = RiskProviderError("Risk provider timeout after 5.0s")

    response = client.post(f"/v1/invoices/{pending_invoice['id']}/verify")

    assert response.status_code == 503
    assert response.json()["error"] == "risk_provider_unavailable"
    assert client.get(f"/v1/invoices/{pending_invoice['id']}").json()["status"] == "pending"


def test_verify_malformed_assessment(client: TestClient, pending_invoice: dict):
    response = verify_with(client, pending_invoice["id"], score=140)

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_input"


def test_verify_reject(client: TestClient, pending_invoice: dict):
    response = verify_with(client, pending_invoice["id"], score=15, recommendation="reject")

    assert response.json()["status"] == "rejected"


def test_finance_over_cap(client: TestClient, mock_ledger: AsyncMock, pending_invoice: dict):
    """$10,000.00 invoice against a $50,000.00 pool exceeds the 10% single-invoice cap"""
    deposit(client, 5_000_000)
    verify_with(client, pending_invoice["id"])

    response = client.post(f"/v1/invoices/{pending_invoice['id']}/finance", json={"external_tx_ref": "0xpayout"})

    assert response.status_code == 422
    assert response.json()["error"] == "eligibility_rejected"
    assert "INVOICE_FINANCED" not in [c.args[0] for c in mock_ledger.call_args_list]


def test_finance_pending_invoice(client: TestClient, pending_invoice: dict):
    response = client.post(f"/v1/invoices/{pending_invoice['id']}/finance", json={"external_tx_ref": "0xpayout"})

    assert response.status_code == 409
    assert response.json()["error"] == "invalid_state_transition"


def test_cancel_invoice(client: TestClient, pending_invoice: dict, seller: dict):
    response = client.post(f"/v1/invoices/{pending_invoice['id']}/cancel", json={"business_id": seller["id"]})

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"


def clock_at(client: TestClient, db: Session, day: date) -> None:
    """Serve orchestrator requests as if it were noon UTC on day"""
    moment = datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc)
    client.app.dependency_overrides[get_orchestrator] = lambda: FinancingOrchestrator(db, clock=lambda: moment)


def test_default_before_grace_period(client: TestClient, db: Session, mock_ledger: AsyncMock, pending_invoice: dict):
    clock_at(client, db, date(2026, 3, 1))
    deposit(client, 10_000_000)
    verify_with(client, pending_invoice["id"])
    client.post(f"/v1/invoices/{pending_invoice['id']}/finance", json={"external_tx_ref": "0xpayout"})

    clock_at(client, db, date(2026, 3, 10))
    early = client.post(f"/v1/invoices/{pending_invoice['id']}/default", json={"as_of": "2099-01-01"})
    assert early.status_code == 422
    assert early.json()["error"] == "eligibility_rejected"
    assert client.get(f"/v1/invoices/{pending_invoice['id']}").json()["status"] == "financed"

    clock_at(client, db, date(2026, 4, 3))
    late = client.post(f"/v1/invoices/{pending_invoice['id']}/default")
    assert late.status_code == 200
    assert late.json()["status"] == "defaulted"


def test_unknown_invoice(client: TestClient):
    response = client.get(f"/v1/invoices/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_create_invoice_due_before_issue(client: TestClient, seller: dict):
    response = client.post(
        "/v1/invoices",
        json={
            "business_id": seller["id"],
            "invoice_number": "INV-0002",
            "buyer_name": "Globex Corp",
            "amount_cents": 1_000,
            "issue_date": "2026-02-01",
            "due_date": "2026-02-01",
        },
    )

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_input"


def test_duplicate_business_wallet(client: TestClient, seller: dict):
    response = client.post(
        "/v1/businesses",
        json={
            "wallet_address": SELLER_WALLET.upper().replace("0X", "0x"),
            "company_name": "Acme Again",
            "tax_id": "12-3456789",
            "industry": "wholesale",
            "country": "US",
        },
    )

    assert response.status_code == 422


def test_quote(client: TestClient):
    deposit(client, 10_000_000)

    response = client.post("/v1/quote", json={"face_value_cents": 1_000_000, "risk_score": 100})

    assert response.status_code == 200
    data = response.json()
    assert data["advance_amount_cents"] == 788_000
    assert data["fee_amount_cents"] == 12_000
    assert data["is_eligible"] is True
    assert data["meets_risk_floor"] is True


def test_quote_rejects_out_of_range_score(client: TestClient):
    response = client.post("/v1/quote", json={"face_value_cents": 1_000_000, "risk_score": 101})
    assert response.status_code == 422


def test_liquidity_round_trip(client: TestClient, mock_ledger: AsyncMock):
    mixed_case = "0x" + "A" * 40
    deposited = deposit(client, 250_000, wallet=mixed_case)
    assert deposited.status_code == 201
    assert deposited.json()["shares_minted"] == 250_000

    positions = client.get("/v1/liquidity/positions", params={"wallet_address": LP_WALLET}).json()
    assert positions["positions"][0]["redeemable_cents"] == 250_000

    withdrawn = client.post("/v1/liquidity/withdraw", json={"wallet_address": LP_WALLET, "shares": 50_000})
    assert withdrawn.status_code == 200
    assert withdrawn.json()["amount_cents"] == 50_000
    assert withdrawn.json()["remaining_shares"] == 200_000
    assert mock_ledger.call_args_list[-1].args[0] == "LIQUIDITY_WITHDRAWN"

    stats = client.get("/v1/pool").json()
    assert stats["total_shares"] == 200_000
    assert stats["price_per_share"] == "1"


def test_withdraw_without_position(client: TestClient):
    response = client.post("/v1/liquidity/withdraw", json={"wallet_address": LP_WALLET})

    assert response.status_code == 404


def test_dashboard(client: TestClient, pending_invoice: dict, seller: dict):
    response = client.get(f"/v1/businesses/{seller['id']}/dashboard")

    assert response.status_code == 200
    assert response.json()["total_invoices"] == 1
    assert response.json()["pending_invoices"] == 1

    invoices = client.get(f"/v1/businesses/{seller['id']}/invoices").json()
    assert [i["invoice_number"] for i in invoices] == ["INV-0001"]


def test_sweep_overdue(client: TestClient, db: Session, pending_invoice: dict):
    clock_at(client, db, date(2026, 3, 1))
    deposit(client, 10_000_000)
    verify_with(client, pending_invoice["id"])
    client.post(f"/v1/invoices/{pending_invoice['id']}/finance", json={"external_tx_ref": "0xpayout"})

    clock_at(client, db, date(2026, 3, 20))
    nothing_due = client.post("/v1/invoices/sweep-overdue", json={"as_of": "2099-01-01"})
    assert nothing_due.json() == {"as_of": "2026-03-20", "defaulted_invoice_ids": []}

    clock_at(client, db, date(2026, 5, 1))
    response = client.post("/v1/invoices/sweep-overdue")

    assert response.status_code == 200
    assert response.json()["as_of"] == "2026-05-01"
    assert response.json()["defaulted_invoice_ids"] == [pending_invoice["id"]]
    assert client.get(f"/v1/invoices/{pending_invoice['id']}").json()["status"] == "defaulted"


def test_lookup_business_by_wallet(client: TestClient, seller: dict):
    response = client.get("/v1/businesses", params={"wallet_address": SELLER_WALLET})

    assert response.status_code == 200
    assert response.json()["id"] == seller["id"]

    missing = client.get("/v1/businesses", params={"wallet_address": OTHER_WALLET})
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"

    assert client.get("/v1/businesses", params={"wallet_address": "not-a-wallet"}).status_code == 422


def test_update_business_profile(client: TestClient, seller: dict):
    response = client.patch(
        f"/v1/businesses/{seller['id']}",
        json={"wallet_address": SELLER_WALLET, "company_name": "Acme Holdings", "industry": "logistics"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["company_name"] == "Acme Holdings"
    assert body["industry"] == "logistics"
    assert body["country"] == "US"
    assert body["risk_score"] == seller["risk_score"]
    assert client.get(f"/v1/businesses/{seller['id']}").json()["company_name"] == "Acme Holdings"


def test_update_business_by_other_wallet(client: TestClient, seller: dict):
    response = client.patch(
        f"/v1/businesses/{seller['id']}",
        json={"wallet_address": OTHER_WALLET, "company_name": "Hijacked"},
    )

    assert response.status_code == 404
    assert client.get(f"/v1/businesses/{seller['id']}").json()["company_name"] == "Acme Supplies"
