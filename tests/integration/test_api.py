"""Integration tests for API endpoints"""

import json
import pytest
from datetime import timedelta
from types import SimpleNamespace
from fastapi.testclient import TestClient
from pawnbook.api.dependencies import get_screening_provider
from pawnbook.api.main import domain_exception_handler
from pawnbook.domain.exceptions import ConflictError, NotFound, StoreUnavailable, SubmissionError
from pawnbook.domain.models import ScreeningResult


@pytest.fixture
def customer_payload():
    return {
        "first_name": "Juan",
        "last_name": "Dela Cruz",
        "date_of_birth": "1985-03-14",
        "id_type": "drivers_license",
        "id_number": "N01-12-345678",
        "phone": "09171234567",
        "address_line_1": "123 Rizal St",
        "city_municipality": "Makati",
        "photo": "face.jpg",
        "id_front_photo": "id-front.jpg",
        "id_back_photo": "id-back.jpg",
    }


@pytest.fixture
def loan_payload(customer_payload):
    """Full wizard draft for a new customer pawning a phone"""
    return {
        "idempotency_key": "draft-0001",
        "customer": customer_payload,
        "item": {
            "category": "mobile",
            "brand": "Apple",
            "model": "iPhone 15",
            "item_condition": "good",
            "appraisal_value": 40000,
            "photos": ["front.jpg", "back.jpg"],
            "accessories": ["charger"],
        },
        "terms": {"principal": 28000, "interest_rate": "3", "term_days": 30, "service_fee": 0},
        "screening": {
            "watchlist": {"status": "clear"},
            "pep": {"status": "clear"},
            "adverse_media": {"status": "clear"},
        },
    }


class ClearProvider:
    async def check(self, check, customer_name):
        return ScreeningResult(status="clear")


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "pawnbook_principal_disbursed_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    """Test the caller's request ID comes back"""
    response = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_create_and_get_customer(client: TestClient, customer_payload):
    """Test POST /v1/customers then lookup by id and key"""
    response = client.post("/v1/customers", json=customer_payload)
    assert response.status_code == 201
    data = response.json()
    assert data["customer_id"] == "CUS-000001"
    assert data["full_name"] == "Juan Dela Cruz"
    assert data["address"] == "123 Rizal St, Makati"
    assert data["is_current"] is True

    assert client.get("/v1/customers/CUS-000001").json()["customer_key"] == data["customer_key"]
    assert client.get(f"/v1/customers/{data['customer_key']}").json()["customer_id"] == "CUS-000001"


def test_create_customer_validation_errors(client: TestClient):
    """Test missing fields are reported per field with 422"""
    response = client.post("/v1/customers", json={"full_name": "No ID", "phone": "0917"})
    assert response.status_code == 422
    body = response.json()
    assert set(body["errors"]) == {"id_type", "id_number", "address"}
    assert body["request_id"]


def test_create_customer_rejects_unknown_fields(client: TestClient, customer_payload):
    """Test the schema forbids unknown attributes"""
    response = client.post("/v1/customers", json={**customer_payload, "is_current": False})
    assert response.status_code == 422


def test_customer_versioning_endpoints(client: TestClient, customer_payload, clock):
    """Test PATCH versions the customer and history/as-of read it back"""
    v1 = client.post("/v1/customers", json=customer_payload).json()
    created_at = clock()
    clock.advance(days=2)

    response = client.patch(f"/v1/customers/{v1['customer_key']}", json={"phone": "09170000002"})
    assert response.status_code == 200
    v2 = response.json()
    assert v2["customer_key"] != v1["customer_key"]
    assert v2["phone"] == "09170000002"

    # Stale key loses
    response = client.patch(f"/v1/customers/{v1['customer_key']}", json={"phone": "09170000003"})
    assert response.status_code == 409

    history = client.get("/v1/customers/CUS-000001/history").json()
    assert [row["customer_key"] for row in history] == [v2["customer_key"], v1["customer_key"]]
    assert history[1]["is_current"] is False

    at = (created_at + timedelta(days=1)).isoformat()
    response = client.get("/v1/customers/CUS-000001/as-of", params={"at": at})
    assert response.json()["phone"] == "09171234567"


def test_patch_requires_fields(client: TestClient, customer_payload):
    """Test an empty PATCH is rejected"""
    v1 = client.post("/v1/customers", json=customer_payload).json()
    assert client.patch(f"/v1/customers/{v1['customer_key']}", json={}).status_code == 422


def test_missing_customer_is_404(client: TestClient):
    """Test unknown customers"""
    response = client.get("/v1/customers/CUS-999999")
    assert response.status_code == 404
    assert "not found" in response.json()["detail"]


def test_customer_search(client: TestClient, customer_payload):
    """Test search by name fragment"""
    client.post("/v1/customers", json=customer_payload)
    assert len(client.get("/v1/customers/search", params={"q": "dela"}).json()) == 1
    assert client.get("/v1/customers/search", params={"q": "d"}).json() == []


def test_watchlist_and_kyc(client: TestClient, customer_payload):
    """Test compliance flags update the current row"""
    v1 = client.post("/v1/customers", json=customer_payload).json()
    response = client.put(f"/v1/customers/{v1['customer_key']}/watchlist", json={"status": "flagged", "notes": "Match"})
    assert response.status_code == 200
    assert response.json()["watchlist_status"] == "flagged"
    assert response.json()["customer_key"] == v1["customer_key"]

    response = client.put(f"/v1/customers/{v1['customer_key']}/kyc", json={"status": "verified", "verified_by": 3})
    assert response.json()["kyc_status"] == "verified"

    response = client.put(f"/v1/customers/{v1['customer_key']}/kyc", json={"status": "maybe"})
    assert response.status_code == 422


def test_quote_endpoint(client: TestClient):
    """Test POST /v1/loans/quote"""
    response = client.post(
        "/v1/loans/quote",
        json={"principal": 50000, "interest_rate": "3", "term_days": 90, "appraisal_value": 70000, "loan_date": "2026-01-19"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["interest_amount"] == 4500
    assert data["total_due"] == 54500
    assert data["maturity_date"] == "2026-04-19"
    assert data["ltv_percent"] == 71
    assert data["principal_presets"] == {"60": 42000, "70": 49000, "80": 56000}


def test_submit_loan(client: TestClient, loan_payload):
    """Test POST /v1/loans issues a ticket, and a retry replays it"""
    response = client.post("/v1/loans", json=loan_payload)
    assert response.status_code == 201
    data = response.json()
    assert data["ticket_number"] == "PT260119-0001"
    assert data["scan_code"] == data["ticket_number"]
    assert data["customer_id"] == "CUS-000001"
    assert data["item_id"] == "ITM260119-0001"
    assert data["transaction_id"] == "TRX-260119-0001"
    assert data["loan"]["total_due"] == 28840
    assert data["replayed"] is False

    retry = client.post("/v1/loans", json=loan_payload)
    assert retry.status_code == 200
    assert retry.json()["replayed"] is True
    assert retry.json()["ticket_number"] == "PT260119-0001"

    loan = client.get("/v1/loans/PT260119-0001").json()
    assert loan["status"] == "active"


def test_submit_loan_for_existing_customer(client: TestClient, loan_payload, customer_payload):
    """Test selecting a customer by key"""
    customer = client.post("/v1/customers", json=customer_payload).json()
    payload = {**loan_payload, "customer": None, "customer_key": customer["customer_key"]}
    response = client.post("/v1/loans", json=payload)
    assert response.status_code == 201
    assert response.json()["customer_id"] == customer["customer_id"]


def test_submit_loan_runs_screening(client: TestClient, loan_payload):
    """Test provider searches settle the checks not decided manually"""
    client.app.dependency_overrides[get_screening_provider] = lambda: ClearProvider()
    payload = {**loan_payload, "screening": {"pep": {"status": "flagged", "notes": "Councilor"}}, "run_screening": True}
    response = client.post("/v1/loans", json=payload)
    assert response.status_code == 201


def test_submit_loan_pending_screening(client: TestClient, loan_payload):
    """Test pending checks block submission"""
    payload = {**loan_payload, "screening": {}}
    response = client.post("/v1/loans", json=payload)
    assert response.status_code == 422
    assert "screening.watchlist" in response.json()["errors"]


def test_submit_loan_incomplete_item(client: TestClient, loan_payload):
    """Test the item gate reports missing photos"""
    payload = {**loan_payload, "item": {**loan_payload["item"], "photos": ["only.jpg"]}}
    response = client.post("/v1/loans", json=payload)
    assert response.status_code == 422
    assert response.json()["errors"]["photos"] == "at least 2 photos"


def test_submit_loan_unsupported_term(client: TestClient, loan_payload):
    """Test the terms gate"""
    payload = {**loan_payload, "terms": {**loan_payload["terms"], "term_days": 45}}
    response = client.post("/v1/loans", json=payload)
    assert response.status_code == 422
    assert "term_days" in response.json()["errors"]


def test_loan_lifecycle_endpoints(client: TestClient, loan_payload, clock):
    """Test renew, chain, redeem and the transaction views"""
    loan = client.post("/v1/loans", json=loan_payload).json()["loan"]

    clock.advance(days=29)
    response = client.post(f"/v1/loans/{loan['loan_key']}/renew", json={"term_days": 60})
    assert response.status_code == 201
    child = response.json()
    assert child["parent_loan_key"] == loan["loan_key"]
    assert child["renewal_count"] == 1

    chain = client.get(f"/v1/loans/{child['loan_key']}/chain").json()
    assert [row["loan_key"] for row in chain] == [loan["loan_key"], child["loan_key"]]

    response = client.post(f"/v1/loans/{child['loan_key']}/redeem", json={"amount_received": 30000})
    assert response.status_code == 200
    receipt = response.json()
    assert receipt["amount_due"] == child["total_due"]
    assert receipt["change"] == 30000 - child["total_due"]

    # Redeeming twice is an illegal transition
    response = client.post(f"/v1/loans/{child['loan_key']}/redeem", json={"amount_received": 30000})
    assert response.status_code == 409

    facts = client.get(f"/v1/transactions/by-loan/{loan['loan_key']}").json()
    assert sorted(f["type_code"] for f in facts) == ["NEW_LOAN", "RENEWAL"]

    flow = client.get("/v1/transactions/cash-flow").json()
    assert flow["collections"] == 840 + child["total_due"]
    assert flow["transaction_count"] == 2

    recent = client.get("/v1/transactions/recent", params={"limit": 2}).json()
    assert recent[0]["type_code"] == "REDEMPTION"


def test_status_endpoint(client: TestClient, loan_payload):
    """Test forfeit and auction through the status endpoint"""
    loan = client.post("/v1/loans", json=loan_payload).json()["loan"]
    key = loan["loan_key"]

    assert client.post(f"/v1/loans/{key}/status", json={"status": "redeemed"}).status_code == 422
    assert client.post(f"/v1/loans/{key}/status", json={"status": "renewed"}).status_code == 422
    assert client.post(f"/v1/loans/{key}/status", json={"status": "forfeited"}).json()["status"] == "forfeited"
    assert client.post(f"/v1/loans/{key}/status", json={"status": "auctioned"}).status_code == 422
    response = client.post(f"/v1/loans/{key}/status", json={"status": "auctioned", "sale_amount": 35000})
    assert response.json()["status"] == "auctioned"
    assert client.post(f"/v1/loans/{key}/status", json={"status": "forfeited"}).status_code == 409


def test_due_overdue_and_summary(client: TestClient, loan_payload, clock):
    """Test the listing endpoints as a loan ages"""
    client.post("/v1/loans", json=loan_payload)

    clock.advance(days=25)
    due = client.get("/v1/loans/due").json()
    assert len(due) == 1
    assert due[0]["payment_status"] == "due-soon"
    assert due[0]["customer_name"] == "Juan Dela Cruz"

    clock.advance(days=10)
    assert client.get("/v1/loans/due").json() == []
    overdue = client.get("/v1/loans/overdue").json()
    assert overdue[0]["days_until_due"] == -5

    summary = client.get("/v1/loans/summary").json()
    assert summary == {"active_loans": 1, "due_today": 0, "due_soon": 0, "overdue": 1, "capital_out": 28000}


def test_delete_loan(client: TestClient, loan_payload):
    """Test DELETE removes a standalone loan"""
    loan = client.post("/v1/loans", json=loan_payload).json()["loan"]
    assert client.delete(f"/v1/loans/{loan['loan_key']}").status_code == 204
    assert client.get(f"/v1/loans/{loan['loan_key']}").status_code == 404


def test_exports(client: TestClient, loan_payload):
    """Test CSV downloads"""
    client.post("/v1/loans", json=loan_payload)

    response = client.get("/v1/exports/loans")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["x-row-count"] == "1"
    assert "loans_all_exported_2026-01-19.csv" in response.headers["content-disposition"]
    header, row = response.text.strip().split("\n")
    assert header.startswith("Ticket Number,")
    assert "idempotency_key" not in header
    assert row.startswith("PT260119-0001,")

    response = client.get("/v1/exports/customers")
    assert response.headers["x-row-count"] == "1"
    assert "photo" not in response.text.split("\n")[0]
    assert "CUS-000001" in response.text


def test_submit_loan_customer_rejected_is_422(client: TestClient, loan_payload):
    """Test a customer the store refuses reports its field errors, not a server failure"""
    payload = {**loan_payload, "customer": {**loan_payload["customer"], "phone": "   "}}
    response = client.post("/v1/loans", json=payload)
    assert response.status_code == 422
    body = response.json()
    assert body["failed_step"] == "customer"
    assert body["completed_steps"] == []
    assert body["errors"] == {"phone": "required"}


@pytest.mark.parametrize(
    "cause, status_code",
    [
        (NotFound("Customer", 42), 404),
        (ConflictError("Customer version 42 is no longer current"), 409),
        (StoreUnavailable("database is down"), 503),
        (RuntimeError("boom"), 500),
    ],
)
async def test_submission_error_status_follows_cause(cause, status_code):
    """Test a failed submission keeps the status of what made it fail"""
    request = SimpleNamespace(state=SimpleNamespace(request_id="req-7"))
    response = await domain_exception_handler(request, SubmissionError("loan", ["customer", "item"], cause))
    assert response.status_code == status_code
    body = json.loads(response.body)
    assert body["failed_step"] == "loan"
    assert body["completed_steps"] == ["customer", "item"]
    assert body["request_id"] == "req-7"
