"""
Tests for the billing HTTP API (subscribers, vouchers, income, reminders)
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db, get_clock
from app.infrastructure.db.session import Base
from app.main import app


@pytest.fixture
def client(clock):
    """Test client over a shared in-memory SQLite database"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False)

    def _get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def _signup(client, **overrides):
    payload = {"name": "Ahmed", "package_fee": 1500, "payment_mode": "later"}
    payload.update(overrides)
    response = client.post("/api/v1/subscribers/", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.text == "ok"


class TestSubscribersApi:
    def test_create_and_get(self, client):
        body = _signup(client, recharge_date="28-11-2025", whatsapp_no="03001234567")
        sub = body["subscriber"]
        assert sub["status"] == "unpaid"
        assert sub["remaining_amount"] == "1500.00"
        assert sub["expiry_date"] == "2025-12-28"
        assert body["warnings"] == []

        response = client.get(f"/api/v1/subscribers/{sub['id']}")
        assert response.status_code == 200
        assert response.json()["total_outstanding"] in ("1500.00", "1500")

    def test_validation_error_is_400(self, client):
        response = client.post(
            "/api/v1/subscribers/",
            json={"name": "Ahmed", "package_fee": 1500, "payment_mode": "someday"},
        )
        assert response.status_code == 400
        assert "payment_mode" in response.json()["detail"]

    def test_missing_subscriber_is_404(self, client):
        assert client.get("/api/v1/subscribers/9999").status_code == 404
        assert client.delete("/api/v1/subscribers/9999").status_code == 404

    def test_list_views(self, client):
        _signup(client, name="Ahmed")
        _signup(client, name="Bashir", payment_mode="now", received_by="Ali")
        _signup(client, name="Chaudhry", recharge_date="29-10-2025", expiry_date="29-11-2025")

        page = client.get("/api/v1/subscribers/", params={"status": "unpaid"}).json()
        assert page["total"] == 2

        soon = client.get("/api/v1/subscribers/expiring-soon").json()
        assert [row["subscriber"]["name"] for row in soon] == ["Chaudhry"]
        assert soon[0]["days_left"] == 1

        outstanding = client.get("/api/v1/subscribers/outstanding").json()
        assert sorted(row["subscriber_name"] for row in outstanding) == ["Ahmed", "Chaudhry"]

    def test_status_override_that_contradicts_voucher_is_409(self, client):
        sid = _signup(client)["subscriber"]["id"]
        response = client.patch(f"/api/v1/subscribers/{sid}", json={"status": "paid"})
        assert response.status_code == 409
        assert client.get(f"/api/v1/subscribers/{sid}").json()["subscriber"]["status"] == "unpaid"

    def test_patch_and_delete(self, client):
        sid = _signup(client)["subscriber"]["id"]
        response = client.patch(f"/api/v1/subscribers/{sid}", json={"service_status": "inactive"})
        assert response.status_code == 200
        assert response.json()["subscriber"]["service_status"] == "inactive"

        assert client.delete(f"/api/v1/subscribers/{sid}").json() == {"status": "deleted"}
        assert client.get(f"/api/v1/subscribers/{sid}").status_code == 404


class TestVouchersApi:
    def test_payment_flow(self, client):
        sid = _signup(client, recharge_date="28-11-2025")["subscriber"]["id"]

        response = client.post(f"/api/v1/vouchers/{sid}/payments", json={
            "month": "November 2025", "amount": 500, "method": "Cash", "receiver": "Ali",
        })
        assert response.status_code == 200, response.text
        assert response.json()["subscriber_status"] == "partial"

        voucher = client.get(f"/api/v1/vouchers/{sid}").json()
        month = voucher["months"][0]
        assert month["remaining_amount"] == "1000.00"
        assert month["payment_history"][0]["received_by"] == "Ali"

        income = client.get("/api/v1/income/Ali").json()
        assert income["cash_income"] == "500.00"

        statement = client.get(f"/api/v1/subscribers/{sid}/transactions").json()
        assert len(statement["transactions"]) == 2

    def test_overpayment_is_409(self, client):
        sid = _signup(client, recharge_date="28-11-2025")["subscriber"]["id"]
        response = client.post(f"/api/v1/vouchers/{sid}/payments", json={
            "month": "November 2025", "amount": 5000, "method": "Cash", "receiver": "Ali",
        })
        assert response.status_code == 409

    def test_merge_reverse_and_convert(self, client):
        sid = _signup(client, recharge_date="28-11-2025")["subscriber"]["id"]

        response = client.post(f"/api/v1/vouchers/{sid}/months", json={
            "months": [{"label": "December 2025", "package_fee": 1500, "charge_date": "28-12-2025"}],
        })
        assert response.status_code == 200, response.text
        assert response.json()["months"] == ["December 2025"]

        response = client.post(f"/api/v1/vouchers/{sid}/reversals", json={"months": ["December 2025"]})
        assert response.status_code == 200
        assert client.post(
            f"/api/v1/vouchers/{sid}/reversals", json={"months": ["December 2025"]},
        ).status_code == 409

        response = client.post(f"/api/v1/vouchers/{sid}/months/December 2025/unpaid")
        assert response.status_code == 200
        voucher = client.get(f"/api/v1/vouchers/{sid}").json()
        assert [m["status"] for m in voucher["months"]] == ["unpaid", "unpaid"]

    def test_reset_voucher(self, client):
        sid = _signup(client)["subscriber"]["id"]
        assert client.delete(f"/api/v1/vouchers/{sid}").json()["months_removed"] == 1
        assert client.get(f"/api/v1/vouchers/{sid}").status_code == 404


class TestIncomeAndRemindersApi:
    def test_transfer(self, client):
        _signup(client, payment_mode="now", received_by="Ali")

        response = client.post("/api/v1/income/transfers", json={"from_receiver": "Ali", "amount": 1000})
        assert response.status_code == 201, response.text
        assert response.json()["to_receiver"] == "Admin"

        totals = {r["receiver_name"]: r["cash_income"] for r in client.get("/api/v1/income/").json()}
        assert totals == {"Admin": "1000.00", "Ali": "500.00"}
        assert len(client.get("/api/v1/income/transfers").json()) == 1

        too_much = client.post("/api/v1/income/transfers", json={"from_receiver": "Ali", "amount": 9000})
        assert too_much.status_code == 409

    def test_reminders(self, client):
        sid = _signup(client)["subscriber"]["id"]
        response = client.post("/api/v1/reminders/", json={
            "subscriber_id": sid, "remind_on": "30-11-2025", "amount": 1500,
        })
        assert response.status_code == 201, response.text
        rid = response.json()["id"]
        assert response.json()["remind_on"] == "2025-11-30"

        assert [r["id"] for r in client.get("/api/v1/reminders/").json()] == [rid]
        assert client.delete(f"/api/v1/reminders/{rid}").status_code == 200
        assert client.get("/api/v1/reminders/").json() == []
