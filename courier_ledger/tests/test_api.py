"""Integration tests for the HTTP endpoints via TestClient."""

import pytest
from fastapi.testclient import TestClient

from courier_ledger.api import create_app
from courier_ledger.config import Settings
from courier_ledger.store import DELIVERED_ORDERS, InMemoryStore

from conftest import (
    COURIER_ID,
    OTHER_COURIER_ID,
    UNKNOWN_COURIER_ID,
    FailingStore,
    add_courier,
    add_delivery,
    add_payout,
)


def make_client(store) -> TestClient:
    return TestClient(create_app(store=store, settings=Settings(log_level="WARNING")))


@pytest.fixture
def client(store):
    return make_client(store)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestPayoutEndpoints:
    def test_record_payout(self, client):
        response = client.post(
            f"/couriers/{COURIER_ID}/payouts",
            json={"amount": 10.5, "method": "cash", "reference": "REC-9"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["amount"] == "10.50"
        assert body["method"] == "cash"
        assert body["reference"] == "REC-9"
        assert body["courier_id"] == COURIER_ID

    def test_record_then_list(self, client):
        client.post(f"/couriers/{COURIER_ID}/payouts", json={"amount": "12.50", "method": "cash"})

        response = client.get(f"/couriers/{COURIER_ID}/payouts")

        assert response.status_code == 200
        body = response.json()
        assert len(body["payouts"]) == 1
        assert body["total_paid"] == "12.50"

    def test_invalid_amount(self, client):
        response = client.post(f"/couriers/{COURIER_ID}/payouts", json={"amount": 0, "method": "cash"})

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "amount"
        assert client.get(f"/couriers/{COURIER_ID}/payouts").json()["payouts"] == []

    def test_invalid_method(self, client):
        response = client.post(f"/couriers/{COURIER_ID}/payouts", json={"amount": 10, "method": "bitcoin"})

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "method"

    def test_unknown_courier(self, client):
        response = client.post(f"/couriers/{UNKNOWN_COURIER_ID}/payouts", json={"amount": 10, "method": "cash"})

        assert response.status_code == 404

    def test_write_failure_is_retryable_503(self):
        store = FailingStore(fail_insert=True)
        add_courier(store)
        client = make_client(store)

        response = client.post(f"/couriers/{COURIER_ID}/payouts", json={"amount": 10, "method": "cash"})

        assert response.status_code == 503
        assert response.json()["detail"]["retryable"] is True
        assert response.headers["Retry-After"] == "5"
        assert store.payout_inserts == 1


class TestBalanceEndpoints:
    def test_earnings(self, store, client):
        add_delivery(store, "5.00")
        add_delivery(store, "7.50")

        response = client.get(f"/couriers/{COURIER_ID}/earnings")

        assert response.status_code == 200
        body = response.json()
        assert body["total_earned"] == "12.50"
        assert len(body["deliveries"]) == 2

    def test_balance(self, store, client):
        add_delivery(store, "100.00")
        add_payout(store, "40.00")

        response = client.get(f"/couriers/{COURIER_ID}/balance")

        assert response.status_code == 200
        body = response.json()
        assert body["total_earned"] == "100.00"
        assert body["total_paid"] == "40.00"
        assert body["balance"] == "60.00"
        assert body["status"] == "pending"
        assert body["courier"]["id"] == COURIER_ID

    def test_balance_unknown_courier(self, client):
        assert client.get(f"/couriers/{UNKNOWN_COURIER_ID}/balance").status_code == 404

    def test_fetch_failure_is_not_a_zero_balance(self):
        store = FailingStore(fail_select={DELIVERED_ORDERS})
        add_courier(store)
        client = make_client(store)

        response = client.get(f"/couriers/{COURIER_ID}/balance")

        assert response.status_code == 503
        assert response.json()["detail"]["operation"] == "earnings"

    def test_summary(self):
        store = InMemoryStore()
        add_courier(store, full_name="Ana Ruiz")
        add_courier(store, courier_id=OTHER_COURIER_ID, full_name="Zoe Diaz")
        add_payout(store, "20.00", courier_id=OTHER_COURIER_ID)
        client = make_client(store)

        response = client.get("/couriers/balances")

        assert response.status_code == 200
        body = response.json()
        assert [b["courier"]["full_name"] for b in body] == ["Ana Ruiz", "Zoe Diaz"]
        assert [b["status"] for b in body] == ["settled", "overpaid"]
        assert body[1]["balance"] == "-20.00"


class TestServerlessHandler:
    def test_handler_strips_api_prefix(self):
        from api.index import handler

        assert handler.config["api_gateway_base_path"] == "/api"
