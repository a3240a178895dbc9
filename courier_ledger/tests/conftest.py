from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from courier_ledger.errors import DataUnavailableError
from courier_ledger.store import COURIERS, DELIVERED_ORDERS, PAYOUTS, InMemoryStore

COURIER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_COURIER_ID = "660e8400-e29b-41d4-a716-446655440001"
UNKNOWN_COURIER_ID = "00000000-0000-0000-0000-000000000000"

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    """Returns BASE_TIME, then one minute later on every call."""

    def __init__(self, start: datetime = BASE_TIME):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current += timedelta(minutes=1)
        return now


class FailingStore(InMemoryStore):
    def __init__(self, fail_select=(), fail_insert: bool = False):
        super().__init__()
        self.fail_select = set(fail_select)
        self.fail_insert = fail_insert
        self.payout_inserts = 0

    def select(self, table, filters=None, order=None):
        if table in self.fail_select:
            raise DataUnavailableError(f"{table} unreachable")
        return super().select(table, filters, order)

    def insert(self, table, row):
        if table == PAYOUTS:
            self.payout_inserts += 1
            if self.fail_insert:
                raise DataUnavailableError("connection reset by peer")
        return super().insert(table, row)


def add_courier(store, courier_id=COURIER_ID, full_name="Juan Perez", phone=None):
    return store.insert(COURIERS, {"id": courier_id, "full_name": full_name, "phone": phone})


def add_delivery(store, cost, courier_id=COURIER_ID, delivered_at=BASE_TIME):
    return store.insert(DELIVERED_ORDERS, {
        "courier_id": courier_id,
        "order_id": str(uuid4()),
        "shipping_cost": Decimal(cost) if isinstance(cost, str) else cost,
        "delivered_at": delivered_at,
        "delivery_address": "Av. Central 123",
    })


def add_payout(store, amount, courier_id=COURIER_ID, paid_at=BASE_TIME, method="cash"):
    return store.insert(PAYOUTS, {
        "courier_id": courier_id,
        "amount": Decimal(amount),
        "paid_at": paid_at,
        "method": method,
        "reference": None,
        "notes": None,
    })


@pytest.fixture
def store():
    store = InMemoryStore()
    add_courier(store)
    return store
