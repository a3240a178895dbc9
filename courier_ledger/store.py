"""
Data store adapters.

The ledger only needs two primitives from a relational backend:
``select(table, filters, order)`` and ``insert(table, row)``. Any object
providing them can be injected into the services; two are shipped here,
a dict-backed store for tests and local runs and a SQLAlchemy Core store.
"""

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, Protocol
from uuid import uuid4

import structlog
from sqlalchemy import (
    Column, DateTime, ForeignKey, MetaData, Numeric, String, Table, Text,
    create_engine, select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from .errors import DataUnavailableError

logger = structlog.get_logger(__name__)

COURIERS = "couriers"
DELIVERED_ORDERS = "delivered_orders"
PAYOUTS = "courier_payouts"

Order = Optional[tuple[str, bool]]


class DataStore(Protocol):
    def select(self, table: str, filters: Optional[dict] = None, order: Order = None) -> list[dict]:
        ...

    def insert(self, table: str, row: dict) -> dict:
        ...


class InMemoryStore:
    def __init__(self, seed: bool = False):
        self.tables: dict[str, list[dict]] = {COURIERS: [], DELIVERED_ORDERS: [], PAYOUTS: []}
        self._lock = threading.Lock()
        if seed:
            self._seed_data()

    def _seed_data(self):
        now = datetime.now(timezone.utc)
        courier1_id = "550e8400-e29b-41d4-a716-446655440000"
        courier2_id = "660e8400-e29b-41d4-a716-446655440001"

        self.insert(COURIERS, {"id": courier1_id, "full_name": "Juan Pérez", "phone": "555-0101"})
        self.insert(COURIERS, {"id": courier2_id, "full_name": "María López", "phone": None})

        for days_ago, cost in ((2, "5.00"), (1, "7.50")):
            self.insert(DELIVERED_ORDERS, {
                "courier_id": courier1_id,
                "order_id": str(uuid4()),
                "shipping_cost": Decimal(cost),
                "delivered_at": now - timedelta(days=days_ago),
                "delivery_address": "Av. Central 123",
            })

        self.insert(PAYOUTS, {
            "courier_id": courier2_id,
            "amount": Decimal("20.00"),
            "paid_at": now - timedelta(days=3),
            "method": "cash",
            "reference": None,
            "notes": "Advance",
        })

    def _table(self, table: str) -> list[dict]:
        try:
            return self.tables[table]
        except KeyError:
            raise ValueError(f"Unknown table {table!r}") from None

    def select(self, table: str, filters: Optional[dict] = None, order: Order = None) -> list[dict]:
        filters = filters or {}
        with self._lock:
            rows = [
                dict(r) for r in self._table(table)
                if all(r.get(k) == v for k, v in filters.items())
            ]

        if order:
            column, descending = order
            if descending:
                # newest insert first among equal keys
                rows.reverse()
            rows.sort(key=lambda r: (r.get(column) is not None, r.get(column)), reverse=descending)
        return rows

    def insert(self, table: str, row: dict) -> dict:
        stored = dict(row)
        stored.setdefault("id", str(uuid4()))
        with self._lock:
            self._table(table).append(stored)
        return dict(stored)


metadata = MetaData()

couriers_table = Table(
    COURIERS, metadata,
    Column("id", String(36), primary_key=True),
    Column("full_name", String(200), nullable=False),
    Column("phone", String(50)),
)

delivered_orders_table = Table(
    DELIVERED_ORDERS, metadata,
    Column("id", String(36), primary_key=True),
    Column("courier_id", String(36), ForeignKey("couriers.id"), nullable=False, index=True),
    Column("order_id", String(36), nullable=False),
    Column("shipping_cost", Numeric(12, 2)),
    Column("delivered_at", DateTime(timezone=True), nullable=False),
    Column("delivery_address", Text),
)

payouts_table = Table(
    PAYOUTS, metadata,
    Column("id", String(36), primary_key=True),
    Column("courier_id", String(36), ForeignKey("couriers.id"), nullable=False, index=True),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("paid_at", DateTime(timezone=True), nullable=False),
    Column("method", String(20), nullable=False),
    Column("reference", String(200)),
    Column("notes", Text),
)


def _as_utc(row: dict) -> dict:
    # SQLite drops tzinfo; timestamps are stored and read back as UTC
    for key, value in row.items():
        if isinstance(value, datetime):
            if value.tzinfo is None:
                row[key] = value.replace(tzinfo=timezone.utc)
            else:
                row[key] = value.astimezone(timezone.utc)
    return row


class SqlStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str, connect_timeout: int = 10, echo: bool = False) -> "SqlStore":
        url = make_url(database_url)
        connect_args: dict[str, Any] = {}
        if url.get_backend_name() == "sqlite":
            connect_args["timeout"] = connect_timeout
        elif url.get_backend_name() == "postgresql":
            connect_args["connect_timeout"] = connect_timeout

        engine = create_engine(url, pool_pre_ping=True, echo=echo, connect_args=connect_args)
        return cls(engine)

    def create_tables(self):
        metadata.create_all(self.engine)

    def _table(self, table: str) -> Table:
        try:
            return metadata.tables[table]
        except KeyError:
            raise ValueError(f"Unknown table {table!r}") from None

    def select(self, table: str, filters: Optional[dict] = None, order: Order = None) -> list[dict]:
        t = self._table(table)
        stmt = select(t)
        for column, value in (filters or {}).items():
            stmt = stmt.where(t.c[column] == value)
        if order:
            column, descending = order
            stmt = stmt.order_by(t.c[column].desc() if descending else t.c[column].asc())

        try:
            with self.engine.connect() as conn:
                return [_as_utc(dict(r)) for r in conn.execute(stmt).mappings()]
        except SQLAlchemyError as e:
            logger.error("Store select failed", table=table, error=str(e))
            raise DataUnavailableError(f"Could not read {table}: {e.__class__.__name__}") from e

    def insert(self, table: str, row: dict) -> dict:
        t = self._table(table)
        stored = _as_utc(dict(row))
        stored.setdefault("id", str(uuid4()))

        try:
            # single statement, committed or rolled back as a whole
            with self.engine.begin() as conn:
                conn.execute(t.insert().values(**stored))
        except SQLAlchemyError as e:
            logger.error("Store insert failed", table=table, error=str(e))
            raise DataUnavailableError(f"Could not write {table}: {e.__class__.__name__}") from e
        return stored
