"""
Courier earnings and payout ledger

This module provides:
- Delivered-order earnings per courier
- Append-only payout ledger with validated, never-retried writes
- Balance reconciliation: earned - paid, classified pending / overpaid / settled
- Pluggable data store (in-memory or SQLAlchemy)
"""

from .errors import (
    CourierLedgerError,
    CourierNotFoundError,
    DataUnavailableError,
    InvalidAmountError,
    InvalidMethodError,
    PayoutWriteError,
)
from .models import (
    BalanceStatus,
    Courier,
    CourierBalance,
    CourierEarnings,
    DeliveredOrder,
    PayoutHistory,
    PayoutMethod,
    PayoutRecord,
    format_amount,
)
from .service import BalanceReconciler, EarningsAggregator, PayoutLedger, classify_balance
from .store import DataStore, InMemoryStore, SqlStore

__all__ = [
    "CourierLedgerError",
    "CourierNotFoundError",
    "DataUnavailableError",
    "InvalidAmountError",
    "InvalidMethodError",
    "PayoutWriteError",
    "BalanceStatus",
    "Courier",
    "CourierBalance",
    "CourierEarnings",
    "DeliveredOrder",
    "PayoutHistory",
    "PayoutMethod",
    "PayoutRecord",
    "format_amount",
    "BalanceReconciler",
    "EarningsAggregator",
    "PayoutLedger",
    "classify_balance",
    "DataStore",
    "InMemoryStore",
    "SqlStore",
]
