from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

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
    to_decimal,
)
from .store import COURIERS, DELIVERED_ORDERS, PAYOUTS, DataStore

logger = structlog.get_logger(__name__)

# Largest value a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")

__all__ = [
    "CourierLedgerError",
    "CourierNotFoundError",
    "DataUnavailableError",
    "InvalidAmountError",
    "InvalidMethodError",
    "PayoutWriteError",
    "EarningsAggregator",
    "PayoutLedger",
    "BalanceReconciler",
    "classify_balance",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_rows(model, rows: list[dict], table: str) -> list:
    try:
        return [model.model_validate(r) for r in rows]
    except ValidationError as e:
        raise DataUnavailableError(f"Unexpected row shape in {table}: {e.error_count()} error(s)") from e


def get_courier(store: DataStore, courier_id: str) -> Courier:
    rows = store.select(COURIERS, {"id": courier_id})
    if not rows:
        raise CourierNotFoundError(courier_id)
    return _parse_rows(Courier, rows[:1], COURIERS)[0]


def classify_balance(balance: Decimal) -> BalanceStatus:
    if balance > 0:
        return BalanceStatus.PENDING
    if balance < 0:
        return BalanceStatus.OVERPAID
    return BalanceStatus.SETTLED


class EarningsAggregator:
    def __init__(self, store: DataStore):
        self.store = store

    def get_earnings(self, courier_id: str) -> CourierEarnings:
        courier = get_courier(self.store, courier_id)
        rows = self.store.select(
            DELIVERED_ORDERS, {"courier_id": courier_id}, order=("delivered_at", True)
        )
        deliveries = _parse_rows(DeliveredOrder, rows, DELIVERED_ORDERS)

        return CourierEarnings(
            courier_id=courier_id,
            courier=courier,
            deliveries=deliveries,
            total_earned=sum((d.shipping_cost for d in deliveries), Decimal("0")),
        )


class PayoutLedger:
    """Append-only record of payments made to couriers."""

    def __init__(self, store: DataStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    def list_payouts(self, courier_id: str) -> PayoutHistory:
        get_courier(self.store, courier_id)
        rows = self.store.select(PAYOUTS, {"courier_id": courier_id}, order=("paid_at", True))
        payouts = _parse_rows(PayoutRecord, rows, PAYOUTS)

        return PayoutHistory(
            courier_id=courier_id,
            payouts=payouts,
            total_paid=sum((p.amount for p in payouts), Decimal("0")),
        )

    def record_payout(
        self,
        courier_id: str,
        amount: Any,
        method: Any,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PayoutRecord:
        """
        Validate and insert one payout.

        The insert is attempted exactly once. If it fails the outcome is
        unknown and PayoutWriteError is raised; callers must check
        ``list_payouts`` before retrying.
        """
        value = self._validate_amount(amount)
        payout_method = PayoutMethod.parse(method)
        if payout_method is None:
            allowed = ", ".join(m.value for m in PayoutMethod)
            raise InvalidMethodError(f"{method!r} is not one of {allowed}")

        get_courier(self.store, courier_id)

        row = {
            "courier_id": courier_id,
            "amount": value,
            "paid_at": self.clock(),
            "method": payout_method.value,
            "reference": reference or None,
            "notes": notes or None,
        }
        try:
            stored = self.store.insert(PAYOUTS, row)
        except DataUnavailableError as e:
            logger.error(
                "Payout write failed",
                courier_id=courier_id,
                amount=format_amount(value),
                method=payout_method.value,
                error=str(e),
            )
            raise PayoutWriteError(
                f"Payout for courier {courier_id} may not have been recorded; "
                "check the ledger before retrying",
                operation="record_payout",
            ) from e

        record = PayoutRecord.model_validate(stored)
        logger.info(
            "Payout recorded",
            courier_id=courier_id,
            payout_id=record.id,
            amount=format_amount(record.amount),
            method=record.method.value,
        )
        return record

    @staticmethod
    def _validate_amount(amount: Any) -> Decimal:
        if amount is None or isinstance(amount, bool):
            raise InvalidAmountError("amount is required")
        try:
            value = to_decimal(amount)
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(f"{amount!r} is not a number") from None

        if not value.is_finite():
            raise InvalidAmountError("amount must be a finite number")
        if value <= 0:
            raise InvalidAmountError("amount must be greater than zero")
        if value > MAX_AMOUNT:
            raise InvalidAmountError(f"amount cannot exceed {MAX_AMOUNT}")
        try:
            has_extra_places = value != value.quantize(Decimal("0.01"))
        except InvalidOperation:
            raise InvalidAmountError(f"{amount!r} is not a valid amount") from None
        if has_extra_places:
            raise InvalidAmountError("amount cannot have more than 2 decimal places")
        return value


class BalanceReconciler:
    def __init__(self, earnings: EarningsAggregator, ledger: PayoutLedger, max_workers: int = 8):
        self.earnings = earnings
        self.ledger = ledger
        self.max_workers = max_workers

    @classmethod
    def from_store(cls, store: DataStore, **kwargs) -> "BalanceReconciler":
        return cls(EarningsAggregator(store), PayoutLedger(store), **kwargs)

    def reconcile_balance(self, courier_id: str) -> CourierBalance:
        earned, paid = self._fetch_both(courier_id)

        balance = earned.total_earned - paid.total_paid
        status = classify_balance(balance)
        logger.debug(
            "Balance reconciled",
            courier_id=courier_id,
            status=status.value,
            balance=format_amount(balance),
        )
        return CourierBalance(
            courier=earned.courier,
            total_earned=earned.total_earned,
            total_paid=paid.total_paid,
            balance=balance,
            status=status,
            deliveries=earned.deliveries,
            payouts=paid.payouts,
        )

    def summarize_balances(self) -> list[CourierBalance]:
        rows = self.earnings.store.select(COURIERS, order=("full_name", False))
        couriers = _parse_rows(Courier, rows, COURIERS)
        if not couriers:
            return []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(couriers))) as pool:
            futures = [pool.submit(self.reconcile_balance, c.id) for c in couriers]
            # Reports the failure of the first courier by name, not the first to complete
            for i, future in enumerate(futures):
                error = future.exception()
                if error is not None:
                    for pending in futures[i + 1:]:
                        pending.cancel()
                    raise error
            return [f.result() for f in futures]

    def _fetch_both(self, courier_id: str) -> tuple[CourierEarnings, PayoutHistory]:
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = {
                pool.submit(self.earnings.get_earnings, courier_id): "earnings",
                pool.submit(self.ledger.list_payouts, courier_id): "payouts",
            }
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            # If both failed, the earnings error is the one raised
            for future in futures:
                error = future.exception() if future in done else None
                if error is not None:
                    if isinstance(error, CourierLedgerError):
                        error.operation = futures[future]
                    logger.warning(
                        "Balance fetch failed",
                        courier_id=courier_id,
                        operation=futures[future],
                        error=str(error),
                    )
                    raise error

            earned, paid = (f.result() for f in futures)
            return earned, paid
