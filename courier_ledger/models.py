from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

CENT = Decimal("0.01")


class PayoutMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    DEPOSIT = "deposit"
    CHECK = "check"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> Optional["PayoutMethod"]:
        """Return the method for a value or legacy alias, None if unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        try:
            return cls(key)
        except ValueError:
            return METHOD_ALIASES.get(key)


# Values stored by the original dashboard.
METHOD_ALIASES = {
    "efectivo": PayoutMethod.CASH,
    "transferencia": PayoutMethod.BANK_TRANSFER,
    "deposito": PayoutMethod.DEPOSIT,
    "depósito": PayoutMethod.DEPOSIT,
    "cheque": PayoutMethod.CHECK,
    "otro": PayoutMethod.OTHER,
}


class BalanceStatus(str, Enum):
    PENDING = "pending"
    OVERPAID = "overpaid"
    SETTLED = "settled"


def to_decimal(value: Any) -> Decimal:
    """Convert a backend number to Decimal without binary float drift."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"not a monetary amount: {value!r}")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(str(value).strip())


def format_amount(value: Decimal) -> str:
    return str(value.quantize(CENT))


def _parse_money(value: Any) -> Decimal:
    try:
        return to_decimal(value)
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"not a monetary amount: {value!r}") from e


class Courier(BaseModel):
    id: str
    full_name: str
    phone: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value


class DeliveredOrder(BaseModel):
    id: str
    order_id: str
    shipping_cost: Decimal = Field(..., ge=0)
    delivered_at: datetime
    delivery_address: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("id", "order_id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("shipping_cost", mode="before")
    @classmethod
    def _cost(cls, value: Any) -> Decimal:
        # NULL cost counts as nothing earned
        if value is None:
            return Decimal("0")
        return _parse_money(value)

    @field_serializer("shipping_cost")
    def _serialize_cost(self, value: Decimal) -> str:
        return format_amount(value)


class PayoutRecord(BaseModel):
    id: str
    courier_id: str
    amount: Decimal = Field(..., gt=0)
    paid_at: datetime
    method: PayoutMethod
    reference: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("id", "courier_id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> Any:
        return _parse_money(value) if value is not None else value

    @field_validator("method", mode="before")
    @classmethod
    def _method(cls, value: Any) -> PayoutMethod:
        method = PayoutMethod.parse(value)
        if method is None:
            raise ValueError(f"unknown payout method {value!r}")
        return method

    @field_serializer("amount")
    def _serialize_amount(self, value: Decimal) -> str:
        return format_amount(value)


class CourierEarnings(BaseModel):
    courier_id: str
    courier: Courier
    deliveries: list[DeliveredOrder]
    total_earned: Decimal

    @field_serializer("total_earned")
    def _serialize_total(self, value: Decimal) -> str:
        return format_amount(value)


class PayoutHistory(BaseModel):
    courier_id: str
    payouts: list[PayoutRecord]
    total_paid: Decimal

    @field_serializer("total_paid")
    def _serialize_total(self, value: Decimal) -> str:
        return format_amount(value)


class CourierBalance(BaseModel):
    courier: Courier
    total_earned: Decimal
    total_paid: Decimal
    balance: Decimal
    status: BalanceStatus
    deliveries: list[DeliveredOrder] = Field(default_factory=list)
    payouts: list[PayoutRecord] = Field(default_factory=list)

    @field_serializer("total_earned", "total_paid", "balance")
    def _serialize_money(self, value: Decimal) -> str:
        return format_amount(value)


class RecordPayoutRequest(BaseModel):
    # Checked by PayoutLedger.record_payout
    amount: Any
    method: Any
    reference: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "amount": "12.50",
            "method": "cash",
            "reference": "REC-0042",
            "notes": "Weekly settlement"
        }
    })
