from typing import Optional


class CourierLedgerError(Exception):
    """Base error. ``operation`` names the sub-operation that failed, if known."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class CourierNotFoundError(CourierLedgerError):
    def __init__(self, courier_id: str, operation: Optional[str] = None):
        super().__init__(f"Courier {courier_id} not found", operation)
        self.courier_id = courier_id


class PayoutValidationError(CourierLedgerError):
    field = ""

    def __init__(self, reason: str):
        super().__init__(f"Invalid {self.field}: {reason}", operation="record_payout")
        self.reason = reason


class InvalidAmountError(PayoutValidationError):
    field = "amount"


class InvalidMethodError(PayoutValidationError):
    field = "method"


class DataUnavailableError(CourierLedgerError):
    pass


class PayoutWriteError(DataUnavailableError):
    """The payout insert failed and may or may not have been applied."""
