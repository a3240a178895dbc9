from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, build_store, get_settings
from .errors import (
    CourierLedgerError,
    CourierNotFoundError,
    DataUnavailableError,
    PayoutValidationError,
)
from .log import configure_logging
from .models import (
    CourierBalance,
    CourierEarnings,
    PayoutHistory,
    PayoutRecord,
    RecordPayoutRequest,
)
from .service import BalanceReconciler, EarningsAggregator, PayoutLedger
from .store import DataStore


def _http_error(error: CourierLedgerError) -> HTTPException:
    if isinstance(error, CourierNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, PayoutValidationError):
        return HTTPException(
            status_code=422,
            detail={"field": error.field, "reason": error.reason},
        )
    if isinstance(error, DataUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": str(error), "operation": error.operation, "retryable": True},
            headers={"Retry-After": "5"},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


def create_app(store: Optional[DataStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)
    if store is None:
        store = build_store(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Courier earnings, payout ledger and balance reconciliation",
        version=settings.version,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.earnings = EarningsAggregator(store)
    app.state.ledger = PayoutLedger(store)
    app.state.reconciler = BalanceReconciler(app.state.earnings, app.state.ledger)

    register_routes(app)
    return app


def get_earnings_service(request: Request) -> EarningsAggregator:
    return request.app.state.earnings


def get_ledger(request: Request) -> PayoutLedger:
    return request.app.state.ledger


def get_reconciler(request: Request) -> BalanceReconciler:
    return request.app.state.reconciler


def register_routes(app: FastAPI):
    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "courier-ledger"}

    @app.get("/couriers/balances", response_model=list[CourierBalance], tags=["Balances"])
    def list_balances(reconciler: BalanceReconciler = Depends(get_reconciler)):
        try:
            return reconciler.summarize_balances()
        except CourierLedgerError as e:
            raise _http_error(e)

    @app.get("/couriers/{courier_id}/earnings", response_model=CourierEarnings, tags=["Earnings"])
    def get_earnings(courier_id: str, earnings: EarningsAggregator = Depends(get_earnings_service)):
        try:
            return earnings.get_earnings(courier_id)
        except CourierLedgerError as e:
            raise _http_error(e)

    @app.get("/couriers/{courier_id}/payouts", response_model=PayoutHistory, tags=["Payouts"])
    def list_payouts(courier_id: str, ledger: PayoutLedger = Depends(get_ledger)):
        try:
            return ledger.list_payouts(courier_id)
        except CourierLedgerError as e:
            raise _http_error(e)

    @app.post(
        "/couriers/{courier_id}/payouts",
        response_model=PayoutRecord,
        status_code=status.HTTP_201_CREATED,
        tags=["Payouts"],
    )
    def record_payout(courier_id: str, request: RecordPayoutRequest, ledger: PayoutLedger = Depends(get_ledger)):
        try:
            return ledger.record_payout(
                courier_id,
                request.amount,
                request.method,
                reference=request.reference,
                notes=request.notes,
            )
        except CourierLedgerError as e:
            raise _http_error(e)

    @app.get("/couriers/{courier_id}/balance", response_model=CourierBalance, tags=["Balances"])
    def get_balance(courier_id: str, reconciler: BalanceReconciler = Depends(get_reconciler)):
        try:
            return reconciler.reconcile_balance(courier_id)
        except CourierLedgerError as e:
            raise _http_error(e)


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
