"""/v1/auto-payments - scheduled payments with waterfall funding"""

import logging
from datetime import datetime
from typing import Callable, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from autopay_gateway.api.dependencies import get_clock, get_orchestrator, get_request_id
from autopay_gateway.api.v1.mappers import log_to_schema, payment_to_domain, payment_to_response, report_to_response
from autopay_gateway.api.v1.schemas import (
    AutoPaymentRequest,
    AutoPaymentResponse,
    ExecutionLogResponse,
    ExecutionResponse,
    MonthlyPaymentResponse,
)
from autopay_gateway.domain.exceptions import LockNotAcquired, NotFoundError, ValidationError
from autopay_gateway.domain.installments import calculate_monthly_payment
from autopay_gateway.domain.models import ObligationKind
from autopay_gateway.infrastructure.database.session import get_db
from autopay_gateway.services.obligations import ObligationService
from autopay_gateway.services.orchestrator import ExecutionOrchestrator

router = APIRouter()

KIND = ObligationKind.DEBIT


@router.get("/auto-payments", response_model=List[AutoPaymentResponse])
def list_auto_payments(db: Session = Depends(get_db)):
    return [payment_to_response(o) for o in ObligationService(db).list(KIND)]


@router.post("/auto-payments", response_model=AutoPaymentResponse, status_code=201)
def create_auto_payment(
    body: AutoPaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Create a scheduled payment.

    The first run is the next occurrence of day_of_month/execute_time at or
    after now, clamped to the last day of shorter months.
    """
    try:
        obligation = ObligationService(db).create(payment_to_domain(body), clock())
    except ValidationError as e:
        db.rollback()
        logging.warning(f"Rejected auto-payment: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=422, detail=str(e))
    return payment_to_response(obligation)


@router.get("/auto-payments/utils/calculate-monthly-payment", response_model=MonthlyPaymentResponse)
def calculate_payment(
    principal_cents: int = Query(..., gt=0),
    annual_rate: float = Query(..., ge=0, description="Annual interest rate in percent, e.g. 4.9"),
    term_months: int = Query(..., gt=0),
):
    """Equal monthly installment of an amortizing loan"""
    try:
        result = calculate_monthly_payment(principal_cents, annual_rate, term_months)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return MonthlyPaymentResponse(
        principal_cents=principal_cents,
        annual_rate=annual_rate,
        term_months=term_months,
        monthly_payment_cents=result.monthly_payment_cents,
        total_payment_cents=result.total_payment_cents,
        total_interest_cents=result.total_interest_cents,
    )


@router.get("/auto-payments/{obligation_id}", response_model=AutoPaymentResponse)
def get_auto_payment(obligation_id: str, db: Session = Depends(get_db)):
    try:
        return payment_to_response(ObligationService(db).get(obligation_id, KIND))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/auto-payments/{obligation_id}", response_model=AutoPaymentResponse)
def update_auto_payment(
    obligation_id: str,
    body: AutoPaymentRequest,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Replace a payment's definition; execution history and progress are kept"""
    try:
        obligation = ObligationService(db).update(payment_to_domain(body, obligation_id), clock())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))
    return payment_to_response(obligation)


@router.delete("/auto-payments/{obligation_id}", status_code=204)
def delete_auto_payment(obligation_id: str, db: Session = Depends(get_db)):
    try:
        ObligationService(db).delete(obligation_id, KIND)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(status_code=204)


@router.post("/auto-payments/{obligation_id}/toggle", response_model=AutoPaymentResponse)
def toggle_auto_payment(
    obligation_id: str,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    try:
        return payment_to_response(ObligationService(db).toggle(obligation_id, clock(), KIND))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/auto-payments/{obligation_id}/execute", response_model=ExecutionResponse)
async def execute_auto_payment(
    obligation_id: str,
    db: Session = Depends(get_db),
    orchestrator: ExecutionOrchestrator = Depends(get_orchestrator),
):
    """Run the payment's current period now, even before it is due"""
    try:
        ObligationService(db).get(obligation_id, KIND)
        report = await orchestrator.execute(obligation_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LockNotAcquired as e:
        raise HTTPException(status_code=409, detail=str(e))
    return report_to_response(report)


@router.get("/auto-payments/{obligation_id}/logs", response_model=ExecutionLogResponse)
def get_auto_payment_logs(
    obligation_id: str,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Most recent execution attempts first"""
    try:
        entries = ObligationService(db).logs(obligation_id, limit, KIND)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ExecutionLogResponse(obligation_id=obligation_id, logs=[log_to_schema(e) for e in entries])
