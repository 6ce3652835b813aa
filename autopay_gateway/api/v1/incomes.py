"""/v1/auto-incomes - scheduled income credits"""

from datetime import datetime
from typing import Callable, List

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from autopay_gateway.api.dependencies import get_clock, get_orchestrator
from autopay_gateway.api.v1.mappers import income_to_domain, income_to_response, log_to_schema, report_to_response
from autopay_gateway.api.v1.schemas import AutoIncomeRequest, AutoIncomeResponse, ExecutionLogResponse, ExecutionResponse
from autopay_gateway.domain.exceptions import LockNotAcquired, NotFoundError, ValidationError
from autopay_gateway.domain.models import ObligationKind
from autopay_gateway.infrastructure.database.session import get_db
from autopay_gateway.services.obligations import ObligationService
from autopay_gateway.services.orchestrator import ExecutionOrchestrator

router = APIRouter()

KIND = ObligationKind.CREDIT


@router.get("/auto-incomes", response_model=List[AutoIncomeResponse])
def list_auto_incomes(db: Session = Depends(get_db)):
    return [income_to_response(o) for o in ObligationService(db).list(KIND)]


@router.post("/auto-incomes", response_model=AutoIncomeResponse, status_code=201)
def create_auto_income(
    body: AutoIncomeRequest,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    try:
        obligation = ObligationService(db).create(income_to_domain(body), clock())
    except ValidationError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))
    return income_to_response(obligation)


@router.get("/auto-incomes/{obligation_id}", response_model=AutoIncomeResponse)
def get_auto_income(obligation_id: str, db: Session = Depends(get_db)):
    try:
        return income_to_response(ObligationService(db).get(obligation_id, KIND))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/auto-incomes/{obligation_id}", response_model=AutoIncomeResponse)
def update_auto_income(
    obligation_id: str,
    body: AutoIncomeRequest,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    try:
        obligation = ObligationService(db).update(income_to_domain(body, obligation_id), clock())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))
    return income_to_response(obligation)


@router.delete("/auto-incomes/{obligation_id}", status_code=204)
def delete_auto_income(obligation_id: str, db: Session = Depends(get_db)):
    try:
        ObligationService(db).delete(obligation_id, KIND)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(status_code=204)


@router.post("/auto-incomes/{obligation_id}/toggle", response_model=AutoIncomeResponse)
def toggle_auto_income(
    obligation_id: str,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    try:
        return income_to_response(ObligationService(db).toggle(obligation_id, clock(), KIND))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/auto-incomes/{obligation_id}/execute", response_model=ExecutionResponse)
async def execute_auto_income(
    obligation_id: str,
    db: Session = Depends(get_db),
    orchestrator: ExecutionOrchestrator = Depends(get_orchestrator),
):
    try:
        ObligationService(db).get(obligation_id, KIND)
        report = await orchestrator.execute(obligation_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LockNotAcquired as e:
        raise HTTPException(status_code=409, detail=str(e))
    return report_to_response(report)


@router.get("/auto-incomes/{obligation_id}/logs", response_model=ExecutionLogResponse)
def get_auto_income_logs(
    obligation_id: str,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    try:
        entries = ObligationService(db).logs(obligation_id, limit, KIND)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ExecutionLogResponse(obligation_id=obligation_id, logs=[log_to_schema(e) for e in entries])
