"""POST /v1/sweep and GET /v1/reminders - operational hooks for schedulers and the notifier"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from autopay_gateway.api.dependencies import get_orchestrator, get_request_id
from autopay_gateway.api.v1.mappers import report_to_response
from autopay_gateway.api.v1.schemas import ReminderItem, ReminderResponse, SweepResponse
from autopay_gateway.domain.models import FixedAmount
from autopay_gateway.infrastructure.database.session import get_db
from autopay_gateway.services.obligations import ObligationService
from autopay_gateway.services.orchestrator import ExecutionOrchestrator

router = APIRouter()


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep(request: Request, orchestrator: ExecutionOrchestrator = Depends(get_orchestrator)):
    """Execute everything due right now, same as one tick of the worker"""
    report = await orchestrator.sweep()
    logging.info(
        "Manual sweep finished",
        extra={"request_id": get_request_id(request), "executed_count": len(report.executed)},
    )
    return SweepResponse(
        started_at=report.started_at,
        executed_count=len(report.executed),
        skipped_count=len(report.skipped),
        results=[report_to_response(r) for r in report.reports],
    )


@router.get("/reminders", response_model=ReminderResponse)
def list_reminders(on: date = Query(..., description="Day to evaluate, YYYY-MM-DD"), db: Session = Depends(get_db)):
    """Schedules whose next run is within their reminder lead window of the given day"""
    items = []
    for obligation in ObligationService(db).reminders(on):
        next_at = obligation.progress.next_execute_at
        amount = obligation.amount
        items.append(
            ReminderItem(
                obligation_id=obligation.id,
                kind=obligation.kind,
                name=obligation.name,
                next_execute_at=next_at,
                days_ahead=(next_at.date() - on).days,
                amount_cents=amount.amount_cents if isinstance(amount, FixedAmount) else None,
            )
        )
    return ReminderResponse(on=on, reminders=items)
