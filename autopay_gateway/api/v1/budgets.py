"""/v1/budgets - monthly budgets and their recurring rollover"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from autopay_gateway.api.v1.mappers import budget_to_response
from autopay_gateway.api.v1.schemas import (
    ApplyRecurringResponse,
    BudgetCreateRequest,
    BudgetListResponse,
    BudgetResponse,
    BudgetUpdateRequest,
    CancelRecurringResponse,
)
from autopay_gateway.domain.exceptions import ConflictError, NotFoundError, ValidationError
from autopay_gateway.domain.models import RecurringBudget
from autopay_gateway.infrastructure.database.session import get_db
from autopay_gateway.services.budgets import RecurringBudgetApplier

router = APIRouter()

MONTH_PATTERN = r"^\d{4}-\d{2}$"


@router.post("/budgets", response_model=BudgetResponse, status_code=201)
def create_budget(body: BudgetCreateRequest, db: Session = Depends(get_db)):
    budget = RecurringBudget(
        month=body.month,
        amount_cents=body.amount_cents,
        category=body.category,
        is_recurring=body.is_recurring,
        name=body.name,
    )
    try:
        created = RecurringBudgetApplier(db).create(budget)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return budget_to_response(created)


@router.get("/budgets", response_model=BudgetListResponse)
def list_budgets(month: str = Query(..., pattern=MONTH_PATTERN), db: Session = Depends(get_db)):
    budgets = RecurringBudgetApplier(db).list(month)
    return BudgetListResponse(month=month, budgets=[budget_to_response(b) for b in budgets])


@router.post("/budgets/apply-recurring", response_model=ApplyRecurringResponse)
def apply_recurring_budgets(month: str = Query(..., pattern=MONTH_PATTERN), db: Session = Depends(get_db)):
    """
    Copy last month's recurring budgets into month.

    Safe to call repeatedly: categories that already have a budget in
    month are left alone.
    """
    try:
        created = RecurringBudgetApplier(db).apply(month)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ApplyRecurringResponse(month=month, created=[budget_to_response(b) for b in created])


@router.patch("/budgets/{budget_id}", response_model=BudgetResponse)
def update_budget(budget_id: str, body: BudgetUpdateRequest, db: Session = Depends(get_db)):
    try:
        updated = RecurringBudgetApplier(db).update(budget_id, body.amount_cents, body.is_recurring)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return budget_to_response(updated)


@router.delete("/budgets/{budget_id}", status_code=204)
def delete_budget_this_month(budget_id: str, db: Session = Depends(get_db)):
    """Delete only this month's budget; a recurring chain continues next month"""
    try:
        RecurringBudgetApplier(db).delete_month_only(budget_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return Response(status_code=204)


@router.post("/budgets/{budget_id}/cancel-recurring", response_model=CancelRecurringResponse)
def cancel_recurring_budget(budget_id: str, db: Session = Depends(get_db)):
    """Stop generating this category from the budget's month onwards"""
    try:
        changed = RecurringBudgetApplier(db).cancel_recurring(budget_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return CancelRecurringResponse(budget_id=budget_id, rows_changed=changed)
