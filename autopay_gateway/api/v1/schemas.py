"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field

from autopay_gateway.domain.models import (
    AmountBasis,
    ExecutionStatus,
    IncomeType,
    ObligationKind,
    PaymentType,
    ShortfallPolicy,
)


class FundingSourceSchema(BaseModel):
    """Account a payment may draw from; lower priority is tried first"""

    account_id: str = Field(..., min_length=1)
    priority: int = Field(..., ge=0)


class InstallmentSchema(BaseModel):
    total_periods: int
    completed_periods: int
    remaining_periods: int
    start_date: Optional[date] = None


class AutoPaymentRequest(BaseModel):
    """
    Request body for creating or replacing a scheduled payment.

    Exactly one of amount_cents (fixed) or amount_basis (read from the
    ledger at execution time) must be given.
    """

    name: str = Field(..., min_length=1)
    payment_type: PaymentType
    day_of_month: int = Field(..., ge=1, le=31)
    execute_time: time = time(9, 0)
    reminder_lead_days: int = Field(0, ge=0)
    enabled: bool = True
    amount_cents: Optional[int] = Field(None, gt=0, description="Fixed amount in cents")
    amount_basis: Optional[AmountBasis] = None
    card_account_id: Optional[str] = None
    liability_account_id: Optional[str] = None
    sources: List[FundingSourceSchema] = Field(default_factory=list)
    shortfall_policy: ShortfallPolicy = ShortfallPolicy.NOTIFY
    total_periods: Optional[int] = Field(None, ge=1, description="Installment count for finite-term loans")
    completed_periods: int = Field(0, ge=0)
    start_date: Optional[date] = None


class AutoPaymentResponse(BaseModel):
    id: str
    name: str
    payment_type: PaymentType
    day_of_month: int
    execute_time: time
    reminder_lead_days: int
    enabled: bool
    amount_cents: Optional[int] = None
    amount_basis: Optional[AmountBasis] = None
    card_account_id: Optional[str] = None
    liability_account_id: Optional[str] = None
    sources: List[FundingSourceSchema]
    shortfall_policy: ShortfallPolicy
    installment: Optional[InstallmentSchema] = None
    next_execute_at: Optional[datetime] = None
    current_period: Optional[str] = None
    last_executed_at: Optional[datetime] = None
    last_period: Optional[str] = None


class AutoIncomeRequest(BaseModel):
    """Request body for creating or replacing a scheduled income"""

    name: str = Field(..., min_length=1)
    income_type: IncomeType = IncomeType.OTHER
    day_of_month: int = Field(..., ge=1, le=31)
    execute_time: time = time(9, 0)
    reminder_lead_days: int = Field(0, ge=0)
    enabled: bool = True
    amount_cents: int = Field(..., gt=0)
    target_account_id: str = Field(..., min_length=1)
    category: Optional[str] = None


class AutoIncomeResponse(BaseModel):
    id: str
    name: str
    income_type: IncomeType
    day_of_month: int
    execute_time: time
    reminder_lead_days: int
    enabled: bool
    amount_cents: int
    target_account_id: str
    category: str
    next_execute_at: Optional[datetime] = None
    current_period: Optional[str] = None
    last_executed_at: Optional[datetime] = None
    last_period: Optional[str] = None


class ExecutionLogSchema(BaseModel):
    """Single execution attempt"""

    id: Optional[str] = None
    period: str
    attempted_at: datetime
    status: ExecutionStatus
    amount_cents: int
    terminal: bool
    source_account_id: Optional[str] = None
    ledger_record_id: Optional[str] = None
    message: Optional[str] = None


class ExecutionLogResponse(BaseModel):
    """Response for GET /{id}/logs"""

    obligation_id: str
    logs: List[ExecutionLogSchema]


class ExecutionResponse(BaseModel):
    """Outcome of one manual or swept execution"""

    obligation_id: str
    period: Optional[str] = None
    status: Optional[ExecutionStatus] = None
    amount_cents: int = 0
    terminal: bool = False
    skipped_reason: Optional[str] = None
    message: Optional[str] = None
    ledger_record_id: Optional[str] = None


class SweepResponse(BaseModel):
    """Response for POST /v1/sweep"""

    started_at: datetime
    executed_count: int
    skipped_count: int
    results: List[ExecutionResponse]


class MonthlyPaymentResponse(BaseModel):
    """Equal monthly installment for an amortizing loan"""

    principal_cents: int
    annual_rate: float
    term_months: int
    monthly_payment_cents: int
    total_payment_cents: int
    total_interest_cents: int


class BudgetCreateRequest(BaseModel):
    """Request body for POST /v1/budgets; category omitted means the aggregate budget"""

    month: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="YYYY-MM")
    amount_cents: int = Field(..., gt=0)
    category: Optional[str] = None
    is_recurring: bool = False
    name: Optional[str] = None


class BudgetUpdateRequest(BaseModel):
    amount_cents: Optional[int] = Field(None, gt=0)
    is_recurring: Optional[bool] = None


class BudgetResponse(BaseModel):
    id: str
    month: str
    amount_cents: int
    category: Optional[str] = None
    is_recurring: bool
    name: Optional[str] = None


class BudgetListResponse(BaseModel):
    month: str
    budgets: List[BudgetResponse]


class ApplyRecurringResponse(BaseModel):
    """Response for POST /v1/budgets/apply-recurring"""

    month: str
    created: List[BudgetResponse]


class CancelRecurringResponse(BaseModel):
    budget_id: str
    rows_changed: int


class ReminderItem(BaseModel):
    """Upcoming execution inside its reminder window"""

    obligation_id: str
    kind: ObligationKind
    name: str
    next_execute_at: datetime
    days_ahead: int
    amount_cents: Optional[int] = None


class ReminderResponse(BaseModel):
    """Response for GET /v1/reminders"""

    on: date
    reminders: List[ReminderItem]
