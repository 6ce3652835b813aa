"""Conversion between API schemas and domain models"""

from autopay_gateway.api.v1 import schemas
from autopay_gateway.domain.exceptions import ValidationError
from autopay_gateway.domain.models import (
    CreditObligation,
    DebitObligation,
    DerivedAmount,
    ExecutionLogEntry,
    FixedAmount,
    FundingSource,
    InstallmentPlan,
    RecurringBudget,
    RevolvingCreditTarget,
    TermLiabilityTarget,
)
from autopay_gateway.services.orchestrator import ExecutionReport


def payment_to_domain(body: schemas.AutoPaymentRequest, obligation_id: str = "") -> DebitObligation:
    """Build a scheduled payment from a request body; id is assigned on create"""
    if body.amount_cents is not None and body.amount_basis is not None:
        raise ValidationError("give either amount_cents or amount_basis, not both")
    if body.amount_cents is not None:
        amount = FixedAmount(amount_cents=body.amount_cents)
    elif body.amount_basis is not None:
        amount = DerivedAmount(basis=body.amount_basis)
    else:
        raise ValidationError("amount_cents or amount_basis is required")

    if body.card_account_id and body.liability_account_id:
        raise ValidationError("a payment targets either a card or a liability account, not both")
    target = None
    if body.card_account_id:
        target = RevolvingCreditTarget(card_account_id=body.card_account_id)
    elif body.liability_account_id:
        target = TermLiabilityTarget(liability_account_id=body.liability_account_id)

    installment = None
    if body.total_periods is not None:
        installment = InstallmentPlan(
            total_periods=body.total_periods,
            completed_periods=body.completed_periods,
            start_date=body.start_date,
        )

    return DebitObligation(
        id=obligation_id,
        name=body.name,
        day_of_month=body.day_of_month,
        execute_time=body.execute_time,
        reminder_lead_days=body.reminder_lead_days,
        enabled=body.enabled,
        amount=amount,
        payment_type=body.payment_type,
        target=target,
        sources=[FundingSource(account_id=s.account_id, priority=s.priority) for s in body.sources],
        shortfall_policy=body.shortfall_policy,
        installment=installment,
    )


def payment_to_response(obligation: DebitObligation) -> schemas.AutoPaymentResponse:
    amount = obligation.amount
    target = obligation.target
    plan = obligation.installment
    progress = obligation.progress
    return schemas.AutoPaymentResponse(
        id=obligation.id,
        name=obligation.name,
        payment_type=obligation.payment_type,
        day_of_month=obligation.day_of_month,
        execute_time=obligation.execute_time,
        reminder_lead_days=obligation.reminder_lead_days,
        enabled=obligation.enabled,
        amount_cents=amount.amount_cents if isinstance(amount, FixedAmount) else None,
        amount_basis=amount.basis if isinstance(amount, DerivedAmount) else None,
        card_account_id=target.card_account_id if isinstance(target, RevolvingCreditTarget) else None,
        liability_account_id=target.liability_account_id if isinstance(target, TermLiabilityTarget) else None,
        sources=[
            schemas.FundingSourceSchema(account_id=s.account_id, priority=s.priority)
            for s in obligation.ordered_sources()
        ],
        shortfall_policy=obligation.shortfall_policy,
        installment=(
            schemas.InstallmentSchema(
                total_periods=plan.total_periods,
                completed_periods=plan.completed_periods,
                remaining_periods=plan.remaining_periods,
                start_date=plan.start_date,
            )
            if plan
            else None
        ),
        next_execute_at=progress.next_execute_at,
        current_period=progress.current_period,
        last_executed_at=progress.last_executed_at,
        last_period=progress.last_period,
    )


def income_to_domain(body: schemas.AutoIncomeRequest, obligation_id: str = "") -> CreditObligation:
    return CreditObligation(
        id=obligation_id,
        name=body.name,
        day_of_month=body.day_of_month,
        execute_time=body.execute_time,
        reminder_lead_days=body.reminder_lead_days,
        enabled=body.enabled,
        amount=FixedAmount(amount_cents=body.amount_cents),
        income_type=body.income_type,
        target_account_id=body.target_account_id,
        category=body.category,
    )


def income_to_response(obligation: CreditObligation) -> schemas.AutoIncomeResponse:
    progress = obligation.progress
    return schemas.AutoIncomeResponse(
        id=obligation.id,
        name=obligation.name,
        income_type=obligation.income_type,
        day_of_month=obligation.day_of_month,
        execute_time=obligation.execute_time,
        reminder_lead_days=obligation.reminder_lead_days,
        enabled=obligation.enabled,
        amount_cents=obligation.amount.amount_cents,
        target_account_id=obligation.target_account_id,
        category=obligation.effective_category,
        next_execute_at=progress.next_execute_at,
        current_period=progress.current_period,
        last_executed_at=progress.last_executed_at,
        last_period=progress.last_period,
    )


def log_to_schema(entry: ExecutionLogEntry) -> schemas.ExecutionLogSchema:
    return schemas.ExecutionLogSchema(
        id=entry.id,
        period=entry.period,
        attempted_at=entry.attempted_at,
        status=entry.status,
        amount_cents=entry.amount_cents,
        terminal=entry.terminal,
        source_account_id=entry.source_account_id,
        ledger_record_id=entry.ledger_record_id,
        message=entry.message,
    )


def report_to_response(report: ExecutionReport) -> schemas.ExecutionResponse:
    return schemas.ExecutionResponse(
        obligation_id=report.obligation_id,
        period=report.period,
        status=report.status,
        amount_cents=report.amount_cents,
        terminal=report.terminal,
        skipped_reason=report.skipped_reason,
        message=report.message,
        ledger_record_id=report.ledger_record_id,
    )


def budget_to_response(budget: RecurringBudget) -> schemas.BudgetResponse:
    return schemas.BudgetResponse(
        id=budget.id,
        month=budget.month,
        amount_cents=budget.amount_cents,
        category=budget.category,
        is_recurring=budget.is_recurring,
        name=budget.name,
    )
