"""Write-time validation of obligations and budgets"""

from typing import List

from autopay_gateway.domain.exceptions import ValidationError
from autopay_gateway.domain.models import (
    AmountBasis,
    CreditObligation,
    DebitObligation,
    DerivedAmount,
    FixedAmount,
    Obligation,
    PaymentType,
    RecurringBudget,
    RevolvingCreditTarget,
    TermLiabilityTarget,
)
from autopay_gateway.utils.date_utils import parse_month

_CARD_PAYMENTS = {PaymentType.CREDIT_CARD_FULL, PaymentType.CREDIT_CARD_MIN}
_TERM_PAYMENTS = {PaymentType.LOAN, PaymentType.MORTGAGE}
_CARD_BASES = {AmountBasis.STATEMENT_BALANCE, AmountBasis.MINIMUM_DUE}


def validate_obligation(obligation: Obligation) -> None:
    """
    Reject malformed schedules before they are stored.

    Raises:
        ValidationError: Listing every problem found
    """
    errors: List[str] = []

    if not obligation.name or not obligation.name.strip():
        errors.append("name is required")
    if not 1 <= obligation.day_of_month <= 31:
        errors.append(f"day_of_month must be 1-31, got {obligation.day_of_month}")
    if obligation.reminder_lead_days < 0:
        errors.append("reminder_lead_days cannot be negative")
    if isinstance(obligation.amount, FixedAmount) and obligation.amount.amount_cents <= 0:
        errors.append("fixed amount must be positive")

    if isinstance(obligation, DebitObligation):
        errors.extend(_debit_errors(obligation))
    elif isinstance(obligation, CreditObligation):
        errors.extend(_credit_errors(obligation))
    else:
        errors.append(f"unknown obligation type {type(obligation).__name__}")

    if errors:
        raise ValidationError("; ".join(errors))


def _debit_errors(obligation: DebitObligation) -> List[str]:
    errors = []

    priorities = [s.priority for s in obligation.sources]
    if len(priorities) != len(set(priorities)):
        errors.append("source priorities must be unique")
    accounts = [s.account_id for s in obligation.sources]
    if len(accounts) != len(set(accounts)):
        errors.append("each funding account may appear only once")

    target = obligation.target
    if obligation.payment_type in _CARD_PAYMENTS and not isinstance(target, RevolvingCreditTarget):
        errors.append(f"{obligation.payment_type.value} needs a credit card target")
    if obligation.payment_type in _TERM_PAYMENTS and not isinstance(target, TermLiabilityTarget):
        errors.append(f"{obligation.payment_type.value} needs a liability account target")

    if isinstance(obligation.amount, DerivedAmount):
        basis = obligation.amount.basis
        if basis is AmountBasis.LIABILITY_MONTHLY_PAYMENT and not isinstance(target, TermLiabilityTarget):
            errors.append("monthly payment amount needs a liability account target")
        if basis in _CARD_BASES and not isinstance(target, RevolvingCreditTarget):
            errors.append(f"{basis.value} amount needs a credit card target")

    plan = obligation.installment
    if plan is not None:
        if plan.total_periods <= 0:
            errors.append("installment total_periods must be positive")
        if not 0 <= plan.completed_periods <= plan.total_periods:
            errors.append("installment completed_periods must be between 0 and total_periods")

    return errors


def _credit_errors(obligation: CreditObligation) -> List[str]:
    errors = []
    if not obligation.target_account_id:
        errors.append("target_account_id is required")
    if not isinstance(obligation.amount, FixedAmount):
        errors.append("scheduled income needs a fixed amount")
    return errors


def validate_budget(budget: RecurringBudget) -> None:
    try:
        parse_month(budget.month)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if budget.amount_cents <= 0:
        raise ValidationError("budget amount must be positive")
