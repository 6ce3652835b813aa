"""Installment progress tracking and loan payment math"""

from dataclasses import dataclass

from autopay_gateway.domain.exceptions import ValidationError
from autopay_gateway.domain.models import InstallmentPlan


@dataclass
class InstallmentAdvance:
    """Installment state after one paid period"""

    plan: InstallmentPlan
    completed: bool


@dataclass
class MonthlyPaymentCalculation:
    monthly_payment_cents: int
    total_payment_cents: int
    total_interest_cents: int


def advance_installment(plan: InstallmentPlan) -> InstallmentAdvance:
    """
    Count one more paid period on a finite-term plan.

    A period counts once whether it was paid in full or partially. The caller
    disables the schedule when the returned advance is completed.

    Raises:
        ValidationError: If the plan is already complete
    """
    if plan.is_complete:
        raise ValidationError(
            f"Installment plan already complete ({plan.completed_periods}/{plan.total_periods})"
        )

    advanced = InstallmentPlan(
        total_periods=plan.total_periods,
        completed_periods=plan.completed_periods + 1,
        start_date=plan.start_date,
    )
    return InstallmentAdvance(plan=advanced, completed=advanced.is_complete)


def calculate_monthly_payment(
    principal_cents: int,
    annual_rate_percent: float,
    term_months: int,
) -> MonthlyPaymentCalculation:
    """
    Equal-installment (annuity) monthly payment for a loan.

    Formula: P * r * (1 + r)^n / ((1 + r)^n - 1), with r the monthly rate.
    A zero rate splits the principal evenly.

    Args:
        principal_cents: Amount borrowed
        annual_rate_percent: Nominal yearly rate, e.g. 4.9 for 4.9%
        term_months: Number of monthly payments

    Example:
        1,000,000.00 at 4.9% over 360 months -> 5,307.27 per month
    """
    if principal_cents <= 0:
        raise ValidationError("Principal must be positive")
    if term_months <= 0:
        raise ValidationError("Term must be at least one month")
    if annual_rate_percent < 0:
        raise ValidationError("Interest rate cannot be negative")

    if annual_rate_percent == 0:
        monthly = principal_cents / term_months
    else:
        monthly_rate = annual_rate_percent / 100 / 12
        factor = (1 + monthly_rate) ** term_months
        monthly = principal_cents * monthly_rate * factor / (factor - 1)

    total = monthly * term_months
    return MonthlyPaymentCalculation(
        monthly_payment_cents=round(monthly),
        total_payment_cents=round(total),
        total_interest_cents=round(total - principal_cents),
    )
