"""Unit tests for installment progress and loan payment math"""

import pytest

from autopay_gateway.domain.exceptions import ValidationError
from autopay_gateway.domain.installments import advance_installment, calculate_monthly_payment
from autopay_gateway.domain.models import InstallmentPlan


def test_advance_counts_one_period():
    advance = advance_installment(InstallmentPlan(total_periods=3, completed_periods=1))

    assert advance.plan.completed_periods == 2
    assert advance.plan.remaining_periods == 1
    assert advance.completed is False


def test_advance_reports_completion_on_last_period():
    advance = advance_installment(InstallmentPlan(total_periods=3, completed_periods=2))

    assert advance.completed is True
    assert advance.plan.is_complete
    assert advance.plan.progress_ratio == 1.0


def test_advance_does_not_mutate_input():
    plan = InstallmentPlan(total_periods=12, completed_periods=0)
    advance_installment(plan)
    assert plan.completed_periods == 0


def test_advance_past_completion_is_rejected():
    with pytest.raises(ValidationError):
        advance_installment(InstallmentPlan(total_periods=3, completed_periods=3))


def test_thirty_year_mortgage_payment():
    """1,000,000.00 at 4.9% over 360 months"""
    result = calculate_monthly_payment(100_000_000, 4.9, 360)

    assert result.monthly_payment_cents == 530_727
    assert result.total_payment_cents > 100_000_000
    assert result.total_interest_cents == result.total_payment_cents - 100_000_000


def test_zero_rate_splits_principal_evenly():
    result = calculate_monthly_payment(3_600_000, 0, 36)

    assert result.monthly_payment_cents == 100_000
    assert result.total_payment_cents == 3_600_000
    assert result.total_interest_cents == 0


@pytest.mark.parametrize(
    "principal,rate,term",
    [(0, 4.9, 360), (-100, 4.9, 360), (100_000, -1.0, 12), (100_000, 4.9, 0)],
)
def test_invalid_loan_terms(principal, rate, term):
    with pytest.raises(ValidationError):
        calculate_monthly_payment(principal, rate, term)
