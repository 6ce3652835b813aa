"""Unit tests for write-time validation"""

import pytest

from autopay_gateway.domain.exceptions import ValidationError
from autopay_gateway.domain.models import (
    AmountBasis,
    DerivedAmount,
    FixedAmount,
    InstallmentPlan,
    PaymentType,
    RecurringBudget,
    RevolvingCreditTarget,
    TermLiabilityTarget,
)
from autopay_gateway.domain.validation import validate_budget, validate_obligation
from conftest import make_credit, make_debit


def test_valid_debit_passes():
    validate_obligation(make_debit([("acct_a", 1), ("acct_b", 2)]))


@pytest.mark.parametrize("day", [0, 32, -1])
def test_day_of_month_out_of_range(day):
    with pytest.raises(ValidationError, match="day_of_month"):
        validate_obligation(make_debit([("acct_a", 1)], day_of_month=day))


def test_duplicate_priorities_rejected():
    with pytest.raises(ValidationError, match="priorities"):
        validate_obligation(make_debit([("acct_a", 1), ("acct_b", 1)]))


def test_duplicate_accounts_rejected():
    with pytest.raises(ValidationError, match="only once"):
        validate_obligation(make_debit([("acct_a", 1), ("acct_a", 2)]))


def test_non_positive_fixed_amount_rejected():
    with pytest.raises(ValidationError, match="positive"):
        validate_obligation(make_debit([("acct_a", 1)], amount=FixedAmount(0)))


def test_card_payment_needs_card_target():
    with pytest.raises(ValidationError, match="credit card target"):
        validate_obligation(make_debit([("acct_a", 1)], payment_type=PaymentType.CREDIT_CARD_FULL))


def test_loan_needs_liability_target():
    obligation = make_debit(
        [("acct_a", 1)], payment_type=PaymentType.LOAN, target=RevolvingCreditTarget("card_visa")
    )
    with pytest.raises(ValidationError, match="liability account target"):
        validate_obligation(obligation)


def test_derived_amount_must_match_target():
    obligation = make_debit(
        [("acct_a", 1)],
        payment_type=PaymentType.MORTGAGE,
        target=TermLiabilityTarget("loan_mortgage"),
        amount=DerivedAmount(AmountBasis.STATEMENT_BALANCE),
    )
    with pytest.raises(ValidationError, match="STATEMENT_BALANCE"):
        validate_obligation(obligation)


def test_installment_progress_bounds():
    obligation = make_debit(
        [("acct_a", 1)],
        payment_type=PaymentType.LOAN,
        target=TermLiabilityTarget("loan_car"),
        installment=InstallmentPlan(total_periods=3, completed_periods=4),
    )
    with pytest.raises(ValidationError, match="completed_periods"):
        validate_obligation(obligation)


def test_all_problems_reported_together():
    with pytest.raises(ValidationError) as exc_info:
        validate_obligation(make_debit([("acct_a", 1), ("acct_b", 1)], day_of_month=40, name=""))
    message = str(exc_info.value)
    assert "name" in message
    assert "day_of_month" in message
    assert "priorities" in message


def test_credit_needs_target_account():
    with pytest.raises(ValidationError, match="target_account_id"):
        validate_obligation(make_credit(target_account_id=""))


def test_credit_needs_fixed_amount():
    with pytest.raises(ValidationError, match="fixed amount"):
        validate_obligation(make_credit(amount=DerivedAmount(AmountBasis.STATEMENT_BALANCE)))


def test_budget_month_format():
    with pytest.raises(ValidationError):
        validate_budget(RecurringBudget(month="2025-13", amount_cents=100))


def test_budget_amount_positive():
    with pytest.raises(ValidationError):
        validate_budget(RecurringBudget(month="2025-01", amount_cents=0))
