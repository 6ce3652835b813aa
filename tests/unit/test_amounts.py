"""Unit tests for fixed and derived amount resolution"""

import pytest

from autopay_gateway.domain.amounts import minimum_due, resolve_amount_due
from autopay_gateway.domain.models import (
    AmountBasis,
    DerivedAmount,
    PaymentType,
    RevolvingCreditTarget,
    TermLiabilityTarget,
)
from autopay_gateway.infrastructure.clients.memory import InMemoryLedger, Liability
from conftest import make_credit, make_debit


def test_minimum_due_uses_rate_above_floor():
    assert minimum_due(180_000, 0.10, 5000) == 18_000


def test_minimum_due_floor():
    assert minimum_due(20_000, 0.10, 5000) == 5000


def test_minimum_due_capped_at_outstanding():
    assert minimum_due(3000, 0.10, 5000) == 3000


def test_minimum_due_nothing_owed():
    assert minimum_due(0, 0.10, 5000) == 0


async def test_fixed_amount(test_settings):
    assert await resolve_amount_due(make_credit(amount_cents=1234), InMemoryLedger(), test_settings) == 1234


async def test_statement_balance_reads_card(test_settings):
    ledger = InMemoryLedger(balances={"card_visa": 180_000})
    obligation = make_debit(
        [("acct_a", 1)],
        payment_type=PaymentType.CREDIT_CARD_FULL,
        target=RevolvingCreditTarget("card_visa"),
        amount=DerivedAmount(AmountBasis.STATEMENT_BALANCE),
    )
    assert await resolve_amount_due(obligation, ledger, test_settings) == 180_000


async def test_minimum_due_reads_card(test_settings):
    ledger = InMemoryLedger(balances={"card_visa": 180_000})
    obligation = make_debit(
        [("acct_a", 1)],
        payment_type=PaymentType.CREDIT_CARD_MIN,
        target=RevolvingCreditTarget("card_visa"),
        amount=DerivedAmount(AmountBasis.MINIMUM_DUE),
    )
    assert await resolve_amount_due(obligation, ledger, test_settings) == 18_000


async def test_liability_monthly_payment(test_settings):
    ledger = InMemoryLedger(liabilities={"loan_car": Liability(3_600_000, 0.0, 36)})
    obligation = make_debit(
        [("acct_a", 1)],
        payment_type=PaymentType.LOAN,
        target=TermLiabilityTarget("loan_car"),
        amount=DerivedAmount(AmountBasis.LIABILITY_MONTHLY_PAYMENT),
    )
    assert await resolve_amount_due(obligation, ledger, test_settings) == 100_000


async def test_paid_off_card_resolves_to_zero(test_settings):
    ledger = InMemoryLedger(balances={"card_visa": 0})
    obligation = make_debit(
        [("acct_a", 1)],
        payment_type=PaymentType.CREDIT_CARD_FULL,
        target=RevolvingCreditTarget("card_visa"),
        amount=DerivedAmount(AmountBasis.STATEMENT_BALANCE),
    )
    assert await resolve_amount_due(obligation, ledger, test_settings) == 0
