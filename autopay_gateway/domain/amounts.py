"""Execution-time resolution of fixed and derived amounts"""

import math

from autopay_gateway.config import Settings
from autopay_gateway.domain.exceptions import ValidationError
from autopay_gateway.domain.interfaces import LedgerService
from autopay_gateway.domain.models import (
    AmountBasis,
    DebitObligation,
    DerivedAmount,
    FixedAmount,
    Obligation,
    RevolvingCreditTarget,
    TermLiabilityTarget,
)


def minimum_due(outstanding_cents: int, rate: float, floor_cents: int) -> int:
    """Credit card minimum payment: a share of the balance, at least the floor, at most the balance"""
    if outstanding_cents <= 0:
        return 0
    return min(outstanding_cents, max(floor_cents, math.ceil(outstanding_cents * rate)))


async def resolve_amount_due(obligation: Obligation, ledger: LedgerService, settings: Settings) -> int:
    """
    Amount to move for the current period, read fresh on every execution.

    Loan payments and card balances change between periods, so derived
    amounts are never taken from a previous run.
    """
    amount = obligation.amount
    if isinstance(amount, FixedAmount):
        return amount.amount_cents

    if not isinstance(amount, DerivedAmount) or not isinstance(obligation, DebitObligation):
        raise ValidationError(f"Obligation {obligation.id} has no resolvable amount")

    target = obligation.target
    if amount.basis is AmountBasis.LIABILITY_MONTHLY_PAYMENT:
        if not isinstance(target, TermLiabilityTarget):
            raise ValidationError("Monthly payment amounts need a loan or mortgage target")
        return await ledger.get_monthly_payment(target.liability_account_id)

    if not isinstance(target, RevolvingCreditTarget):
        raise ValidationError("Statement amounts need a credit card target")

    # Owed amount, whatever sign the ledger reports it with
    outstanding = abs(await ledger.get_balance(target.card_account_id))
    if amount.basis is AmountBasis.STATEMENT_BALANCE:
        return outstanding
    return minimum_due(outstanding, settings.min_payment_rate, settings.min_payment_floor_cents)
