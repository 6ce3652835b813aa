"""
E2E tests running the orchestrator against the mock ledger server over HTTP.

The mock ledger app is served in-process through httpx's ASGI transport, so
every balance lookup and booking goes through the real LedgerClient and the
ledger's HTTP contract (402 on insufficient funds, Idempotency-Key replay).
"""

from datetime import datetime

import httpx
import pytest

from autopay_gateway.domain.exceptions import InsufficientFundsError
from autopay_gateway.domain.models import (
    AmountBasis,
    DerivedAmount,
    ExecutionStatus,
    InstallmentPlan,
    PaymentType,
    RevolvingCreditTarget,
    ShortfallPolicy,
    TermLiabilityTarget,
)
from autopay_gateway.infrastructure.clients.ledger import LedgerClient
from autopay_gateway.infrastructure.clients.memory import InMemoryLedger, Liability
from autopay_gateway.infrastructure.database.repositories import ObligationRepository
from autopay_gateway.services.obligations import ObligationService
from autopay_gateway.services.orchestrator import ExecutionOrchestrator
from conftest import make_credit, make_debit
from mock.ledger_server.main import create_app as create_ledger_app


@pytest.fixture
def backing_ledger() -> InMemoryLedger:
    return InMemoryLedger(
        balances={"acct_checking": 300_000, "acct_savings": 1_000_000, "card_visa": 180_000},
        liabilities={"loan_mortgage": Liability(100_000_000, 4.9, 360)},
    )


@pytest.fixture
def http_ledger(backing_ledger) -> LedgerClient:
    app = create_ledger_app(backing_ledger)
    return LedgerClient(base_url="http://ledger.test", timeout=5.0, transport=httpx.ASGITransport(app=app))


@pytest.fixture
def http_orchestrator(session_factory, http_ledger, notifier, test_settings, clock) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(session_factory, http_ledger, notifier, test_settings, clock=clock)


def create(session_factory, obligation, now):
    with session_factory() as db:
        return ObligationService(db).create(obligation, now)


@pytest.mark.integration
async def test_mortgage_waterfall_over_http(session_factory, http_orchestrator, backing_ledger, clock):
    """Monthly payment read from the ledger, checking first and savings for the rest"""
    mortgage = make_debit(
        [("acct_checking", 1), ("acct_savings", 2)],
        name="Mortgage",
        day_of_month=20,
        payment_type=PaymentType.MORTGAGE,
        target=TermLiabilityTarget("loan_mortgage"),
        amount=DerivedAmount(AmountBasis.LIABILITY_MONTHLY_PAYMENT),
        policy=ShortfallPolicy.TRY_NEXT_SOURCE,
        installment=InstallmentPlan(total_periods=360),
    )
    obligation = create(session_factory, mortgage, clock.now)

    clock.now = datetime(2025, 1, 20, 9, 0)
    report = await http_orchestrator.sweep()

    result = report.executed[0]
    assert result.status == ExecutionStatus.SUCCESS
    assert result.amount_cents == 530_727
    assert backing_ledger.balances["acct_checking"] == 0
    assert backing_ledger.balances["acct_savings"] == 1_000_000 - 230_727
    with session_factory() as db:
        assert ObligationRepository(db).get(obligation.id).installment.completed_periods == 1


@pytest.mark.integration
async def test_statement_balance_pays_card_off(session_factory, http_orchestrator, backing_ledger, clock):
    card = make_debit(
        [("acct_checking", 1)],
        name="Visa",
        day_of_month=5,
        payment_type=PaymentType.CREDIT_CARD_FULL,
        target=RevolvingCreditTarget("card_visa"),
        amount=DerivedAmount(AmountBasis.STATEMENT_BALANCE),
    )
    create(session_factory, card, clock.now)

    clock.now = datetime(2025, 2, 5, 9, 0)
    report = await http_orchestrator.sweep()

    assert report.executed[0].amount_cents == 180_000
    assert backing_ledger.balances["card_visa"] == 0
    assert backing_ledger.balances["acct_checking"] == 120_000


@pytest.mark.integration
async def test_salary_credit_over_http(session_factory, http_orchestrator, backing_ledger, clock):
    create(session_factory, make_credit(amount_cents=800_000, day_of_month=25), clock.now)

    clock.now = datetime(2025, 1, 25, 9, 0)
    report = await http_orchestrator.sweep()

    assert report.executed[0].status == ExecutionStatus.SUCCESS
    assert backing_ledger.balances["acct_checking"] == 1_100_000
    assert backing_ledger.records[-1].category == "salary"


@pytest.mark.integration
async def test_shortfall_notifies_over_http(session_factory, http_orchestrator, backing_ledger, notifier, clock):
    create(session_factory, make_debit([("acct_checking", 1)], amount_cents=500_000), clock.now)

    clock.now = datetime(2025, 1, 15, 9, 0)
    report = await http_orchestrator.sweep()

    assert report.executed[0].status == ExecutionStatus.INSUFFICIENT_FUNDS
    assert backing_ledger.balances["acct_checking"] == 300_000
    assert notifier.reasons == ["insufficient_funds"]


@pytest.mark.integration
async def test_ledger_rejects_overdraft(http_ledger):
    with pytest.raises(InsufficientFundsError) as exc_info:
        await http_ledger.debit("acct_checking", 999_999_999, "too much", idempotency_key="overdraft-1")
    assert exc_info.value.account_id == "acct_checking"


@pytest.mark.integration
async def test_idempotency_key_replays_booking(http_ledger, backing_ledger):
    first = await http_ledger.debit("acct_savings", 1_000, "once", idempotency_key="ob-1:2025-01:debit:0")
    second = await http_ledger.debit("acct_savings", 1_000, "once", idempotency_key="ob-1:2025-01:debit:0")

    assert second.replayed is True
    assert second.record_id == first.record_id
    assert backing_ledger.balances["acct_savings"] == 999_000
