"""In-process ledger used by the mock ledger server and for local runs"""

import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from autopay_gateway.domain.exceptions import InsufficientFundsError, TransientLedgerError
from autopay_gateway.domain.installments import calculate_monthly_payment
from autopay_gateway.domain.interfaces import LedgerReceipt, LedgerService


@dataclass
class LedgerRecord:
    record_id: str
    account_id: str
    amount_cents: int  # negative for debits
    memo: str
    counterparty_account_id: Optional[str] = None
    category: Optional[str] = None


@dataclass
class Liability:
    principal_cents: int
    annual_rate_percent: float
    term_months: int


@dataclass
class InMemoryLedger(LedgerService):
    """
    Balances and bookings held in memory.

    Idempotency keys replay the original booking. Paying a card account
    reduces what is owed on it. Accounts listed in failing_accounts
    raise TransientLedgerError to simulate an outage.
    """

    balances: Dict[str, int] = field(default_factory=dict)
    liabilities: Dict[str, Liability] = field(default_factory=dict)
    failing_accounts: set = field(default_factory=set)
    records: List[LedgerRecord] = field(default_factory=list)
    _by_key: Dict[str, LedgerRecord] = field(default_factory=dict)

    def _check(self, account_id: str) -> None:
        if account_id in self.failing_accounts:
            raise TransientLedgerError(f"Ledger unavailable for {account_id}")

    async def get_balance(self, account_id: str) -> int:
        self._check(account_id)
        return self.balances.get(account_id, 0)

    async def get_monthly_payment(self, liability_account_id: str) -> int:
        self._check(liability_account_id)
        liability = self.liabilities.get(liability_account_id)
        if liability is None:
            raise TransientLedgerError(f"Unknown liability {liability_account_id}")
        return calculate_monthly_payment(
            liability.principal_cents, liability.annual_rate_percent, liability.term_months
        ).monthly_payment_cents

    async def debit(
        self,
        account_id: str,
        amount_cents: int,
        memo: str,
        *,
        idempotency_key: str,
        counterparty_account_id: Optional[str] = None,
    ) -> LedgerReceipt:
        replay = self._replay(idempotency_key)
        if replay is not None:
            return replay
        self._check(account_id)
        balance = self.balances.get(account_id, 0)
        if balance < amount_cents:
            raise InsufficientFundsError(account_id)
        self.balances[account_id] = balance - amount_cents
        if counterparty_account_id is not None:
            self._settle(counterparty_account_id, amount_cents)
        record = self._book(idempotency_key, account_id, -amount_cents, memo, counterparty_account_id=counterparty_account_id)
        return LedgerReceipt(record_id=record.record_id, account_id=account_id, amount_cents=amount_cents)

    async def credit(
        self,
        account_id: str,
        amount_cents: int,
        memo: str,
        *,
        idempotency_key: str,
        category: Optional[str] = None,
    ) -> LedgerReceipt:
        replay = self._replay(idempotency_key)
        if replay is not None:
            return replay
        self._check(account_id)
        self.balances[account_id] = self.balances.get(account_id, 0) + amount_cents
        record = self._book(idempotency_key, account_id, amount_cents, memo, category=category)
        return LedgerReceipt(record_id=record.record_id, account_id=account_id, amount_cents=amount_cents)

    def _replay(self, idempotency_key: str) -> Optional[LedgerReceipt]:
        record = self._by_key.get(idempotency_key)
        if record is None:
            return None
        return LedgerReceipt(
            record_id=record.record_id,
            account_id=record.account_id,
            amount_cents=abs(record.amount_cents),
            replayed=True,
        )

    def _settle(self, account_id: str, amount_cents: int) -> None:
        """Reduce the amount owed on a tracked card account"""
        if account_id in self.balances:
            self.balances[account_id] = self.balances[account_id] - amount_cents

    def _book(self, idempotency_key: str, account_id: str, amount_cents: int, memo: str, **extra) -> LedgerRecord:
        record = LedgerRecord(record_id=str(uuid.uuid4()), account_id=account_id, amount_cents=amount_cents, memo=memo, **extra)
        self.records.append(record)
        self._by_key[idempotency_key] = record
        return record
