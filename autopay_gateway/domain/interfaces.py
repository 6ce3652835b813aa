"""Abstract collaborator interfaces consumed by the engine"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class LedgerReceipt:
    """What the ledger actually booked for a debit or credit"""

    record_id: str
    account_id: str
    amount_cents: int
    replayed: bool = False  # True when the idempotency key matched an earlier booking


class LedgerService(ABC):
    """Account ledger the engine moves money through.

    Implementations raise TransientLedgerError for network failures and
    timeouts, and InsufficientFundsError when a debit is rejected for balance.
    """

    @abstractmethod
    async def get_balance(self, account_id: str) -> int:
        """Available balance of an account in cents"""
        pass

    @abstractmethod
    async def debit(
        self,
        account_id: str,
        amount_cents: int,
        memo: str,
        *,
        idempotency_key: str,
        counterparty_account_id: Optional[str] = None,
    ) -> LedgerReceipt:
        """Atomically take amount_cents out of account_id"""
        pass

    @abstractmethod
    async def credit(
        self,
        account_id: str,
        amount_cents: int,
        memo: str,
        *,
        idempotency_key: str,
        category: Optional[str] = None,
    ) -> LedgerReceipt:
        """Atomically add amount_cents to account_id"""
        pass

    @abstractmethod
    async def get_monthly_payment(self, liability_account_id: str) -> int:
        """Current scheduled monthly payment of a loan or mortgage in cents"""
        pass


class Notifier(ABC):
    """Fire-and-forget user notifications. Implementations never raise."""

    @abstractmethod
    async def notify(self, obligation_id: str, reason: str, **details: Any) -> None:
        pass
