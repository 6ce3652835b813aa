"""Ledger API HTTP client for balances, debits and credits"""

from typing import Any, Dict, Optional

import httpx

from autopay_gateway.config import Settings, settings
from autopay_gateway.domain.exceptions import InsufficientFundsError, TransientLedgerError
from autopay_gateway.domain.interfaces import LedgerReceipt, LedgerService
from autopay_gateway.infrastructure.clients.memory import InMemoryLedger
from autopay_gateway.infrastructure.observability.metrics import ledger_failure_counter, ledger_latency_histogram


class LedgerClient(LedgerService):
    """Client for the external account ledger service"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.ledger_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def get_balance(self, account_id: str) -> int:
        data = await self._request("balance", "GET", f"/ledger/accounts/{account_id}/balance")
        return int(data["balance_cents"])

    async def get_monthly_payment(self, liability_account_id: str) -> int:
        data = await self._request(
            "monthly_payment", "GET", f"/ledger/liabilities/{liability_account_id}/monthly-payment"
        )
        return int(data["monthly_payment_cents"])

    async def debit(
        self,
        account_id: str,
        amount_cents: int,
        memo: str,
        *,
        idempotency_key: str,
        counterparty_account_id: Optional[str] = None,
    ) -> LedgerReceipt:
        """
        Book a debit.

        Raises:
            InsufficientFundsError: Ledger answered 402
            TransientLedgerError: On timeout, network failure or any other error status,
                including a 409 idempotency conflict
        """
        data = await self._request(
            "debit",
            "POST",
            "/ledger/debits",
            json={
                "account_id": account_id,
                "amount_cents": amount_cents,
                "memo": memo,
                "counterparty_account_id": counterparty_account_id,
            },
            idempotency_key=idempotency_key,
        )
        return self._receipt(data)

    async def credit(
        self,
        account_id: str,
        amount_cents: int,
        memo: str,
        *,
        idempotency_key: str,
        category: Optional[str] = None,
    ) -> LedgerReceipt:
        data = await self._request(
            "credit",
            "POST",
            "/ledger/credits",
            json={"account_id": account_id, "amount_cents": amount_cents, "memo": memo, "category": category},
            idempotency_key=idempotency_key,
        )
        return self._receipt(data)

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> Dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                with ledger_latency_histogram.labels(operation=operation).time():
                    response = await client.request(method, path, json=json, headers=headers)
                if response.status_code == 402:
                    account_id = (json or {}).get("account_id", "unknown")
                    raise InsufficientFundsError(account_id, response.json().get("detail"))
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                ledger_failure_counter.labels(operation=operation).inc()
                raise TransientLedgerError(f"Ledger {operation} timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                ledger_failure_counter.labels(operation=operation).inc()
                raise TransientLedgerError(f"Ledger {operation} error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                ledger_failure_counter.labels(operation=operation).inc()
                raise TransientLedgerError(f"Ledger {operation} unreachable: {e}") from e
            except ValueError as e:
                ledger_failure_counter.labels(operation=operation).inc()
                raise TransientLedgerError(f"Invalid ledger response for {operation}: {e}") from e

    @staticmethod
    def _receipt(data: Dict[str, Any]) -> LedgerReceipt:
        try:
            return LedgerReceipt(
                record_id=str(data["record_id"]),
                account_id=str(data["account_id"]),
                amount_cents=int(data["amount_cents"]),
                replayed=bool(data.get("replayed", False)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TransientLedgerError(f"Invalid ledger receipt: {e}") from e


def build_ledger(config: Settings = settings) -> LedgerService:
    """HTTP client, or the in-process ledger when ledger_backend is memory"""
    if config.ledger_backend == "memory":
        return InMemoryLedger()
    return LedgerClient(base_url=config.ledger_api_base, timeout=config.http_timeout_seconds)
