"""Unit tests for the ledger HTTP client"""

import json

import httpx
import pytest

from autopay_gateway.domain.exceptions import InsufficientFundsError, TransientLedgerError
from autopay_gateway.infrastructure.clients.ledger import LedgerClient


def client_for(handler) -> LedgerClient:
    return LedgerClient(base_url="http://ledger.test", timeout=1.0, transport=httpx.MockTransport(handler))


async def test_get_balance():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/ledger/accounts/acct_a/balance"
        return httpx.Response(200, json={"account_id": "acct_a", "balance_cents": 12345})

    assert await client_for(handler).get_balance("acct_a") == 12345


async def test_get_monthly_payment():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/ledger/liabilities/loan_car/monthly-payment"
        return httpx.Response(200, json={"monthly_payment_cents": 100000})

    assert await client_for(handler).get_monthly_payment("loan_car") == 100000


async def test_debit_sends_idempotency_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.headers["Idempotency-Key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"record_id": "rec-1", "account_id": "acct_a", "amount_cents": 500})

    receipt = await client_for(handler).debit(
        "acct_a", 500, "Rent (2025-01)", idempotency_key="ob-1:2025-01:debit:0", counterparty_account_id="card_visa"
    )

    assert seen["key"] == "ob-1:2025-01:debit:0"
    assert seen["body"]["counterparty_account_id"] == "card_visa"
    assert receipt.record_id == "rec-1"
    assert receipt.amount_cents == 500
    assert receipt.replayed is False


async def test_credit_passes_category():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["category"] == "salary"
        return httpx.Response(
            200, json={"record_id": "rec-2", "account_id": "acct_a", "amount_cents": 900, "replayed": True}
        )

    receipt = await client_for(handler).credit("acct_a", 900, "Salary", idempotency_key="k", category="salary")
    assert receipt.replayed is True


async def test_insufficient_funds_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, json={"detail": "insufficient funds"})

    with pytest.raises(InsufficientFundsError) as exc_info:
        await client_for(handler).debit("acct_a", 500, "x", idempotency_key="k")
    assert exc_info.value.account_id == "acct_a"


async def test_idempotency_conflict_is_not_insufficient_funds():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"detail": "idempotency key reused with a different body"})

    with pytest.raises(TransientLedgerError) as exc_info:
        await client_for(handler).debit("acct_a", 500, "x", idempotency_key="k")
    assert "409" in str(exc_info.value)


async def test_server_error_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"detail": "down"})

    with pytest.raises(TransientLedgerError):
        await client_for(handler).get_balance("acct_a")


async def test_timeout_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransientLedgerError, match="timeout"):
        await client_for(handler).get_balance("acct_a")


async def test_connection_error_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransientLedgerError, match="unreachable"):
        await client_for(handler).get_balance("acct_a")


async def test_malformed_receipt_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(TransientLedgerError):
        await client_for(handler).debit("acct_a", 500, "x", idempotency_key="k")
