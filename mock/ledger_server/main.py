from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel
from pathlib import Path
from typing import Optional
import json
import os

from autopay_gateway.domain.exceptions import InsufficientFundsError, TransientLedgerError
from autopay_gateway.infrastructure.clients.memory import InMemoryLedger, Liability

# Support both local development and Docker
DATA_DIR = Path("/ledger_stub") if os.path.exists("/ledger_stub") else Path(__file__).resolve().parents[2] / "ledger_stub"


class BookingRequest(BaseModel):
    account_id: str
    amount_cents: int
    memo: str = ""
    counterparty_account_id: Optional[str] = None
    category: Optional[str] = None


class BalanceUpdate(BaseModel):
    balance_cents: int


class LiabilityTerms(BaseModel):
    principal_cents: int
    annual_rate_percent: float
    term_months: int


def load_seed(path: Path = DATA_DIR / "accounts.json") -> InMemoryLedger:
    if not path.exists():
        return InMemoryLedger()
    data = json.loads(path.read_text())
    return InMemoryLedger(
        balances={k: int(v) for k, v in data.get("balances", {}).items()},
        liabilities={k: Liability(**v) for k, v in data.get("liabilities", {}).items()},
    )


def _receipt(receipt):
    return {
        "record_id": receipt.record_id,
        "account_id": receipt.account_id,
        "amount_cents": receipt.amount_cents,
        "replayed": receipt.replayed,
    }


def create_app(ledger: Optional[InMemoryLedger] = None) -> FastAPI:
    app = FastAPI(title="Mock Ledger Server", version="1.0.0")
    app.state.ledger = ledger if ledger is not None else load_seed()

    @app.get("/health")
    def health(): return {"status": "ok"}

    @app.get("/ledger/accounts/{account_id}/balance")
    async def get_balance(account_id: str):
        try:
            balance = await app.state.ledger.get_balance(account_id)
        except TransientLedgerError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"account_id": account_id, "balance_cents": balance}

    @app.put("/ledger/accounts/{account_id}/balance")
    def set_balance(account_id: str, body: BalanceUpdate):
        app.state.ledger.balances[account_id] = body.balance_cents
        return {"account_id": account_id, "balance_cents": body.balance_cents}

    @app.put("/ledger/liabilities/{liability_id}")
    def set_liability(liability_id: str, body: LiabilityTerms):
        app.state.ledger.liabilities[liability_id] = Liability(**body.model_dump())
        return {"liability_id": liability_id}

    @app.get("/ledger/liabilities/{liability_id}/monthly-payment")
    async def get_monthly_payment(liability_id: str):
        if liability_id not in app.state.ledger.liabilities:
            raise HTTPException(status_code=404, detail="liability not found")
        payment = await app.state.ledger.get_monthly_payment(liability_id)
        return {"liability_id": liability_id, "monthly_payment_cents": payment}

    @app.post("/ledger/debits")
    async def debit(body: BookingRequest, idempotency_key: str = Header(..., alias="Idempotency-Key")):
        try:
            receipt = await app.state.ledger.debit(
                body.account_id,
                body.amount_cents,
                body.memo,
                idempotency_key=idempotency_key,
                counterparty_account_id=body.counterparty_account_id,
            )
        except InsufficientFundsError as e:
            raise HTTPException(status_code=402, detail=str(e))
        except TransientLedgerError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return _receipt(receipt)

    @app.post("/ledger/credits")
    async def credit(body: BookingRequest, idempotency_key: str = Header(..., alias="Idempotency-Key")):
        try:
            receipt = await app.state.ledger.credit(
                body.account_id,
                body.amount_cents,
                body.memo,
                idempotency_key=idempotency_key,
                category=body.category,
            )
        except TransientLedgerError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return _receipt(receipt)

    return app


app = create_app()
