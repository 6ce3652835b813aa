"""Pytest fixtures for testing"""

from datetime import datetime, time
from typing import Any, Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from autopay_gateway.api.dependencies import get_clock, get_ledger, get_notifier, get_session_factory
from autopay_gateway.api.main import create_app
from autopay_gateway.config import Settings
from autopay_gateway.domain.interfaces import Notifier
from autopay_gateway.domain.models import (
    CreditObligation,
    DebitObligation,
    FixedAmount,
    FundingSource,
    IncomeType,
    PaymentType,
    ShortfallPolicy,
)
from autopay_gateway.infrastructure.clients.memory import InMemoryLedger
from autopay_gateway.infrastructure.database.models import Base
from autopay_gateway.infrastructure.database.session import build_engine, get_db
from autopay_gateway.services.orchestrator import ExecutionOrchestrator


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingNotifier(Notifier):
    """Keeps notifications in memory instead of sending them"""

    def __init__(self):
        self.events: List[Tuple[str, str, dict]] = []

    async def notify(self, obligation_id: str, reason: str, **details: Any) -> None:
        self.events.append((obligation_id, reason, details))

    @property
    def reasons(self) -> List[str]:
        return [reason for _, reason, _ in self.events]


class FakeClock:
    """Settable clock for the orchestrator and API"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Create test database; yields a session factory bound to it"""
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        ledger_backend="memory",
        timezone="UTC",
        sweep_concurrency=4,
        retry_delay_hours=24,
        lock_ttl_seconds=900,
        min_payment_rate=0.10,
        min_payment_floor_cents=5000,
    )


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 10, 8, 0))


@pytest.fixture
def orchestrator(
    session_factory: sessionmaker,
    ledger: InMemoryLedger,
    notifier: RecordingNotifier,
    test_settings: Settings,
    clock: FakeClock,
) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(session_factory, ledger, notifier, test_settings, clock=clock)


@pytest.fixture
def client(
    session_factory: sessionmaker,
    ledger: InMemoryLedger,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> TestClient:
    """Create FastAPI test client with test database and in-memory ledger"""
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)


def make_debit(
    sources: List[Tuple[str, int]],
    amount_cents: int = 10000,
    policy: ShortfallPolicy = ShortfallPolicy.NOTIFY,
    day_of_month: int = 15,
    **kwargs: Any,
) -> DebitObligation:
    """Subscription-style debit drawing from (account_id, priority) sources"""
    fields = dict(
        id="",
        name="Gym membership",
        day_of_month=day_of_month,
        execute_time=time(9, 0),
        amount=FixedAmount(amount_cents),
        payment_type=PaymentType.SUBSCRIPTION,
        sources=[FundingSource(account_id=a, priority=p) for a, p in sources],
        shortfall_policy=policy,
    )
    fields.update(kwargs)
    return DebitObligation(**fields)


def make_credit(amount_cents: int = 500000, day_of_month: int = 25, **kwargs: Any) -> CreditObligation:
    fields = dict(
        id="",
        name="Salary",
        day_of_month=day_of_month,
        execute_time=time(9, 0),
        amount=FixedAmount(amount_cents),
        income_type=IncomeType.SALARY,
        target_account_id="acct_checking",
    )
    fields.update(kwargs)
    return CreditObligation(**fields)
