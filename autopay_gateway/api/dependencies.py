"""Dependency injection for FastAPI endpoints"""

from datetime import datetime
from functools import lru_cache
from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

from autopay_gateway.config import settings
from autopay_gateway.domain.interfaces import LedgerService, Notifier
from autopay_gateway.infrastructure.clients.ledger import build_ledger
from autopay_gateway.infrastructure.clients.notifier import build_notifier
from autopay_gateway.infrastructure.database.session import SessionLocal
from autopay_gateway.services.orchestrator import ExecutionOrchestrator
from autopay_gateway.utils.date_utils import local_now


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache()
def get_ledger() -> LedgerService:
    """Provide the ledger; one instance per process so the in-memory backend keeps its balances"""
    return build_ledger(settings)


def get_notifier() -> Notifier:
    """Provide notification client instance"""
    return build_notifier(settings.notifier_webhook_url)


def get_session_factory() -> sessionmaker:
    """Executions open their own sessions, one per obligation"""
    return SessionLocal


def get_clock() -> Callable[[], datetime]:
    """Current local time in the configured timezone"""
    return lambda: local_now(settings.timezone)


def get_orchestrator(
    session_factory: sessionmaker = Depends(get_session_factory),
    ledger: LedgerService = Depends(get_ledger),
    notifier: Notifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(
        session_factory=session_factory,
        ledger=ledger,
        notifier=notifier,
        settings=settings,
        clock=clock,
    )
