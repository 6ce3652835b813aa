"""Periodic sweep worker - runs due obligations and monthly budget rollover"""

import asyncio
import logging
import signal
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import sessionmaker

from autopay_gateway.config import Settings, settings
from autopay_gateway.domain.interfaces import LedgerService, Notifier
from autopay_gateway.infrastructure.clients.ledger import build_ledger
from autopay_gateway.infrastructure.clients.notifier import build_notifier
from autopay_gateway.infrastructure.database.session import SessionLocal, init_db
from autopay_gateway.infrastructure.observability.logging import setup_logging
from autopay_gateway.services.budgets import RecurringBudgetApplier
from autopay_gateway.services.orchestrator import ExecutionOrchestrator, SweepReport
from autopay_gateway.utils.date_utils import month_key

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: Settings,
    session_factory: sessionmaker = SessionLocal,
    ledger: Optional[LedgerService] = None,
    notifier: Optional[Notifier] = None,
) -> ExecutionOrchestrator:
    """Wire the orchestrator from explicit configuration"""
    return ExecutionOrchestrator(
        session_factory=session_factory,
        ledger=ledger or build_ledger(config),
        notifier=notifier or build_notifier(config.notifier_webhook_url),
        settings=config,
    )


class SweepWorker:
    """Runs one sweep every sweep_interval_seconds until stopped"""

    def __init__(self, orchestrator: ExecutionOrchestrator, session_factory: sessionmaker, config: Settings):
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.interval = config.sweep_interval_seconds
        self._stop = asyncio.Event()

    async def run_once(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.orchestrator.clock()
        report = await self.orchestrator.sweep(now)
        # Rollover is idempotent; months missed while the worker was down are filled in order
        with self.session_factory() as db:
            RecurringBudgetApplier(db).catch_up(month_key(now))
        return report

    async def run_forever(self) -> None:
        logger.info("Sweep worker started", extra={"interval_seconds": self.interval})
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Sweep failed: {e}")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Sweep worker stopped")

    def stop(self) -> None:
        self._stop.set()


async def _serve(config: Settings) -> None:
    worker = SweepWorker(build_orchestrator(config), SessionLocal, config)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)
    await worker.run_forever()


def main() -> None:
    setup_logging(settings.log_level, settings.service_name)
    init_db()
    asyncio.run(_serve(settings))


if __name__ == "__main__":
    main()
