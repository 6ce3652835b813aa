"""Execution orchestrator - runs due obligations exactly once per period"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from autopay_gateway.config import Settings
from autopay_gateway.domain.amounts import resolve_amount_due
from autopay_gateway.domain.exceptions import LockNotAcquired, NotFoundError, TransientLedgerError
from autopay_gateway.domain.installments import advance_installment
from autopay_gateway.domain.interfaces import LedgerService, Notifier
from autopay_gateway.domain.models import (
    CreditObligation,
    DebitObligation,
    Draw,
    ExecutionLogEntry,
    ExecutionStatus,
    Obligation,
    ResolutionOutcome,
    ScheduleProgress,
)
from autopay_gateway.domain.schedule import compute_next_run, compute_retry_at, period_of
from autopay_gateway.domain.waterfall import DrawJournal, WaterfallResolver, credit_idempotency_key
from autopay_gateway.infrastructure.database.repositories import (
    ExecutionLogRepository,
    LockRepository,
    ObligationRepository,
)
from autopay_gateway.infrastructure.observability.logging import log_execution
from autopay_gateway.infrastructure.observability.metrics import (
    execution_error_counter,
    installment_completed_counter,
    lock_contention_counter,
    record_execution,
    sweep_duration_histogram,
)
from autopay_gateway.utils.date_utils import local_now

logger = logging.getLogger(__name__)

# (reason, details) handed to the notifier once the obligation lock is released
Notification = Tuple[str, Dict[str, Any]]


@dataclass
class ExecutionReport:
    """What happened to one obligation in a sweep or manual run"""

    obligation_id: str
    period: Optional[str] = None
    status: Optional[ExecutionStatus] = None
    amount_cents: int = 0
    terminal: bool = False
    skipped_reason: Optional[str] = None  # locked | disabled | installment_complete | not_due | already_resolved | error
    message: Optional[str] = None
    ledger_record_id: Optional[str] = None
    notifications: List[Notification] = field(default_factory=list, repr=False)

    @property
    def executed(self) -> bool:
        return self.status is not None


@dataclass
class SweepReport:
    started_at: datetime
    reports: List[ExecutionReport] = field(default_factory=list)

    @property
    def executed(self) -> List[ExecutionReport]:
        return [r for r in self.reports if r.executed]

    @property
    def skipped(self) -> List[ExecutionReport]:
        return [r for r in self.reports if not r.executed]


class _PeriodDrawJournal(DrawJournal):
    """Commits each draw of a period before the ledger is called again"""

    def __init__(self, db: Session, obligation_id: str, period: str, now: datetime):
        self.db = db
        self.logs = ExecutionLogRepository(db)
        self.obligation_id = obligation_id
        self.period = period
        self.now = now

    def pending(self, draw: Draw) -> None:
        self.logs.record_draw(self.obligation_id, self.period, draw, self.now)
        self.db.commit()

    def confirmed(self, draw: Draw) -> None:
        self.logs.record_draw(self.obligation_id, self.period, draw, self.now)
        self.db.commit()

    def discarded(self, draw: Draw) -> None:
        self.logs.discard_draw(self.obligation_id, self.period, draw.sequence)
        self.db.commit()


class ExecutionOrchestrator:
    """
    Runs due obligations: lock, resolve amount, move funds, log, update schedule.

    Per obligation and period the flow is:
    1. Acquire the obligation lease (non-blocking; busy -> skipped this sweep)
    2. Re-read the obligation and check it is still pending
    3. Resolve the amount due from fresh data
    4. Debits go through the waterfall resolver, credits straight to the ledger
    5. Log entry and schedule progress are committed in one transaction
    6. Release the lease, then send notifications

    A crash before step 5 commits leaves the obligation pending. Each draw is
    written before its ledger call and confirmed after it; the next attempt
    carries confirmed draws forward and replays unconfirmed ones under their
    original idempotency key.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        ledger: LedgerService,
        notifier: Notifier,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.notifier = notifier
        self.settings = settings
        self.clock = clock or (lambda: local_now(settings.timezone))
        self.resolver = WaterfallResolver(ledger)

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Execute every due obligation once; obligations run concurrently up to sweep_concurrency"""
        now = now or self.clock()
        start_time = time.time()

        with self.session_factory() as db:
            due_ids = ObligationRepository(db).list_due_ids(now)

        semaphore = asyncio.Semaphore(max(1, self.settings.sweep_concurrency))

        deliveries: List[asyncio.Task] = []

        async def run(obligation_id: str) -> ExecutionReport:
            async with semaphore:
                report = await self._execute_safely(obligation_id, now)
            if report.notifications:
                deliveries.append(asyncio.create_task(self._deliver(report)))
            return report

        reports = await asyncio.gather(*(run(obligation_id) for obligation_id in due_ids))
        if deliveries:
            await asyncio.gather(*deliveries)

        duration = time.time() - start_time
        sweep_duration_histogram.observe(duration)
        report = SweepReport(started_at=now, reports=list(reports))
        logger.info(
            "Sweep completed",
            extra={
                "step": "sweep_complete",
                "due_count": len(due_ids),
                "executed_count": len(report.executed),
                "skipped_count": len(report.skipped),
                "duration_ms": duration * 1000,
            },
        )
        return report

    async def execute(self, obligation_id: str, now: Optional[datetime] = None) -> ExecutionReport:
        """
        Manual run of one obligation for its current period, even before it is due.

        Raises:
            NotFoundError: Unknown obligation
            LockNotAcquired: Another execution is in flight
        """
        report = await self._execute(obligation_id, now or self.clock(), manual=True)
        await self._deliver(report)
        return report

    async def _deliver(self, report: ExecutionReport) -> None:
        """Send an execution's notifications; runs after its lock is released"""
        for reason, details in report.notifications:
            try:
                await self.notifier.notify(report.obligation_id, reason, **details)
            except Exception as e:
                logger.exception(
                    f"Notifier raised: {e}",
                    extra={"obligation_id": report.obligation_id, "reason": reason},
                )

    async def _execute_safely(self, obligation_id: str, now: datetime) -> ExecutionReport:
        try:
            return await self._execute(obligation_id, now, manual=False)
        except Exception as e:
            execution_error_counter.inc()
            logger.exception(f"Execution aborted: {e}", extra={"obligation_id": obligation_id})
            return ExecutionReport(obligation_id=obligation_id, skipped_reason="error", message=str(e))

    async def _execute(self, obligation_id: str, now: datetime, manual: bool) -> ExecutionReport:
        owner = str(uuid.uuid4())
        ttl = timedelta(seconds=self.settings.lock_ttl_seconds)

        with self.session_factory() as db:
            obligations = ObligationRepository(db)
            locks = LockRepository(db)

            obligation = obligations.get(obligation_id)
            if obligation is None:
                raise NotFoundError(f"Obligation {obligation_id} not found")

            period = obligation.progress.current_period or period_of(now)
            if not locks.try_acquire(obligation_id, period, owner, now, ttl):
                lock_contention_counter.inc()
                if manual:
                    raise LockNotAcquired(f"Obligation {obligation_id} is already executing")
                logger.info("Obligation locked, skipping", extra={"obligation_id": obligation_id, "period": period})
                return ExecutionReport(obligation_id=obligation_id, period=period, skipped_reason="locked")

            try:
                # Fresh read under the lease: a previous holder may have advanced it
                db.expire_all()
                obligation = obligations.get(obligation_id)
                if obligation is None:
                    raise NotFoundError(f"Obligation {obligation_id} not found")
                period = obligation.progress.current_period or period_of(now)

                reason = self._not_pending_reason(db, obligation, period, now, manual)
                if reason == "already_resolved":
                    self._repair_progress(db, obligation, period, now)
                if reason is not None:
                    return ExecutionReport(obligation_id=obligation_id, period=period, skipped_reason=reason)

                return await self._run_period(db, obligation, period, now)
            finally:
                # Discard anything left uncommitted by a failed attempt before dropping the lease
                db.rollback()
                locks.release(obligation_id, owner)

    def _not_pending_reason(
        self, db: Session, obligation: Obligation, period: str, now: datetime, manual: bool
    ) -> Optional[str]:
        if not obligation.enabled:
            return "disabled"
        if isinstance(obligation, DebitObligation) and obligation.installment and obligation.installment.is_complete:
            return "installment_complete"
        next_at = obligation.progress.next_execute_at
        if not manual and (next_at is None or next_at > now):
            return "not_due"
        if ExecutionLogRepository(db).has_terminal(obligation.id, period):
            return "already_resolved"
        return None

    def _repair_progress(self, db: Session, obligation: Obligation, period: str, now: datetime) -> None:
        """Point a schedule whose current period already resolved at the period after it"""
        progress = replace(obligation.progress)
        self._advance(obligation, progress, period, now)
        ObligationRepository(db).save_progress(obligation.id, progress, obligation.enabled)
        db.commit()
        logger.warning(
            "Schedule progress was behind its execution log, repaired",
            extra={"obligation_id": obligation.id, "period": period, "next_execute_at": str(progress.next_execute_at)},
        )

    async def _run_period(self, db: Session, obligation: Obligation, period: str, now: datetime) -> ExecutionReport:
        start_time = time.time()
        logs = ExecutionLogRepository(db)

        prior_draws = logs.draws_for_period(obligation.id, period)

        try:
            amount_due = await resolve_amount_due(obligation, self.ledger, self.settings)
        except TransientLedgerError as e:
            outcome = ResolutionOutcome(ExecutionStatus.FAILED, amount_due_cents=0, message=f"Amount lookup failed: {e}")
        else:
            # A derived amount can drop to 0 once an unconfirmed draw has landed; settle it first
            if amount_due <= 0 and not prior_draws:
                outcome = ResolutionOutcome(ExecutionStatus.SKIPPED, amount_due_cents=0, message="Nothing due")
            elif isinstance(obligation, DebitObligation):
                outcome = await self.resolver.resolve(
                    obligation,
                    max(amount_due, 0),
                    period,
                    prior_draws=prior_draws,
                    journal=_PeriodDrawJournal(db, obligation.id, period, now),
                )
            else:
                outcome = await self._credit(obligation, amount_due, period)

        report = self._apply(db, obligation, period, outcome, now)

        duration_ms = (time.time() - start_time) * 1000
        record_execution(obligation.kind.value, outcome.status.value, outcome.drawn_cents)
        log_execution(
            obligation.id,
            obligation.kind.value,
            period,
            outcome.status.value,
            outcome.drawn_cents,
            report.terminal,
            duration_ms,
            outcome.message,
        )
        return report

    async def _credit(self, obligation: CreditObligation, amount_cents: int, period: str) -> ResolutionOutcome:
        try:
            receipt = await self.ledger.credit(
                obligation.target_account_id,
                amount_cents,
                f"{obligation.name} ({period})",
                idempotency_key=credit_idempotency_key(obligation.id, period),
                category=obligation.effective_category,
            )
        except TransientLedgerError as e:
            return ResolutionOutcome(ExecutionStatus.FAILED, amount_due_cents=amount_cents, message=f"Ledger error: {e}")

        draw = Draw(
            sequence=0,
            account_id=receipt.account_id,
            amount_cents=receipt.amount_cents,
            ledger_record_id=receipt.record_id,
        )
        return ResolutionOutcome(ExecutionStatus.SUCCESS, amount_due_cents=amount_cents, draws=[draw])

    def _advance(self, obligation: Obligation, progress: ScheduleProgress, period: str, now: datetime) -> None:
        """Close period and point the schedule at the next one"""
        progress.last_period = period
        next_at = compute_next_run(replace(obligation, progress=progress), now)
        progress.next_execute_at = next_at
        progress.current_period = period_of(next_at)

    def _apply(
        self, db: Session, obligation: Obligation, period: str, outcome: ResolutionOutcome, now: datetime
    ) -> ExecutionReport:
        """Write the log entry and the schedule progress for an outcome in one commit"""
        progress = replace(obligation.progress)
        enabled = obligation.enabled
        installment = None
        terminal = True
        notifications = []
        status = outcome.status
        message = outcome.message

        if status in (ExecutionStatus.SUCCESS, ExecutionStatus.PARTIAL):
            progress.last_executed_at = now
            self._advance(obligation, progress, period, now)
            if isinstance(obligation, DebitObligation) and obligation.installment is not None:
                advance = advance_installment(obligation.installment)
                installment = advance.plan
                if advance.completed:
                    enabled = False
                    installment_completed_counter.inc()
                    notifications.append(("installment_complete", {"total_periods": installment.total_periods}))

        elif status is ExecutionStatus.SKIPPED:
            self._advance(obligation, progress, period, now)

        elif status is ExecutionStatus.INSUFFICIENT_FUNDS:
            if outcome.retry:
                retry_at = compute_retry_at(obligation, now, timedelta(hours=self.settings.retry_delay_hours))
                if retry_at is None:
                    self._advance(obligation, progress, period, now)
                    message = f"{message}; retry window closed" if message else "Retry window closed"
                    notifications.append(("retry_window_closed", {}))
                else:
                    terminal = False
                    progress.next_execute_at = retry_at
                    notifications.append(("insufficient_funds_retry", {"retry_at": retry_at.isoformat()}))
            else:
                self._advance(obligation, progress, period, now)
                reason = "policy_violation" if outcome.policy_violation else "insufficient_funds"
                notifications.append((reason, {"amount_due_cents": outcome.amount_due_cents}))

        else:
            # FAILED: ledger trouble, always retried on the next sweep
            terminal = False

        first_draw = outcome.draws[0] if outcome.draws else None
        last_draw = outcome.draws[-1] if outcome.draws else None
        entry = ExecutionLogEntry(
            obligation_id=obligation.id,
            period=period,
            attempted_at=now,
            status=status,
            amount_cents=outcome.drawn_cents,
            terminal=terminal,
            source_account_id=first_draw.account_id if first_draw and isinstance(obligation, DebitObligation) else None,
            ledger_record_id=last_draw.ledger_record_id if last_draw else None,
            message=message,
        )

        try:
            ExecutionLogRepository(db).append(entry)
            ObligationRepository(db).save_progress(obligation.id, progress, enabled, installment)
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.error(
                "Period already resolved by another execution",
                extra={"obligation_id": obligation.id, "period": period},
            )
            return ExecutionReport(obligation_id=obligation.id, period=period, skipped_reason="already_resolved")

        return ExecutionReport(
            obligation_id=obligation.id,
            period=period,
            status=status,
            amount_cents=outcome.drawn_cents,
            terminal=terminal,
            message=message,
            ledger_record_id=entry.ledger_record_id,
            notifications=[(reason, dict(details, period=period)) for reason, details in notifications],
        )
