"""Obligation lifecycle - create, edit, toggle and delete schedules"""

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from autopay_gateway.domain.exceptions import NotFoundError
from autopay_gateway.domain.models import Obligation, ObligationKind, ScheduleProgress
from autopay_gateway.domain.schedule import compute_next_run, period_of
from autopay_gateway.domain.validation import validate_obligation
from autopay_gateway.infrastructure.database.repositories import ExecutionLogRepository, ObligationRepository

logger = logging.getLogger(__name__)


def _rescheduled(obligation: Obligation, now: datetime) -> ScheduleProgress:
    """Progress pointing at the first unresolved period due at or after now"""
    progress = replace(obligation.progress)
    next_at = compute_next_run(obligation, now)
    progress.next_execute_at = next_at
    progress.current_period = period_of(next_at)
    return progress


class ObligationService:
    """Write-side of the schedule store; validates before anything is persisted"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ObligationRepository(db)

    def create(self, obligation: Obligation, now: datetime) -> Obligation:
        """
        Validate and store a new schedule with its first run computed.

        Raises:
            ValidationError: Malformed schedule
        """
        if not obligation.id:
            obligation = replace(obligation, id=str(uuid.uuid4()))
        validate_obligation(obligation)
        obligation = replace(obligation, progress=_rescheduled(obligation, now))
        created = self.repo.create(obligation)
        self.db.commit()
        logger.info(
            "Obligation created",
            extra={"obligation_id": created.id, "kind": created.kind.value, "next_execute_at": str(created.progress.next_execute_at)},
        )
        return created

    def get(self, obligation_id: str, kind: Optional[ObligationKind] = None) -> Obligation:
        obligation = self.repo.get(obligation_id)
        if obligation is None or (kind is not None and obligation.kind is not kind):
            raise NotFoundError(f"Obligation {obligation_id} not found")
        return obligation

    def list(self, kind: Optional[ObligationKind] = None) -> List[Obligation]:
        return self.repo.list(kind)

    def update(self, obligation: Obligation, now: datetime) -> Obligation:
        """
        Replace a schedule's definition, keeping its execution history.

        The next run is recomputed when the timing changed or the schedule
        was re-enabled; a pending retry is kept otherwise.
        """
        current = self.get(obligation.id, obligation.kind)
        validate_obligation(obligation)

        timing_changed = (
            obligation.day_of_month != current.day_of_month
            or obligation.execute_time != current.execute_time
            or (obligation.enabled and not current.enabled)
        )
        # Progress belongs to the orchestrator; only a timing change rewrites it
        progress = _rescheduled(replace(obligation, progress=current.progress), now) if timing_changed else None
        updated = self.repo.update(obligation, progress)
        self.db.commit()
        return updated

    def toggle(self, obligation_id: str, now: datetime, kind: Optional[ObligationKind] = None) -> Obligation:
        """Flip enabled; re-enabling skips periods that passed while disabled"""
        current = self.get(obligation_id, kind)
        enabled = not current.enabled
        progress = _rescheduled(current, now) if enabled else current.progress
        self.repo.save_progress(current.id, progress, enabled)
        self.db.commit()
        return self.get(obligation_id)

    def delete(self, obligation_id: str, kind: Optional[ObligationKind] = None) -> None:
        self.get(obligation_id, kind)
        self.repo.delete(obligation_id)
        self.db.commit()

    def logs(self, obligation_id: str, limit: int = 20, kind: Optional[ObligationKind] = None):
        self.get(obligation_id, kind)
        return ExecutionLogRepository(self.db).list_for_obligation(obligation_id, limit)

    def reminders(self, on: date) -> List[Obligation]:
        """Schedules whose next run falls within their reminder lead window as seen from on"""
        due = []
        for obligation in self.repo.list_scheduled():
            days_ahead = (obligation.progress.next_execute_at.date() - on).days
            if 0 <= days_ahead <= obligation.reminder_lead_days:
                due.append(obligation)
        return due
