"""Data access layer for obligations, execution history, locks and budgets"""

from datetime import datetime, timedelta
from typing import List, Optional, Set

from sqlalchemy import func, insert, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autopay_gateway.domain.budgets import category_key
from autopay_gateway.domain.exceptions import ConflictError, ValidationError
from autopay_gateway.domain.models import (
    AmountBasis,
    CreditObligation,
    DebitObligation,
    DerivedAmount,
    Draw,
    ExecutionLogEntry,
    ExecutionStatus,
    FixedAmount,
    FundingSource,
    IncomeType,
    InstallmentPlan,
    Obligation,
    ObligationKind,
    PaymentType,
    RecurringBudget,
    RevolvingCreditTarget,
    ScheduleProgress,
    ShortfallPolicy,
    TermLiabilityTarget,
)
from autopay_gateway.infrastructure.database.models import (
    BudgetRow,
    ExecutionDrawRow,
    ExecutionLockRow,
    ExecutionLogRow,
    ObligationRow,
    ObligationSourceRow,
)


def row_to_obligation(row: ObligationRow) -> Obligation:
    """Map a stored row onto its tagged domain variant"""
    if row.fixed_amount_cents is not None:
        amount = FixedAmount(amount_cents=row.fixed_amount_cents)
    else:
        amount = DerivedAmount(basis=AmountBasis(row.amount_basis))

    progress = ScheduleProgress(
        next_execute_at=row.next_execute_at,
        current_period=row.current_period,
        last_executed_at=row.last_executed_at,
        last_period=row.last_period,
    )
    common = dict(
        id=row.id,
        name=row.name,
        day_of_month=row.day_of_month,
        execute_time=row.execute_time,
        reminder_lead_days=row.reminder_lead_days,
        enabled=row.enabled,
        amount=amount,
        progress=progress,
    )

    kind = ObligationKind(row.kind)
    if kind is ObligationKind.DEBIT:
        if row.card_account_id:
            target = RevolvingCreditTarget(card_account_id=row.card_account_id)
        elif row.liability_account_id:
            target = TermLiabilityTarget(liability_account_id=row.liability_account_id)
        else:
            target = None
        installment = None
        if row.total_periods is not None:
            installment = InstallmentPlan(
                total_periods=row.total_periods,
                completed_periods=row.completed_periods or 0,
                start_date=row.installment_start_date,
            )
        return DebitObligation(
            **common,
            payment_type=PaymentType(row.payment_type),
            target=target,
            sources=[FundingSource(account_id=s.account_id, priority=s.priority) for s in row.sources],
            shortfall_policy=ShortfallPolicy(row.shortfall_policy),
            installment=installment,
        )
    if kind is ObligationKind.CREDIT:
        return CreditObligation(
            **common,
            income_type=IncomeType(row.income_type),
            target_account_id=row.target_account_id,
            category=row.category,
        )
    raise ValidationError(f"Unknown obligation kind {row.kind}")


def _write_definition(row: ObligationRow, obligation: Obligation) -> None:
    """Copy the user-editable fields of an obligation onto a row"""
    row.kind = obligation.kind.value
    row.name = obligation.name
    row.day_of_month = obligation.day_of_month
    row.execute_time = obligation.execute_time
    row.reminder_lead_days = obligation.reminder_lead_days
    row.enabled = obligation.enabled

    if isinstance(obligation.amount, FixedAmount):
        row.fixed_amount_cents = obligation.amount.amount_cents
        row.amount_basis = None
    else:
        row.fixed_amount_cents = None
        row.amount_basis = obligation.amount.basis.value

    if isinstance(obligation, DebitObligation):
        target = obligation.target
        row.payment_type = obligation.payment_type.value
        row.card_account_id = target.card_account_id if isinstance(target, RevolvingCreditTarget) else None
        row.liability_account_id = target.liability_account_id if isinstance(target, TermLiabilityTarget) else None
        row.shortfall_policy = obligation.shortfall_policy.value
        plan = obligation.installment
        row.total_periods = plan.total_periods if plan else None
        row.completed_periods = plan.completed_periods if plan else 0
        row.installment_start_date = plan.start_date if plan else None
        row.sources = [
            ObligationSourceRow(account_id=s.account_id, priority=s.priority) for s in obligation.sources
        ]
    else:
        row.income_type = obligation.income_type.value
        row.target_account_id = obligation.target_account_id
        row.category = obligation.category


def _write_progress(row: ObligationRow, progress: ScheduleProgress) -> None:
    row.next_execute_at = progress.next_execute_at
    row.current_period = progress.current_period
    row.last_executed_at = progress.last_executed_at
    row.last_period = progress.last_period


class ObligationRepository:
    """Repository for recurring obligations (schedule store)"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, obligation: Obligation) -> Obligation:
        row = ObligationRow(id=obligation.id)
        _write_definition(row, obligation)
        _write_progress(row, obligation.progress)
        self.db.add(row)
        self.db.flush()
        return row_to_obligation(row)

    def get(self, obligation_id: str) -> Optional[Obligation]:
        row = self.db.get(ObligationRow, obligation_id)
        return row_to_obligation(row) if row else None

    def list(self, kind: Optional[ObligationKind] = None) -> List[Obligation]:
        query = self.db.query(ObligationRow)
        if kind is not None:
            query = query.filter(ObligationRow.kind == kind.value)
        return [row_to_obligation(r) for r in query.order_by(ObligationRow.created_at, ObligationRow.id).all()]

    def update(self, obligation: Obligation, progress: Optional[ScheduleProgress] = None) -> Obligation:
        """Replace the definition of an existing obligation; progress is written only when given"""
        row = self.db.get(ObligationRow, obligation.id)
        if row is None:
            raise ValidationError(f"Obligation {obligation.id} does not exist")
        # Drop old sources first so reused priorities do not collide in one flush
        row.sources.clear()
        self.db.flush()
        _write_definition(row, obligation)
        if progress is not None:
            _write_progress(row, progress)
        self.db.flush()
        return row_to_obligation(row)

    def delete(self, obligation_id: str) -> bool:
        row = self.db.get(ObligationRow, obligation_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.flush()
        return True

    def save_progress(
        self,
        obligation_id: str,
        progress: ScheduleProgress,
        enabled: bool,
        installment: Optional[InstallmentPlan] = None,
    ) -> None:
        """Persist execution progress; only the orchestrator calls this"""
        row = self.db.get(ObligationRow, obligation_id)
        _write_progress(row, progress)
        row.enabled = enabled
        if installment is not None:
            row.completed_periods = installment.completed_periods

    def list_due_ids(self, now: datetime) -> List[str]:
        """Enabled obligations whose next run has arrived and whose plan is not finished"""
        rows = (
            self.db.query(ObligationRow.id)
            .filter(ObligationRow.enabled.is_(True))
            .filter(ObligationRow.next_execute_at.isnot(None))
            .filter(ObligationRow.next_execute_at <= now)
            .filter(
                or_(
                    ObligationRow.total_periods.is_(None),
                    ObligationRow.completed_periods < ObligationRow.total_periods,
                )
            )
            .order_by(ObligationRow.next_execute_at)
            .all()
        )
        return [r.id for r in rows]

    def list_scheduled(self) -> List[Obligation]:
        """Enabled obligations that have a next run"""
        rows = (
            self.db.query(ObligationRow)
            .filter(ObligationRow.enabled.is_(True))
            .filter(ObligationRow.next_execute_at.isnot(None))
            .order_by(ObligationRow.next_execute_at)
            .all()
        )
        return [row_to_obligation(r) for r in rows]


class ExecutionLogRepository:
    """Append-only log store plus the per-period draw journal"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        row = ExecutionLogRow(
            obligation_id=entry.obligation_id,
            period=entry.period,
            attempted_at=entry.attempted_at,
            status=entry.status.value,
            amount_cents=entry.amount_cents,
            terminal=entry.terminal,
            source_account_id=entry.source_account_id,
            ledger_record_id=entry.ledger_record_id,
            message=entry.message,
        )
        self.db.add(row)
        self.db.flush()
        entry.id = row.id
        return entry

    def has_terminal(self, obligation_id: str, period: str) -> bool:
        """Whether the period already resolved (success or a non-retryable outcome)"""
        return (
            self.db.query(ExecutionLogRow.id)
            .filter(ExecutionLogRow.obligation_id == obligation_id)
            .filter(ExecutionLogRow.period == period)
            .filter(ExecutionLogRow.terminal.is_(True))
            .first()
            is not None
        )

    def list_for_obligation(self, obligation_id: str, limit: int = 20) -> List[ExecutionLogEntry]:
        rows = (
            self.db.query(ExecutionLogRow)
            .filter(ExecutionLogRow.obligation_id == obligation_id)
            .order_by(ExecutionLogRow.attempted_at.desc())
            .limit(limit)
            .all()
        )
        return [
            ExecutionLogEntry(
                id=r.id,
                obligation_id=r.obligation_id,
                period=r.period,
                attempted_at=r.attempted_at,
                status=ExecutionStatus(r.status),
                amount_cents=r.amount_cents,
                terminal=r.terminal,
                source_account_id=r.source_account_id,
                ledger_record_id=r.ledger_record_id,
                message=r.message,
            )
            for r in rows
        ]

    def record_draw(self, obligation_id: str, period: str, draw: Draw, drawn_at: datetime) -> None:
        """Write a draw, or confirm the pending row of the same sequence"""
        row = (
            self.db.query(ExecutionDrawRow)
            .filter(ExecutionDrawRow.obligation_id == obligation_id)
            .filter(ExecutionDrawRow.period == period)
            .filter(ExecutionDrawRow.sequence == draw.sequence)
            .first()
        )
        if row is None:
            row = ExecutionDrawRow(obligation_id=obligation_id, period=period, sequence=draw.sequence)
            self.db.add(row)
        row.account_id = draw.account_id
        row.amount_cents = draw.amount_cents
        row.ledger_record_id = draw.ledger_record_id
        row.drawn_at = drawn_at
        self.db.flush()

    def discard_draw(self, obligation_id: str, period: str, sequence: int) -> None:
        """Drop a pending draw the ledger never booked"""
        row = (
            self.db.query(ExecutionDrawRow)
            .filter(ExecutionDrawRow.obligation_id == obligation_id)
            .filter(ExecutionDrawRow.period == period)
            .filter(ExecutionDrawRow.sequence == sequence)
            .filter(ExecutionDrawRow.ledger_record_id.is_(None))
            .first()
        )
        if row is not None:
            self.db.delete(row)
            self.db.flush()

    def draws_for_period(self, obligation_id: str, period: str) -> List[Draw]:
        """Confirmed and pending draws of a period, in ledger call order"""
        rows = (
            self.db.query(ExecutionDrawRow)
            .filter(ExecutionDrawRow.obligation_id == obligation_id)
            .filter(ExecutionDrawRow.period == period)
            .order_by(ExecutionDrawRow.sequence)
            .all()
        )
        return [
            Draw(
                sequence=r.sequence,
                account_id=r.account_id,
                amount_cents=r.amount_cents,
                ledger_record_id=r.ledger_record_id,
            )
            for r in rows
        ]


class LockRepository:
    """
    Per-obligation execution leases.

    Each call commits on its own so other workers see the lease at once.
    """

    def __init__(self, db: Session):
        self.db = db

    def try_acquire(self, obligation_id: str, period: str, owner: str, now: datetime, ttl: timedelta) -> bool:
        """Take the lease without waiting; False when a live lease exists"""
        try:
            self.db.execute(
                insert(ExecutionLockRow).values(
                    obligation_id=obligation_id,
                    period=period,
                    owner=owner,
                    acquired_at=now,
                    expires_at=now + ttl,
                )
            )
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()

        # Holder may have crashed: take over only an expired lease
        taken = (
            self.db.query(ExecutionLockRow)
            .filter(ExecutionLockRow.obligation_id == obligation_id)
            .filter(ExecutionLockRow.expires_at < now)
            .update(
                {"period": period, "owner": owner, "acquired_at": now, "expires_at": now + ttl},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return taken == 1

    def release(self, obligation_id: str, owner: str) -> None:
        (
            self.db.query(ExecutionLockRow)
            .filter(ExecutionLockRow.obligation_id == obligation_id)
            .filter(ExecutionLockRow.owner == owner)
            .delete(synchronize_session=False)
        )
        self.db.commit()


def _row_to_budget(row: BudgetRow) -> RecurringBudget:
    return RecurringBudget(
        id=row.id,
        month=row.month,
        category=row.category,
        amount_cents=row.amount_cents,
        is_recurring=row.is_recurring,
        name=row.name,
    )


class BudgetRepository:
    """Repository for monthly budgets"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, budget: RecurringBudget) -> RecurringBudget:
        """Insert a budget row; ConflictError if the month already has one for the category"""
        key = category_key(budget.category)
        if key in self.keys_for_month(budget.month):
            raise ConflictError(f"Budget for {budget.month} / {budget.category or 'total'} already exists")
        row = BudgetRow(
            month=budget.month,
            category=budget.category,
            category_key=key,
            amount_cents=budget.amount_cents,
            is_recurring=budget.is_recurring,
            name=budget.name,
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"Budget for {budget.month} / {budget.category or 'total'} already exists") from e
        return _row_to_budget(row)

    def get(self, budget_id: str) -> Optional[RecurringBudget]:
        row = self.db.get(BudgetRow, budget_id)
        return _row_to_budget(row) if row else None

    def list_by_month(self, month: str) -> List[RecurringBudget]:
        rows = (
            self.db.query(BudgetRow)
            .filter(BudgetRow.month == month)
            .order_by(BudgetRow.category_key)
            .all()
        )
        return [_row_to_budget(r) for r in rows]

    def keys_for_month(self, month: str) -> Set[str]:
        return {r.category_key for r in self.db.query(BudgetRow.category_key).filter(BudgetRow.month == month).all()}

    def latest_recurring_month(self, before: str) -> Optional[str]:
        """Most recent month earlier than before that holds a recurring budget"""
        return (
            self.db.query(func.max(BudgetRow.month))
            .filter(BudgetRow.is_recurring.is_(True))
            .filter(BudgetRow.month < before)
            .scalar()
        )

    def find(self, month: str, category: Optional[str]) -> Optional[RecurringBudget]:
        row = (
            self.db.query(BudgetRow)
            .filter(BudgetRow.month == month)
            .filter(BudgetRow.category_key == category_key(category))
            .first()
        )
        return _row_to_budget(row) if row else None

    def update(self, budget_id: str, amount_cents: Optional[int] = None, is_recurring: Optional[bool] = None) -> Optional[RecurringBudget]:
        row = self.db.get(BudgetRow, budget_id)
        if row is None:
            return None
        if amount_cents is not None:
            row.amount_cents = amount_cents
        if is_recurring is not None:
            row.is_recurring = is_recurring
        self.db.flush()
        return _row_to_budget(row)

    def delete(self, budget_id: str) -> bool:
        row = self.db.get(BudgetRow, budget_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.flush()
        return True

    def stop_recurring_from(self, month: str, category: Optional[str]) -> int:
        """Clear is_recurring on the category's row for month and every later month"""
        updated = (
            self.db.query(BudgetRow)
            .filter(BudgetRow.category_key == category_key(category))
            .filter(BudgetRow.month >= month)
            .update({"is_recurring": False}, synchronize_session=False)
        )
        self.db.flush()
        return updated
