"""Recurring budget applier and budget maintenance"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autopay_gateway.domain.budgets import rollover_copies
from autopay_gateway.domain.exceptions import ConflictError, NotFoundError, ValidationError
from autopay_gateway.domain.models import RecurringBudget
from autopay_gateway.domain.validation import validate_budget
from autopay_gateway.infrastructure.database.repositories import BudgetRepository
from autopay_gateway.infrastructure.observability.metrics import budget_generated_counter
from autopay_gateway.utils.date_utils import next_month, parse_month, previous_month

logger = logging.getLogger(__name__)


class RecurringBudgetApplier:
    """
    Carries recurring budgets forward month by month.

    Rollover only ever inserts rows; last month's rows stay untouched for
    reporting. Uniqueness on (month, category) makes re-runs harmless.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BudgetRepository(db)

    def apply(self, month: str) -> List[RecurringBudget]:
        """Create month's rows from previous month's recurring budgets; returns the rows created"""
        try:
            parse_month(month)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        source_month = previous_month(month)
        copies = rollover_copies(
            self.repo.list_by_month(source_month),
            month,
            self.repo.keys_for_month(month),
        )
        try:
            created = [self.repo.create(copy) for copy in copies]
            self.db.commit()
        except (ConflictError, IntegrityError):
            # A concurrent applier inserted the same month first
            self.db.rollback()
            logger.info("Budget rollover already applied concurrently", extra={"month": month})
            return []

        if created:
            budget_generated_counter.inc(len(created))
            logger.info(
                "Recurring budgets rolled over",
                extra={"month": month, "source_month": source_month, "created_count": len(created)},
            )
        return created

    def catch_up(self, month: str) -> List[RecurringBudget]:
        """Apply every month from the last one with recurring budgets up to month"""
        try:
            parse_month(month)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        latest = self.repo.latest_recurring_month(month)
        if latest is None:
            return []
        created = []
        current = next_month(latest)
        while current <= month:
            created.extend(self.apply(current))
            current = next_month(current)
        return created

    def create(self, budget: RecurringBudget) -> RecurringBudget:
        """
        Raises:
            ValidationError: Bad month or amount
            ConflictError: The month already has a budget for this category
        """
        validate_budget(budget)
        created = self.repo.create(budget)
        self.db.commit()
        return created

    def get(self, budget_id: str) -> RecurringBudget:
        budget = self.repo.get(budget_id)
        if budget is None:
            raise NotFoundError(f"Budget {budget_id} not found")
        return budget

    def list(self, month: str) -> List[RecurringBudget]:
        return self.repo.list_by_month(month)

    def update(self, budget_id: str, amount_cents: Optional[int] = None, is_recurring: Optional[bool] = None) -> RecurringBudget:
        if amount_cents is not None and amount_cents <= 0:
            raise ValidationError("budget amount must be positive")
        updated = self.repo.update(budget_id, amount_cents=amount_cents, is_recurring=is_recurring)
        if updated is None:
            raise NotFoundError(f"Budget {budget_id} not found")
        self.db.commit()
        return updated

    def delete_month_only(self, budget_id: str) -> None:
        """
        Remove one month's budget without stopping its recurrence.

        If next month has not been generated yet, it is generated first so
        the chain continues without this row.
        """
        budget = self.get(budget_id)
        if budget.is_recurring:
            following = next_month(budget.month)
            if self.repo.find(following, budget.category) is None:
                self.repo.create(
                    RecurringBudget(
                        month=following,
                        category=budget.category,
                        amount_cents=budget.amount_cents,
                        is_recurring=True,
                        name=budget.name,
                    )
                )
        self.repo.delete(budget_id)
        self.db.commit()

    def cancel_recurring(self, budget_id: str) -> int:
        """Stop auto-generation from this budget's month on; returns the number of rows changed"""
        budget = self.get(budget_id)
        changed = self.repo.stop_recurring_from(budget.month, budget.category)
        self.db.commit()
        logger.info(
            "Recurring budget cancelled",
            extra={"budget_id": budget_id, "month": budget.month, "rows_changed": changed},
        )
        return changed
