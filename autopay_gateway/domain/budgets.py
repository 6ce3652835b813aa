"""Recurring budget rollover rules"""

from typing import Iterable, List, Optional, Set

from autopay_gateway.domain.models import RecurringBudget

AGGREGATE_KEY = ""


def category_key(category: Optional[str]) -> str:
    """Uniqueness key of a budget's category; the aggregate budget is its own category"""
    return AGGREGATE_KEY if category is None else category


def rollover_copies(
    previous_rows: Iterable[RecurringBudget],
    month: str,
    existing_keys: Set[str],
) -> List[RecurringBudget]:
    """
    New rows for month cloned from last month's recurring budgets.

    Rows whose category already has a budget in month are left out, which
    makes repeated rollovers of the same month a no-op.
    """
    copies = []
    taken = set(existing_keys)
    for row in previous_rows:
        key = category_key(row.category)
        if not row.is_recurring or key in taken:
            continue
        taken.add(key)
        copies.append(
            RecurringBudget(
                month=month,
                category=row.category,
                amount_cents=row.amount_cents,
                is_recurring=True,
                name=row.name,
            )
        )
    return copies
