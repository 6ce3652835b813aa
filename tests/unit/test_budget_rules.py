"""Unit tests for recurring budget rollover rules"""

from autopay_gateway.domain.budgets import AGGREGATE_KEY, category_key, rollover_copies
from autopay_gateway.domain.models import RecurringBudget


def test_aggregate_budget_has_its_own_key():
    assert category_key(None) == AGGREGATE_KEY
    assert category_key("FOOD") == "FOOD"


def test_only_recurring_rows_roll_over():
    previous = [
        RecurringBudget(month="2025-01", category="FOOD", amount_cents=100_000, is_recurring=True),
        RecurringBudget(month="2025-01", category="TRAVEL", amount_cents=50_000, is_recurring=False),
        RecurringBudget(month="2025-01", category=None, amount_cents=500_000, is_recurring=True, name="Total"),
    ]
    copies = rollover_copies(previous, "2025-02", set())

    assert [(c.month, c.category, c.amount_cents) for c in copies] == [
        ("2025-02", "FOOD", 100_000),
        ("2025-02", None, 500_000),
    ]
    assert all(c.is_recurring and c.id is None for c in copies)
    assert copies[1].name == "Total"


def test_existing_categories_are_not_duplicated():
    previous = [RecurringBudget(month="2025-01", category="FOOD", amount_cents=100_000, is_recurring=True)]
    assert rollover_copies(previous, "2025-02", {"FOOD"}) == []


def test_manual_edit_in_target_month_wins():
    previous = [
        RecurringBudget(month="2025-01", category="FOOD", amount_cents=100_000, is_recurring=True),
        RecurringBudget(month="2025-01", category=None, amount_cents=500_000, is_recurring=True),
    ]
    copies = rollover_copies(previous, "2025-02", {AGGREGATE_KEY})
    assert [c.category for c in copies] == ["FOOD"]
