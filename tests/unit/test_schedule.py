"""Unit tests for next-run and retry calculation"""

from datetime import datetime, timedelta

import pytest

from autopay_gateway.domain.models import ScheduleProgress
from autopay_gateway.domain.schedule import compute_next_run, compute_retry_at, period_of
from conftest import make_debit


def schedule(day_of_month: int, last_period: str | None = None, current_period: str | None = None):
    obligation = make_debit([("acct_a", 1)], day_of_month=day_of_month)
    obligation.progress = ScheduleProgress(last_period=last_period, current_period=current_period)
    return obligation


def test_day_31_clamps_to_february_28():
    """Jan 31 executed -> next run Feb 28 in a common year"""
    obligation = schedule(31, last_period="2025-01")
    assert compute_next_run(obligation, datetime(2025, 1, 31, 9, 0)) == datetime(2025, 2, 28, 9, 0)


def test_day_31_clamps_to_february_29_in_leap_year():
    obligation = schedule(31, last_period="2024-01")
    assert compute_next_run(obligation, datetime(2024, 1, 31, 9, 0)) == datetime(2024, 2, 29, 9, 0)


def test_clamped_month_does_not_stick():
    """After the Feb 28 run the schedule goes back to the 31st"""
    obligation = schedule(31, last_period="2025-02")
    assert compute_next_run(obligation, datetime(2025, 2, 28, 9, 0)) == datetime(2025, 3, 31, 9, 0)


def test_day_31_in_thirty_day_month():
    obligation = schedule(31, last_period="2025-03")
    assert compute_next_run(obligation, datetime(2025, 3, 31, 9, 0)) == datetime(2025, 4, 30, 9, 0)


def test_new_schedule_due_later_today():
    obligation = schedule(15)
    assert compute_next_run(obligation, datetime(2025, 1, 15, 8, 0)) == datetime(2025, 1, 15, 9, 0)


def test_new_schedule_after_due_time_moves_to_next_month():
    obligation = schedule(15)
    assert compute_next_run(obligation, datetime(2025, 1, 15, 10, 0)) == datetime(2025, 2, 15, 9, 0)


def test_december_rolls_into_next_year():
    obligation = schedule(5, last_period="2025-12")
    assert compute_next_run(obligation, datetime(2025, 12, 5, 9, 0)) == datetime(2026, 1, 5, 9, 0)


def test_resolved_periods_are_never_rescheduled():
    """A reference far behind last_period still lands after it"""
    obligation = schedule(10, last_period="2025-06")
    assert compute_next_run(obligation, datetime(2025, 1, 1, 0, 0)) == datetime(2025, 7, 10, 9, 0)


@pytest.mark.parametrize("day_of_month", [1, 15, 28, 29, 30, 31])
def test_next_run_is_strictly_increasing(day_of_month):
    """Feeding each run back as the reference always moves forward by one period"""
    obligation = schedule(day_of_month)
    run = compute_next_run(obligation, datetime(2024, 1, 1, 0, 0))
    for _ in range(24):
        obligation.progress.last_period = period_of(run)
        following = compute_next_run(obligation, run)
        assert following > run
        assert period_of(following) != period_of(run)
        run = following


def test_retry_next_day_inside_period():
    obligation = schedule(15, current_period="2025-01")
    now = datetime(2025, 1, 15, 9, 0)
    assert compute_retry_at(obligation, now, timedelta(hours=24)) == datetime(2025, 1, 16, 9, 0)


def test_retry_reaching_next_due_date_closes_window():
    obligation = schedule(1, current_period="2025-01")
    assert compute_retry_at(obligation, datetime(2025, 1, 31, 10, 0), timedelta(hours=24)) is None
