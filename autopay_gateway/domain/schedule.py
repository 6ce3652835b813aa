"""Next-run calculation for monthly schedules"""

from datetime import datetime, timedelta

from autopay_gateway.domain.models import RecurringObligation
from autopay_gateway.utils.date_utils import due_datetime, month_key, next_month


def period_of(moment: datetime) -> str:
    """Period key ("YYYY-MM") a due timestamp belongs to"""
    return month_key(moment)


def compute_next_run(obligation: RecurringObligation, reference: datetime) -> datetime:
    """
    Next due timestamp of a schedule at or after reference.

    Rules:
    - Due day is day_of_month clamped to the month length (31 -> Feb 28/29)
    - If this month's due time is already behind reference, the next month is used
    - Months up to and including progress.last_period are skipped, so a period
      that already resolved is never scheduled twice

    Pure: the result depends only on the schedule fields and reference.
    """
    key = month_key(reference)
    candidate = due_datetime(key, obligation.day_of_month, obligation.execute_time)
    if candidate < reference:
        key = next_month(key)
        candidate = due_datetime(key, obligation.day_of_month, obligation.execute_time)

    last_period = obligation.progress.last_period
    while last_period is not None and key <= last_period:
        key = next_month(key)
        candidate = due_datetime(key, obligation.day_of_month, obligation.execute_time)

    return candidate


def compute_retry_at(obligation: RecurringObligation, now: datetime, delay: timedelta) -> datetime | None:
    """
    Retry time for a period that could not be funded, or None when the retry
    would land on or after the following period's due date (the period rolls over).
    """
    retry_at = now + delay
    current = obligation.progress.current_period or period_of(now)
    following = due_datetime(next_month(current), obligation.day_of_month, obligation.execute_time)
    if retry_at >= following:
        return None
    return retry_at
