"""Integration tests for schedule create/edit/toggle"""

from dataclasses import replace
from datetime import date, datetime, time

import pytest

from autopay_gateway.domain.exceptions import NotFoundError, ValidationError
from autopay_gateway.domain.models import FundingSource, ObligationKind
from autopay_gateway.infrastructure.database.repositories import ObligationRepository
from autopay_gateway.services.obligations import ObligationService
from conftest import make_credit, make_debit

NOW = datetime(2025, 1, 10, 8, 0)


def test_create_rejects_invalid_schedule(db):
    with pytest.raises(ValidationError):
        ObligationService(db).create(make_debit([("acct_a", 1)], day_of_month=0), NOW)
    assert ObligationService(db).list() == []


def test_update_replaces_sources(db):
    service = ObligationService(db)
    created = service.create(make_debit([("acct_a", 1), ("acct_b", 2)]), NOW)

    created.sources = [FundingSource("acct_c", 1), FundingSource("acct_a", 2)]
    updated = service.update(created, NOW)

    assert [(s.account_id, s.priority) for s in updated.ordered_sources()] == [("acct_c", 1), ("acct_a", 2)]


def test_update_without_timing_change_keeps_progress(db):
    service = ObligationService(db)
    created = service.create(make_debit([("acct_a", 1)]), NOW)

    created.name = "Renamed"
    updated = service.update(created, datetime(2025, 1, 14, 0, 0))

    assert updated.progress.next_execute_at == created.progress.next_execute_at


def test_edit_from_stale_copy_keeps_progress_made_by_execution(db):
    service = ObligationService(db)
    created = service.create(make_debit([("acct_a", 1)]), NOW)
    stale = service.get(created.id)

    executed = replace(
        created.progress,
        last_period="2025-01",
        last_executed_at=datetime(2025, 1, 15, 9, 0),
        next_execute_at=datetime(2025, 2, 15, 9, 0),
        current_period="2025-02",
    )
    ObligationRepository(db).save_progress(created.id, executed, True)
    db.commit()

    stale.name = "Renamed"
    updated = service.update(stale, datetime(2025, 1, 15, 9, 5))

    assert updated.name == "Renamed"
    assert updated.progress.current_period == "2025-02"
    assert updated.progress.last_period == "2025-01"
    assert updated.progress.next_execute_at == datetime(2025, 2, 15, 9, 0)


def test_reenabling_skips_missed_periods(db):
    service = ObligationService(db)
    created = service.create(make_debit([("acct_a", 1)]), NOW)

    service.toggle(created.id, NOW)
    reenabled = service.toggle(created.id, datetime(2025, 3, 20, 12, 0))

    assert reenabled.enabled is True
    assert reenabled.progress.next_execute_at == datetime(2025, 4, 15, 9, 0)
    assert reenabled.progress.current_period == "2025-04"


def test_kind_scoped_lookup(db):
    service = ObligationService(db)
    income = service.create(make_credit(), NOW)

    assert service.get(income.id, ObligationKind.CREDIT).id == income.id
    with pytest.raises(NotFoundError):
        service.get(income.id, ObligationKind.DEBIT)
    assert service.list(ObligationKind.DEBIT) == []


def test_reminders_window(db):
    service = ObligationService(db)
    service.create(make_debit([("acct_a", 1)], reminder_lead_days=2, execute_time=time(18, 0)), NOW)

    assert [o.name for o in service.reminders(date(2025, 1, 13))] == ["Gym membership"]
    assert [o.name for o in service.reminders(date(2025, 1, 15))] == ["Gym membership"]
    assert service.reminders(date(2025, 1, 12)) == []
    assert service.reminders(date(2025, 1, 16)) == []


def test_delete_removes_schedule(db):
    service = ObligationService(db)
    created = service.create(make_debit([("acct_a", 1)]), NOW)

    service.delete(created.id)

    with pytest.raises(NotFoundError):
        service.get(created.id)
