"""Task lifecycle tests: take, start, complete, cancel."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from housekeeping.models import CleaningTask, Property, TaskStatus, TaskType
from housekeeping.services import lifecycle
from housekeeping.services.reservations import create_reservation


def _checkout_task(session, seed, check_in: date, nights: int = 1) -> CleaningTask:
    _, tasks = create_reservation(
        session,
        tenant_id=seed.tenant_id,
        property_id=seed.property_id,
        check_in_date=check_in,
        check_out_date=check_in + timedelta(days=nights),
    )
    return tasks[-1]


def _work(session, seed, task_id: int, worker_id: int) -> None:
    for step in (lifecycle.take_task, lifecycle.start_task, lifecycle.complete_task):
        outcome = step(session, tenant_id=seed.tenant_id, task_id=task_id, worker_id=worker_id)
        assert outcome.ok, outcome.reason


def test_take_then_second_worker_gets_zero_rows(session, seed) -> None:
    task = _checkout_task(session, seed, date(2024, 1, 1))

    first = lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id)
    assert first.ok
    assert first.record.assigned_to == seed.ana_id
    assert first.record.assigned_at is not None

    second = lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ben_id)
    assert not second.ok
    assert second.reason == lifecycle.TASK_UNAVAILABLE
    assert session.get(CleaningTask, task.id).assigned_to == seed.ana_id


def test_take_from_stale_session_is_rejected(session, other_session, seed) -> None:
    task = _checkout_task(session, seed, date(2024, 1, 1))

    # Ben's session loads the task while it is still free.
    stale = other_session.get(CleaningTask, task.id)
    assert stale.assigned_to is None

    assert lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id).ok

    late = lifecycle.take_task(other_session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ben_id)
    assert not late.ok
    assert late.reason == lifecycle.TASK_UNAVAILABLE

    session.expire_all()
    assert session.get(CleaningTask, task.id).assigned_to == seed.ana_id


def test_worker_cannot_hold_two_active_tasks(session, seed) -> None:
    first = _checkout_task(session, seed, date(2024, 1, 1))
    second = _checkout_task(session, seed, date(2024, 1, 5))

    assert lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=first.id, worker_id=seed.ana_id).ok
    blocked = lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=second.id, worker_id=seed.ana_id)
    assert not blocked.ok
    assert blocked.reason == lifecycle.WORKER_HAS_ACTIVE_TASK
    assert blocked.details["active_task_id"] == first.id

    for step in (lifecycle.start_task, lifecycle.complete_task):
        assert step(session, tenant_id=seed.tenant_id, task_id=first.id, worker_id=seed.ana_id).ok

    assert lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=second.id, worker_id=seed.ana_id).ok


def test_active_task_index_blocks_second_assignment(session, seed) -> None:
    from sqlalchemy.exc import IntegrityError

    first = _checkout_task(session, seed, date(2024, 1, 1))
    second = _checkout_task(session, seed, date(2024, 1, 5))
    assert lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=first.id, worker_id=seed.ana_id).ok

    row = session.get(CleaningTask, second.id)
    row.assigned_to = seed.ana_id
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_start_requires_own_pending_task(session, seed) -> None:
    task = _checkout_task(session, seed, date(2024, 1, 1))

    unassigned = lifecycle.start_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id)
    assert unassigned.reason == lifecycle.TASK_NOT_STARTABLE

    assert lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id).ok
    other = lifecycle.start_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ben_id)
    assert other.reason == lifecycle.TASK_NOT_STARTABLE

    started = lifecycle.start_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id)
    assert started.ok
    assert started.record.status == TaskStatus.IN_PROGRESS
    assert started.record.started_at is not None


def test_complete_requires_in_progress_and_assignee(session, seed) -> None:
    task = _checkout_task(session, seed, date(2024, 1, 1))
    assert lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id).ok

    too_early = lifecycle.complete_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id)
    assert too_early.reason == lifecycle.TASK_NOT_IN_PROGRESS

    assert lifecycle.start_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id).ok
    not_mine = lifecycle.complete_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ben_id)
    assert not_mine.reason == lifecycle.TASK_NOT_IN_PROGRESS
    assert session.get(Property, seed.property_id).cleaning_count == 0

    done = lifecycle.complete_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id)
    assert done.ok
    assert done.record.status == TaskStatus.COMPLETED
    assert done.record.completed_by == seed.ana_id

    again = lifecycle.complete_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id)
    assert again.reason == lifecycle.TASK_NOT_IN_PROGRESS


def test_deep_cleaning_cycle_resets_counter(session, seed) -> None:
    # The seeded tenant deep cleans every third checkout.
    check_in = date(2024, 1, 1)
    types = []
    counts = []
    for _ in range(4):
        task = _checkout_task(session, seed, check_in)
        types.append(task.task_type)
        _work(session, seed, task.id, seed.ana_id)
        session.expire_all()
        counts.append(session.get(Property, seed.property_id).cleaning_count)
        check_in += timedelta(days=2)

    assert types == [TaskType.CHECK_OUT, TaskType.CHECK_OUT, TaskType.DEEP_CLEANING, TaskType.CHECK_OUT]
    assert counts == [1, 2, 0, 1]


def test_stay_over_does_not_touch_counter(session, seed) -> None:
    _, tasks = create_reservation(
        session,
        tenant_id=seed.tenant_id,
        property_id=seed.property_id,
        check_in_date=date(2024, 1, 1),
        check_out_date=date(2024, 1, 6),
    )
    stay_over = tasks[0]
    assert stay_over.task_type == TaskType.STAY_OVER
    _work(session, seed, stay_over.id, seed.ben_id)
    session.expire_all()
    assert session.get(Property, seed.property_id).cleaning_count == 0


def test_cancel_only_pending_unstarted(session, seed) -> None:
    manual = lifecycle.create_manual_task(
        session,
        tenant_id=seed.tenant_id,
        property_id=seed.second_property_id,
        task_type=TaskType.DEEP_CLEANING,
        scheduled_date=date(2024, 2, 1),
        is_priority=True,
        notes="  spring clean ",
        actor_worker_id=seed.admin_id,
    )
    assert manual.reservation_id is None
    assert manual.notes == "spring clean"

    cancelled = lifecycle.cancel_task(session, tenant_id=seed.tenant_id, task_id=manual.id, actor_worker_id=seed.admin_id)
    assert cancelled.ok
    assert cancelled.record.status == TaskStatus.CANCELLED

    task = _checkout_task(session, seed, date(2024, 1, 1))
    assert lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id).ok
    assert lifecycle.start_task(session, tenant_id=seed.tenant_id, task_id=task.id, worker_id=seed.ana_id).ok
    refused = lifecycle.cancel_task(session, tenant_id=seed.tenant_id, task_id=task.id, actor_worker_id=seed.admin_id)
    assert refused.reason == lifecycle.TASK_NOT_CANCELLABLE


def test_unknown_task_raises_lookup(session, seed) -> None:
    with pytest.raises(LookupError):
        lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=9999, worker_id=seed.ana_id)


def test_available_tasks_order(session, seed) -> None:
    later = _checkout_task(session, seed, date(2024, 1, 10))
    sooner = _checkout_task(session, seed, date(2024, 1, 1))
    priority = lifecycle.create_manual_task(
        session,
        tenant_id=seed.tenant_id,
        property_id=seed.second_property_id,
        task_type=TaskType.STAY_OVER,
        scheduled_date=date(2024, 3, 1),
        is_priority=True,
    )

    ids = [task.id for task in lifecycle.available_tasks(session, seed.tenant_id)]
    assert ids == [priority.id, sooner.id, later.id]

    assert lifecycle.take_task(session, tenant_id=seed.tenant_id, task_id=sooner.id, worker_id=seed.ana_id).ok
    ids = [task.id for task in lifecycle.available_tasks(session, seed.tenant_id)]
    assert sooner.id not in ids


def test_tasks_for_day_groups_by_type(session, seed) -> None:
    from housekeeping.services.tenants import get_tenant

    _checkout_task(session, seed, date(2024, 1, 1), nights=4)
    summary = lifecycle.tasks_for_day(session, get_tenant(session, seed.tenant_id), date(2024, 1, 4))
    assert summary["total"] == 1
    assert [t.task_type for t in summary["grouped"]["stay_over"]] == [TaskType.STAY_OVER]
    assert summary["grouped"]["check_out"] == []

    summary = lifecycle.tasks_for_day(session, get_tenant(session, seed.tenant_id), date(2024, 1, 5))
    assert len(summary["grouped"]["check_out"]) == 1
