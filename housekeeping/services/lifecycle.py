"""Cleaning task lifecycle: take, start, complete, cancel.

Every transition is one guarded UPDATE whose WHERE clause carries the
precondition. A zero row count means someone else moved the task first; the
caller gets a rejected Outcome and should re-read the task list.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import (
    ACTIVE_TASK_STATUSES,
    CleaningTask,
    Property,
    TaskStatus,
    TaskType,
    Tenant,
)
from ..settings import settings
from .activity import log_event
from .outcome import Outcome
from .rates import resolve_rate
from .time_utils import local_today, now_utc
from .workers import require_worker

_LOGGER = logging.getLogger(__name__)

TASK_UNAVAILABLE = "task_unavailable"
WORKER_HAS_ACTIVE_TASK = "worker_has_active_task"
TASK_NOT_STARTABLE = "task_not_startable"
TASK_NOT_IN_PROGRESS = "task_not_in_progress"
TASK_NOT_CANCELLABLE = "task_not_cancellable"


def get_task(session: Session, tenant_id: int, task_id: int) -> CleaningTask:
    task = session.get(CleaningTask, task_id)
    if task is None or task.tenant_id != tenant_id:
        raise LookupError("Cleaning task not found")
    return task


def active_task_for_worker(session: Session, worker_id: int, *, exclude_task_id: int | None = None) -> CleaningTask | None:
    query = select(CleaningTask).where(
        CleaningTask.assigned_to == worker_id,
        CleaningTask.status.in_(ACTIVE_TASK_STATUSES),
    )
    if exclude_task_id is not None:
        query = query.where(CleaningTask.id != exclude_task_id)
    return session.execute(query.order_by(CleaningTask.assigned_at.desc()).limit(1)).scalars().first()


def _guarded_update(session: Session, task_id: int, where: list, values: dict) -> int:
    result = session.execute(
        update(CleaningTask)
        .where(CleaningTask.id == task_id, *where)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _reject(session: Session, reason: str, task_id: int, **details) -> Outcome:
    session.rollback()
    _LOGGER.info("Task %s transition rejected: %s", task_id, reason)
    return Outcome.rejected(reason, task_id=task_id, **details)


def take_task(session: Session, *, tenant_id: int, task_id: int, worker_id: int) -> Outcome:
    """Assign a pending, unassigned task to the worker."""

    worker = require_worker(session, tenant_id, worker_id)
    get_task(session, tenant_id, task_id)

    held = active_task_for_worker(session, worker.id, exclude_task_id=task_id)
    if held is not None:
        return _reject(session, WORKER_HAS_ACTIVE_TASK, task_id, active_task_id=held.id)

    now = now_utc()
    try:
        affected = _guarded_update(
            session,
            task_id,
            [
                CleaningTask.tenant_id == tenant_id,
                CleaningTask.assigned_to.is_(None),
                CleaningTask.status == TaskStatus.PENDING,
            ],
            {"assigned_to": worker.id, "assigned_at": now},
        )
    except IntegrityError:
        # A concurrent take by the same worker won the active-task index.
        _LOGGER.warning("Active task index blocked take of task %s by worker %s", task_id, worker.id)
        return _reject(session, WORKER_HAS_ACTIVE_TASK, task_id)
    if affected == 0:
        return _reject(session, TASK_UNAVAILABLE, task_id)

    log_event(
        session,
        tenant_id=tenant_id,
        action="task_taken",
        actor_worker_id=worker.id,
        payload={"task_id": task_id},
        created_at=now,
    )
    session.commit()
    return Outcome.success(session.get(CleaningTask, task_id))


def start_task(session: Session, *, tenant_id: int, task_id: int, worker_id: int) -> Outcome:
    """Move the worker's own pending task to in_progress."""

    worker = require_worker(session, tenant_id, worker_id)
    get_task(session, tenant_id, task_id)

    held = active_task_for_worker(session, worker.id, exclude_task_id=task_id)
    if held is not None:
        return _reject(session, WORKER_HAS_ACTIVE_TASK, task_id, active_task_id=held.id)

    now = now_utc()
    affected = _guarded_update(
        session,
        task_id,
        [
            CleaningTask.tenant_id == tenant_id,
            CleaningTask.assigned_to == worker.id,
            CleaningTask.status == TaskStatus.PENDING,
        ],
        {"status": TaskStatus.IN_PROGRESS, "started_at": now},
    )
    if affected == 0:
        return _reject(session, TASK_NOT_STARTABLE, task_id)

    log_event(
        session,
        tenant_id=tenant_id,
        action="task_started",
        actor_worker_id=worker.id,
        payload={"task_id": task_id},
        created_at=now,
    )
    session.commit()
    return Outcome.success(session.get(CleaningTask, task_id))


def complete_task(session: Session, *, tenant_id: int, task_id: int, worker_id: int) -> Outcome:
    """Complete the worker's in-progress task and roll the property counter."""

    worker = require_worker(session, tenant_id, worker_id)
    task = get_task(session, tenant_id, task_id)
    task_type = task.task_type
    property_id = task.property_id

    now = now_utc()
    values = {"status": TaskStatus.COMPLETED, "completed_at": now, "completed_by": worker.id}
    if settings.rate_policy == "completion":
        values["completion_rate"] = resolve_rate(
            session,
            tenant_id,
            task.rental_property.property_type_id,
            task_type,
        )

    affected = _guarded_update(
        session,
        task_id,
        [
            CleaningTask.tenant_id == tenant_id,
            CleaningTask.assigned_to == worker.id,
            CleaningTask.status == TaskStatus.IN_PROGRESS,
        ],
        values,
    )
    if affected == 0:
        return _reject(session, TASK_NOT_IN_PROGRESS, task_id)

    if task_type == TaskType.CHECK_OUT:
        session.execute(
            update(Property)
            .where(Property.id == property_id)
            .values(cleaning_count=Property.cleaning_count + 1)
            .execution_options(synchronize_session=False)
        )
    elif task_type == TaskType.DEEP_CLEANING:
        session.execute(
            update(Property)
            .where(Property.id == property_id)
            .values(cleaning_count=0)
            .execution_options(synchronize_session=False)
        )

    log_event(
        session,
        tenant_id=tenant_id,
        action="task_completed",
        actor_worker_id=worker.id,
        payload={"task_id": task_id, "task_type": task_type.value, "property_id": property_id},
        created_at=now,
    )
    session.commit()
    return Outcome.success(session.get(CleaningTask, task_id))


def cancel_task(session: Session, *, tenant_id: int, task_id: int, actor_worker_id: int | None) -> Outcome:
    """Administratively cancel a task that was never started."""

    get_task(session, tenant_id, task_id)
    affected = _guarded_update(
        session,
        task_id,
        [
            CleaningTask.tenant_id == tenant_id,
            CleaningTask.status == TaskStatus.PENDING,
            CleaningTask.started_at.is_(None),
        ],
        {"status": TaskStatus.CANCELLED},
    )
    if affected == 0:
        return _reject(session, TASK_NOT_CANCELLABLE, task_id)

    log_event(
        session,
        tenant_id=tenant_id,
        action="task_cancelled",
        actor_worker_id=actor_worker_id,
        payload={"task_id": task_id},
    )
    session.commit()
    return Outcome.success(session.get(CleaningTask, task_id))


def create_manual_task(
    session: Session,
    *,
    tenant_id: int,
    property_id: int,
    task_type: TaskType,
    scheduled_date: date,
    is_priority: bool = False,
    notes: str | None = None,
    actor_worker_id: int | None = None,
) -> CleaningTask:
    rental_property = session.get(Property, property_id)
    if rental_property is None or rental_property.tenant_id != tenant_id:
        raise LookupError("Property not found")

    task = CleaningTask(
        tenant_id=tenant_id,
        property_id=property_id,
        reservation_id=None,
        task_type=task_type,
        scheduled_date=scheduled_date,
        status=TaskStatus.PENDING,
        is_priority=is_priority,
        notes=notes.strip() if notes else None,
    )
    session.add(task)
    session.flush()
    log_event(
        session,
        tenant_id=tenant_id,
        action="task_created",
        actor_worker_id=actor_worker_id,
        payload={"task_id": task.id, "task_type": task_type.value, "property_id": property_id},
    )
    session.commit()
    return task


def list_tasks(
    session: Session,
    tenant_id: int,
    *,
    property_id: int | None = None,
    task_type: TaskType | None = None,
    status: TaskStatus | None = None,
    scheduled_date: date | None = None,
    assigned_to: int | None = None,
) -> list[CleaningTask]:
    query = select(CleaningTask).where(CleaningTask.tenant_id == tenant_id)
    if property_id is not None:
        query = query.where(CleaningTask.property_id == property_id)
    if task_type is not None:
        query = query.where(CleaningTask.task_type == task_type)
    if status is not None:
        query = query.where(CleaningTask.status == status)
    if scheduled_date is not None:
        query = query.where(CleaningTask.scheduled_date == scheduled_date)
    if assigned_to is not None:
        query = query.where(CleaningTask.assigned_to == assigned_to)
    return session.execute(
        query.order_by(CleaningTask.scheduled_date.asc(), CleaningTask.created_at.desc())
    ).scalars().all()


def tasks_for_day(session: Session, tenant: Tenant, day: date | None = None) -> dict:
    """Non-cancelled tasks scheduled for a tenant day, grouped by type."""

    target = day or local_today(tenant.timezone)
    rows = session.execute(
        select(CleaningTask)
        .where(
            CleaningTask.tenant_id == tenant.id,
            CleaningTask.scheduled_date == target,
            CleaningTask.status != TaskStatus.CANCELLED,
        )
        .order_by(CleaningTask.task_type.asc(), CleaningTask.id.asc())
    ).scalars().all()
    grouped = {task_type.value: [] for task_type in TaskType}
    for row in rows:
        grouped[row.task_type.value].append(row)
    return {"date": target, "total": len(rows), "tasks": rows, "grouped": grouped}


def available_tasks(session: Session, tenant_id: int, *, limit: int = 10) -> list[CleaningTask]:
    """Pending unassigned tasks, priority and reported checkouts first."""

    return session.execute(
        select(CleaningTask)
        .where(
            CleaningTask.tenant_id == tenant_id,
            CleaningTask.status == TaskStatus.PENDING,
            CleaningTask.assigned_to.is_(None),
        )
        .order_by(
            CleaningTask.is_priority.desc(),
            CleaningTask.checkout_reported_at.is_(None),
            CleaningTask.checkout_reported_at.asc(),
            CleaningTask.scheduled_date.asc(),
            CleaningTask.created_at.asc(),
        )
        .limit(limit)
    ).scalars().all()
