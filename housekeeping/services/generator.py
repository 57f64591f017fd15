"""Cleaning task generation for new reservations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy.orm import Session

from ..models import CleaningTask, Property, Reservation, TaskStatus, TaskType, Tenant

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedTask:
    task_type: TaskType
    scheduled_date: date


def checkout_task_type(cleaning_count: int, deep_cleaning_interval: int) -> TaskType:
    """Pick deep cleaning once the next checkout reaches the interval."""

    next_count = cleaning_count + 1
    if next_count >= deep_cleaning_interval:
        return TaskType.DEEP_CLEANING
    return TaskType.CHECK_OUT


def stay_over_dates(check_in_date: date, check_out_date: date, stay_over_interval: int) -> list[date]:
    """Every interval-th day after check-in, strictly before check-out."""

    if stay_over_interval < 1:
        raise ValueError("stay_over_interval must be at least 1")
    nights = (check_out_date - check_in_date).days
    if nights <= stay_over_interval:
        return []

    dates: list[date] = []
    current = check_in_date + timedelta(days=stay_over_interval)
    while current < check_out_date:
        dates.append(current)
        current += timedelta(days=stay_over_interval)
    return dates


def plan_tasks(
    check_in_date: date,
    check_out_date: date,
    *,
    stay_over_interval: int,
    deep_cleaning_interval: int,
    cleaning_count: int,
) -> list[PlannedTask]:
    if check_out_date <= check_in_date:
        raise ValueError("check_out_date must be after check_in_date")
    if deep_cleaning_interval < 1:
        raise ValueError("deep_cleaning_interval must be at least 1")

    planned = [
        PlannedTask(TaskType.STAY_OVER, day)
        for day in stay_over_dates(check_in_date, check_out_date, stay_over_interval)
    ]
    planned.append(PlannedTask(checkout_task_type(cleaning_count, deep_cleaning_interval), check_out_date))
    return planned


def generate_tasks(session: Session, reservation: Reservation, tenant: Tenant) -> list[CleaningTask]:
    """Add the reservation's tasks to the session without committing.

    The caller owns the transaction so tasks and reservation land together.
    """

    rental_property = session.get(Property, reservation.property_id)
    if rental_property is None:
        raise LookupError("Property not found")

    planned = plan_tasks(
        reservation.check_in_date,
        reservation.check_out_date,
        stay_over_interval=tenant.stay_over_interval,
        deep_cleaning_interval=tenant.deep_cleaning_interval,
        cleaning_count=rental_property.cleaning_count,
    )
    tasks = [
        CleaningTask(
            tenant_id=reservation.tenant_id,
            property_id=reservation.property_id,
            reservation_id=reservation.id,
            task_type=item.task_type,
            scheduled_date=item.scheduled_date,
            status=TaskStatus.PENDING,
        )
        for item in planned
    ]
    session.add_all(tasks)
    session.flush()
    _LOGGER.debug(
        "Generated %s task(s) for reservation %s (checkout type %s)",
        len(tasks),
        reservation.id,
        planned[-1].task_type.value,
    )
    return tasks
