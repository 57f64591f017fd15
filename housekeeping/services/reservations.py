"""Reservation intake and checkout/checkin report handling.

Task generation runs once, when the reservation is created. Later edits only
react to the actual checkout/checkin timestamps changing.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models import (
    ACTIVE_TASK_STATUSES,
    CHECKOUT_TASK_TYPES,
    CleaningTask,
    Property,
    Reservation,
    ReservationStatus,
    TaskStatus,
    TaskType,
)
from . import notifications
from .activity import log_event
from .generator import generate_tasks
from .outcome import Outcome
from .tenants import get_tenant
from .time_utils import as_utc, local_today, now_utc

_LOGGER = logging.getLogger(__name__)

OCCUPYING_STATUSES = (ReservationStatus.ACTIVE, ReservationStatus.CHECKED_IN)
EDITABLE_FIELDS = {
    "check_in_date",
    "check_out_date",
    "adults",
    "children",
    "infants",
    "notes",
    "status",
    "actual_checkin_time",
    "actual_checkout_time",
}


def get_reservation(session: Session, tenant_id: int, reservation_id: int) -> Reservation:
    reservation = session.get(Reservation, reservation_id)
    if reservation is None or reservation.tenant_id != tenant_id:
        raise LookupError("Reservation not found")
    return reservation


def _validate_stay(check_in_date: date, check_out_date: date) -> None:
    if check_out_date <= check_in_date:
        raise ValueError("check_out_date must be after check_in_date")


def _validate_guests(adults: int, children: int, infants: int) -> None:
    if adults < 0 or children < 0 or infants < 0:
        raise ValueError("guest counts must not be negative")


def _overlapping(
    session: Session,
    *,
    property_id: int,
    check_in_date: date,
    check_out_date: date,
    exclude_id: int | None = None,
) -> Reservation | None:
    query = select(Reservation).where(
        Reservation.property_id == property_id,
        Reservation.status.in_(OCCUPYING_STATUSES),
        Reservation.check_in_date < check_out_date,
        Reservation.check_out_date > check_in_date,
    )
    if exclude_id is not None:
        query = query.where(Reservation.id != exclude_id)
    return session.execute(query.limit(1)).scalars().first()


def create_reservation(
    session: Session,
    *,
    tenant_id: int,
    property_id: int,
    check_in_date: date,
    check_out_date: date,
    adults: int = 1,
    children: int = 0,
    infants: int = 0,
    notes: str | None = None,
    actor_worker_id: int | None = None,
) -> tuple[Reservation, list[CleaningTask]]:
    """Insert the reservation and its generated tasks in one commit."""

    _validate_stay(check_in_date, check_out_date)
    _validate_guests(adults, children, infants)
    tenant = get_tenant(session, tenant_id)
    rental_property = session.get(Property, property_id)
    if rental_property is None or rental_property.tenant_id != tenant_id:
        raise LookupError("Property not found")

    clash = _overlapping(
        session,
        property_id=property_id,
        check_in_date=check_in_date,
        check_out_date=check_out_date,
    )
    if clash is not None:
        raise ValueError(f"Property is already reserved for these dates (reservation {clash.id})")

    reservation = Reservation(
        tenant_id=tenant_id,
        property_id=property_id,
        check_in_date=check_in_date,
        check_out_date=check_out_date,
        status=ReservationStatus.ACTIVE,
        adults=adults,
        children=children,
        infants=infants,
        notes=notes,
    )
    session.add(reservation)
    session.flush()

    tasks = generate_tasks(session, reservation, tenant)

    log_event(
        session,
        tenant_id=tenant_id,
        action="reservation_created",
        actor_worker_id=actor_worker_id,
        payload={
            "reservation_id": reservation.id,
            "property_id": property_id,
            "task_ids": [task.id for task in tasks],
        },
    )
    session.commit()
    return reservation, tasks


def _checkout_task(session: Session, reservation_id: int) -> CleaningTask | None:
    return session.execute(
        select(CleaningTask)
        .where(
            CleaningTask.reservation_id == reservation_id,
            CleaningTask.task_type.in_(CHECKOUT_TASK_TYPES),
        )
        .order_by(CleaningTask.id.asc())
        .limit(1)
    ).scalars().first()


def _on_checkout_reported(session: Session, reservation: Reservation, reported_at: datetime) -> list[dict]:
    tenant = get_tenant(session, reservation.tenant_id)
    task = _checkout_task(session, reservation.id)
    if task is not None:
        if task.status not in ACTIVE_TASK_STATUSES:
            _LOGGER.info(
                "Checkout reported for reservation %s but task %s is %s; left untouched",
                reservation.id,
                task.id,
                task.status.value,
            )
            return []
        task.status = TaskStatus.PENDING
        task.checkout_reported_at = reported_at
    else:
        task = CleaningTask(
            tenant_id=reservation.tenant_id,
            property_id=reservation.property_id,
            reservation_id=reservation.id,
            task_type=TaskType.CHECK_OUT,
            scheduled_date=local_today(tenant.timezone, reported_at),
            status=TaskStatus.PENDING,
            checkout_reported_at=reported_at,
        )
        session.add(task)
    session.flush()
    _LOGGER.debug("Checkout reported for reservation %s, task %s is workable", reservation.id, task.id)
    return notifications.checkout_reported(session, reservation, task)


def _on_checkout_cleared(session: Session, reservation: Reservation) -> dict:
    task = _checkout_task(session, reservation.id)
    if task is None:
        return {"task_action": "none"}

    if task.status == TaskStatus.PENDING and task.started_at is None:
        task_id = task.id
        session.delete(task)
        session.flush()
        return {"task_action": "deleted", "task_id": task_id}

    if task.status in ACTIVE_TASK_STATUSES:
        task.status = TaskStatus.PENDING
        task.assigned_to = None
        task.assigned_at = None
        task.started_at = None
        task.checkout_reported_at = None
        session.flush()
        return {"task_action": "reset", "task_id": task.id}

    _LOGGER.info(
        "Checkout cleared for reservation %s but task %s is %s; left untouched",
        reservation.id,
        task.id,
        task.status.value,
    )
    return {"task_action": "kept", "task_id": task.id}


def update_reservation(
    session: Session,
    *,
    tenant_id: int,
    reservation_id: int,
    changes: dict[str, Any],
    actor_worker_id: int | None = None,
) -> Outcome:
    """Apply reservation edits and react to checkout/checkin transitions."""

    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported reservation fields: {', '.join(sorted(unknown))}")

    if changes.get("status") is not None and ReservationStatus(changes["status"]) == ReservationStatus.CANCELLED:
        raise ValueError("Use reservation cancellation to cancel a reservation")

    reservation = get_reservation(session, tenant_id, reservation_id)
    if reservation.status == ReservationStatus.CANCELLED:
        return Outcome.rejected("reservation_cancelled", reservation_id=reservation_id)

    check_in_date = changes.get("check_in_date", reservation.check_in_date)
    check_out_date = changes.get("check_out_date", reservation.check_out_date)
    _validate_stay(check_in_date, check_out_date)
    _validate_guests(
        changes.get("adults", reservation.adults),
        changes.get("children", reservation.children),
        changes.get("infants", reservation.infants),
    )
    if "check_in_date" in changes or "check_out_date" in changes:
        clash = _overlapping(
            session,
            property_id=reservation.property_id,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            exclude_id=reservation.id,
        )
        if clash is not None:
            raise ValueError(f"Property is already reserved for these dates (reservation {clash.id})")

    previous_checkout = reservation.actual_checkout_time
    previous_checkin = reservation.actual_checkin_time

    for field_name in ("check_in_date", "check_out_date", "adults", "children", "infants", "notes"):
        if field_name in changes:
            setattr(reservation, field_name, changes[field_name])
    # SQLite drops offsets, so report times are stored as UTC.
    for field_name in ("actual_checkin_time", "actual_checkout_time"):
        if field_name in changes:
            value = changes[field_name]
            setattr(reservation, field_name, as_utc(value) if value is not None else None)

    outgoing: list[dict] = []
    events: list[tuple[str, dict]] = []

    checkin_reported = previous_checkin is None and reservation.actual_checkin_time is not None
    checkout_reported = previous_checkout is None and reservation.actual_checkout_time is not None
    checkout_cleared = previous_checkout is not None and reservation.actual_checkout_time is None

    if checkin_reported:
        if reservation.status == ReservationStatus.ACTIVE:
            reservation.status = ReservationStatus.CHECKED_IN
        outgoing.extend(notifications.checkin_reported(session, reservation))
        events.append(("checkin_reported", {}))

    if checkout_reported:
        reservation.status = ReservationStatus.CHECKED_OUT
        outgoing.extend(_on_checkout_reported(session, reservation, reservation.actual_checkout_time))
        events.append(("checkout_reported", {}))
    elif checkout_cleared:
        reservation.status = (
            ReservationStatus.CHECKED_IN
            if reservation.actual_checkin_time is not None
            else ReservationStatus.ACTIVE
        )
        events.append(("checkout_cancelled", _on_checkout_cleared(session, reservation)))

    if "status" in changes and changes["status"] is not None:
        reservation.status = ReservationStatus(changes["status"])

    for action, extra in events or [("reservation_updated", {})]:
        log_event(
            session,
            tenant_id=tenant_id,
            action=action,
            actor_worker_id=actor_worker_id,
            payload={"reservation_id": reservation.id, "fields": sorted(changes), **extra},
        )
    session.commit()
    return Outcome.success(reservation, outgoing)


def report_checkout(
    session: Session,
    *,
    tenant_id: int,
    reservation_id: int,
    at: datetime | None = None,
    actor_worker_id: int | None = None,
) -> Outcome:
    reservation = get_reservation(session, tenant_id, reservation_id)
    if reservation.actual_checkout_time is not None:
        return Outcome.rejected("checkout_already_reported", reservation_id=reservation_id)
    return update_reservation(
        session,
        tenant_id=tenant_id,
        reservation_id=reservation_id,
        changes={"actual_checkout_time": at or now_utc()},
        actor_worker_id=actor_worker_id,
    )


def cancel_checkout_report(
    session: Session,
    *,
    tenant_id: int,
    reservation_id: int,
    actor_worker_id: int | None = None,
) -> Outcome:
    reservation = get_reservation(session, tenant_id, reservation_id)
    if reservation.actual_checkout_time is None:
        return Outcome.rejected("checkout_not_reported", reservation_id=reservation_id)
    return update_reservation(
        session,
        tenant_id=tenant_id,
        reservation_id=reservation_id,
        changes={"actual_checkout_time": None},
        actor_worker_id=actor_worker_id,
    )


def report_checkin(
    session: Session,
    *,
    tenant_id: int,
    reservation_id: int,
    at: datetime | None = None,
    actor_worker_id: int | None = None,
) -> Outcome:
    reservation = get_reservation(session, tenant_id, reservation_id)
    if reservation.actual_checkin_time is not None:
        return Outcome.rejected("checkin_already_reported", reservation_id=reservation_id)
    return update_reservation(
        session,
        tenant_id=tenant_id,
        reservation_id=reservation_id,
        changes={"actual_checkin_time": at or now_utc()},
        actor_worker_id=actor_worker_id,
    )


def cancel_reservation(
    session: Session,
    *,
    tenant_id: int,
    reservation_id: int,
    actor_worker_id: int | None = None,
) -> Outcome:
    """Cancel the reservation and every task of it that never started."""

    reservation = get_reservation(session, tenant_id, reservation_id)
    if reservation.status == ReservationStatus.CANCELLED:
        return Outcome.rejected("reservation_cancelled", reservation_id=reservation_id)

    reservation.status = ReservationStatus.CANCELLED
    result = session.execute(
        update(CleaningTask)
        .where(
            CleaningTask.reservation_id == reservation.id,
            CleaningTask.status == TaskStatus.PENDING,
            CleaningTask.started_at.is_(None),
        )
        .values(status=TaskStatus.CANCELLED)
        .execution_options(synchronize_session=False)
    )
    log_event(
        session,
        tenant_id=tenant_id,
        action="reservation_cancelled",
        actor_worker_id=actor_worker_id,
        payload={"reservation_id": reservation.id, "cancelled_tasks": result.rowcount},
    )
    session.commit()
    return Outcome.success(reservation)
