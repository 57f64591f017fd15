"""Notification payloads handed to the external messaging layer.

Payloads are denormalized so a messenger can render them without further
queries. Delivery is not handled here.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from ..models import CleaningPayment, CleaningSettlement, CleaningTask, Reservation, Worker
from .permissions import Capability, roles_with
from .workers import active_workers_with_role, get_worker

CHECKOUT_REPORTED = "checkout_reported"
CHECKIN_REPORTED = "checkin_reported"
SETTLEMENT_SUBMITTED = "settlement_submitted"
SETTLEMENT_APPROVED = "settlement_approved"
SETTLEMENT_REJECTED = "settlement_rejected"
PAYMENT_RECORDED = "payment_recorded"

TASK_TYPE_LABELS = {
    "check_out": "Checkout cleaning",
    "stay_over": "Stay-over cleaning",
    "deep_cleaning": "Deep cleaning",
}


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _notification(
    worker: Worker | None,
    *,
    event: str,
    tenant_id: int,
    title: str,
    message: str,
    data: dict,
) -> dict:
    return {
        "event": event,
        "tenant_id": tenant_id,
        "worker_id": worker.id if worker else None,
        "notify_target": worker.notify_target if worker else None,
        "title": title,
        "message": message,
        "data": {key: _jsonable(value) for key, value in data.items()},
    }


def _fan_out(
    session: Session,
    capability: Capability,
    *,
    event: str,
    tenant_id: int,
    title: str,
    message: str,
    data: dict,
) -> list[dict]:
    recipients = active_workers_with_role(session, tenant_id, roles_with(capability))
    if not recipients:
        # Nobody to address directly; leave routing to the messenger.
        return [_notification(None, event=event, tenant_id=tenant_id, title=title, message=message, data=data)]
    return [
        _notification(worker, event=event, tenant_id=tenant_id, title=title, message=message, data=data)
        for worker in recipients
    ]


def _guests(reservation: Reservation) -> int:
    return int(reservation.adults or 0) + int(reservation.children or 0) + int(reservation.infants or 0)


def checkout_reported(session: Session, reservation: Reservation, task: CleaningTask) -> list[dict]:
    property_name = reservation.rental_property.name
    reported_at = reservation.actual_checkout_time
    return _fan_out(
        session,
        Capability.WORK_TASKS,
        event=CHECKOUT_REPORTED,
        tenant_id=reservation.tenant_id,
        title="Checkout reported",
        message=f"Guests left {property_name}. The {TASK_TYPE_LABELS[task.task_type.value].lower()} is ready to take.",
        data={
            "reservation_id": reservation.id,
            "property_id": reservation.property_id,
            "property_name": property_name,
            "task_id": task.id,
            "task_type": task.task_type.value,
            "actual_checkout_time": reported_at,
            "guests": _guests(reservation),
        },
    )


def checkin_reported(session: Session, reservation: Reservation) -> list[dict]:
    property_name = reservation.rental_property.name
    return _fan_out(
        session,
        Capability.WORK_TASKS,
        event=CHECKIN_REPORTED,
        tenant_id=reservation.tenant_id,
        title="Check-in reported",
        message=f"Guests checked in at {property_name}.",
        data={
            "reservation_id": reservation.id,
            "property_id": reservation.property_id,
            "property_name": property_name,
            "actual_checkin_time": reservation.actual_checkin_time,
            "check_out_date": reservation.check_out_date,
            "guests": _guests(reservation),
        },
    )


def _settlement_data(settlement: CleaningSettlement, worker: Worker | None) -> dict:
    return {
        "settlement_id": settlement.id,
        "settlement_date": settlement.settlement_date,
        "worker_id": settlement.user_id,
        "worker_name": worker.display_name if worker else None,
        "total_tasks": settlement.total_tasks,
        "total_amount": settlement.total_amount,
        "status": settlement.status.value,
    }


def settlement_submitted(session: Session, settlement: CleaningSettlement) -> list[dict]:
    worker = get_worker(session, settlement.user_id)
    worker_name = worker.display_name if worker else "A worker"
    return _fan_out(
        session,
        Capability.REVIEW_SETTLEMENTS,
        event=SETTLEMENT_SUBMITTED,
        tenant_id=settlement.tenant_id,
        title="Settlement submitted",
        message=(
            f"{worker_name} submitted {settlement.total_tasks} task(s) for "
            f"{settlement.settlement_date.isoformat()} totalling {settlement.total_amount}."
        ),
        data=_settlement_data(settlement, worker),
    )


def settlement_approved(session: Session, settlement: CleaningSettlement) -> list[dict]:
    worker = get_worker(session, settlement.user_id)
    reviewer = get_worker(session, settlement.reviewed_by)
    data = _settlement_data(settlement, worker)
    data["reviewer_name"] = reviewer.display_name if reviewer else None
    return [
        _notification(
            worker,
            event=SETTLEMENT_APPROVED,
            tenant_id=settlement.tenant_id,
            title="Settlement approved",
            message=(
                f"Your settlement for {settlement.settlement_date.isoformat()} "
                f"({settlement.total_amount}) was approved."
            ),
            data=data,
        )
    ]


def settlement_rejected(session: Session, settlement: CleaningSettlement) -> list[dict]:
    worker = get_worker(session, settlement.user_id)
    reviewer = get_worker(session, settlement.reviewed_by)
    data = _settlement_data(settlement, worker)
    data["reviewer_name"] = reviewer.display_name if reviewer else None
    data["reason"] = settlement.review_notes
    return [
        _notification(
            worker,
            event=SETTLEMENT_REJECTED,
            tenant_id=settlement.tenant_id,
            title="Settlement rejected",
            message=(
                f"Your settlement for {settlement.settlement_date.isoformat()} was rejected: "
                f"{settlement.review_notes}"
            ),
            data=data,
        )
    ]


def payment_recorded(
    session: Session,
    settlement: CleaningSettlement,
    payment: CleaningPayment,
    *,
    total_paid: Decimal,
) -> list[dict]:
    worker = get_worker(session, settlement.user_id)
    data = _settlement_data(settlement, worker)
    data.update(
        {
            "payment_id": payment.id,
            "amount": payment.amount,
            "payment_date": payment.payment_date,
            "payment_method": payment.payment_method,
            "total_paid": total_paid,
            "pending_amount": settlement.total_amount - total_paid,
        }
    )
    return [
        _notification(
            worker,
            event=PAYMENT_RECORDED,
            tenant_id=settlement.tenant_id,
            title="Payment recorded",
            message=(
                f"A payment of {payment.amount} was recorded for your settlement of "
                f"{settlement.settlement_date.isoformat()}. Paid so far: {total_paid} of {settlement.total_amount}."
            ),
            data=data,
        )
    ]
