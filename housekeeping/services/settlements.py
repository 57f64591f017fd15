"""Settlement construction from a worker's completed tasks."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import (
    CleaningPayment,
    CleaningSettlement,
    CleaningSettlementItem,
    CleaningTask,
    SettlementStatus,
    TaskStatus,
    Worker,
)
from ..settings import settings
from . import notifications
from .activity import log_event
from .outcome import Outcome
from .permissions import Capability, has_capability
from .rates import ZERO, rate_table
from .tenants import get_tenant
from .time_utils import day_bounds_utc, local_today, minutes_between, now_utc
from .workers import require_worker

_LOGGER = logging.getLogger(__name__)

SETTLEMENT_EXISTS = "settlement_exists"
NO_UNSETTLED_TASKS = "no_unsettled_tasks"


def _existing_settlement(
    session: Session,
    tenant_id: int,
    worker_id: int,
    settlement_date: date,
) -> CleaningSettlement | None:
    query = select(CleaningSettlement).where(
        CleaningSettlement.tenant_id == tenant_id,
        CleaningSettlement.user_id == worker_id,
        CleaningSettlement.settlement_date == settlement_date,
    )
    if settings.release_rejected_tasks:
        query = query.where(CleaningSettlement.status != SettlementStatus.REJECTED)
    return session.execute(query.order_by(CleaningSettlement.id.desc()).limit(1)).scalars().first()


def settled_task_ids():
    """Subquery of task ids already claimed by a settlement item."""

    query = select(CleaningSettlementItem.cleaning_task_id)
    if settings.release_rejected_tasks:
        query = query.join(
            CleaningSettlement,
            CleaningSettlement.id == CleaningSettlementItem.settlement_id,
        ).where(CleaningSettlement.status != SettlementStatus.REJECTED)
    return query


def unsettled_tasks(
    session: Session,
    *,
    tenant_id: int,
    worker_id: int,
    settlement_date: date,
    zone_name: str | None,
) -> list[CleaningTask]:
    start, end = day_bounds_utc(settlement_date, zone_name)
    return session.execute(
        select(CleaningTask)
        .where(
            CleaningTask.tenant_id == tenant_id,
            CleaningTask.completed_by == worker_id,
            CleaningTask.status == TaskStatus.COMPLETED,
            CleaningTask.completed_at >= start,
            CleaningTask.completed_at < end,
            CleaningTask.id.not_in(settled_task_ids()),
        )
        .order_by(CleaningTask.completed_at.asc(), CleaningTask.id.asc())
    ).scalars().all()


def build_settlement(
    session: Session,
    *,
    tenant_id: int,
    worker_id: int,
    settlement_date: date | None = None,
) -> Outcome:
    """Aggregate the worker's unsettled completed tasks for one day.

    The settlement and all of its items are committed together; it is created
    directly in the submitted state.
    """

    tenant = get_tenant(session, tenant_id)
    worker = require_worker(session, tenant_id, worker_id)
    target = settlement_date or local_today(tenant.timezone)

    existing = _existing_settlement(session, tenant_id, worker.id, target)
    if existing is not None:
        _LOGGER.info("Settlement already exists for worker %s on %s", worker.id, target)
        return Outcome.rejected(
            SETTLEMENT_EXISTS,
            settlement_id=existing.id,
            status=existing.status.value,
        )

    tasks = unsettled_tasks(
        session,
        tenant_id=tenant_id,
        worker_id=worker.id,
        settlement_date=target,
        zone_name=tenant.timezone,
    )
    if not tasks:
        return Outcome.rejected(NO_UNSETTLED_TASKS, settlement_date=target.isoformat())

    rates = rate_table(session, tenant_id)
    use_completion_rate = settings.rate_policy == "completion"

    items: list[CleaningSettlementItem] = []
    total_amount = Decimal("0.00")
    for task in tasks:
        rental_property = task.rental_property
        if use_completion_rate and task.completion_rate is not None:
            rate = task.completion_rate
        else:
            rate = rates.get((rental_property.property_type_id, task.task_type), ZERO)
        total_amount += rate
        items.append(
            CleaningSettlementItem(
                cleaning_task_id=task.id,
                property_name=rental_property.name,
                property_type_name=rental_property.property_type.name,
                task_type=task.task_type,
                rate=rate,
                started_at=task.started_at,
                completed_at=task.completed_at,
                work_duration_minutes=minutes_between(task.started_at, task.completed_at),
            )
        )

    now = now_utc()
    settlement = CleaningSettlement(
        tenant_id=tenant_id,
        user_id=worker.id,
        settlement_date=target,
        total_tasks=len(items),
        total_amount=total_amount,
        status=SettlementStatus.SUBMITTED,
        submitted_at=now,
    )
    settlement.items = items
    session.add(settlement)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        _LOGGER.warning("Concurrent settlement build for worker %s on %s", worker.id, target)
        return Outcome.rejected(SETTLEMENT_EXISTS, settlement_date=target.isoformat())

    log_event(
        session,
        tenant_id=tenant_id,
        action="settlement_submitted",
        actor_worker_id=worker.id,
        payload={
            "settlement_id": settlement.id,
            "settlement_date": target.isoformat(),
            "task_ids": [item.cleaning_task_id for item in items],
            "total_amount": str(total_amount),
        },
        created_at=now,
    )
    outgoing = notifications.settlement_submitted(session, settlement)
    session.commit()
    return Outcome.success(settlement, outgoing)


def get_settlement(session: Session, tenant_id: int, settlement_id: int) -> CleaningSettlement:
    settlement = session.get(CleaningSettlement, settlement_id)
    if settlement is None or settlement.tenant_id != tenant_id:
        raise LookupError("Settlement not found")
    return settlement


def total_paid(session: Session, settlement_id: int) -> Decimal:
    paid = session.execute(
        select(func.coalesce(func.sum(CleaningPayment.amount), 0)).where(
            CleaningPayment.settlement_id == settlement_id
        )
    ).scalar_one()
    return Decimal(str(paid)).quantize(Decimal("0.01"))


def list_settlements(
    session: Session,
    tenant_id: int,
    *,
    viewer: Worker,
    user_id: int | None = None,
    status: SettlementStatus | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[CleaningSettlement]:
    """Reviewers see every settlement; everyone else only their own."""

    query = select(CleaningSettlement).where(CleaningSettlement.tenant_id == tenant_id)
    if not has_capability(viewer, tenant_id, Capability.REVIEW_SETTLEMENTS):
        query = query.where(CleaningSettlement.user_id == viewer.id)
    elif user_id is not None:
        query = query.where(CleaningSettlement.user_id == user_id)
    if status is not None:
        query = query.where(CleaningSettlement.status == status)
    if from_date is not None:
        query = query.where(CleaningSettlement.settlement_date >= from_date)
    if to_date is not None:
        query = query.where(CleaningSettlement.settlement_date <= to_date)
    return session.execute(
        query.order_by(CleaningSettlement.settlement_date.desc(), CleaningSettlement.created_at.desc())
    ).scalars().all()


def settlement_detail(session: Session, tenant_id: int, settlement_id: int, *, viewer: Worker) -> dict:
    settlement = get_settlement(session, tenant_id, settlement_id)
    if settlement.user_id != viewer.id and not has_capability(viewer, tenant_id, Capability.REVIEW_SETTLEMENTS):
        raise LookupError("Settlement not found")

    paid = total_paid(session, settlement.id)
    return {
        "settlement": settlement,
        "items": list(settlement.items),
        "payments": list(settlement.payments),
        "total_paid": paid,
        "pending_amount": settlement.total_amount - paid,
    }
