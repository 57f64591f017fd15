"""Cleaning rate table: (property type, task type) -> amount."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import CleaningRate, PropertyType, TaskType
from .time_utils import now_utc

_LOGGER = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def to_amount(value) -> Decimal:
    """Coerce user input to a two-decimal amount."""

    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(Decimal("0.01"))


def list_rates(session: Session, tenant_id: int) -> list[CleaningRate]:
    return session.execute(
        select(CleaningRate)
        .where(CleaningRate.tenant_id == tenant_id)
        .order_by(CleaningRate.property_type_id.asc(), CleaningRate.task_type.asc())
    ).scalars().all()


def rate_table(session: Session, tenant_id: int) -> dict[tuple[int, TaskType], Decimal]:
    return {(row.property_type_id, row.task_type): row.rate for row in list_rates(session, tenant_id)}


def resolve_rate(session: Session, tenant_id: int, property_type_id: int, task_type: TaskType) -> Decimal:
    """Current rate for the key; an unconfigured rate resolves to zero."""

    rate = session.execute(
        select(CleaningRate.rate).where(
            CleaningRate.tenant_id == tenant_id,
            CleaningRate.property_type_id == property_type_id,
            CleaningRate.task_type == task_type,
        )
    ).scalar_one_or_none()
    if rate is None:
        _LOGGER.info(
            "No cleaning rate for tenant=%s property_type=%s task_type=%s, using 0",
            tenant_id,
            property_type_id,
            task_type.value,
        )
        return ZERO
    return rate


def upsert_rate(
    session: Session,
    *,
    tenant_id: int,
    property_type_id: int,
    task_type: TaskType,
    rate,
) -> CleaningRate:
    amount = to_amount(rate)
    if amount < 0:
        raise ValueError("rate must not be negative")

    property_type = session.get(PropertyType, property_type_id)
    if property_type is None or property_type.tenant_id != tenant_id:
        raise LookupError("Property type not found")

    row = session.execute(
        select(CleaningRate).where(
            CleaningRate.tenant_id == tenant_id,
            CleaningRate.property_type_id == property_type_id,
            CleaningRate.task_type == task_type,
        )
    ).scalar_one_or_none()
    if row is None:
        row = CleaningRate(
            tenant_id=tenant_id,
            property_type_id=property_type_id,
            task_type=task_type,
            rate=amount,
        )
        session.add(row)
    else:
        row.rate = amount
        row.updated_at = now_utc()
    session.commit()
    return row


def delete_rate(session: Session, *, tenant_id: int, rate_id: int) -> None:
    row = session.get(CleaningRate, rate_id)
    if row is None or row.tenant_id != tenant_id:
        raise LookupError("Rate not found")
    session.delete(row)
    session.commit()
