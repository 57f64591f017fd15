"""Settlement review and payment recording."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models import CleaningPayment, CleaningSettlement, SettlementStatus
from ..settings import settings
from . import notifications
from .activity import log_event
from .outcome import Outcome
from .rates import to_amount
from .settlements import get_settlement, total_paid
from .tenants import get_tenant
from .time_utils import local_today, now_utc

_LOGGER = logging.getLogger(__name__)

SETTLEMENT_NOT_SUBMITTED = "settlement_not_submitted"
SETTLEMENT_NOT_APPROVED = "settlement_not_approved"
AMOUNT_EXCEEDS_PENDING = "amount_exceeds_pending"


def _review(
    session: Session,
    *,
    tenant_id: int,
    settlement_id: int,
    reviewer_id: int,
    status: SettlementStatus,
    notes: str | None,
) -> int:
    result = session.execute(
        update(CleaningSettlement)
        .where(
            CleaningSettlement.id == settlement_id,
            CleaningSettlement.tenant_id == tenant_id,
            CleaningSettlement.status == SettlementStatus.SUBMITTED,
        )
        .values(
            status=status,
            reviewed_by=reviewer_id,
            reviewed_at=now_utc(),
            review_notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def approve_settlement(
    session: Session,
    *,
    tenant_id: int,
    settlement_id: int,
    reviewer_id: int,
    notes: str | None = None,
) -> Outcome:
    get_settlement(session, tenant_id, settlement_id)
    affected = _review(
        session,
        tenant_id=tenant_id,
        settlement_id=settlement_id,
        reviewer_id=reviewer_id,
        status=SettlementStatus.APPROVED,
        notes=notes.strip() if notes else None,
    )
    if affected == 0:
        session.rollback()
        return Outcome.rejected(SETTLEMENT_NOT_SUBMITTED, settlement_id=settlement_id)

    log_event(
        session,
        tenant_id=tenant_id,
        action="settlement_approved",
        actor_worker_id=reviewer_id,
        payload={"settlement_id": settlement_id},
    )
    session.commit()
    settlement = get_settlement(session, tenant_id, settlement_id)
    session.refresh(settlement)
    return Outcome.success(settlement, notifications.settlement_approved(session, settlement))


def reject_settlement(
    session: Session,
    *,
    tenant_id: int,
    settlement_id: int,
    reviewer_id: int,
    reason: str,
) -> Outcome:
    """Reject a submitted settlement; the reason is mandatory."""

    cleaned = (reason or "").strip()
    if len(cleaned) < settings.rejection_min_length:
        raise ValueError(f"Rejection reason must be at least {settings.rejection_min_length} characters")

    get_settlement(session, tenant_id, settlement_id)
    affected = _review(
        session,
        tenant_id=tenant_id,
        settlement_id=settlement_id,
        reviewer_id=reviewer_id,
        status=SettlementStatus.REJECTED,
        notes=cleaned,
    )
    if affected == 0:
        session.rollback()
        return Outcome.rejected(SETTLEMENT_NOT_SUBMITTED, settlement_id=settlement_id)

    log_event(
        session,
        tenant_id=tenant_id,
        action="settlement_rejected",
        actor_worker_id=reviewer_id,
        payload={"settlement_id": settlement_id, "reason": cleaned},
    )
    session.commit()
    settlement = get_settlement(session, tenant_id, settlement_id)
    session.refresh(settlement)
    return Outcome.success(settlement, notifications.settlement_rejected(session, settlement))


def record_payment(
    session: Session,
    *,
    tenant_id: int,
    settlement_id: int,
    amount,
    paid_by: int,
    payment_date: date | None = None,
    payment_method: str | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> Outcome:
    """Record a partial or final payment against an approved settlement.

    The settlement row is locked for the duration so concurrent payments see
    each other's totals. The settlement moves to paid once payments cover the
    full amount.
    """

    value = to_amount(amount)
    if value < 0:
        raise ValueError("Payment amount must not be negative")

    get_settlement(session, tenant_id, settlement_id)
    settlement = session.execute(
        select(CleaningSettlement)
        .where(CleaningSettlement.id == settlement_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one()
    if settlement.status != SettlementStatus.APPROVED:
        session.rollback()
        return Outcome.rejected(
            SETTLEMENT_NOT_APPROVED,
            settlement_id=settlement_id,
            status=settlement.status.value,
        )

    already_paid = total_paid(session, settlement.id)
    pending = settlement.total_amount - already_paid
    if value == 0 and pending > 0:
        session.rollback()
        raise ValueError("Payment amount must be positive")
    if value > pending:
        session.rollback()
        _LOGGER.info("Payment of %s exceeds pending %s on settlement %s", value, pending, settlement_id)
        return Outcome.rejected(
            AMOUNT_EXCEEDS_PENDING,
            settlement_id=settlement_id,
            pending_amount=str(pending),
        )

    now = now_utc()
    payment = CleaningPayment(
        settlement_id=settlement.id,
        amount=value,
        payment_date=payment_date or local_today(get_tenant(session, tenant_id).timezone, now),
        payment_method=payment_method,
        reference_number=reference_number,
        notes=notes,
        paid_by=paid_by,
    )
    session.add(payment)
    session.flush()

    cumulative = already_paid + value
    if cumulative >= settlement.total_amount:
        session.execute(
            update(CleaningSettlement)
            .where(
                CleaningSettlement.id == settlement.id,
                CleaningSettlement.status == SettlementStatus.APPROVED,
            )
            .values(status=SettlementStatus.PAID)
            .execution_options(synchronize_session=False)
        )

    log_event(
        session,
        tenant_id=tenant_id,
        action="payment_recorded",
        actor_worker_id=paid_by,
        payload={
            "settlement_id": settlement.id,
            "payment_id": payment.id,
            "amount": str(value),
            "total_paid": str(cumulative),
        },
        created_at=now,
    )
    session.commit()
    session.refresh(settlement)
    return Outcome.success(
        payment,
        notifications.payment_recorded(session, settlement, payment, total_paid=cumulative),
    )
