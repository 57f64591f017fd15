"""Activity event persistence and retrieval."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import ActivityEvent


def log_event(
    session: Session,
    *,
    tenant_id: int | None,
    action: str,
    actor_worker_id: int | None,
    payload: dict,
    domain: str = "housekeeping",
    created_at: datetime | None = None,
) -> ActivityEvent:
    event = ActivityEvent(
        tenant_id=tenant_id,
        domain=domain,
        action=action,
        actor_worker_id=actor_worker_id,
        payload_json=payload,
    )
    if created_at is not None:
        event.created_at = created_at
    session.add(event)
    session.flush()
    return event


def list_events(session: Session, *, tenant_id: int, limit: int = 50) -> list[ActivityEvent]:
    return session.execute(
        select(ActivityEvent)
        .where(ActivityEvent.tenant_id == tenant_id)
        .order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
        .limit(limit)
    ).scalars().all()
