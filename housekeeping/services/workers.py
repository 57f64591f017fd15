"""Worker directory synchronization and actor resolution helpers."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Tenant, Worker
from ..schemas import WorkerSyncItem
from .permissions import VALID_ROLES

_LOGGER = logging.getLogger(__name__)


def _clean_roles(roles: list[str]) -> list[str]:
    cleaned: list[str] = []
    for role in roles:
        value = str(role).strip().lower()
        if not value:
            continue
        if value not in VALID_ROLES:
            raise ValueError(f"Unknown role: {value}")
        if value not in cleaned:
            cleaned.append(value)
    return cleaned


def sync_workers(session: Session, tenant_id: int, items: list[WorkerSyncItem]) -> tuple[list[Worker], list[int]]:
    """Upsert the tenant's workers from the external user directory."""

    if session.get(Tenant, tenant_id) is None:
        raise LookupError("Tenant not found")

    existing = {
        w.external_user_id: w
        for w in session.execute(
            select(Worker).where(Worker.tenant_id == tenant_id, Worker.external_user_id.is_not(None))
        ).scalars().all()
    }

    seen_user_ids: set[str] = set()
    deactivated_worker_ids: set[int] = set()

    for item in items:
        roles = _clean_roles(item.roles)
        worker = existing.get(item.external_user_id)
        if worker is None:
            worker = Worker(
                tenant_id=tenant_id,
                display_name=item.display_name.strip(),
                external_user_id=item.external_user_id,
                roles=roles,
                notify_target=item.notify_target,
                active=item.active,
            )
            session.add(worker)
        else:
            was_active = bool(worker.active)
            worker.display_name = item.display_name.strip()
            worker.roles = roles
            worker.notify_target = item.notify_target
            worker.active = item.active
            if was_active and not worker.active:
                deactivated_worker_ids.add(worker.id)

        seen_user_ids.add(item.external_user_id)

    for worker in existing.values():
        if worker.external_user_id not in seen_user_ids and worker.active:
            worker.active = False
            deactivated_worker_ids.add(worker.id)

    session.commit()
    if deactivated_worker_ids:
        _LOGGER.info("Deactivated workers %s for tenant %s", sorted(deactivated_worker_ids), tenant_id)

    rows = session.execute(
        select(Worker).where(Worker.tenant_id == tenant_id).order_by(Worker.display_name.asc())
    ).scalars().all()
    return rows, sorted(deactivated_worker_ids)


def resolve_actor(session: Session, actor_user_id: str | None) -> Worker | None:
    """Resolve an external user id to a worker; unknown users return None."""

    if not actor_user_id:
        return None
    return session.execute(
        select(Worker).where(Worker.external_user_id == actor_user_id)
    ).scalar_one_or_none()


def get_worker(session: Session, worker_id: int | None) -> Worker | None:
    if worker_id is None:
        return None
    return session.get(Worker, worker_id)


def require_worker(session: Session, tenant_id: int, worker_id: int) -> Worker:
    worker = session.get(Worker, worker_id)
    if worker is None or worker.tenant_id != tenant_id:
        raise LookupError("Worker not found")
    if not worker.active:
        raise ValueError("Worker is inactive")
    return worker


def active_workers_with_role(session: Session, tenant_id: int, roles: set[str]) -> list[Worker]:
    rows = session.execute(
        select(Worker)
        .where(Worker.tenant_id == tenant_id, Worker.active.is_(True))
        .order_by(Worker.display_name.asc())
    ).scalars().all()
    return [row for row in rows if roles.intersection(row.roles or [])]
