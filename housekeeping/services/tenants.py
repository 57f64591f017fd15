"""Tenant cleaning settings."""

from __future__ import annotations

from sqlalchemy.orm import Session

from ..models import Tenant
from ..settings import settings
from .activity import log_event
from .time_utils import tenant_zone


def get_tenant(session: Session, tenant_id: int) -> Tenant:
    tenant = session.get(Tenant, tenant_id)
    if tenant is None:
        raise LookupError("Tenant not found")
    return tenant


def _validate_interval(value: int, field_name: str) -> int:
    if int(value) < 1:
        raise ValueError(f"{field_name} must be at least 1")
    return int(value)


def create_tenant(
    session: Session,
    *,
    name: str,
    stay_over_interval: int | None = None,
    deep_cleaning_interval: int | None = None,
    timezone: str | None = None,
) -> Tenant:
    zone_name = timezone or settings.default_timezone
    tenant_zone(zone_name)
    tenant = Tenant(
        name=name.strip(),
        stay_over_interval=_validate_interval(
            stay_over_interval if stay_over_interval is not None else settings.default_stay_over_interval,
            "stay_over_interval",
        ),
        deep_cleaning_interval=_validate_interval(
            deep_cleaning_interval if deep_cleaning_interval is not None else settings.default_deep_cleaning_interval,
            "deep_cleaning_interval",
        ),
        timezone=zone_name,
    )
    session.add(tenant)
    session.commit()
    return tenant


def tenant_settings(tenant: Tenant) -> dict:
    return {
        "stay_over_interval": tenant.stay_over_interval,
        "deep_cleaning_interval": tenant.deep_cleaning_interval,
        "timezone": tenant.timezone,
    }


def update_tenant_settings(
    session: Session,
    tenant_id: int,
    *,
    stay_over_interval: int | None = None,
    deep_cleaning_interval: int | None = None,
    timezone: str | None = None,
    actor_worker_id: int | None = None,
) -> Tenant:
    tenant = get_tenant(session, tenant_id)
    if stay_over_interval is not None:
        tenant.stay_over_interval = _validate_interval(stay_over_interval, "stay_over_interval")
    if deep_cleaning_interval is not None:
        tenant.deep_cleaning_interval = _validate_interval(deep_cleaning_interval, "deep_cleaning_interval")
    if timezone is not None:
        tenant_zone(timezone)
        tenant.timezone = timezone

    log_event(
        session,
        tenant_id=tenant_id,
        action="tenant_settings_updated",
        actor_worker_id=actor_worker_id,
        payload=tenant_settings(tenant),
    )
    session.commit()
    return tenant
