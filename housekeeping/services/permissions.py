"""Role to capability mapping for tenant-scoped checks."""

from __future__ import annotations

from enum import Enum

from ..models import Worker


class Capability(str, Enum):
    MANAGE_TASKS = "manage_tasks"
    WORK_TASKS = "work_tasks"
    REPORT_STAYS = "report_stays"
    MANAGE_RESERVATIONS = "manage_reservations"
    BUILD_SETTLEMENTS = "build_settlements"
    REVIEW_SETTLEMENTS = "review_settlements"
    RECORD_PAYMENTS = "record_payments"
    MANAGE_RATES = "manage_rates"
    MANAGE_SETTINGS = "manage_settings"


ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    "admin": frozenset(Capability),
    "supervisor": frozenset(
        {
            Capability.MANAGE_TASKS,
            Capability.REPORT_STAYS,
            Capability.MANAGE_RESERVATIONS,
            Capability.REVIEW_SETTLEMENTS,
            Capability.RECORD_PAYMENTS,
        }
    ),
    "housekeeping": frozenset({Capability.WORK_TASKS, Capability.BUILD_SETTLEMENTS}),
    "maintenance": frozenset(),
    "skater": frozenset(),
}

VALID_ROLES = frozenset(ROLE_CAPABILITIES)


def capabilities_for(roles: list[str] | None) -> frozenset[Capability]:
    granted: set[Capability] = set()
    for role in roles or []:
        granted.update(ROLE_CAPABILITIES.get(role, frozenset()))
    return frozenset(granted)


def roles_with(capability: Capability) -> set[str]:
    return {role for role, caps in ROLE_CAPABILITIES.items() if capability in caps}


def has_capability(worker: Worker | None, tenant_id: int, capability: Capability) -> bool:
    if worker is None or not worker.active or worker.tenant_id != tenant_id:
        return False
    return capability in capabilities_for(worker.roles)


def require_capability(worker: Worker | None, tenant_id: int, capability: Capability) -> Worker:
    """Return the worker when it holds the capability for the tenant."""

    if not has_capability(worker, tenant_id, capability):
        raise PermissionError(f"Missing capability {capability.value} for tenant {tenant_id}")
    assert worker is not None
    return worker
