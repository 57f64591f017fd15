"""Authentication and capability tests."""

from __future__ import annotations

import pytest

from housekeeping.services.permissions import Capability, capabilities_for, has_capability, require_capability


def test_missing_token_is_rejected(client) -> None:
    response = client.get("/v1/tasks", params={"tenant_id": 1})
    assert response.status_code == 401


def test_invalid_token_is_rejected(client) -> None:
    response = client.get("/v1/tasks", params={"tenant_id": 1}, headers={"x-housekeeping-token": "wrong"})
    assert response.status_code == 401


def test_health_needs_no_token(client) -> None:
    assert client.get("/health").json() == {"ok": True}


def test_role_capabilities() -> None:
    assert Capability.REVIEW_SETTLEMENTS in capabilities_for(["supervisor"])
    assert Capability.WORK_TASKS not in capabilities_for(["supervisor"])
    assert capabilities_for(["housekeeping"]) == {Capability.WORK_TASKS, Capability.BUILD_SETTLEMENTS}
    assert capabilities_for(["maintenance", "skater"]) == frozenset()
    assert capabilities_for(["admin"]) == frozenset(Capability)


def test_capability_is_tenant_scoped(session, seed) -> None:
    from housekeeping.models import Worker

    ana = session.get(Worker, seed.ana_id)
    assert has_capability(ana, seed.tenant_id, Capability.WORK_TASKS)
    assert not has_capability(ana, seed.tenant_id + 1, Capability.WORK_TASKS)
    with pytest.raises(PermissionError):
        require_capability(ana, seed.tenant_id, Capability.RECORD_PAYMENTS)
    with pytest.raises(PermissionError):
        require_capability(None, seed.tenant_id, Capability.WORK_TASKS)


def test_worker_without_capability_gets_403(client, auth_headers, seed) -> None:
    response = client.post(
        "/v1/tasks",
        headers=auth_headers,
        json={
            "tenant_id": seed.tenant_id,
            "actor_user_id": "ana",
            "property_id": seed.property_id,
            "task_type": "stay_over",
            "scheduled_date": "2024-03-01",
        },
    )
    assert response.status_code == 403


def test_unknown_actor_gets_403(client, auth_headers, seed) -> None:
    response = client.get(
        "/v1/tasks",
        headers=auth_headers,
        params={"tenant_id": seed.tenant_id, "actor_user_id": "stranger"},
    )
    assert response.status_code == 403
