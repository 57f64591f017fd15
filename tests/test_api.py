"""End-to-end API flow tests."""

from __future__ import annotations


def _tenant_setup(client, headers) -> dict:
    tenant = client.post(
        "/v1/tenants",
        headers=headers,
        json={"name": "Harbour Flats", "stay_over_interval": 3, "deep_cleaning_interval": 11},
    )
    assert tenant.status_code == 200
    tenant_id = tenant.json()["id"]

    sync = client.put(
        "/v1/workers/sync",
        headers=headers,
        json={
            "tenant_id": tenant_id,
            "workers": [
                {"display_name": "Alex", "external_user_id": "u-admin", "roles": ["admin"]},
                {"display_name": "Ana", "external_user_id": "u-ana", "roles": ["housekeeping"], "notify_target": "notify.ana"},
                {"display_name": "Ben", "external_user_id": "u-ben", "roles": ["housekeeping"]},
            ],
        },
    )
    assert sync.status_code == 200
    workers = {row["external_user_id"]: row["id"] for row in sync.json()["workers"]}

    property_type = client.post(
        "/v1/property-types",
        headers=headers,
        json={"tenant_id": tenant_id, "actor_user_id": "u-admin", "name": "Two bedroom"},
    )
    assert property_type.status_code == 200
    property_type_id = property_type.json()["id"]

    unit = client.post(
        "/v1/properties",
        headers=headers,
        json={"tenant_id": tenant_id, "actor_user_id": "u-admin", "property_type_id": property_type_id, "name": "Flat 4B"},
    )
    assert unit.status_code == 200

    rate = client.put(
        "/v1/rates",
        headers=headers,
        json={
            "tenant_id": tenant_id,
            "actor_user_id": "u-admin",
            "property_type_id": property_type_id,
            "task_type": "check_out",
            "rate": "42.00",
        },
    )
    assert rate.status_code == 200
    return {"tenant_id": tenant_id, "property_id": unit.json()["id"], "workers": workers}


def test_full_cleaning_and_settlement_flow(client, auth_headers) -> None:
    ctx = _tenant_setup(client, auth_headers)
    tenant_id = ctx["tenant_id"]

    created = client.post(
        "/v1/reservations",
        headers=auth_headers,
        json={
            "tenant_id": tenant_id,
            "actor_user_id": "u-admin",
            "property_id": ctx["property_id"],
            "check_in_date": "2024-01-01",
            "check_out_date": "2024-01-10",
            "adults": 2,
        },
    )
    assert created.status_code == 200
    body = created.json()
    assert [(t["task_type"], t["scheduled_date"]) for t in body["tasks"]] == [
        ("stay_over", "2024-01-04"),
        ("stay_over", "2024-01-07"),
        ("check_out", "2024-01-10"),
    ]
    reservation_id = body["reservation"]["id"]
    checkout_id = body["tasks"][-1]["id"]

    reported = client.post(
        f"/v1/reservations/{reservation_id}/checkout",
        headers=auth_headers,
        json={"tenant_id": tenant_id, "actor_user_id": "u-admin"},
    )
    assert reported.status_code == 200
    assert {n["event"] for n in reported.json()["notifications"]} == {"checkout_reported"}

    available = client.get(
        "/v1/tasks/available",
        headers=auth_headers,
        params={"tenant_id": tenant_id, "actor_user_id": "u-ana"},
    )
    assert available.status_code == 200
    assert available.json()[0]["id"] == checkout_id

    action = {"tenant_id": tenant_id, "actor_user_id": "u-ana"}
    taken = client.post(f"/v1/tasks/{checkout_id}/take", headers=auth_headers, json=action)
    assert taken.status_code == 200
    assert taken.json()["task"]["assigned_to"] == ctx["workers"]["u-ana"]

    conflict = client.post(
        f"/v1/tasks/{checkout_id}/take",
        headers=auth_headers,
        json={"tenant_id": tenant_id, "actor_user_id": "u-ben"},
    )
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["reason"] == "task_unavailable"

    assert client.post(f"/v1/tasks/{checkout_id}/start", headers=auth_headers, json=action).status_code == 200
    completed = client.post(f"/v1/tasks/{checkout_id}/complete", headers=auth_headers, json=action)
    assert completed.status_code == 200
    assert completed.json()["task"]["status"] == "completed"

    built = client.post("/v1/settlements", headers=auth_headers, json=action)
    assert built.status_code == 200
    settlement = built.json()["settlement"]
    assert settlement["status"] == "submitted"
    assert settlement["total_tasks"] == 1
    settlement_id = settlement["id"]

    duplicate = client.post("/v1/settlements", headers=auth_headers, json=action)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["reason"] == "settlement_exists"

    forbidden = client.post(f"/v1/settlements/{settlement_id}/approve", headers=auth_headers, json=action)
    assert forbidden.status_code == 403

    admin = {"tenant_id": tenant_id, "actor_user_id": "u-admin"}
    approved = client.post(f"/v1/settlements/{settlement_id}/approve", headers=auth_headers, json=admin)
    assert approved.status_code == 200
    assert approved.json()["settlement"]["status"] == "approved"

    over = client.post(
        f"/v1/settlements/{settlement_id}/payments",
        headers=auth_headers,
        json={**admin, "amount": "50.00"},
    )
    assert over.status_code == 409

    paid = client.post(
        f"/v1/settlements/{settlement_id}/payments",
        headers=auth_headers,
        json={**admin, "amount": "42.00", "payment_method": "cash"},
    )
    assert paid.status_code == 200
    assert paid.json()["notifications"][0]["notify_target"] == "notify.ana"

    detail = client.get(
        f"/v1/settlements/{settlement_id}",
        headers=auth_headers,
        params={"tenant_id": tenant_id, "actor_user_id": "u-ana"},
    )
    assert detail.status_code == 200
    payload = detail.json()
    assert payload["settlement"]["status"] == "paid"
    assert float(payload["total_paid"]) == 42.0
    assert float(payload["pending_amount"]) == 0.0
    assert [item["property_name"] for item in payload["items"]] == ["Flat 4B"]

    activity = client.get("/v1/activity", headers=auth_headers, params={"tenant_id": tenant_id, "actor_user_id": "u-admin"})
    actions = {row["action"] for row in activity.json()}
    assert {"reservation_created", "checkout_reported", "task_completed", "payment_recorded"} <= actions


def test_checkout_report_can_be_withdrawn(client, auth_headers) -> None:
    ctx = _tenant_setup(client, auth_headers)
    tenant_id = ctx["tenant_id"]
    admin = {"tenant_id": tenant_id, "actor_user_id": "u-admin"}

    created = client.post(
        "/v1/reservations",
        headers=auth_headers,
        json={**admin, "property_id": ctx["property_id"], "check_in_date": "2024-06-01", "check_out_date": "2024-06-03"},
    )
    reservation_id = created.json()["reservation"]["id"]

    assert client.post(f"/v1/reservations/{reservation_id}/checkout", headers=auth_headers, json=admin).status_code == 200
    withdrawn = client.request("DELETE", f"/v1/reservations/{reservation_id}/checkout", headers=auth_headers, json=admin)
    assert withdrawn.status_code == 200

    tasks = client.get(
        "/v1/tasks",
        headers=auth_headers,
        params={"tenant_id": tenant_id, "actor_user_id": "u-admin", "task_type": "check_out"},
    )
    assert tasks.json() == []

    again = client.request("DELETE", f"/v1/reservations/{reservation_id}/checkout", headers=auth_headers, json=admin)
    assert again.status_code == 409


def test_validation_errors(client, auth_headers) -> None:
    ctx = _tenant_setup(client, auth_headers)
    admin = {"tenant_id": ctx["tenant_id"], "actor_user_id": "u-admin"}

    bad_dates = client.post(
        "/v1/reservations",
        headers=auth_headers,
        json={**admin, "property_id": ctx["property_id"], "check_in_date": "2024-01-05", "check_out_date": "2024-01-05"},
    )
    assert bad_dates.status_code == 400

    missing_property = client.post(
        "/v1/reservations",
        headers=auth_headers,
        json={**admin, "property_id": 999, "check_in_date": "2024-01-01", "check_out_date": "2024-01-05"},
    )
    assert missing_property.status_code == 404

    bad_type = client.put("/v1/rates", headers=auth_headers, json={**admin, "property_type_id": 1, "task_type": "laundry", "rate": 1})
    assert bad_type.status_code == 422

    bad_zone = client.put(
        f"/v1/tenants/{ctx['tenant_id']}/settings",
        headers=auth_headers,
        json={"actor_user_id": "u-admin", "timezone": "Mars/Olympus"},
    )
    assert bad_zone.status_code == 400

    settings = client.put(
        f"/v1/tenants/{ctx['tenant_id']}/settings",
        headers=auth_headers,
        json={"actor_user_id": "u-admin", "stay_over_interval": 2, "timezone": "Europe/Lisbon"},
    )
    assert settings.status_code == 200
    assert settings.json() == {"stay_over_interval": 2, "deep_cleaning_interval": 11, "timezone": "Europe/Lisbon"}


def test_worker_sync_deactivates_missing_workers(client, auth_headers) -> None:
    ctx = _tenant_setup(client, auth_headers)
    response = client.put(
        "/v1/workers/sync",
        headers=auth_headers,
        json={
            "tenant_id": ctx["tenant_id"],
            "workers": [{"display_name": "Alex", "external_user_id": "u-admin", "roles": ["admin"]}],
        },
    )
    assert response.status_code == 200
    assert sorted(response.json()["deactivated_worker_ids"]) == sorted(
        [ctx["workers"]["u-ana"], ctx["workers"]["u-ben"]]
    )

    blocked = client.get(
        "/v1/tasks/available",
        headers=auth_headers,
        params={"tenant_id": ctx["tenant_id"], "actor_user_id": "u-ana"},
    )
    assert blocked.status_code == 403

    unknown_role = client.put(
        "/v1/workers/sync",
        headers=auth_headers,
        json={
            "tenant_id": ctx["tenant_id"],
            "workers": [{"display_name": "Alex", "external_user_id": "u-admin", "roles": ["chef"]}],
        },
    )
    assert unknown_role.status_code == 400


def test_tenant_reads_require_membership(client, auth_headers) -> None:
    ctx = _tenant_setup(client, auth_headers)
    tenant_id = ctx["tenant_id"]

    other = client.post("/v1/tenants", headers=auth_headers, json={"name": "Hilltop Lodges"})
    assert other.status_code == 200
    other_sync = client.put(
        "/v1/workers/sync",
        headers=auth_headers,
        json={
            "tenant_id": other.json()["id"],
            "workers": [{"display_name": "Olga", "external_user_id": "u-olga", "roles": ["admin"]}],
        },
    )
    assert other_sync.status_code == 200

    for path in (f"/v1/tenants/{tenant_id}/settings", "/v1/activity"):
        anonymous = client.get(path, headers=auth_headers, params={"tenant_id": tenant_id})
        assert anonymous.status_code == 403
        outsider = client.get(path, headers=auth_headers, params={"tenant_id": tenant_id, "actor_user_id": "u-olga"})
        assert outsider.status_code == 403
        member = client.get(path, headers=auth_headers, params={"tenant_id": tenant_id, "actor_user_id": "u-ben"})
        assert member.status_code == 200

    activity = client.get("/v1/activity", headers=auth_headers, params={"tenant_id": tenant_id, "actor_user_id": "u-ana"})
    assert "property_created" in {row["action"] for row in activity.json()}
