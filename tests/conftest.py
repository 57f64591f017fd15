"""Test fixtures for the housekeeping service."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


@dataclass
class Seed:
    tenant_id: int
    property_type_id: int
    property_id: int
    second_property_id: int
    admin_id: int
    supervisor_id: int
    ana_id: int
    ben_id: int


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "test.db"
    monkeypatch.delenv("HOUSEKEEPING_DATABASE_URL", raising=False)
    monkeypatch.setenv("HOUSEKEEPING_DB_PATH", str(db_path))
    monkeypatch.setenv("HOUSEKEEPING_API_TOKEN", "test-token")

    from housekeeping import db
    from housekeeping.db import Base

    db.configure_engine(f"sqlite:///{db_path}")
    assert db.engine is not None
    Base.metadata.drop_all(bind=db.engine)
    Base.metadata.create_all(bind=db.engine)
    return db_path


@pytest.fixture
def session(database: Path):
    from housekeeping import db

    assert db.SessionLocal is not None
    db_session = db.SessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()


@pytest.fixture
def other_session(database: Path):
    from housekeeping import db

    assert db.SessionLocal is not None
    db_session = db.SessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()


@pytest.fixture
def client(database: Path) -> TestClient:
    from housekeeping.main import app

    with TestClient(app) as api_client:
        yield api_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"x-housekeeping-token": "test-token"}


def seed_tenant(session, *, stay_over_interval: int = 3, deep_cleaning_interval: int = 3) -> Seed:
    from housekeeping.schemas import WorkerSyncItem
    from housekeeping.services.properties import create_property, create_property_type
    from housekeeping.services.tenants import create_tenant
    from housekeeping.services.workers import sync_workers

    tenant = create_tenant(
        session,
        name="Seaside Rentals",
        stay_over_interval=stay_over_interval,
        deep_cleaning_interval=deep_cleaning_interval,
        timezone="UTC",
    )
    studio = create_property_type(session, tenant_id=tenant.id, name="Studio")
    first = create_property(session, tenant_id=tenant.id, property_type_id=studio.id, name="Studio 1")
    second = create_property(session, tenant_id=tenant.id, property_type_id=studio.id, name="Studio 2")

    rows, _ = sync_workers(
        session,
        tenant.id,
        [
            WorkerSyncItem(display_name="Alex Admin", external_user_id="admin", roles=["admin"]),
            WorkerSyncItem(display_name="Sue Supervisor", external_user_id="sue", roles=["supervisor"]),
            WorkerSyncItem(display_name="Ana", external_user_id="ana", roles=["housekeeping"], notify_target="notify.ana"),
            WorkerSyncItem(display_name="Ben", external_user_id="ben", roles=["housekeeping"], notify_target="notify.ben"),
        ],
    )
    by_user = {row.external_user_id: row.id for row in rows}
    return Seed(
        tenant_id=tenant.id,
        property_type_id=studio.id,
        property_id=first.id,
        second_property_id=second.id,
        admin_id=by_user["admin"],
        supervisor_id=by_user["sue"],
        ana_id=by_user["ana"],
        ben_id=by_user["ben"],
    )


@pytest.fixture
def seed(session) -> Seed:
    return seed_tenant(session)
