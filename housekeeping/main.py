"""FastAPI entrypoint for the housekeeping service."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import asynccontextmanager, contextmanager
from datetime import date

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from . import db
from .db import Base, get_session
from .models import SettlementStatus, TaskStatus, TaskType, Worker
from .schemas import (
    ActivityEventResponse,
    ActorRequest,
    DayTasksResponse,
    OperationResponse,
    PaymentCreateRequest,
    PaymentResponse,
    PropertyCreateRequest,
    PropertyResponse,
    PropertyTypeCreateRequest,
    PropertyTypeResponse,
    RateResponse,
    RateUpsertRequest,
    ReservationCreateRequest,
    ReservationCreateResponse,
    ReservationResponse,
    ReservationUpdateRequest,
    SettlementActionResponse,
    SettlementBuildRequest,
    SettlementDetailResponse,
    SettlementRejectRequest,
    SettlementResponse,
    SettlementReviewRequest,
    StayReportRequest,
    TaskActionResponse,
    TaskCreateRequest,
    TaskResponse,
    TenantCreateRequest,
    TenantResponse,
    TenantSettingsResponse,
    TenantSettingsUpdateRequest,
    WorkerResponse,
    WorkersSyncRequest,
    WorkersSyncResponse,
)
from .services import lifecycle, properties, rates, reservations, settlement_workflow, settlements, tenants
from .services.activity import list_events
from .services.outcome import Outcome
from .services.permissions import Capability, require_capability
from .services.workers import resolve_actor, sync_workers
from .settings import settings

_LOGGER = logging.getLogger(__name__)

NULLABLE_RESERVATION_FIELDS = {"notes", "actual_checkin_time", "actual_checkout_time"}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logging.basicConfig(level=settings.log_level)
    db.configure_engine()
    db.ensure_db_dir()
    assert db.engine is not None
    Base.metadata.create_all(bind=db.engine)
    _LOGGER.info("Housekeeping service ready (rate policy: %s)", settings.rate_policy)
    yield


app = FastAPI(title="housekeeping-service", version="0.1.0", lifespan=lifespan)


def require_token(x_housekeeping_token: str | None = Header(default=None)) -> None:
    if x_housekeeping_token != settings.api_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@contextmanager
def service_errors() -> Iterator[None]:
    """Translate service exceptions into HTTP errors."""

    try:
        yield
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _actor(session: Session, tenant_id: int, actor_user_id: str | None, capability: Capability) -> Worker:
    return require_capability(resolve_actor(session, actor_user_id), tenant_id, capability)


def _tenant_member(session: Session, tenant_id: int, actor_user_id: str | None) -> Worker:
    worker = resolve_actor(session, actor_user_id)
    if worker is None or not worker.active or worker.tenant_id != tenant_id:
        raise PermissionError(f"Unknown actor for tenant {tenant_id}")
    return worker


def _ensure_ok(outcome: Outcome) -> Outcome:
    if not outcome.ok:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"reason": outcome.reason, "details": outcome.details, "hint": "refresh and retry"},
        )
    return outcome


@app.get("/health")
def health() -> dict:
    return {"ok": True}


@app.post("/v1/tenants", response_model=TenantResponse, dependencies=[Depends(require_token)])
def post_tenant(payload: TenantCreateRequest, session: Session = Depends(get_session)) -> TenantResponse:
    with service_errors():
        tenant = tenants.create_tenant(
            session,
            name=payload.name,
            stay_over_interval=payload.stay_over_interval,
            deep_cleaning_interval=payload.deep_cleaning_interval,
            timezone=payload.timezone,
        )
    return TenantResponse.model_validate(tenant)


@app.get(
    "/v1/tenants/{tenant_id}/settings",
    response_model=TenantSettingsResponse,
    dependencies=[Depends(require_token)],
)
def get_tenant_settings(
    tenant_id: int,
    actor_user_id: str | None = Query(default=None),
    session: Session = Depends(get_session),
) -> TenantSettingsResponse:
    with service_errors():
        tenant = tenants.get_tenant(session, tenant_id)
        _tenant_member(session, tenant_id, actor_user_id)
    return TenantSettingsResponse(**tenants.tenant_settings(tenant))


@app.put(
    "/v1/tenants/{tenant_id}/settings",
    response_model=TenantSettingsResponse,
    dependencies=[Depends(require_token)],
)
def put_tenant_settings(
    tenant_id: int,
    payload: TenantSettingsUpdateRequest,
    session: Session = Depends(get_session),
) -> TenantSettingsResponse:
    with service_errors():
        actor = _actor(session, tenant_id, payload.actor_user_id, Capability.MANAGE_SETTINGS)
        tenant = tenants.update_tenant_settings(
            session,
            tenant_id,
            stay_over_interval=payload.stay_over_interval,
            deep_cleaning_interval=payload.deep_cleaning_interval,
            timezone=payload.timezone,
            actor_worker_id=actor.id,
        )
    return TenantSettingsResponse(**tenants.tenant_settings(tenant))


@app.put("/v1/workers/sync", response_model=WorkersSyncResponse, dependencies=[Depends(require_token)])
def put_workers_sync(payload: WorkersSyncRequest, session: Session = Depends(get_session)) -> WorkersSyncResponse:
    with service_errors():
        rows, deactivated_worker_ids = sync_workers(session, payload.tenant_id, payload.workers)
    return WorkersSyncResponse(
        workers=[WorkerResponse.model_validate(row) for row in rows],
        deactivated_worker_ids=deactivated_worker_ids,
    )


@app.post("/v1/property-types", response_model=PropertyTypeResponse, dependencies=[Depends(require_token)])
def post_property_type(
    payload: PropertyTypeCreateRequest,
    session: Session = Depends(get_session),
) -> PropertyTypeResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_SETTINGS)
        row = properties.create_property_type(
            session,
            tenant_id=payload.tenant_id,
            name=payload.name,
            actor_worker_id=actor.id,
        )
    return PropertyTypeResponse.model_validate(row)


@app.get("/v1/properties", response_model=list[PropertyResponse], dependencies=[Depends(require_token)])
def get_properties(
    tenant_id: int = Query(...),
    actor_user_id: str | None = Query(default=None),
    session: Session = Depends(get_session),
) -> list[PropertyResponse]:
    with service_errors():
        _tenant_member(session, tenant_id, actor_user_id)
    return [PropertyResponse.model_validate(row) for row in properties.list_properties(session, tenant_id)]


@app.post("/v1/properties", response_model=PropertyResponse, dependencies=[Depends(require_token)])
def post_property(payload: PropertyCreateRequest, session: Session = Depends(get_session)) -> PropertyResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_SETTINGS)
        row = properties.create_property(
            session,
            tenant_id=payload.tenant_id,
            property_type_id=payload.property_type_id,
            name=payload.name,
            actor_worker_id=actor.id,
        )
    return PropertyResponse.model_validate(row)


@app.get("/v1/rates", response_model=list[RateResponse], dependencies=[Depends(require_token)])
def get_rates(
    tenant_id: int = Query(...),
    actor_user_id: str | None = Query(default=None),
    session: Session = Depends(get_session),
) -> list[RateResponse]:
    with service_errors():
        _tenant_member(session, tenant_id, actor_user_id)
    return [RateResponse.model_validate(row) for row in rates.list_rates(session, tenant_id)]


@app.put("/v1/rates", response_model=RateResponse, dependencies=[Depends(require_token)])
def put_rate(payload: RateUpsertRequest, session: Session = Depends(get_session)) -> RateResponse:
    with service_errors():
        _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_RATES)
        row = rates.upsert_rate(
            session,
            tenant_id=payload.tenant_id,
            property_type_id=payload.property_type_id,
            task_type=payload.task_type,
            rate=payload.rate,
        )
    return RateResponse.model_validate(row)


@app.delete("/v1/rates/{rate_id}", response_model=OperationResponse, dependencies=[Depends(require_token)])
def delete_rate(
    rate_id: int,
    payload: ActorRequest,
    session: Session = Depends(get_session),
) -> OperationResponse:
    with service_errors():
        _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_RATES)
        rates.delete_rate(session, tenant_id=payload.tenant_id, rate_id=rate_id)
    return OperationResponse(ok=True, id=rate_id)


@app.post(
    "/v1/reservations",
    response_model=ReservationCreateResponse,
    dependencies=[Depends(require_token)],
)
def post_reservation(
    payload: ReservationCreateRequest,
    session: Session = Depends(get_session),
) -> ReservationCreateResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_RESERVATIONS)
        reservation, tasks = reservations.create_reservation(
            session,
            tenant_id=payload.tenant_id,
            property_id=payload.property_id,
            check_in_date=payload.check_in_date,
            check_out_date=payload.check_out_date,
            adults=payload.adults,
            children=payload.children,
            infants=payload.infants,
            notes=payload.notes,
            actor_worker_id=actor.id,
        )
    return ReservationCreateResponse(
        reservation=ReservationResponse.model_validate(reservation),
        tasks=[TaskResponse.model_validate(task) for task in tasks],
    )


@app.patch(
    "/v1/reservations/{reservation_id}",
    response_model=OperationResponse,
    dependencies=[Depends(require_token)],
)
def patch_reservation(
    reservation_id: int,
    payload: ReservationUpdateRequest,
    session: Session = Depends(get_session),
) -> OperationResponse:
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True, exclude={"tenant_id", "actor_user_id"}).items()
        if value is not None or key in NULLABLE_RESERVATION_FIELDS
    }
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_RESERVATIONS)
        outcome = reservations.update_reservation(
            session,
            tenant_id=payload.tenant_id,
            reservation_id=reservation_id,
            changes=changes,
            actor_worker_id=actor.id,
        )
    _ensure_ok(outcome)
    return OperationResponse(ok=True, id=reservation_id, notifications=outcome.notifications)


@app.post(
    "/v1/reservations/{reservation_id}/checkout",
    response_model=OperationResponse,
    dependencies=[Depends(require_token)],
)
def post_checkout_report(
    reservation_id: int,
    payload: StayReportRequest,
    session: Session = Depends(get_session),
) -> OperationResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.REPORT_STAYS)
        outcome = reservations.report_checkout(
            session,
            tenant_id=payload.tenant_id,
            reservation_id=reservation_id,
            at=payload.at,
            actor_worker_id=actor.id,
        )
    _ensure_ok(outcome)
    return OperationResponse(ok=True, id=reservation_id, notifications=outcome.notifications)


@app.delete(
    "/v1/reservations/{reservation_id}/checkout",
    response_model=OperationResponse,
    dependencies=[Depends(require_token)],
)
def delete_checkout_report(
    reservation_id: int,
    payload: ActorRequest,
    session: Session = Depends(get_session),
) -> OperationResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.REPORT_STAYS)
        outcome = reservations.cancel_checkout_report(
            session,
            tenant_id=payload.tenant_id,
            reservation_id=reservation_id,
            actor_worker_id=actor.id,
        )
    _ensure_ok(outcome)
    return OperationResponse(ok=True, id=reservation_id, notifications=outcome.notifications)


@app.post(
    "/v1/reservations/{reservation_id}/checkin",
    response_model=OperationResponse,
    dependencies=[Depends(require_token)],
)
def post_checkin_report(
    reservation_id: int,
    payload: StayReportRequest,
    session: Session = Depends(get_session),
) -> OperationResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.REPORT_STAYS)
        outcome = reservations.report_checkin(
            session,
            tenant_id=payload.tenant_id,
            reservation_id=reservation_id,
            at=payload.at,
            actor_worker_id=actor.id,
        )
    _ensure_ok(outcome)
    return OperationResponse(ok=True, id=reservation_id, notifications=outcome.notifications)


@app.delete(
    "/v1/reservations/{reservation_id}",
    response_model=OperationResponse,
    dependencies=[Depends(require_token)],
)
def delete_reservation(
    reservation_id: int,
    payload: ActorRequest,
    session: Session = Depends(get_session),
) -> OperationResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_RESERVATIONS)
        outcome = reservations.cancel_reservation(
            session,
            tenant_id=payload.tenant_id,
            reservation_id=reservation_id,
            actor_worker_id=actor.id,
        )
    _ensure_ok(outcome)
    return OperationResponse(ok=True, id=reservation_id)


@app.get("/v1/tasks", response_model=list[TaskResponse], dependencies=[Depends(require_token)])
def get_tasks(
    tenant_id: int = Query(...),
    actor_user_id: str | None = Query(default=None),
    property_id: int | None = Query(default=None),
    task_type: TaskType | None = Query(default=None),
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    scheduled_date: date | None = Query(default=None),
    assigned_to: int | None = Query(default=None),
    session: Session = Depends(get_session),
) -> list[TaskResponse]:
    with service_errors():
        _tenant_member(session, tenant_id, actor_user_id)
    rows = lifecycle.list_tasks(
        session,
        tenant_id,
        property_id=property_id,
        task_type=task_type,
        status=task_status,
        scheduled_date=scheduled_date,
        assigned_to=assigned_to,
    )
    return [TaskResponse.model_validate(row) for row in rows]


@app.get("/v1/tasks/available", response_model=list[TaskResponse], dependencies=[Depends(require_token)])
def get_available_tasks(
    tenant_id: int = Query(...),
    actor_user_id: str | None = Query(default=None),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
) -> list[TaskResponse]:
    with service_errors():
        _actor(session, tenant_id, actor_user_id, Capability.WORK_TASKS)
    rows = lifecycle.available_tasks(session, tenant_id, limit=limit)
    return [TaskResponse.model_validate(row) for row in rows]


@app.get("/v1/tasks/day", response_model=DayTasksResponse, dependencies=[Depends(require_token)])
def get_day_tasks(
    tenant_id: int = Query(...),
    actor_user_id: str | None = Query(default=None),
    day: date | None = Query(default=None),
    session: Session = Depends(get_session),
) -> DayTasksResponse:
    with service_errors():
        _tenant_member(session, tenant_id, actor_user_id)
        summary = lifecycle.tasks_for_day(session, tenants.get_tenant(session, tenant_id), day)
    return DayTasksResponse(
        day=summary["date"],
        total=summary["total"],
        tasks=[TaskResponse.model_validate(row) for row in summary["tasks"]],
        grouped={
            key: [TaskResponse.model_validate(row) for row in rows]
            for key, rows in summary["grouped"].items()
        },
    )


@app.post("/v1/tasks", response_model=TaskResponse, dependencies=[Depends(require_token)])
def post_task(payload: TaskCreateRequest, session: Session = Depends(get_session)) -> TaskResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_TASKS)
        task = lifecycle.create_manual_task(
            session,
            tenant_id=payload.tenant_id,
            property_id=payload.property_id,
            task_type=payload.task_type,
            scheduled_date=payload.scheduled_date,
            is_priority=payload.is_priority,
            notes=payload.notes,
            actor_worker_id=actor.id,
        )
    return TaskResponse.model_validate(task)


def _task_response(outcome: Outcome) -> TaskActionResponse:
    _ensure_ok(outcome)
    return TaskActionResponse(
        ok=True,
        id=outcome.record.id,
        task=TaskResponse.model_validate(outcome.record),
        notifications=outcome.notifications,
    )


@app.post("/v1/tasks/{task_id}/take", response_model=TaskActionResponse, dependencies=[Depends(require_token)])
def post_take_task(task_id: int, payload: ActorRequest, session: Session = Depends(get_session)) -> TaskActionResponse:
    with service_errors():
        worker = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.WORK_TASKS)
        outcome = lifecycle.take_task(session, tenant_id=payload.tenant_id, task_id=task_id, worker_id=worker.id)
    return _task_response(outcome)


@app.post("/v1/tasks/{task_id}/start", response_model=TaskActionResponse, dependencies=[Depends(require_token)])
def post_start_task(task_id: int, payload: ActorRequest, session: Session = Depends(get_session)) -> TaskActionResponse:
    with service_errors():
        worker = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.WORK_TASKS)
        outcome = lifecycle.start_task(session, tenant_id=payload.tenant_id, task_id=task_id, worker_id=worker.id)
    return _task_response(outcome)


@app.post(
    "/v1/tasks/{task_id}/complete",
    response_model=TaskActionResponse,
    dependencies=[Depends(require_token)],
)
def post_complete_task(
    task_id: int,
    payload: ActorRequest,
    session: Session = Depends(get_session),
) -> TaskActionResponse:
    with service_errors():
        worker = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.WORK_TASKS)
        outcome = lifecycle.complete_task(session, tenant_id=payload.tenant_id, task_id=task_id, worker_id=worker.id)
    return _task_response(outcome)


@app.post("/v1/tasks/{task_id}/cancel", response_model=TaskActionResponse, dependencies=[Depends(require_token)])
def post_cancel_task(task_id: int, payload: ActorRequest, session: Session = Depends(get_session)) -> TaskActionResponse:
    with service_errors():
        actor = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.MANAGE_TASKS)
        outcome = lifecycle.cancel_task(session, tenant_id=payload.tenant_id, task_id=task_id, actor_worker_id=actor.id)
    return _task_response(outcome)


def _settlement_response(outcome: Outcome) -> SettlementActionResponse:
    _ensure_ok(outcome)
    return SettlementActionResponse(
        ok=True,
        id=outcome.record.id,
        settlement=SettlementResponse.model_validate(outcome.record),
        notifications=outcome.notifications,
    )


@app.post("/v1/settlements", response_model=SettlementActionResponse, dependencies=[Depends(require_token)])
def post_settlement(
    payload: SettlementBuildRequest,
    session: Session = Depends(get_session),
) -> SettlementActionResponse:
    with service_errors():
        worker = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.BUILD_SETTLEMENTS)
        outcome = settlements.build_settlement(
            session,
            tenant_id=payload.tenant_id,
            worker_id=worker.id,
            settlement_date=payload.settlement_date,
        )
    return _settlement_response(outcome)


@app.get("/v1/settlements", response_model=list[SettlementResponse], dependencies=[Depends(require_token)])
def get_settlements(
    tenant_id: int = Query(...),
    actor_user_id: str | None = Query(default=None),
    user_id: int | None = Query(default=None),
    settlement_status: SettlementStatus | None = Query(default=None, alias="status"),
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    session: Session = Depends(get_session),
) -> list[SettlementResponse]:
    with service_errors():
        viewer = _tenant_member(session, tenant_id, actor_user_id)
    rows = settlements.list_settlements(
        session,
        tenant_id,
        viewer=viewer,
        user_id=user_id,
        status=settlement_status,
        from_date=from_date,
        to_date=to_date,
    )
    return [SettlementResponse.model_validate(row) for row in rows]


@app.get(
    "/v1/settlements/{settlement_id}",
    response_model=SettlementDetailResponse,
    dependencies=[Depends(require_token)],
)
def get_settlement_detail(
    settlement_id: int,
    tenant_id: int = Query(...),
    actor_user_id: str | None = Query(default=None),
    session: Session = Depends(get_session),
) -> SettlementDetailResponse:
    with service_errors():
        viewer = _tenant_member(session, tenant_id, actor_user_id)
        detail = settlements.settlement_detail(session, tenant_id, settlement_id, viewer=viewer)
    return SettlementDetailResponse.model_validate(detail, from_attributes=True)


@app.post(
    "/v1/settlements/{settlement_id}/approve",
    response_model=SettlementActionResponse,
    dependencies=[Depends(require_token)],
)
def post_approve_settlement(
    settlement_id: int,
    payload: SettlementReviewRequest,
    session: Session = Depends(get_session),
) -> SettlementActionResponse:
    with service_errors():
        reviewer = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.REVIEW_SETTLEMENTS)
        outcome = settlement_workflow.approve_settlement(
            session,
            tenant_id=payload.tenant_id,
            settlement_id=settlement_id,
            reviewer_id=reviewer.id,
            notes=payload.notes,
        )
    return _settlement_response(outcome)


@app.post(
    "/v1/settlements/{settlement_id}/reject",
    response_model=SettlementActionResponse,
    dependencies=[Depends(require_token)],
)
def post_reject_settlement(
    settlement_id: int,
    payload: SettlementRejectRequest,
    session: Session = Depends(get_session),
) -> SettlementActionResponse:
    with service_errors():
        reviewer = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.REVIEW_SETTLEMENTS)
        outcome = settlement_workflow.reject_settlement(
            session,
            tenant_id=payload.tenant_id,
            settlement_id=settlement_id,
            reviewer_id=reviewer.id,
            reason=payload.reason,
        )
    return _settlement_response(outcome)


@app.post(
    "/v1/settlements/{settlement_id}/payments",
    response_model=OperationResponse,
    dependencies=[Depends(require_token)],
)
def post_settlement_payment(
    settlement_id: int,
    payload: PaymentCreateRequest,
    session: Session = Depends(get_session),
) -> OperationResponse:
    with service_errors():
        payer = _actor(session, payload.tenant_id, payload.actor_user_id, Capability.RECORD_PAYMENTS)
        outcome = settlement_workflow.record_payment(
            session,
            tenant_id=payload.tenant_id,
            settlement_id=settlement_id,
            amount=payload.amount,
            paid_by=payer.id,
            payment_date=payload.payment_date,
            payment_method=payload.payment_method,
            reference_number=payload.reference_number,
            notes=payload.notes,
        )
    _ensure_ok(outcome)
    payment = PaymentResponse.model_validate(outcome.record)
    return OperationResponse(
        ok=True,
        id=payment.id,
        notifications=outcome.notifications,
        details={"payment": payment.model_dump(mode="json")},
    )


@app.get("/v1/activity", response_model=list[ActivityEventResponse], dependencies=[Depends(require_token)])
def get_activity(
    tenant_id: int = Query(...),
    actor_user_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
) -> list[ActivityEventResponse]:
    with service_errors():
        _tenant_member(session, tenant_id, actor_user_id)
    rows = list_events(session, tenant_id=tenant_id, limit=limit)
    return [ActivityEventResponse.model_validate(row) for row in rows]
