"""Pydantic schemas for API contracts."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .models import ReservationStatus, SettlementStatus, TaskStatus, TaskType


class WorkerSyncItem(BaseModel):
    display_name: str = Field(min_length=1, max_length=120)
    external_user_id: str = Field(min_length=1, max_length=128)
    roles: list[str] = Field(default_factory=list)
    notify_target: str | None = None
    active: bool = True


class WorkersSyncRequest(BaseModel):
    tenant_id: int
    workers: list[WorkerSyncItem]


class WorkerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    display_name: str
    external_user_id: str | None
    roles: list[str]
    notify_target: str | None
    active: bool


class WorkersSyncResponse(BaseModel):
    workers: list[WorkerResponse]
    deactivated_worker_ids: list[int] = Field(default_factory=list)


class NotificationItem(BaseModel):
    event: str
    tenant_id: int
    worker_id: int | None
    notify_target: str | None
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class OperationResponse(BaseModel):
    ok: bool = True
    id: int | None = None
    notifications: list[NotificationItem] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class ActorRequest(BaseModel):
    tenant_id: int
    actor_user_id: str | None = None


class TenantCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    stay_over_interval: int | None = Field(default=None, ge=1)
    deep_cleaning_interval: int | None = Field(default=None, ge=1)
    timezone: str | None = None


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    stay_over_interval: int
    deep_cleaning_interval: int
    timezone: str


class TenantSettingsResponse(BaseModel):
    stay_over_interval: int
    deep_cleaning_interval: int
    timezone: str


class TenantSettingsUpdateRequest(BaseModel):
    actor_user_id: str | None = None
    stay_over_interval: int | None = Field(default=None, ge=1)
    deep_cleaning_interval: int | None = Field(default=None, ge=1)
    timezone: str | None = None


class RateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    property_type_id: int
    task_type: TaskType
    rate: Decimal


class RateUpsertRequest(ActorRequest):
    property_type_id: int
    task_type: TaskType
    rate: Decimal = Field(ge=0)


class PropertyTypeCreateRequest(ActorRequest):
    name: str = Field(min_length=1, max_length=120)


class PropertyTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class PropertyCreateRequest(ActorRequest):
    property_type_id: int
    name: str = Field(min_length=1, max_length=120)


class PropertyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    property_type_id: int
    name: str
    cleaning_count: int


class ReservationCreateRequest(ActorRequest):
    property_id: int
    check_in_date: date
    check_out_date: date
    adults: int = Field(default=1, ge=0)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)
    notes: str | None = None


class ReservationUpdateRequest(ActorRequest):
    check_in_date: date | None = None
    check_out_date: date | None = None
    adults: int | None = Field(default=None, ge=0)
    children: int | None = Field(default=None, ge=0)
    infants: int | None = Field(default=None, ge=0)
    notes: str | None = None
    status: ReservationStatus | None = None
    actual_checkin_time: datetime | None = None
    actual_checkout_time: datetime | None = None


class StayReportRequest(ActorRequest):
    at: datetime | None = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    property_id: int
    reservation_id: int | None
    task_type: TaskType
    scheduled_date: date
    status: TaskStatus
    is_priority: bool
    notes: str | None
    assigned_to: int | None
    assigned_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    completed_by: int | None
    checkout_reported_at: datetime | None


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    property_id: int
    check_in_date: date
    check_out_date: date
    status: ReservationStatus
    adults: int
    children: int
    infants: int
    notes: str | None
    actual_checkin_time: datetime | None
    actual_checkout_time: datetime | None


class ReservationCreateResponse(BaseModel):
    reservation: ReservationResponse
    tasks: list[TaskResponse]


class TaskCreateRequest(ActorRequest):
    property_id: int
    task_type: TaskType
    scheduled_date: date
    is_priority: bool = False
    notes: str | None = None


class TaskActionResponse(OperationResponse):
    task: TaskResponse | None = None


class DayTasksResponse(BaseModel):
    day: date
    total: int
    tasks: list[TaskResponse]
    grouped: dict[str, list[TaskResponse]]


class SettlementBuildRequest(ActorRequest):
    settlement_date: date | None = None


class SettlementReviewRequest(ActorRequest):
    notes: str | None = None


class SettlementRejectRequest(ActorRequest):
    reason: str


class PaymentCreateRequest(ActorRequest):
    amount: Decimal
    payment_date: date | None = None
    payment_method: str | None = Field(default=None, max_length=64)
    reference_number: str | None = Field(default=None, max_length=128)
    notes: str | None = None


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    settlement_date: date
    total_tasks: int
    total_amount: Decimal
    status: SettlementStatus
    submitted_at: datetime | None
    reviewed_by: int | None
    reviewed_at: datetime | None
    review_notes: str | None


class SettlementItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    cleaning_task_id: int
    property_name: str | None
    property_type_name: str | None
    task_type: TaskType
    rate: Decimal
    started_at: datetime | None
    completed_at: datetime | None
    work_duration_minutes: int | None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    payment_date: date
    payment_method: str | None
    reference_number: str | None
    notes: str | None
    paid_by: int | None


class SettlementDetailResponse(BaseModel):
    settlement: SettlementResponse
    items: list[SettlementItemResponse]
    payments: list[PaymentResponse]
    total_paid: Decimal
    pending_amount: Decimal


class SettlementActionResponse(OperationResponse):
    settlement: SettlementResponse | None = None


class ActivityEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    domain: str
    action: str
    actor_worker_id: int | None
    payload_json: dict[str, Any]
    created_at: datetime
