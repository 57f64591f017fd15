"""Property catalogue: property types and rental units."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Property, PropertyType
from .activity import log_event
from .tenants import get_tenant


def create_property_type(
    session: Session,
    *,
    tenant_id: int,
    name: str,
    actor_worker_id: int | None = None,
) -> PropertyType:
    get_tenant(session, tenant_id)
    cleaned = name.strip()
    if not cleaned:
        raise ValueError("Property type name cannot be empty")

    property_type = PropertyType(tenant_id=tenant_id, name=cleaned)
    session.add(property_type)
    session.flush()
    log_event(
        session,
        tenant_id=tenant_id,
        action="property_type_created",
        actor_worker_id=actor_worker_id,
        payload={"property_type_id": property_type.id, "name": cleaned},
    )
    session.commit()
    return property_type


def create_property(
    session: Session,
    *,
    tenant_id: int,
    property_type_id: int,
    name: str,
    actor_worker_id: int | None = None,
) -> Property:
    property_type = session.get(PropertyType, property_type_id)
    if property_type is None or property_type.tenant_id != tenant_id:
        raise LookupError("Property type not found")
    cleaned = name.strip()
    if not cleaned:
        raise ValueError("Property name cannot be empty")

    rental_property = Property(
        tenant_id=tenant_id,
        property_type_id=property_type_id,
        name=cleaned,
        cleaning_count=0,
    )
    session.add(rental_property)
    session.flush()
    log_event(
        session,
        tenant_id=tenant_id,
        action="property_created",
        actor_worker_id=actor_worker_id,
        payload={"property_id": rental_property.id, "property_type_id": property_type_id},
    )
    session.commit()
    return rental_property


def list_properties(session: Session, tenant_id: int) -> list[Property]:
    return session.execute(
        select(Property).where(Property.tenant_id == tenant_id).order_by(Property.name.asc())
    ).scalars().all()
