from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.crm.audit import record_event
from app.crm.constants import CONTACT_STATUSES, CUSTOMER_TYPES, LEVELS, STAGES
from app.crm.errors import InvalidArgument, NotFound
from app.crm.models import User
from app.crm.modules.customers.models import Customer
from app.crm.modules.customers.query import customer_select, row_to_dict
from app.crm.modules.customers.utils import coerce_products
from app.crm.partial_update import FieldSpec, build_partial_update, field_map
from app.crm.utils import (
    in_db_int_range,
    normalize_text,
    parse_bool,
    parse_datetime,
    parse_int,
    require_choice,
    utcnow,
)

_TEXT_FIELDS = (
    "phone",
    "email",
    "address",
    "company_name",
    "business_type",
    "scale",
    "province_city",
    "customer_source",
    "customer_feedback",
    "notes",
    "appointment_reminder",
)

_AUDITED_FIELDS = ("name", *_TEXT_FIELDS, "customer_type", "stage", "level", "contact_status",
                   "staff_in_charge_id", "appointment_date", "is_tracking", "products")


def get_tracked_customer(s: Session, customer_id: int) -> Customer:
    """Tracked customer by id; untracked rows are treated as missing."""
    if not in_db_int_range(customer_id):
        raise NotFound("Customer not found")
    c = s.query(Customer).filter(Customer.id == customer_id, Customer.is_tracking.is_(True)).one_or_none()
    if not c:
        raise NotFound("Customer not found")
    return c


def _staff_user(s: Session, raw: Any, *, field: str) -> User:
    staff_id = parse_int(raw, field=field)
    staff = s.get(User, staff_id) if staff_id is not None else None
    if not staff:
        raise InvalidArgument(f"{field} does not reference an existing user.")
    return staff


def _required_text(raw: Any, *, field: str) -> str:
    v = normalize_text(raw)
    if not v:
        raise InvalidArgument(f"{field} is required.")
    return v


def customer_update_fields(s: Session) -> dict[str, FieldSpec]:
    specs = [
        FieldSpec("name", lambda v: _required_text(v, field="name")),
        *[FieldSpec(name, normalize_text, nullable=True) for name in _TEXT_FIELDS],
        FieldSpec("customer_type", lambda v: require_choice(v, CUSTOMER_TYPES, field="customer_type")),
        FieldSpec("stage", lambda v: require_choice(v, STAGES, field="stage")),
        FieldSpec("level", lambda v: require_choice(v, LEVELS, field="level")),
        FieldSpec("contact_status", lambda v: require_choice(v, CONTACT_STATUSES, field="contact_status")),
        FieldSpec("products", coerce_products),
        FieldSpec(
            "staff_in_charge_id",
            lambda v: _staff_user(s, v, field="staff_in_charge_id").id,
            nullable=True,
        ),
        FieldSpec("appointment_date", lambda v: parse_datetime(v, field="appointment_date"), nullable=True),
        FieldSpec("is_tracking", lambda v: parse_bool(v, field="is_tracking")),
    ]
    return field_map(specs)


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str


def validate_customer_payload(payload: dict[str, Any]) -> list[ValidationError]:
    errs: list[ValidationError] = []
    if not normalize_text(payload.get("name")):
        errs.append(ValidationError("name", "Name is required."))
    for field, choices in (
        ("customer_type", CUSTOMER_TYPES),
        ("stage", STAGES),
        ("level", LEVELS),
        ("contact_status", CONTACT_STATUSES),
    ):
        v = normalize_text(payload.get(field))
        if not v:
            errs.append(ValidationError(field, f"{field} is required."))
        elif v not in choices:
            errs.append(ValidationError(field, f"must be one of: {', '.join(choices)}"))
    return errs


def _snapshot(c: Customer) -> dict[str, Any]:
    return {f: (c.products if f == "products" else getattr(c, f)) for f in _AUDITED_FIELDS}


def customer_detail(s: Session, customer_id: int, *, tracked_only: bool = True) -> dict[str, Any]:
    """
    Customer with staff_in_charge_name and latest_contact.
    tracked_only=False is for echoing a row that an update just stopped tracking.
    """
    if not in_db_int_range(customer_id):
        raise NotFound("Customer not found")
    conds = [Customer.id == customer_id]
    if tracked_only:
        conds.append(Customer.is_tracking.is_(True))
    row = s.execute(customer_select(conds)).one_or_none()
    if row is None:
        raise NotFound("Customer not found")
    return row_to_dict(row)


def create_customer(s: Session, payload: dict[str, Any], *, user: User) -> Customer:
    errs = validate_customer_payload(payload)
    if errs:
        raise InvalidArgument("; ".join(f"{e.field}: {e.message}" for e in errs))

    staff = None
    if payload.get("staff_in_charge_id") not in (None, ""):
        staff = _staff_user(s, payload.get("staff_in_charge_id"), field="staff_in_charge_id")

    now = utcnow()
    c = Customer(
        name=normalize_text(payload.get("name")),
        customer_type=normalize_text(payload.get("customer_type")),
        stage=normalize_text(payload.get("stage")),
        level=normalize_text(payload.get("level")),
        contact_status=normalize_text(payload.get("contact_status")),
        appointment_date=parse_datetime(payload.get("appointment_date"), field="appointment_date"),
        staff_in_charge=staff,
        is_tracking=True,
        created_at=now,
        updated_at=now,
    )
    for field in _TEXT_FIELDS:
        setattr(c, field, normalize_text(payload.get(field)))
    c.set_products(coerce_products(payload.get("products")))
    s.add(c)
    s.flush()
    record_event(
        s,
        actor=user,
        action="customer.create",
        entity_type="Customer",
        entity_id=str(c.id),
        metadata={"name": c.name, "customer_type": c.customer_type, "staff_in_charge_id": c.staff_in_charge_id},
    )
    return c


def update_customer(s: Session, customer_id: int, payload: dict[str, Any], *, user: User) -> Customer:
    c = get_tracked_customer(s, customer_id)
    changes = build_partial_update(payload, customer_update_fields(s))
    before = _snapshot(c)

    for key, value in changes.items():
        if key == "products":
            c.set_products(value)
        elif key == "staff_in_charge_id":
            c.staff_in_charge = s.get(User, value) if value is not None else None
            c.staff_in_charge_id = value
        else:
            setattr(c, key, value)
    c.updated_at = utcnow()
    s.flush()

    after = _snapshot(c)
    fields_changed = [k for k in before if before[k] != after[k]]
    record_event(
        s,
        actor=user,
        action="customer.update",
        entity_type="Customer",
        entity_id=str(c.id),
        metadata={
            "before": {k: before[k] for k in fields_changed},
            "after": {k: after[k] for k in fields_changed},
            "fields_changed": fields_changed,
        },
    )
    return c


def stop_tracking(s: Session, customer_id: int, *, user: User) -> Customer:
    c = get_tracked_customer(s, customer_id)
    c.is_tracking = False
    c.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="customer.stop_tracking",
        entity_type="Customer",
        entity_id=str(c.id),
    )
    return c
