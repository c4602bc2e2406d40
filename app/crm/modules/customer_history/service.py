"""
Append-only per-customer history logs: contacts, purchases, payments.

Entries are written only against tracked customers and are never updated or
deleted. Listing a missing or untracked customer's history is a NotFound, same
as getting the customer.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session, aliased

from app.crm.audit import record_event
from app.crm.errors import InvalidArgument
from app.crm.models import User
from app.crm.modules.customer_history.models import ContactHistory, PaymentHistory, PurchaseHistory
from app.crm.modules.customers.service import get_tracked_customer
from app.crm.modules.customers.utils import contact_to_dict
from app.crm.utils import (
    isoformat,
    normalize_text,
    parse_amount,
    parse_date,
    parse_datetime,
    parse_int,
    utcnow,
)


def _customer_id(payload: dict[str, Any]) -> int:
    cid = parse_int(payload.get("customer_id"), field="customer_id")
    if cid is None:
        raise InvalidArgument("customer_id is required.")
    return cid


def _required(value: Any, *, field: str):
    if value is None:
        raise InvalidArgument(f"{field} is required.")
    return value


def purchase_to_dict(p: PurchaseHistory) -> dict[str, Any]:
    return {
        "id": p.id,
        "customer_id": p.customer_id,
        "product": p.product,
        "amount": float(p.amount),
        "purchase_date": isoformat(p.purchase_date),
        "notes": p.notes,
        "created_at": isoformat(p.created_at),
    }


def payment_to_dict(p: PaymentHistory) -> dict[str, Any]:
    return {
        "id": p.id,
        "customer_id": p.customer_id,
        "amount": float(p.amount),
        "payment_date": isoformat(p.payment_date),
        "payment_method": p.payment_method,
        "notes": p.notes,
        "created_at": isoformat(p.created_at),
    }


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

def create_contact(s: Session, payload: dict[str, Any], *, user: User) -> dict[str, Any]:
    customer = get_tracked_customer(s, _customer_id(payload))
    contact_type = _required(normalize_text(payload.get("contact_type")), field="contact_type")

    staff = None
    staff_id = parse_int(payload.get("staff_id"), field="staff_id")
    if staff_id is not None:
        staff = s.get(User, staff_id)
        if not staff:
            raise InvalidArgument("staff_id does not reference an existing user.")

    ch = ContactHistory(
        customer_id=customer.id,
        contact_type=contact_type,
        notes=normalize_text(payload.get("notes")),
        staff_id=staff.id if staff else None,
        contact_date=parse_datetime(payload.get("contact_date"), field="contact_date") or utcnow(),
        created_at=utcnow(),
    )
    s.add(ch)
    s.flush()
    record_event(
        s,
        actor=user,
        action="contact_history.create",
        entity_type="ContactHistory",
        entity_id=str(ch.id),
        metadata={"customer_id": customer.id, "contact_type": contact_type},
    )
    return contact_to_dict(
        id=ch.id,
        customer_id=ch.customer_id,
        contact_date=ch.contact_date,
        contact_type=ch.contact_type,
        notes=ch.notes,
        staff_id=ch.staff_id,
        staff_name=staff.name if staff else None,
        created_at=ch.created_at,
    )


def list_contact_history(s: Session, customer_id: int) -> list[dict[str, Any]]:
    get_tracked_customer(s, customer_id)
    staff = aliased(User, name="staff")
    rows = (
        s.query(ContactHistory, staff.name.label("staff_name"))
        .outerjoin(staff, ContactHistory.staff_id == staff.id)
        .filter(ContactHistory.customer_id == customer_id)
        .order_by(ContactHistory.contact_date.desc(), ContactHistory.id.desc())
        .all()
    )
    return [
        contact_to_dict(
            id=ch.id,
            customer_id=ch.customer_id,
            contact_date=ch.contact_date,
            contact_type=ch.contact_type,
            notes=ch.notes,
            staff_id=ch.staff_id,
            staff_name=staff_name,
            created_at=ch.created_at,
        )
        for ch, staff_name in rows
    ]


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------

def create_purchase(s: Session, payload: dict[str, Any], *, user: User) -> PurchaseHistory:
    customer = get_tracked_customer(s, _customer_id(payload))
    p = PurchaseHistory(
        customer_id=customer.id,
        product=_required(normalize_text(payload.get("product")), field="product"),
        amount=parse_amount(payload.get("amount")),
        purchase_date=_required(parse_date(payload.get("purchase_date"), field="purchase_date"), field="purchase_date"),
        notes=normalize_text(payload.get("notes")),
        created_at=utcnow(),
    )
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=user,
        action="purchase_history.create",
        entity_type="PurchaseHistory",
        entity_id=str(p.id),
        metadata={"customer_id": customer.id, "product": p.product, "amount": str(p.amount)},
    )
    return p


def list_purchase_history(s: Session, customer_id: int) -> list[PurchaseHistory]:
    get_tracked_customer(s, customer_id)
    return (
        s.query(PurchaseHistory)
        .filter(PurchaseHistory.customer_id == customer_id)
        .order_by(PurchaseHistory.purchase_date.desc(), PurchaseHistory.id.desc())
        .all()
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

def create_payment(s: Session, payload: dict[str, Any], *, user: User) -> PaymentHistory:
    customer = get_tracked_customer(s, _customer_id(payload))
    p = PaymentHistory(
        customer_id=customer.id,
        amount=parse_amount(payload.get("amount")),
        payment_date=_required(parse_date(payload.get("payment_date"), field="payment_date"), field="payment_date"),
        payment_method=normalize_text(payload.get("payment_method")),
        notes=normalize_text(payload.get("notes")),
        created_at=utcnow(),
    )
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=user,
        action="payment_history.create",
        entity_type="PaymentHistory",
        entity_id=str(p.id),
        metadata={"customer_id": customer.id, "amount": str(p.amount)},
    )
    return p


def list_payment_history(s: Session, customer_id: int) -> list[PaymentHistory]:
    get_tracked_customer(s, customer_id)
    return (
        s.query(PaymentHistory)
        .filter(PaymentHistory.customer_id == customer_id)
        .order_by(PaymentHistory.payment_date.desc(), PaymentHistory.id.desc())
        .all()
    )
