from __future__ import annotations

from typing import Any

from app.crm.constants import AVAILABLE_PRODUCTS
from app.crm.errors import InvalidArgument
from app.crm.utils import isoformat


def coerce_products(raw: Any) -> list[str]:
    """Validate a products list against the catalog. Duplicates collapse, first occurrence wins."""
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise InvalidArgument("products must be a list of product names.")
    out: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise InvalidArgument("products must be a list of product names.")
        name = item.strip()
        if name not in AVAILABLE_PRODUCTS:
            raise InvalidArgument(f"Unknown product {name!r}. Must be one of: {', '.join(AVAILABLE_PRODUCTS)}")
        if name not in out:
            out.append(name)
    return out


def contact_to_dict(
    *,
    id: int,
    customer_id: int,
    contact_date: Any,
    contact_type: str,
    notes: str | None,
    staff_id: int | None,
    staff_name: str | None,
    created_at: Any,
) -> dict[str, Any]:
    return {
        "id": id,
        "customer_id": customer_id,
        "contact_date": isoformat(contact_date),
        "contact_type": contact_type,
        "notes": notes,
        "staff_id": staff_id,
        "staff_name": staff_name,
        "created_at": isoformat(created_at),
    }


def customer_to_dict(c, *, staff_in_charge_name: str | None, latest_contact: dict | None) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "phone": c.phone,
        "email": c.email,
        "address": c.address,
        "company_name": c.company_name,
        "customer_type": c.customer_type,
        "business_type": c.business_type,
        "products": c.products,
        "scale": c.scale,
        "province_city": c.province_city,
        "customer_source": c.customer_source,
        "staff_in_charge_id": c.staff_in_charge_id,
        "staff_in_charge_name": staff_in_charge_name,
        "stage": c.stage,
        "level": c.level,
        "contact_status": c.contact_status,
        "customer_feedback": c.customer_feedback,
        "notes": c.notes,
        "appointment_date": isoformat(c.appointment_date),
        "appointment_reminder": c.appointment_reminder,
        "is_tracking": c.is_tracking,
        "created_at": isoformat(c.created_at),
        "updated_at": isoformat(c.updated_at),
        "latest_contact": latest_contact,
    }
