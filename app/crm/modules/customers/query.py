"""
Customer list query builder.

Translates list filters, a sort column/direction and page/limit into one count
statement and one data statement. All values are bound parameters; the sort
column is resolved through SORTABLE_CUSTOMER_COLUMNS, never interpolated.

The data statement also carries the denormalized display fields:
- staff_in_charge_name (join on users)
- latest contact per customer (row_number() window over contact_history,
  newest contact_date first, id breaking ties) with that contact's staff name
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, aliased

from app.crm.constants import CONTACT_STATUSES, CUSTOMER_TYPES, LEVELS, SORT_ORDERS, STAGES
from app.crm.errors import InvalidArgument
from app.crm.models import User
from app.crm.modules.customer_history.models import ContactHistory
from app.crm.modules.customers.models import Customer
from app.crm.modules.customers.utils import contact_to_dict, customer_to_dict
from app.crm.utils import normalize_text, parse_int

SORTABLE_CUSTOMER_COLUMNS = {
    "id": Customer.id,
    "name": Customer.name,
    "company_name": Customer.company_name,
    "email": Customer.email,
    "phone": Customer.phone,
    "customer_type": Customer.customer_type,
    "province_city": Customer.province_city,
    "customer_source": Customer.customer_source,
    "staff_in_charge_id": Customer.staff_in_charge_id,
    "stage": Customer.stage,
    "level": Customer.level,
    "contact_status": Customer.contact_status,
    "appointment_date": Customer.appointment_date,
    "created_at": Customer.created_at,
    "updated_at": Customer.updated_at,
}

DEFAULT_SORT_BY = "updated_at"
DEFAULT_SORT_ORDER = "desc"


@dataclass(frozen=True)
class CustomerListQuery:
    staff_id: int | None = None
    search: str | None = None
    customer_type: str | None = None
    stage: str | None = None
    level: str | None = None
    contact_status: str | None = None
    sort_by: str = DEFAULT_SORT_BY
    sort_order: str = DEFAULT_SORT_ORDER
    page: int = 1
    limit: int = 50


def _optional_choice(args: Mapping[str, Any], key: str, choices: tuple[str, ...]) -> str | None:
    v = normalize_text(args.get(key))
    if v is None:
        return None
    if v not in choices:
        raise InvalidArgument(f"{key} must be one of: {', '.join(choices)}")
    return v


def parse_list_query(args: Mapping[str, Any], *, default_limit: int = 50, max_limit: int = 500) -> CustomerListQuery:
    sort_by = normalize_text(args.get("sort_by")) or DEFAULT_SORT_BY
    if sort_by not in SORTABLE_CUSTOMER_COLUMNS:
        raise InvalidArgument(f"sort_by must be one of: {', '.join(sorted(SORTABLE_CUSTOMER_COLUMNS))}")
    sort_order = (normalize_text(args.get("sort_order")) or DEFAULT_SORT_ORDER).lower()
    if sort_order not in SORT_ORDERS:
        raise InvalidArgument("sort_order must be 'asc' or 'desc'")

    page = parse_int(args.get("page"), field="page")
    page = 1 if page is None else page
    if page < 1:
        raise InvalidArgument("page must be >= 1")
    limit = parse_int(args.get("limit"), field="limit")
    limit = default_limit if limit is None else limit
    if limit < 1:
        raise InvalidArgument("limit must be >= 1")
    limit = min(limit, max_limit)

    return CustomerListQuery(
        staff_id=parse_int(args.get("staff_id"), field="staff_id"),
        search=normalize_text(args.get("search")),
        customer_type=_optional_choice(args, "customer_type", CUSTOMER_TYPES),
        stage=_optional_choice(args, "stage", STAGES),
        level=_optional_choice(args, "level", LEVELS),
        contact_status=_optional_choice(args, "contact_status", CONTACT_STATUSES),
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


def filter_conditions(q: CustomerListQuery) -> list:
    conds = [Customer.is_tracking.is_(True)]
    if q.staff_id is not None:
        conds.append(Customer.staff_in_charge_id == q.staff_id)
    if q.search:
        conds.append(
            or_(
                Customer.name.icontains(q.search, autoescape=True),
                Customer.company_name.icontains(q.search, autoescape=True),
                Customer.email.icontains(q.search, autoescape=True),
                Customer.phone.icontains(q.search, autoescape=True),
            )
        )
    if q.customer_type:
        conds.append(Customer.customer_type == q.customer_type)
    if q.stage:
        conds.append(Customer.stage == q.stage)
    if q.level:
        conds.append(Customer.level == q.level)
    if q.contact_status:
        conds.append(Customer.contact_status == q.contact_status)
    return conds


def latest_contact_subquery():
    ranked = select(
        ContactHistory.id,
        ContactHistory.customer_id,
        ContactHistory.contact_date,
        ContactHistory.contact_type,
        ContactHistory.notes,
        ContactHistory.staff_id,
        ContactHistory.created_at,
        func.row_number()
        .over(
            partition_by=ContactHistory.customer_id,
            order_by=(ContactHistory.contact_date.desc(), ContactHistory.id.desc()),
        )
        .label("rn"),
    ).subquery("ranked_contacts")
    return select(ranked).where(ranked.c.rn == 1).subquery("latest_contact")


def customer_select(conditions: list):
    """SELECT customers + staff name + latest contact columns, filtered by conditions."""
    staff = aliased(User, name="staff")
    contact_staff = aliased(User, name="contact_staff")
    lc = latest_contact_subquery()
    return (
        select(
            Customer,
            staff.name.label("staff_in_charge_name"),
            lc.c.id.label("latest_contact_id"),
            lc.c.contact_date.label("latest_contact_date"),
            lc.c.contact_type.label("latest_contact_type"),
            lc.c.notes.label("latest_contact_notes"),
            lc.c.staff_id.label("latest_contact_staff_id"),
            lc.c.created_at.label("latest_contact_created_at"),
            contact_staff.name.label("latest_contact_staff_name"),
        )
        .outerjoin(staff, Customer.staff_in_charge_id == staff.id)
        .outerjoin(lc, lc.c.customer_id == Customer.id)
        .outerjoin(contact_staff, lc.c.staff_id == contact_staff.id)
        .where(*conditions)
    )


def row_to_dict(row) -> dict[str, Any]:
    c = row.Customer
    latest = None
    if row.latest_contact_id is not None:
        latest = contact_to_dict(
            id=row.latest_contact_id,
            customer_id=c.id,
            contact_date=row.latest_contact_date,
            contact_type=row.latest_contact_type,
            notes=row.latest_contact_notes,
            staff_id=row.latest_contact_staff_id,
            staff_name=row.latest_contact_staff_name,
            created_at=row.latest_contact_created_at,
        )
    return customer_to_dict(c, staff_in_charge_name=row.staff_in_charge_name, latest_contact=latest)


def list_customers(s: Session, q: CustomerListQuery) -> dict[str, Any]:
    conds = filter_conditions(q)

    total = int(s.scalar(select(func.count()).select_from(Customer).where(*conds)) or 0)

    col = SORTABLE_CUSTOMER_COLUMNS[q.sort_by]
    if q.sort_order == "asc":
        order_by = (col.asc(), Customer.id.asc())
    else:
        order_by = (col.desc(), Customer.id.desc())
    offset = (q.page - 1) * q.limit
    rows = s.execute(customer_select(conds).order_by(*order_by).limit(q.limit).offset(offset)).all()

    return {
        "customers": [row_to_dict(r) for r in rows],
        "total": total,
        "page": q.page,
        "limit": q.limit,
        "total_pages": math.ceil(total / q.limit),
    }
