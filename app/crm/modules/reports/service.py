from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, aliased

from app.crm.constants import EXPORT_HEADERS, UNASSIGNED_STAFF_NAME
from app.crm.errors import InvalidArgument
from app.crm.models import User
from app.crm.modules.customer_history.models import ContactHistory
from app.crm.modules.customers.models import Customer, CustomerProduct
from app.crm.utils import isoformat, parse_date, utcnow


@dataclass(frozen=True)
class ReportWindow:
    start_date: date
    end_date: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start_date, datetime.min.time())

    @property
    def end_before(self) -> datetime:
        # end_date is inclusive of the whole day
        return datetime.combine(self.end_date + timedelta(days=1), datetime.min.time())


def report_window(start_raw: Any, end_raw: Any, *, default_days: int = 30) -> ReportWindow:
    end = parse_date(end_raw, field="end_date") or utcnow().date()
    start = parse_date(start_raw, field="start_date") or (end - timedelta(days=default_days))
    if start > end:
        raise InvalidArgument("start_date must be on or before end_date.")
    return ReportWindow(start_date=start, end_date=end)


def staff_customer_stats(s: Session) -> list[dict[str, Any]]:
    staff_id = func.coalesce(Customer.staff_in_charge_id, 0).label("staff_id")
    staff_name = func.coalesce(User.name, UNASSIGNED_STAFF_NAME).label("staff_name")
    customer_count = func.count(Customer.id).label("customer_count")
    rows = s.execute(
        select(staff_id, staff_name, customer_count)
        .select_from(Customer)
        .outerjoin(User, Customer.staff_in_charge_id == User.id)
        .where(Customer.is_tracking.is_(True))
        .group_by(Customer.staff_in_charge_id, User.name)
        .order_by(customer_count.desc(), staff_id.asc())
    ).all()
    return [
        {"staff_id": int(r.staff_id), "staff_name": r.staff_name, "customer_count": int(r.customer_count)}
        for r in rows
    ]


def interaction_stats(s: Session, window: ReportWindow) -> list[dict[str, Any]]:
    day = func.date(ContactHistory.contact_date).label("date")
    rows = s.execute(
        select(day, func.count(ContactHistory.id).label("interaction_count"))
        .where(
            ContactHistory.contact_date >= window.start_at,
            ContactHistory.contact_date < window.end_before,
        )
        .group_by(day)
        .order_by(day.asc())
    ).all()
    # SQLite hands back DATE() as text, Postgres as a date
    return [{"date": isoformat(r.date), "interaction_count": int(r.interaction_count)} for r in rows]


def customer_type_stats(s: Session) -> list[dict[str, Any]]:
    n = func.count(Customer.id).label("count")
    rows = s.execute(
        select(Customer.customer_type, n)
        .where(Customer.is_tracking.is_(True))
        .group_by(Customer.customer_type)
        .order_by(n.desc(), Customer.customer_type.asc())
    ).all()
    return [{"customer_type": r.customer_type, "count": int(r.count)} for r in rows]


def product_type_stats(s: Session) -> list[dict[str, Any]]:
    n = func.count(CustomerProduct.id).label("count")
    rows = s.execute(
        select(CustomerProduct.product, n)
        .join(Customer, CustomerProduct.customer_id == Customer.id)
        .where(Customer.is_tracking.is_(True))
        .group_by(CustomerProduct.product)
        .order_by(n.desc(), CustomerProduct.product.asc())
    ).all()
    return [{"product": r.product, "count": int(r.count)} for r in rows]


def generate_reports(s: Session, window: ReportWindow) -> dict[str, Any]:
    """
    Dashboard aggregates. Only interaction_stats is limited to the window;
    the other three describe the current tracked book of customers.
    """
    return {
        "start_date": window.start_date.isoformat(),
        "end_date": window.end_date.isoformat(),
        "staff_customer_stats": staff_customer_stats(s),
        "interaction_stats": interaction_stats(s, window),
        "customer_type_stats": customer_type_stats(s),
        "product_type_stats": product_type_stats(s),
    }


def export_customers_csv(s: Session) -> tuple[str, int]:
    """All tracked customers, newest first, as CSV text. Returns (csv_text, row_count)."""
    staff = aliased(User, name="staff")
    rows = s.execute(
        select(Customer, staff.name.label("staff_in_charge_name"))
        .outerjoin(staff, Customer.staff_in_charge_id == staff.id)
        .where(Customer.is_tracking.is_(True))
        .order_by(Customer.created_at.desc(), Customer.id.desc())
    ).all()

    out = io.StringIO()
    w = csv.writer(out, lineterminator="\n")
    w.writerow(EXPORT_HEADERS)
    for c, staff_name in rows:
        w.writerow(
            [
                c.id,
                c.name,
                c.phone or "",
                c.email or "",
                c.address or "",
                c.company_name or "",
                c.customer_type,
                c.business_type or "",
                "; ".join(c.products),
                c.scale or "",
                c.province_city or "",
                c.customer_source or "",
                staff_name or "",
                c.stage,
                c.level,
                c.contact_status,
                c.customer_feedback or "",
                c.notes or "",
                isoformat(c.appointment_date) or "",
                c.appointment_reminder or "",
                isoformat(c.created_at),
                isoformat(c.updated_at),
            ]
        )
    return out.getvalue(), len(rows)
