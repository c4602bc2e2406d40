from datetime import datetime

import pytest

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.errors import InvalidArgument
from app.crm.models import Base, User
from app.crm.modules.customer_history.models import ContactHistory
from app.crm.modules.customers.models import Customer
from app.crm.modules.customers.query import CustomerListQuery, list_customers, parse_list_query
from app.crm.security import hash_password


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        u = User(email="sam@example.com", username="sam", name="Sam", role="sales",
                 password_hash=hash_password("pw"), is_active=True)
        s.add(u)
        s.flush()
        for i in range(25):
            s.add(
                Customer(
                    name=f"Customer {i:02d}",
                    company_name="Widgets Ltd" if i % 5 == 0 else None,
                    customer_type="service" if i % 2 else "corporate",
                    stage="care",
                    level="cold",
                    contact_status="not_called",
                    staff_in_charge_id=u.id if i < 10 else None,
                    is_tracking=i != 24,
                    updated_at=datetime(2026, 1, 1 + i),
                )
            )
    return app


def test_parse_list_query_defaults():
    q = parse_list_query({})
    assert q == CustomerListQuery()
    assert q.sort_by == "updated_at"
    assert q.sort_order == "desc"


def test_parse_list_query_clamps_and_normalizes():
    q = parse_list_query({"limit": "9999", "sort_order": "ASC", "search": "  acme "}, max_limit=100)
    assert q.limit == 100
    assert q.sort_order == "asc"
    assert q.search == "acme"


@pytest.mark.parametrize(
    "args",
    [{"sort_by": "notes"}, {"sort_order": "up"}, {"page": "-1"}, {"limit": "x"}, {"customer_type": "alien"}],
)
def test_parse_list_query_rejects(args):
    with pytest.raises(InvalidArgument):
        parse_list_query(args)


def test_list_pagination_math(app):
    with session_scope(app) as s:
        out = list_customers(s, CustomerListQuery(sort_by="name", sort_order="asc", page=2, limit=10))
    assert out["total"] == 24
    assert out["total_pages"] == 3
    assert [c["name"] for c in out["customers"]][:2] == ["Customer 10", "Customer 11"]
    assert len(out["customers"]) == 10


def test_list_empty_result(app):
    with session_scope(app) as s:
        out = list_customers(s, CustomerListQuery(search="nothing matches"))
    assert out == {"customers": [], "total": 0, "page": 1, "limit": 50, "total_pages": 0}


def test_list_default_sort_newest_update_first(app):
    with session_scope(app) as s:
        out = list_customers(s, CustomerListQuery(limit=3))
    # Customer 24 is untracked
    assert [c["name"] for c in out["customers"]] == ["Customer 23", "Customer 22", "Customer 21"]


def test_list_filters_combine(app):
    with session_scope(app) as s:
        out = list_customers(s, CustomerListQuery(staff_id=1, customer_type="corporate", search="widgets"))
    # i in {0, 5}: staffed and Widgets; only 0 is corporate
    assert [c["name"] for c in out["customers"]] == ["Customer 00"]


def test_latest_contact_picks_newest_then_highest_id(app):
    with session_scope(app) as s:
        s.add_all(
            [
                ContactHistory(customer_id=1, contact_type="old", contact_date=datetime(2026, 2, 1)),
                ContactHistory(customer_id=1, contact_type="tie-a", contact_date=datetime(2026, 3, 1), staff_id=1),
                ContactHistory(customer_id=1, contact_type="tie-b", contact_date=datetime(2026, 3, 1), staff_id=1),
                ContactHistory(customer_id=2, contact_type="other", contact_date=datetime(2026, 4, 1)),
            ]
        )
    with session_scope(app) as s:
        out = list_customers(s, CustomerListQuery(sort_by="id", sort_order="asc", limit=3))
    first, second, third = out["customers"]
    assert first["latest_contact"]["contact_type"] == "tie-b"
    assert first["latest_contact"]["staff_name"] == "Sam"
    assert second["latest_contact"]["contact_type"] == "other"
    assert third["latest_contact"] is None
