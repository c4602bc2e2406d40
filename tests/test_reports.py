import csv
import io
from datetime import datetime, timedelta

import pytest

from app.crm import create_app
from app.crm import auth as auth_module
from app.crm.constants import EXPORT_HEADERS
from app.crm.db import session_scope
from app.crm.models import Base, User
from app.crm.modules.customer_history.models import ContactHistory
from app.crm.modules.customers.models import Customer
from app.crm.security import hash_password
from app.crm.utils import utcnow


def _customer(name, customer_type="corporate", **kw):
    c = Customer(name=name, customer_type=customer_type, stage="care", level="cold",
                 contact_status="not_called", is_tracking=kw.pop("is_tracking", True), **kw)
    return c


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    auth_module._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        admin = User(email="admin@example.com", username="admin", name="Admin", role="admin",
                     password_hash=hash_password("pw-admin"), is_active=True)
        sam = User(email="sam@example.com", username="sam", name="Sam Sales", role="sales",
                   password_hash=hash_password("pw-sam"), is_active=True)
        s.add_all([admin, sam])
        s.flush()

        a = _customer("Alpha", staff_in_charge_id=sam.id, created_at=datetime(2026, 1, 1))
        a.set_products(["PM HKD", "Equipment"])
        b = _customer("Beta, \"the\" best", staff_in_charge_id=sam.id, customer_type="service",
                      notes="line one\nline two", created_at=datetime(2026, 1, 2))
        b.set_products(["PM HKD"])
        c = _customer("Gamma", customer_type="individual", created_at=datetime(2026, 1, 3))
        gone = _customer("Gone", staff_in_charge_id=admin.id, is_tracking=False)
        gone.set_products(["PM Shopnet"])
        s.add_all([a, b, c, gone])
        s.flush()

        s.add_all(
            [
                ContactHistory(customer_id=a.id, contact_type="call", contact_date=datetime(2026, 3, 1, 9)),
                ContactHistory(customer_id=b.id, contact_type="call", contact_date=datetime(2026, 3, 1, 23, 30)),
                ContactHistory(customer_id=a.id, contact_type="visit", contact_date=datetime(2026, 3, 5, 12)),
                ContactHistory(customer_id=a.id, contact_type="email", contact_date=datetime(2026, 4, 20, 8)),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _headers(client, username, password):
    r = client.post("/auth/login", json={"username": username, "password": password})
    return {"Authorization": f"Bearer {r.json['token']}"}


def test_reports_admin_only(client):
    h = _headers(client, "sam", "pw-sam")
    assert client.get("/reports", headers=h).status_code == 403
    assert client.get("/export/customers", headers=h).status_code == 403


def test_reports_aggregates(client):
    h = _headers(client, "admin", "pw-admin")
    r = client.get("/reports", query_string={"start_date": "2026-03-01", "end_date": "2026-03-05"}, headers=h)
    assert r.status_code == 200
    body = r.json
    assert body["start_date"] == "2026-03-01"
    assert body["end_date"] == "2026-03-05"

    assert body["staff_customer_stats"] == [
        {"staff_id": 2, "staff_name": "Sam Sales", "customer_count": 2},
        {"staff_id": 0, "staff_name": "Unassigned", "customer_count": 1},
    ]
    # end date covers the whole day; the April contact is outside the window
    assert body["interaction_stats"] == [
        {"date": "2026-03-01", "interaction_count": 2},
        {"date": "2026-03-05", "interaction_count": 1},
    ]
    assert body["customer_type_stats"][0]["count"] == 1
    assert {t["customer_type"] for t in body["customer_type_stats"]} == {"corporate", "service", "individual"}
    assert body["product_type_stats"] == [
        {"product": "PM HKD", "count": 2},
        {"product": "Equipment", "count": 1},
    ]


def test_reports_default_window(client):
    h = _headers(client, "admin", "pw-admin")
    r = client.get("/reports", headers=h)
    assert r.status_code == 200
    today = utcnow().date()
    assert r.json["end_date"] == today.isoformat()
    assert r.json["start_date"] == (today - timedelta(days=30)).isoformat()


@pytest.mark.parametrize(
    "qs",
    [{"start_date": "2026-13-01"}, {"end_date": "soon"}, {"start_date": "2026-03-05", "end_date": "2026-03-01"}],
)
def test_reports_invalid_dates(client, qs):
    h = _headers(client, "admin", "pw-admin")
    r = client.get("/reports", query_string=qs, headers=h)
    assert r.status_code == 400
    assert r.json["code"] == "invalid_argument"


def test_export_customers_json(client):
    h = _headers(client, "admin", "pw-admin")
    r = client.get("/export/customers", headers=h)
    assert r.status_code == 200
    rows = list(csv.reader(io.StringIO(r.json["csv_data"])))
    assert tuple(rows[0]) == EXPORT_HEADERS
    assert len(rows[0]) == 22
    # tracked only, newest first
    assert [row[1] for row in rows[1:]] == ["Gamma", 'Beta, "the" best', "Alpha"]
    beta = rows[2]
    assert beta[17] == "line one\nline two"
    assert beta[12] == "Sam Sales"
    assert rows[3][8] == "PM HKD; Equipment"


def test_export_customers_csv_attachment(client):
    h = _headers(client, "admin", "pw-admin")
    r = client.get("/export/customers", query_string={"format": "csv"}, headers=h)
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "attachment" in r.headers["Content-Disposition"]
    assert r.data.decode("utf-8").startswith("ID,Name,Phone,")
