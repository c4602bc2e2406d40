import pytest

from app.crm import create_app
from app.crm import auth as auth_module
from app.crm.db import session_scope
from app.crm.models import AuditEvent, Base, User
from app.crm.modules.customers.models import Customer
from app.crm.security import hash_password


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
        s.add_all(
            [
                User(email="admin@example.com", username="admin", name="Admin", role="admin",
                     password_hash=hash_password("pw-admin"), is_active=True),
                User(email="sam@example.com", username="sam", name="Sam Sales", role="sales",
                     password_hash=hash_password("pw-sam"), is_active=True),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def admin_headers(client):
    r = client.post("/auth/login", json={"username": "admin", "password": "pw-admin"})
    return {"Authorization": f"Bearer {r.json['token']}"}


@pytest.fixture()
def sales_headers(client):
    r = client.post("/auth/login", json={"username": "sam", "password": "pw-sam"})
    return {"Authorization": f"Bearer {r.json['token']}"}


ACME = {
    "name": "Acme",
    "customer_type": "corporate",
    "stage": "care",
    "level": "cold",
    "contact_status": "not_called",
    "products": ["PM HKD"],
}


def _create(client, headers, **overrides):
    body = dict(ACME)
    body.update(overrides)
    r = client.post("/customers", json=body, headers=headers)
    assert r.status_code == 201, r.json
    return r.json


def test_customers_require_auth(client):
    r = client.get("/customers")
    assert r.status_code == 401
    assert r.json["code"] == "unauthenticated"


def test_create_and_get_customer(client, admin_headers):
    c = _create(client, admin_headers)
    assert c["name"] == "Acme"
    assert c["customer_type"] == "corporate"
    assert c["products"] == ["PM HKD"]
    assert c["staff_in_charge_id"] is None
    assert c["staff_in_charge_name"] is None
    assert c["latest_contact"] is None
    assert c["is_tracking"] is True

    r = client.get(f"/customers/{c['id']}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json == c


def test_create_customer_with_staff(client, admin_headers):
    c = _create(client, admin_headers, staff_in_charge_id=2, email="  ops@acme.test ")
    assert c["staff_in_charge_name"] == "Sam Sales"
    assert c["email"] == "ops@acme.test"


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": ""},
        {"customer_type": "alien"},
        {"stage": None},
        {"level": "lukewarm"},
        {"contact_status": "maybe"},
        {"products": ["Not A Product"]},
        {"products": "PM HKD"},
        {"staff_in_charge_id": 999},
        {"appointment_date": "next tuesday"},
    ],
)
def test_create_customer_validation(app, client, admin_headers, overrides):
    body = dict(ACME)
    body.update(overrides)
    r = client.post("/customers", json=body, headers=admin_headers)
    assert r.status_code == 400
    assert r.json["code"] == "invalid_argument"
    with session_scope(app) as s:
        assert s.query(Customer).count() == 0


def test_products_deduplicated_in_order(client, admin_headers):
    c = _create(client, admin_headers, products=["PM Shopnet", "PM HKD", "PM Shopnet"])
    assert c["products"] == ["PM Shopnet", "PM HKD"]


def test_update_customer_partial(app, client, admin_headers):
    c = _create(client, admin_headers, phone="111", notes="first call")
    r = client.put(
        f"/customers/{c['id']}",
        json={"stage": "send_quote", "phone": "", "products": ["Equipment"], "ignored": "x"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json["stage"] == "send_quote"
    assert r.json["phone"] is None
    assert r.json["notes"] == "first call"
    assert r.json["products"] == ["Equipment"]
    assert r.json["updated_at"] >= c["updated_at"]

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "customer.update").one()
        assert "send_quote" in ev.metadata_json


def test_update_customer_no_fields(client, admin_headers):
    c = _create(client, admin_headers)
    r = client.put(f"/customers/{c['id']}", json={"name": "", "nope": 1}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json["message"] == "No fields to update"
    assert client.get(f"/customers/{c['id']}", headers=admin_headers).json["name"] == "Acme"


def test_update_customer_invalid_enum(client, admin_headers):
    c = _create(client, admin_headers)
    r = client.put(f"/customers/{c['id']}", json={"level": "boiling"}, headers=admin_headers)
    assert r.status_code == 400


def test_update_customer_clears_staff(client, admin_headers):
    c = _create(client, admin_headers, staff_in_charge_id=2)
    r = client.patch(f"/customers/{c['id']}", json={"staff_in_charge_id": None}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json["staff_in_charge_id"] is None
    assert r.json["staff_in_charge_name"] is None


def test_stop_tracking_hides_customer(client, admin_headers):
    c = _create(client, admin_headers)
    r = client.delete(f"/customers/{c['id']}", headers=admin_headers)
    assert r.status_code == 204

    assert client.get(f"/customers/{c['id']}", headers=admin_headers).status_code == 404
    assert client.put(f"/customers/{c['id']}", json={"name": "X"}, headers=admin_headers).status_code == 404
    assert client.get("/customers", headers=admin_headers).json["total"] == 0
    # already untracked
    assert client.delete(f"/customers/{c['id']}", headers=admin_headers).status_code == 404


def test_stop_tracking_unknown(client, admin_headers):
    r = client.delete("/customers/12345", headers=admin_headers)
    assert r.status_code == 404
    assert r.json["code"] == "not_found"


def test_update_is_tracking_false(client, admin_headers):
    c = _create(client, admin_headers)
    r = client.put(f"/customers/{c['id']}", json={"is_tracking": False}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json["is_tracking"] is False
    assert client.get(f"/customers/{c['id']}", headers=admin_headers).status_code == 404


def test_list_customers_filters_and_pagination(client, admin_headers):
    for i in range(12):
        _create(client, admin_headers, name=f"Cust {i:02d}", level="hot" if i % 3 == 0 else "cold")

    r = client.get("/customers?sort_by=name&sort_order=asc&page=2&limit=10", headers=admin_headers)
    assert r.status_code == 200
    assert r.json["total"] == 12
    assert r.json["total_pages"] == 2
    assert r.json["page"] == 2
    assert [c["name"] for c in r.json["customers"]] == ["Cust 10", "Cust 11"]

    r = client.get("/customers?level=hot", headers=admin_headers)
    assert r.json["total"] == 4

    r = client.get("/customers", query_string={"search": "cust 0"}, headers=admin_headers)
    assert r.json["total"] == 10


def test_list_customers_search_escapes_wildcards(client, admin_headers):
    _create(client, admin_headers, name="100% Pure")
    _create(client, admin_headers, name="1000 Lakes")
    r = client.get("/customers", query_string={"search": "100%"}, headers=admin_headers)
    assert [c["name"] for c in r.json["customers"]] == ["100% Pure"]


@pytest.mark.parametrize(
    "qs",
    [
        {"sort_by": "password_hash"},
        {"sort_by": "name; DROP TABLE customers"},
        {"sort_order": "sideways"},
        {"page": "0"},
        {"limit": "0"},
        {"page": "abc"},
        {"stage": "nope"},
    ],
)
def test_list_customers_rejects_bad_params(client, admin_headers, qs):
    r = client.get("/customers", query_string=qs, headers=admin_headers)
    assert r.status_code == 400
    assert r.json["code"] == "invalid_argument"


def test_list_customers_clamps_limit(client, admin_headers):
    r = client.get("/customers?limit=100000", headers=admin_headers)
    assert r.status_code == 200
    assert r.json["limit"] == 500


def test_sales_sees_only_own_customers(client, admin_headers, sales_headers):
    _create(client, admin_headers, name="Mine", staff_in_charge_id=2)
    _create(client, admin_headers, name="Theirs", staff_in_charge_id=1)
    _create(client, admin_headers, name="Nobody")

    r = client.get("/customers?staff_id=1", headers=sales_headers)
    assert [c["name"] for c in r.json["customers"]] == ["Mine"]

    r = client.get("/customers", headers=admin_headers)
    assert r.json["total"] == 3


def test_latest_contact_in_detail_and_list(client, admin_headers):
    c = _create(client, admin_headers)
    for when, kind in (("2026-01-02T09:00:00", "call"), ("2026-03-04T09:00:00", "visit"), ("2026-02-01T09:00:00", "email")):
        r = client.post(
            "/contact-history",
            json={"customer_id": c["id"], "contact_type": kind, "contact_date": when, "staff_id": 2},
            headers=admin_headers,
        )
        assert r.status_code == 201

    detail = client.get(f"/customers/{c['id']}", headers=admin_headers).json
    assert detail["latest_contact"]["contact_type"] == "visit"
    assert detail["latest_contact"]["staff_name"] == "Sam Sales"

    listed = client.get("/customers", headers=admin_headers).json["customers"]
    assert listed[0]["latest_contact"]["contact_type"] == "visit"


HUGE = "99999999999999999999"


def test_oversized_ids_are_not_found(client, admin_headers):
    for method in ("get", "put", "delete"):
        r = getattr(client, method)(f"/customers/{HUGE}", json={"name": "X"}, headers=admin_headers)
        assert r.status_code == 404, method
        assert r.json["code"] == "not_found"


@pytest.mark.parametrize("param", ["page", "staff_id", "limit"])
def test_oversized_list_params_rejected(client, admin_headers, param):
    r = client.get("/customers", query_string={param: HUGE}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json["code"] == "invalid_argument"


def test_create_customer_oversized_staff_id(client, admin_headers):
    body = dict(ACME, staff_in_charge_id=int(HUGE))
    r = client.post("/customers", json=body, headers=admin_headers)
    assert r.status_code == 400


def test_update_untracked_with_bad_payload_is_not_found(client, admin_headers):
    c = _create(client, admin_headers)
    client.delete(f"/customers/{c['id']}", headers=admin_headers)
    r = client.put(f"/customers/{c['id']}", json={"level": "boiling"}, headers=admin_headers)
    assert r.status_code == 404
    r = client.put("/customers/4242", json={}, headers=admin_headers)
    assert r.status_code == 404
    assert r.json["message"] == "Customer not found"
