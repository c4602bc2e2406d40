from __future__ import annotations

from dataclasses import replace

from flask import Blueprint, current_app, request

from app.crm.db import db_session
from app.crm.modules.customers.query import list_customers, parse_list_query
from app.crm.modules.customers.service import (
    create_customer,
    customer_detail,
    stop_tracking,
    update_customer,
)
from app.crm.rbac import CUSTOMERS_EDIT, CUSTOMERS_VIEW, current_user, require_permission
from app.crm.utils import json_payload

bp = Blueprint("customers", __name__)


@bp.get("/customers")
@require_permission(CUSTOMERS_VIEW)
def customers_list():
    u = current_user()
    q = parse_list_query(
        request.args,
        default_limit=current_app.config["DEFAULT_PAGE_LIMIT"],
        max_limit=current_app.config["MAX_PAGE_LIMIT"],
    )
    # Sales staff only ever see the customers they are in charge of.
    if u.role == "sales":
        q = replace(q, staff_id=u.id)
    return list_customers(db_session(), q)


@bp.post("/customers")
@require_permission(CUSTOMERS_EDIT)
def customers_create():
    s = db_session()
    c = create_customer(s, json_payload(), user=current_user())
    s.commit()
    return customer_detail(s, c.id), 201


@bp.get("/customers/<int:customer_id>")
@require_permission(CUSTOMERS_VIEW)
def customer_get(customer_id: int):
    return customer_detail(db_session(), customer_id)


@bp.route("/customers/<int:customer_id>", methods=["PUT", "PATCH"])
@require_permission(CUSTOMERS_EDIT)
def customer_update(customer_id: int):
    s = db_session()
    c = update_customer(s, customer_id, json_payload(), user=current_user())
    s.commit()
    return customer_detail(s, c.id, tracked_only=False)


@bp.delete("/customers/<int:customer_id>")
@require_permission(CUSTOMERS_EDIT)
def customer_stop_tracking(customer_id: int):
    s = db_session()
    stop_tracking(s, customer_id, user=current_user())
    s.commit()
    return "", 204
