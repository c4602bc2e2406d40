from __future__ import annotations

from flask import Blueprint

from app.crm.db import db_session
from app.crm.modules.customer_history.service import (
    create_contact,
    create_payment,
    create_purchase,
    list_contact_history,
    list_payment_history,
    list_purchase_history,
    payment_to_dict,
    purchase_to_dict,
)
from app.crm.rbac import HISTORY_CREATE, HISTORY_VIEW, current_user, require_permission
from app.crm.utils import json_payload

bp = Blueprint("customer_history", __name__)


@bp.post("/contact-history")
@require_permission(HISTORY_CREATE)
def contact_create():
    s = db_session()
    contact = create_contact(s, json_payload(), user=current_user())
    s.commit()
    return contact, 201


@bp.get("/customers/<int:customer_id>/contact-history")
@require_permission(HISTORY_VIEW)
def contact_list(customer_id: int):
    return {"contacts": list_contact_history(db_session(), customer_id)}


@bp.post("/purchase-history")
@require_permission(HISTORY_CREATE)
def purchase_create():
    s = db_session()
    p = create_purchase(s, json_payload(), user=current_user())
    s.commit()
    return purchase_to_dict(p), 201


@bp.get("/customers/<int:customer_id>/purchase-history")
@require_permission(HISTORY_VIEW)
def purchase_list(customer_id: int):
    rows = list_purchase_history(db_session(), customer_id)
    return {"purchases": [purchase_to_dict(p) for p in rows]}


@bp.post("/payment-history")
@require_permission(HISTORY_CREATE)
def payment_create():
    s = db_session()
    p = create_payment(s, json_payload(), user=current_user())
    s.commit()
    return payment_to_dict(p), 201


@bp.get("/customers/<int:customer_id>/payment-history")
@require_permission(HISTORY_VIEW)
def payment_list(customer_id: int):
    rows = list_payment_history(db_session(), customer_id)
    return {"payments": [payment_to_dict(p) for p in rows]}
