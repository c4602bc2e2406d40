from __future__ import annotations

from flask import Blueprint

from app.crm.db import db_session
from app.crm.modules.users.service import create_user, get_user, list_users, update_user, update_user_password
from app.crm.rbac import USERS_MANAGE, USERS_VIEW, current_user, require_permission
from app.crm.utils import json_payload

bp = Blueprint("users", __name__)


@bp.post("/users")
@require_permission(USERS_MANAGE)
def users_create():
    s = db_session()
    u = create_user(s, json_payload(), actor=current_user())
    s.commit()
    return u.to_dict(), 201


@bp.get("/users")
@require_permission(USERS_VIEW)
def users_list():
    return {"users": [u.to_dict() for u in list_users(db_session())]}


@bp.get("/users/<int:user_id>")
@require_permission(USERS_MANAGE)
def users_detail(user_id: int):
    return get_user(db_session(), user_id).to_dict()


@bp.route("/users/<int:user_id>", methods=["PUT", "PATCH"])
@require_permission(USERS_MANAGE)
def users_update(user_id: int):
    s = db_session()
    u = update_user(s, user_id, json_payload(), actor=current_user())
    s.commit()
    return u.to_dict()


@bp.put("/users/<int:user_id>/password")
@require_permission(USERS_MANAGE)
def users_reset_password(user_id: int):
    s = db_session()
    update_user_password(s, user_id, json_payload().get("password"), actor=current_user())
    s.commit()
    return "", 204
