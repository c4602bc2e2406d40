from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request, session
from werkzeug.exceptions import TooManyRequests

from app.crm.audit import record_event
from app.crm.db import db_session
from app.crm.errors import Unauthenticated
from app.crm.models import User
from app.crm.rbac import current_user
from app.crm.security import bearer_token, issue_token, read_token, verify_password
from app.crm.utils import json_payload, normalize_text, utcnow

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    cutoff = utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(utcnow())


def _assign_request_id() -> None:
    inbound = (request.headers.get("X-Request-ID") or "").strip()
    g.request_id = inbound[:64] if inbound else uuid.uuid4().hex


def load_current_user() -> None:
    """
    Loads g.current_user from an `Authorization: Bearer` token, falling back to
    the signed session cookie. Also assigns the per-request request_id.
    """
    if not getattr(g, "request_id", None):
        _assign_request_id()
    g.current_user = None
    if request.path.startswith(("/health", "/healthz")):
        return

    token = bearer_token(request.headers.get("Authorization"))
    user_id = read_token(token) if token else session.get("user_id")
    if not user_id:
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


@bp.post("/login")
def login():
    payload = json_payload()
    username = normalize_text(payload.get("username")) or ""
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        current_app.logger.warning("Login rate limit hit (ip=%s request_id=%s)", ip, g.request_id)
        raise TooManyRequests("Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.username == username).one_or_none()
    if not user or not user.is_active or not isinstance(password, str) or not verify_password(user.password_hash, password):
        current_app.logger.info("Failed login (username=%s request_id=%s)", username, g.request_id)
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=username,
            reason="Invalid credentials",
            metadata={"username": username},
        )
        s.commit()
        raise Unauthenticated("Invalid credentials")

    session.permanent = True
    session["user_id"] = user.id
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return {"user": user.to_dict(), "token": issue_token(user.id)}


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return "", 204


@bp.get("/me")
def me():
    return {"user": current_user().to_dict()}
