from __future__ import annotations

import logging
import re
from typing import Any

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crm.audit import record_event
from app.crm.constants import USER_ROLES
from app.crm.errors import AlreadyExists, InvalidArgument, NotFound
from app.crm.models import User
from app.crm.partial_update import FieldSpec, build_partial_update, field_map
from app.crm.security import hash_password
from app.crm.utils import in_db_int_range, normalize_text, parse_bool, require_choice, utcnow

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def _email(raw: Any) -> str:
    v = (normalize_text(raw) or "").lower()
    if not v:
        raise InvalidArgument("email is required.")
    if not _EMAIL_RE.match(v):
        raise InvalidArgument("Invalid email format.")
    return v


def _required_text(raw: Any, *, field: str) -> str:
    v = normalize_text(raw)
    if not v:
        raise InvalidArgument(f"{field} is required.")
    return v


def check_password_policy(password: Any) -> str:
    if not isinstance(password, str) or not password:
        raise InvalidArgument("password is required.")
    min_len = int(current_app.config.get("MIN_PASSWORD_LENGTH") or 6)
    if len(password) < min_len:
        raise InvalidArgument(f"Password must be at least {min_len} characters.")
    return password


USER_UPDATE_FIELDS = field_map(
    [
        FieldSpec("email", _email),
        FieldSpec("username", lambda v: _required_text(v, field="username")),
        FieldSpec("name", lambda v: _required_text(v, field="name")),
        FieldSpec("role", lambda v: require_choice(v, USER_ROLES, field="role")),
        FieldSpec("is_active", lambda v: parse_bool(v, field="is_active")),
    ]
)


def get_user(s: Session, user_id: int) -> User:
    u = s.get(User, user_id) if in_db_int_range(user_id) else None
    if not u:
        raise NotFound("User not found")
    return u


def list_users(s: Session) -> list[User]:
    return s.query(User).order_by(User.name.asc(), User.id.asc()).all()


def _ensure_unique(s: Session, *, email: str | None, username: str | None, exclude_id: int | None = None) -> None:
    conds = []
    if email:
        conds.append(User.email == email)
    if username:
        conds.append(User.username == username)
    if not conds:
        return
    q = s.query(User).filter(or_(*conds))
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if q.first():
        raise AlreadyExists("Email or username already exists")


def _flush_unique(s: Session) -> None:
    """Flush; a unique-constraint race surfaces as AlreadyExists with the session rolled back."""
    try:
        s.flush()
    except IntegrityError as e:
        s.rollback()
        logger.warning("User unique constraint violated: %s", e.orig)
        raise AlreadyExists("Email or username already exists")


def create_user(s: Session, payload: dict[str, Any], *, actor: User | None) -> User:
    email = _email(payload.get("email"))
    username = _required_text(payload.get("username"), field="username")
    name = _required_text(payload.get("name"), field="name")
    password = check_password_policy(payload.get("password"))
    role = require_choice(payload.get("role") or "sales", USER_ROLES, field="role")

    _ensure_unique(s, email=email, username=username)

    now = utcnow()
    u = User(
        email=email,
        username=username,
        name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(u)
    _flush_unique(s)
    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=str(u.id),
        metadata={"email": email, "username": username, "role": role},
    )
    return u


def update_user(s: Session, user_id: int, payload: dict[str, Any], *, actor: User) -> User:
    u = get_user(s, user_id)
    changes = build_partial_update(payload, USER_UPDATE_FIELDS)
    _ensure_unique(s, email=changes.get("email"), username=changes.get("username"), exclude_id=u.id)

    before = {k: getattr(u, k) for k in changes}
    for key, value in changes.items():
        setattr(u, key, value)
    u.updated_at = utcnow()
    _flush_unique(s)

    record_event(
        s,
        actor=actor,
        action="user.update",
        entity_type="User",
        entity_id=str(u.id),
        metadata={"before": before, "after": dict(changes)},
    )
    return u


def update_user_password(s: Session, user_id: int, password: Any, *, actor: User) -> User:
    u = get_user(s, user_id)
    password = check_password_policy(password)
    u.password_hash = hash_password(password)
    u.updated_at = utcnow()
    record_event(
        s,
        actor=actor,
        action="user.password_reset",
        entity_type="User",
        entity_id=str(u.id),
        metadata={"target_username": u.username, "reset_by": actor.username},
    )
    return u
