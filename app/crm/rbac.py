from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g

from app.crm.errors import PermissionDenied, Unauthenticated
from app.crm.models import User

CUSTOMERS_VIEW = "customers.view"
CUSTOMERS_EDIT = "customers.edit"
HISTORY_VIEW = "history.view"
HISTORY_CREATE = "history.create"
USERS_VIEW = "users.view"
USERS_MANAGE = "users.manage"
REPORTS_VIEW = "reports.view"
CUSTOMERS_EXPORT = "customers.export"

ALL_PERMISSIONS = frozenset(
    {
        CUSTOMERS_VIEW,
        CUSTOMERS_EDIT,
        HISTORY_VIEW,
        HISTORY_CREATE,
        USERS_VIEW,
        USERS_MANAGE,
        REPORTS_VIEW,
        CUSTOMERS_EXPORT,
    }
)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": ALL_PERMISSIONS,
    "sales": frozenset(
        {
            CUSTOMERS_VIEW,
            CUSTOMERS_EDIT,
            HISTORY_VIEW,
            HISTORY_CREATE,
            USERS_VIEW,  # staff pickers on customer forms
        }
    ),
}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.role, frozenset())


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise Unauthenticated()
    return u


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                raise Unauthenticated()
            if not user_has_permission(user, permission_key):
                current_app.logger.warning(
                    "Forbidden: user=%s missing_permission=%s request_id=%s",
                    user.username,
                    permission_key,
                    getattr(g, "request_id", None),
                )
                raise PermissionDenied(f"Missing permission: {permission_key}")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
