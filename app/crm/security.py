"""
Credentials: salted password hashes and signed, expiring bearer tokens.
"""
from __future__ import annotations

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

_TOKEN_SALT = "crm-auth-token"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_TOKEN_SALT)


def issue_token(user_id: int) -> str:
    return _serializer().dumps({"uid": int(user_id)})


def read_token(token: str) -> int | None:
    """Return the user id carried by a valid, unexpired token, else None."""
    max_age = int(current_app.config.get("TOKEN_MAX_AGE_SECONDS") or 0) or None
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Rejected expired bearer token")
        return None
    except BadSignature:
        current_app.logger.warning("Rejected bearer token with bad signature")
        return None
    uid = data.get("uid") if isinstance(data, dict) else None
    return uid if isinstance(uid, int) else None


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
