from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from app.crm.errors import InvalidArgument


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns are timezone=False."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: Any) -> str | None:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def parse_date(raw: Any, *, field: str) -> date | None:
    """Parse YYYY-MM-DD (a full ISO datetime is accepted and truncated)."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    s = str(raw).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        raise InvalidArgument(f"{field} must be a date (YYYY-MM-DD).")


def parse_datetime(raw: Any, *, field: str) -> datetime | None:
    """
    Parse an ISO-8601 date or datetime. Aware values are converted to naive UTC;
    a bare date means midnight.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, date):
        dt = datetime(raw.year, raw.month, raw.day)
    else:
        s = str(raw).strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            raise InvalidArgument(f"{field} must be an ISO-8601 date or datetime.")
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


# Largest value an INTEGER key column holds on every supported backend.
MAX_DB_INT = 2**31 - 1

# Numeric(12, 2) leaves ten integer digits.
_MAX_AMOUNT = Decimal("1e10")


def in_db_int_range(value: int) -> bool:
    return -MAX_DB_INT - 1 <= value <= MAX_DB_INT


def parse_int(raw: Any, *, field: str) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise InvalidArgument(f"{field} must be an integer.")
    if isinstance(raw, int):
        value = raw
    else:
        s = str(raw).strip()
        if not s:
            return None
        try:
            value = int(s)
        except ValueError:
            raise InvalidArgument(f"{field} must be an integer.")
    if not in_db_int_range(value):
        raise InvalidArgument(f"{field} is out of range.")
    return value


def parse_amount(raw: Any, *, field: str = "amount") -> Decimal:
    if raw is None or (isinstance(raw, str) and not raw.strip()) or isinstance(raw, bool):
        raise InvalidArgument(f"{field} is required.")
    try:
        value = Decimal(str(raw).strip())
        if not value.is_finite():
            raise InvalidArgument(f"{field} must be a number.")
        if abs(value) >= _MAX_AMOUNT:
            raise InvalidArgument(f"{field} is out of range.")
        return value.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise InvalidArgument(f"{field} must be a number.")


def parse_bool(raw: Any, *, field: str) -> bool:
    if isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    raise InvalidArgument(f"{field} must be a boolean.")


def normalize_text(raw: Any) -> str | None:
    """Strip strings; empty becomes None."""
    if raw is None:
        return None
    return str(raw).strip() or None


def json_payload() -> dict[str, Any]:
    """Request body as a JSON object; anything else is an invalid argument."""
    from flask import request

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidArgument("Request body must be a JSON object.")
    return data


def require_choice(raw: Any, choices: tuple[str, ...], *, field: str) -> str:
    v = normalize_text(raw)
    if not v:
        raise InvalidArgument(f"{field} is required.")
    if v not in choices:
        raise InvalidArgument(f"{field} must be one of: {', '.join(choices)}")
    return v
