"""
Error taxonomy surfaced to API callers.

Services raise these; the handler registered in create_app() renders them as
{"code", "message", "request_id"} with the matching HTTP status.
"""
from __future__ import annotations


class CRMError(Exception):
    status_code = 500
    code = "internal"
    default_message = "Internal error."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidArgument(CRMError):
    status_code = 400
    code = "invalid_argument"
    default_message = "Invalid argument."


class Unauthenticated(CRMError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required."


class PermissionDenied(CRMError):
    status_code = 403
    code = "permission_denied"
    default_message = "Permission denied."


class NotFound(CRMError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class AlreadyExists(CRMError):
    status_code = 409
    code = "already_exists"
    default_message = "Already exists."


class Internal(CRMError):
    status_code = 500
    code = "internal"
    default_message = "Internal error."


# werkzeug HTTPException status -> error code, for routing/method/size errors
HTTP_STATUS_CODES = {
    400: "invalid_argument",
    401: "unauthenticated",
    403: "permission_denied",
    404: "not_found",
    405: "method_not_allowed",
    409: "already_exists",
    413: "payload_too_large",
    429: "resource_exhausted",
}
