"""
errors.py — AppError base class and error code registry.

Every error returned by the Spliitz API uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"
    INVALID_DATE_RANGE         = "INVALID_DATE_RANGE"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    ALREADY_FRIENDS            = "ALREADY_FRIENDS"
    FRIEND_REQUEST_EXISTS      = "FRIEND_REQUEST_EXISTS"
    PAYER_ALREADY_SET          = "PAYER_ALREADY_SET"
    EXPENSE_HAS_PAYMENTS       = "EXPENSE_HAS_PAYMENTS"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    DUE_NOT_FOUND              = "DUE_NOT_FOUND"
    INVITE_NOT_FOUND           = "INVITE_NOT_FOUND"
    FRIEND_REQUEST_NOT_FOUND   = "FRIEND_REQUEST_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    SPLIT_USER_NOT_MEMBER      = "SPLIT_USER_NOT_MEMBER"
    SPLIT_SUM_MISMATCH         = "SPLIT_SUM_MISMATCH"
    CANNOT_REMOVE_OWNER        = "CANNOT_REMOVE_OWNER"
    SELF_FRIEND_REQUEST        = "SELF_FRIEND_REQUEST"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"  # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403
    NOT_SPLIT_PARTICIPANT      = "NOT_SPLIT_PARTICIPANT"  # 403
    USER_BLOCKED               = "USER_BLOCKED"           # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
    HTTP_ERROR                 = "HTTP_ERROR"             # werkzeug 4xx (bad JSON, unknown route)


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Approval recorded on an expense that had already been finalized.
    ALREADY_FINALIZED = "ALREADY_FINALIZED"

    # Net settlement found nothing to mark in either direction.
    NOTHING_TO_SETTLE = "NOTHING_TO_SETTLE"
