"""
middleware/auth_middleware.py — JWT authentication decorator.

@require_auth reads "Authorization: Bearer <token>", verifies the HS256
signature and expiry, and sets flask.g.user_id (int) for the request.

This layer answers "who are you?" only (401). Whether that user may touch a
group, expense or due is decided in the service layer (403). Services never
read flask.g; routes pass g.user_id down as a plain int.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature, or bad `sub`
  TOKEN_EXPIRED  (401) — valid token whose exp claim has passed
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from spliitz.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Usage:
        @bp.route("/proposals")
        @require_auth
        def list_proposals():
            caller_id = g.user_id
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """Validates the bearer token and sets g.user_id, or raises AppError."""
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    try:
        payload = jwt.decode(
            parts[1],
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid 'sub' user id.",
            401,
        )

    g.user_id = user_id
