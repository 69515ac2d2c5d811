"""
routes/auth.py — Account and token handlers.

Every handler validates its body with one schema, makes one auth_service
call, commits, and answers with {"data": ..., "warnings": []}. AppError
(bad credentials, revoked tokens, duplicates) propagates to the global
handler in app/__init__.py.

Endpoints (base url_prefix=/api/v1/auth):
  POST   /auth/register         → 201  new account + token pair
  POST   /auth/login            → 200  username or email + password
  POST   /auth/refresh          → 200  new access token
  POST   /auth/logout           → 200  revoke one refresh token      (auth)
  POST   /auth/change-password  → 200  revoke every refresh token    (auth)
  GET    /auth/me               → 200  own profile incl. email       (auth)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request
from marshmallow import Schema

from spliitz.app.extensions import db
from spliitz.app.middleware.auth_middleware import require_auth
from spliitz.app.schemas.auth_schema import (
    ChangePasswordSchema,
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
)
from spliitz.app.services import auth_service

auth_bp = Blueprint("auth", __name__)


def _load(schema: Schema) -> dict:
    return schema.load(request.get_json(force=True) or {})


def _committed(data, status: int = 200):
    db.session.commit()
    return jsonify({"data": data, "warnings": []}), status


@auth_bp.route("/register", methods=["POST"])
def register():
    body = _load(RegisterSchema())
    return _committed(
        auth_service.register_user(session=db.session, **body),
        201,
    )


@auth_bp.route("/login", methods=["POST"])
def login():
    body = _load(LoginSchema())
    return _committed(auth_service.login_user(session=db.session, **body))


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    body = _load(RefreshTokenSchema())
    return _committed(
        auth_service.refresh_access_token(body["refresh_token"], session=db.session)
    )


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    body = _load(RefreshTokenSchema())
    auth_service.logout_user(body["refresh_token"], session=db.session)
    return _committed({"message": "Logged out successfully."})


@auth_bp.route("/change-password", methods=["POST"])
@require_auth
def change_password():
    """
    POST /auth/change-password — {old_password, new_password, confirm_password}.
    Other sessions lose their refresh tokens and must log in again.
    """
    body = _load(ChangePasswordSchema())
    result = auth_service.change_password(
        user_id=g.user_id,
        old_password=body["old_password"],
        new_password=body["new_password"],
        session=db.session,
    )
    return _committed({"message": "Password changed.", **result})


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    return jsonify({
        "data": auth_service.get_current_user(g.user_id, session=db.session),
        "warnings": [],
    }), 200
