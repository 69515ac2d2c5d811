"""
routes/users.py — Profile, search and summary handlers.

Endpoints (base url_prefix=/api/v1/users):
  GET    /users/search?q=                 → 200  search by username / full name
  GET    /users/check-username?username=  → 200  {"available": bool}
  PATCH  /users/me                        → 200  update own profile
  GET    /users/me/summary                → 200  home screen numbers
  GET    /users/:id                       → 200  public profile
"""

from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from spliitz.app.errors import AppError, ErrorCode
from spliitz.app.extensions import db
from spliitz.app.middleware.auth_middleware import require_auth
from spliitz.app.schemas.user_schema import UpdateProfileSchema
from spliitz.app.services import user_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/search", methods=["GET"])
@require_auth
def search_users():
    result = user_service.search_users(
        query=request.args.get("q", ""),
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/check-username", methods=["GET"])
@require_auth
def check_username():
    username = request.args.get("username", "").strip()
    if not username:
        raise AppError(
            ErrorCode.MISSING_FIELD,
            "Query parameter 'username' is required.",
            400,
            field="username",
        )
    available = user_service.username_available(username, session=db.session)
    return jsonify({"data": {"username": username, "available": available}, "warnings": []}), 200


@users_bp.route("/me", methods=["PATCH"])
@require_auth
def update_profile():
    """PATCH /users/me — Update full_name and/or username."""
    data = UpdateProfileSchema().load(request.get_json(force=True) or {})
    result = user_service.update_profile(
        user_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/me/summary", methods=["GET"])
@require_auth
def summary():
    result = user_service.get_summary(
        user_id=g.user_id,
        today=date.today(),
        window_days=current_app.config["UPCOMING_DUES_WINDOW_DAYS"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_auth
def get_user(user_id: int):
    result = user_service.get_user(user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200
