"""
routes/dues.py — Caller-scoped dues queries and friend settlement.

Endpoints (base url_prefix=/api/v1/dues):
  GET   /dues/upcoming           → 200  unpaid dues falling due soon
  GET   /dues?start=&end=        → 200  unpaid dues with due date in range
  GET   /dues/with/:uid          → 200  every due between caller and :uid
  POST  /dues/settle             → 200  settle everything with a friend

Paying and confirming a single due lives under /expenses/:id/dues
(routes/expenses.py).
"""

from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from spliitz.app.extensions import db
from spliitz.app.middleware.auth_middleware import require_auth
from spliitz.app.schemas.due_schema import DateRangeSchema, SettleSchema
from spliitz.app.services import due_service

dues_bp = Blueprint("dues", __name__)


@dues_bp.route("/upcoming", methods=["GET"])
@require_auth
def upcoming():
    dues = due_service.list_upcoming_dues(
        user_id=g.user_id,
        today=date.today(),
        window_days=current_app.config["UPCOMING_DUES_WINDOW_DAYS"],
        session=db.session,
    )
    return jsonify({"data": [due_service.serialize_due(d) for d in dues], "warnings": []}), 200


@dues_bp.route("", methods=["GET"])
@require_auth
def unpaid_in_range():
    params = DateRangeSchema().load(request.args.to_dict())
    dues = due_service.list_unpaid_dues(
        user_id=g.user_id,
        start=params["start"],
        end=params["end"],
        session=db.session,
    )
    return jsonify({"data": [due_service.serialize_due(d) for d in dues], "warnings": []}), 200


@dues_bp.route("/with/<int:user_id>", methods=["GET"])
@require_auth
def between(user_id: int):
    dues = due_service.list_dues_between(g.user_id, user_id, session=db.session)
    return jsonify({"data": [due_service.serialize_due(d) for d in dues], "warnings": []}), 200


@dues_bp.route("/settle", methods=["POST"])
@require_auth
def settle():
    """
    POST /dues/settle — Mark everything owed to the friend as paid and
    everything the friend owes as received. NOTHING_TO_SETTLE comes back as
    a warning, not an error.
    """
    data = SettleSchema().load(request.get_json(force=True) or {})
    result, warnings = due_service.settle_with_friend(
        user_id=g.user_id,
        friend_id=data["friend_id"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": warnings}), 200
