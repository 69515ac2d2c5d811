"""
routes/balances.py — Balance route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances  → 200  outstanding dues per member + simplified transfers
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from spliitz.app.extensions import db
from spliitz.app.middleware.auth_middleware import require_auth
from spliitz.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: int):
    """
    GET /groups/:id/balances

    Membership is enforced inside balance_service.get_balance_response().
    The service raises INTERNAL_ERROR (500) if balances do not sum to zero.
    """
    result = balance_service.get_balance_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
