"""
routes/activities.py — In-app activity feed.

Endpoints (base url_prefix=/api/v1/activities):
  GET   /activities           → 200  newest first (ACTIVITY_FEED_LIMIT)
  POST  /activities/read-all  → 200  {"updated": n}
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from spliitz.app.extensions import db
from spliitz.app.middleware.auth_middleware import require_auth
from spliitz.app.services import activity_service

activities_bp = Blueprint("activities", __name__)


@activities_bp.route("", methods=["GET"])
@require_auth
def list_activities():
    activities = activity_service.list_activities(
        user_id=g.user_id,
        limit=current_app.config["ACTIVITY_FEED_LIMIT"],
        session=db.session,
    )
    return jsonify({
        "data": [activity_service.serialize_activity(a) for a in activities],
        "warnings": [],
    }), 200


@activities_bp.route("/read-all", methods=["POST"])
@require_auth
def read_all():
    updated = activity_service.mark_all_read(g.user_id, session=db.session)
    db.session.commit()
    return jsonify({"data": {"updated": updated}, "warnings": []}), 200
