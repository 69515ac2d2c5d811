"""
routes/friends.py — Friend requests, friendships and blocks.

Endpoints (base url_prefix=/api/v1/friends):
  GET    /friends                          → 200  friends with net balances
  GET    /friends/requests                 → 200  incoming requests
  POST   /friends/requests                 → 201  send a request
  POST   /friends/requests/:uid/respond    → 200  accept / decline
  DELETE /friends/:uid                     → 200  unfriend
  POST   /friends/:uid/block               → 200  block
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from spliitz.app.extensions import db
from spliitz.app.middleware.auth_middleware import require_auth
from spliitz.app.schemas.friend_schema import FriendRequestSchema
from spliitz.app.schemas.group_schema import RespondSchema
from spliitz.app.services import friend_service

friends_bp = Blueprint("friends", __name__)


@friends_bp.route("", methods=["GET"])
@require_auth
def list_friends():
    result = friend_service.list_friends_with_balances(g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@friends_bp.route("/requests", methods=["GET"])
@require_auth
def list_requests():
    result = friend_service.list_friend_requests(g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@friends_bp.route("/requests", methods=["POST"])
@require_auth
def send_request():
    data = FriendRequestSchema().load(request.get_json(force=True) or {})
    result = friend_service.send_friend_request(
        sender_id=g.user_id,
        recipient_id=data["user_id"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@friends_bp.route("/requests/<int:user_id>/respond", methods=["POST"])
@require_auth
def respond(user_id: int):
    """POST /friends/requests/:uid/respond — :uid is the user who sent the request."""
    data = RespondSchema().load(request.get_json(force=True) or {})
    result = friend_service.respond_to_friend_request(
        requester_id=user_id,
        responder_id=g.user_id,
        accept=data["accept"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@friends_bp.route("/<int:user_id>", methods=["DELETE"])
@require_auth
def remove_friend(user_id: int):
    friend_service.remove_friend(g.user_id, user_id, session=db.session)
    db.session.commit()
    return jsonify({"data": {"removed": True, "user_id": user_id}, "warnings": []}), 200


@friends_bp.route("/<int:user_id>/block", methods=["POST"])
@require_auth
def block(user_id: int):
    friend_service.block_user(g.user_id, user_id, session=db.session)
    db.session.commit()
    return jsonify({"data": {"blocked": True, "user_id": user_id}, "warnings": []}), 200
