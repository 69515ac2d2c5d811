"""
routes/groups.py — Group, membership and invitation route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group
  GET    /groups                        → 200  list caller's groups
  GET    /groups/invites                → 200  list caller's pending invitations
  GET    /groups/:id                    → 200  get group + members
  PATCH  /groups/:id                    → 200  update title / description (owner)
  DELETE /groups/:id                    → 200  delete group (owner)
  POST   /groups/:id/invites            → 201  invite a user (any member)
  POST   /groups/:id/invites/respond    → 200  accept / decline own invitation
  DELETE /groups/:id/members/:uid       → 200  remove member (owner or self)
  POST   /groups/:id/reconcile          → 200  run the reconciliation sweep
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from spliitz.app.extensions import db
from spliitz.app.middleware.auth_middleware import require_auth
from spliitz.app.schemas.group_schema import (
    CreateGroupSchema,
    InviteMemberSchema,
    RespondSchema,
    UpdateGroupSchema,
)
from spliitz.app.services import approval_service, group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a new group. Caller becomes owner and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.create_group(
        title=data["title"],
        description=data["description"],
        owner_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups — List all groups the authenticated user belongs to."""
    result = group_service.list_groups(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/invites", methods=["GET"])
@require_auth
def list_invites():
    result = group_service.list_group_invites(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — Get group details with member list. Caller must be member."""
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH"])
@require_auth
def update_group(group_id: int):
    data = UpdateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.update_group(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    group_service.delete_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"deleted": True, "group_id": group_id}, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/invites", methods=["POST"])
@require_auth
def invite_member(group_id: int):
    """POST /groups/:id/invites — Invite a user. Any member may invite."""
    data = InviteMemberSchema().load(request.get_json(force=True) or {})
    result = group_service.invite_member(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=data["user_id"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/invites/respond", methods=["POST"])
@require_auth
def respond_to_invite(group_id: int):
    data = RespondSchema().load(request.get_json(force=True) or {})
    result = group_service.respond_to_invite(
        group_id=group_id,
        user_id=g.user_id,
        accept=data["accept"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    """DELETE /groups/:id/members/:uid — Owner removes any non-owner; member removes self."""
    group_service.remove_member(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=target_uid,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": target_uid,
        },
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>/reconcile", methods=["POST"])
@require_auth
def reconcile(group_id: int):
    """
    POST /groups/:id/reconcile — Finalize fully approved proposals and
    backfill missing dues. Safe to call any number of times.
    """
    result = approval_service.reconcile_group_as_member(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
