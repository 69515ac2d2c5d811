"""
services/group_service.py — Group, membership and invitation business logic.

Membership model:
  - Membership.invite = True  → pending invitation (not a member yet)
  - Membership.invite = False → full member
  A pending invitee cannot read or write anything in the group.

Authorization rules:
  - Inviting a member:  any member
  - Updating/deleting:  group owner only
  - Removing a member:  owner may remove any non-owner; a member may remove
                        themselves; the owner can never be removed

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode
from spliitz.app.models.activity import ActivityType
from spliitz.app.models.group import Group
from spliitz.app.models.membership import Membership
from spliitz.app.models.user import User
from spliitz.app.services import activity_service
from spliitz.app.services.access import (
    get_group_or_404,
    get_user_or_404,
    public_user_dict,
    require_member,
)

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _require_owner(group: Group, caller_id: int, action: str) -> None:
    if caller_id != group.owner_user_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the group owner may {action}.",
            403,
        )


def _get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    """Any row for (group, user), pending invite or not."""
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def _get_members(group_id: int, session: Session) -> list[User]:
    stmt = (
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(
            Membership.group_id == group_id,
            Membership.invite.is_(False),
        )
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _build_group_summary(group: Group) -> dict:
    return {
        "id": group.id,
        "title": group.title,
        "description": group.description,
        "owner_user_id": group.owner_user_id,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


def _build_group_dict(group: Group, members: list[User]) -> dict:
    """Serialises a Group with its member list to a plain dict."""
    return {
        **_build_group_summary(group),
        "members": [public_user_dict(m) for m in members],
    }


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        title: str,
        description: str | None,
        owner_id: int,
        session: Session,
) -> dict:
    """
    Creates a new group. The creator becomes the owner and the first member.
    """
    group = Group(
        title=title.strip(),
        description=description,
        owner_user_id=owner_id,
    )
    session.add(group)
    session.flush()  # populate group.id before creating membership

    session.add(Membership(user_id=owner_id, group_id=group.id, invite=False))
    session.flush()
    session.refresh(group)

    owner = session.get(User, owner_id)
    return _build_group_dict(group, [owner] if owner else [])


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Returns all groups the user is a member of, ordered by creation date.
    Pending invitations are listed separately by list_group_invites().
    """
    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(
            Membership.user_id == user_id,
            Membership.invite.is_(False),
        )
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    return [_build_group_summary(g) for g in session.execute(stmt).scalars().all()]


def list_group_invites(user_id: int, session: Session) -> list[dict]:
    """Groups the user has been invited to but has not joined yet."""
    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(
            Membership.user_id == user_id,
            Membership.invite.is_(True),
        )
        .order_by(Membership.joined_at.desc(), Membership.id.desc())
    )
    return [_build_group_summary(g) for g in session.execute(stmt).scalars().all()]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Returns full group details including the current member list.
    Non-members (including pending invitees) receive 403.
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)
    return _build_group_dict(group, _get_members(group_id, session))


def update_group(group_id: int, caller_id: int, data: dict, session: Session) -> dict:
    """
    Updates title and/or description. Owner only.
    """
    group = get_group_or_404(group_id, session)
    _require_owner(group, caller_id, "edit the group")

    if "title" in data:
        group.title = data["title"].strip()
    if "description" in data:
        group.description = data["description"]
    session.flush()

    return _build_group_dict(group, _get_members(group_id, session))


def delete_group(group_id: int, caller_id: int, session: Session) -> None:
    """
    Deletes the group with its expenses (and their splits and dues) and
    memberships. Owner only.
    """
    group = get_group_or_404(group_id, session)
    _require_owner(group, caller_id, "delete the group")

    expense_count = len(group.expenses)
    for expense in list(group.expenses):
        session.delete(expense)  # splits and dues go with it
    for membership in list(group.memberships):
        session.delete(membership)
    session.delete(group)
    session.flush()

    logger.info("group %s deleted with %d expenses", group_id, expense_count)


def invite_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> dict:
    """
    Invites a user to a group. Any member may invite.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(FORBIDDEN, 403)        — caller is not a member
      AppError(USER_NOT_FOUND, 404)   — target user does not exist
      AppError(ALREADY_MEMBER, 409)   — user is a member or already invited
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)
    target_user = get_user_or_404(target_user_id, session)

    if _get_membership(group_id, target_user_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target_user_id} is already a member of or invited to group {group_id}.",
            409,
        )

    membership = Membership(user_id=target_user_id, group_id=group_id, invite=True)
    session.add(membership)

    inviter = session.get(User, caller_id)
    activity_service.create_activity(
        user_id=target_user_id,
        type=ActivityType.GROUP_INVITE,
        title="Group Invitation",
        message=f'{inviter.full_name} invited you to join "{group.title}"',
        related_id=group_id,
        session=session,
    )
    session.flush()

    return {
        "group_id": group_id,
        "user": public_user_dict(target_user),
        "invite": True,
    }


def respond_to_invite(
        group_id: int,
        user_id: int,
        accept: bool,
        session: Session,
) -> dict:
    """
    Accepts or declines a pending invitation.

    Accepting turns the row into a full membership and tells the owner.
    Declining deletes the row.

    Raises:
      AppError(INVITE_NOT_FOUND, 404) — no pending invitation for this user
    """
    group = get_group_or_404(group_id, session)
    membership = _get_membership(group_id, user_id, session)

    if membership is None or not membership.invite:
        raise AppError(
            ErrorCode.INVITE_NOT_FOUND,
            f"You have no pending invitation to group {group_id}.",
            404,
        )

    if not accept:
        session.delete(membership)
        session.flush()
        return {"group_id": group_id, "joined": False}

    membership.invite = False

    user = session.get(User, user_id)
    activity_service.create_activity(
        user_id=group.owner_user_id,
        type=ActivityType.JOINED_GROUP,
        title="New Group Member",
        message=f'{user.full_name} joined "{group.title}"',
        related_id=group_id,
        session=session,
    )
    session.flush()

    return {"group_id": group_id, "joined": True}


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Removes a user (member or pending invitee) from a group.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)     — group does not exist
      AppError(FORBIDDEN, 403)           — caller not authorised to remove this user
      AppError(CANNOT_REMOVE_OWNER, 422) — target is the group owner
      AppError(USER_NOT_FOUND, 404)      — target user is not in the group
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    if target_user_id == group.owner_user_id:
        raise AppError(
            ErrorCode.CANNOT_REMOVE_OWNER,
            "The group owner cannot be removed from the group.",
            422,
        )

    is_owner = caller_id == group.owner_user_id
    is_self = caller_id == target_user_id

    if not (is_owner or is_self):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you are the owner.",
            403,
        )

    membership = _get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    session.delete(membership)
    session.flush()
