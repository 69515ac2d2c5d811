"""
services/access.py — Lookups and membership guards shared by the services.

Every "is this user in the group?" question in the codebase goes through
require_member() / get_member_ids(), which only count rows with
invite = False. A pending invitee is not a member.

Layer rules:
  - No Flask imports. Receives plain ints and a SQLAlchemy session.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode
from spliitz.app.models.expense import Expense
from spliitz.app.models.group import Group
from spliitz.app.models.membership import Membership
from spliitz.app.models.user import User


def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Returns the Expense or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def get_user_or_404(user_id: int, session: Session) -> User:
    """Returns the User or raises USER_NOT_FOUND (404)."""
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
            404,
        )
    return user


def is_member(group_id: int, user_id: int, session: Session) -> bool:
    membership = session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
            Membership.invite.is_(False),
        )
    ).scalar_one_or_none()
    return membership is not None


def require_member(group_id: int, user_id: int, session: Session) -> None:
    """
    Raises FORBIDDEN (403) if user_id is not a member of group_id.
    Non-members receive 403, not 404.
    """
    if not is_member(group_id, user_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def get_member_ids(group_id: int, session: Session) -> list[int]:
    """Returns the user_ids of all current (non-invited) members of a group."""
    stmt = select(Membership.user_id).where(
        Membership.group_id == group_id,
        Membership.invite.is_(False),
    )
    return list(session.execute(stmt).scalars().all())


def public_user_dict(user: User) -> dict:
    """Profile fields any authenticated user may see. No email."""
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
    }
