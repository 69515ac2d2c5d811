"""
services/user_service.py — Profiles, user search and the home summary.

Layer rules:
  - No Flask imports. Commits are the caller's responsibility.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode
from spliitz.app.models.expense import Expense
from spliitz.app.models.membership import Membership
from spliitz.app.models.split import Split
from spliitz.app.models.user import User
from spliitz.app.services import due_service
from spliitz.app.services.access import get_user_or_404, public_user_dict
from spliitz.app.services.auth_service import build_user_dict

SEARCH_LIMIT = 10


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def get_user(user_id: int, session: Session) -> dict:
    return public_user_dict(get_user_or_404(user_id, session))


def search_users(query: str, caller_id: int, session: Session) -> list[dict]:
    """
    Up to SEARCH_LIMIT users whose username or full name contains `query`
    (case-insensitive), excluding the caller. A blank query matches nobody.
    """
    query = (query or "").strip()
    if not query:
        return []

    pattern = f"%{_escape_like(query)}%"
    stmt = (
        select(User)
        .where(
            User.id != caller_id,
            or_(
                User.username.ilike(pattern, escape="\\"),
                User.full_name.ilike(pattern, escape="\\"),
            ),
        )
        .order_by(User.username.asc())
        .limit(SEARCH_LIMIT)
    )
    return [public_user_dict(u) for u in session.execute(stmt).scalars().all()]


def username_available(username: str, session: Session) -> bool:
    existing = session.execute(
        select(User.id).where(User.username == username)
    ).scalar_one_or_none()
    return existing is None


def update_profile(user_id: int, data: dict, session: Session) -> dict:
    """
    Updates full_name and/or username.

    Raises:
      AppError(USER_NOT_FOUND, 404)
      AppError(DUPLICATE_USERNAME, 409)
    """
    user = get_user_or_404(user_id, session)

    new_username = data.get("username")
    if new_username is not None and new_username != user.username:
        if not username_available(new_username, session):
            raise AppError(
                ErrorCode.DUPLICATE_USERNAME,
                f"The username '{new_username}' is already taken.",
                409,
                field="username",
            )
        user.username = new_username

    if "full_name" in data:
        user.full_name = data["full_name"].strip()

    session.flush()
    return build_user_dict(user)


def get_summary(
        user_id: int,
        today: date,
        window_days: int,
        session: Session,
) -> dict:
    """
    Home screen numbers:
      monthly_total     — the user's shares in finalized expenses dated this month
      pending_proposals — proposals the user has a share in
      upcoming_dues     — unpaid dues owed by the user falling due within the window
    """
    month_start = today.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)

    amounts = session.execute(
        select(Split.amount)
        .join(Expense, Split.expense_id == Expense.id)
        .where(
            Split.user_id == user_id,
            Expense.proposal.is_(False),
            Expense.expense_date >= month_start,
            Expense.expense_date < next_month,
        )
    ).scalars().all()
    monthly_total = sum(amounts, Decimal("0.00"))

    # Same scope as expense_service.list_pending_proposals: current groups only.
    pending_proposals = session.execute(
        select(func.count(Split.id))
        .join(Expense, Split.expense_id == Expense.id)
        .join(
            Membership,
            (Membership.group_id == Expense.group_id)
            & (Membership.user_id == user_id),
        )
        .where(
            Split.user_id == user_id,
            Expense.proposal.is_(True),
            Membership.invite.is_(False),
        )
    ).scalar_one()

    upcoming = due_service.list_upcoming_dues(user_id, today, window_days, session)

    return {
        "monthly_total": str(monthly_total),
        "pending_proposals": pending_proposals,
        "upcoming_dues": len(upcoming),
    }
