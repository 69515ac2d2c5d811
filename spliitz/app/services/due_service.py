"""
services/due_service.py — Paying and confirming dues.

    DuesOutstanding ──mark_due_paid()──▶ PaidPendingConfirm
    PaidPendingConfirm ──confirm_due_receipt()──▶ Settled

A due is owned by its debtor (who marks it paid) and its creditor (who
confirms receipt). received = True always comes with paid = True; the
dues table carries CHECK(NOT received OR paid) as well.

settle_with_friend() clears everything between two users in one call.

Layer rules:
  - No Flask imports. Commits are the caller's responsibility.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode, WarningCode
from spliitz.app.models.activity import ActivityType
from spliitz.app.models.due import Due
from spliitz.app.models.expense import Expense
from spliitz.app.models.user import User
from spliitz.app.services import activity_service
from spliitz.app.services.access import get_expense_or_404, get_user_or_404

logger = logging.getLogger(__name__)


def serialize_due(due: Due) -> dict:
    """Due with the bits of its expense a payments screen needs."""
    return {
        "id": due.id,
        "expense_id": due.expense_id,
        "expense_title": due.expense.title,
        "group_id": due.expense.group_id,
        "due_date": due.expense.due_date.isoformat() if due.expense.due_date else None,
        "creditor_user_id": due.creditor_user_id,
        "debtor_user_id": due.debtor_user_id,
        "amount": str(due.amount),
        "paid": due.paid,
        "received": due.received,
        "paid_at": due.paid_at.isoformat() if due.paid_at else None,
        "received_at": due.received_at.isoformat() if due.received_at else None,
    }


def _get_due_or_404(expense_id: int, debtor_id: int, session: Session) -> Due:
    get_expense_or_404(expense_id, session)
    due = session.execute(
        select(Due).where(
            Due.expense_id == expense_id,
            Due.debtor_user_id == debtor_id,
        )
    ).scalar_one_or_none()
    if due is None:
        raise AppError(
            ErrorCode.DUE_NOT_FOUND,
            f"No due for user {debtor_id} on expense {expense_id}.",
            404,
        )
    return due


def mark_due_paid(expense_id: int, debtor_id: int, session: Session) -> Due:
    """
    The debtor marks their own due as paid and the creditor is told to
    confirm. Marking an already paid due changes nothing.

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)
      AppError(DUE_NOT_FOUND, 404) — the caller owes nothing on this expense
    """
    due = _get_due_or_404(expense_id, debtor_id, session)
    if due.paid:
        return due

    due.paid = True
    due.paid_at = datetime.now(timezone.utc)

    debtor = session.get(User, debtor_id)
    activity_service.create_activity(
        user_id=due.creditor_user_id,
        type=ActivityType.DUES_PAID,
        title="Payment Sent",
        message=(
            f'{debtor.full_name} paid {due.amount} for "{due.expense.title}". '
            f"Please confirm you received it."
        ),
        related_id=expense_id,
        session=session,
    )
    session.flush()

    logger.info("due %s marked paid by user %s", due.id, debtor_id)
    return due


def confirm_due_receipt(
        expense_id: int,
        debtor_id: int,
        caller_id: int,
        session: Session,
) -> Due:
    """
    The creditor confirms they received the debtor's payment. Sets received
    and, if the debtor never marked it, paid as well.

    Raises:
      AppError(DUE_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403) — the caller is not the creditor
    """
    due = _get_due_or_404(expense_id, debtor_id, session)

    if due.creditor_user_id != caller_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the person who was paid may confirm receipt.",
            403,
        )

    if due.received:
        return due

    now = datetime.now(timezone.utc)
    if not due.paid:
        due.paid = True
        due.paid_at = now
    due.received = True
    due.received_at = now

    creditor = session.get(User, caller_id)
    activity_service.create_activity(
        user_id=debtor_id,
        type=ActivityType.PAYMENT_CONFIRMED,
        title="Payment Confirmed",
        message=f'{creditor.full_name} confirmed your payment for "{due.expense.title}"',
        related_id=expense_id,
        session=session,
    )
    session.flush()

    logger.info("due %s confirmed by user %s", due.id, caller_id)
    return due


def settle_with_friend(
        user_id: int,
        friend_id: int,
        session: Session,
) -> tuple[dict, list[dict]]:
    """
    Settles everything between two users:
      - the caller's unpaid dues to the friend become paid;
      - the friend's unreceived dues to the caller become paid and received.

    Returns ({"paid": n, "received": n}, warnings). NOTHING_TO_SETTLE is
    returned as a warning when neither direction had anything open.
    """
    get_user_or_404(friend_id, session)
    now = datetime.now(timezone.utc)

    owed_by_me = session.execute(
        select(Due).where(
            Due.debtor_user_id == user_id,
            Due.creditor_user_id == friend_id,
            Due.paid.is_(False),
        )
    ).scalars().all()
    for due in owed_by_me:
        due.paid = True
        due.paid_at = now

    owed_to_me = session.execute(
        select(Due).where(
            Due.debtor_user_id == friend_id,
            Due.creditor_user_id == user_id,
            Due.received.is_(False),
        )
    ).scalars().all()
    for due in owed_to_me:
        if not due.paid:
            due.paid = True
            due.paid_at = now
        due.received = True
        due.received_at = now

    warnings: list[dict] = []
    if not owed_by_me and not owed_to_me:
        warnings.append({
            "code": WarningCode.NOTHING_TO_SETTLE,
            "message": f"There are no open dues between you and user {friend_id}.",
        })
    else:
        user = session.get(User, user_id)
        activity_service.create_activity(
            user_id=friend_id,
            type=ActivityType.DUES_PAID,
            title="Settled Up",
            message=f"{user.full_name} settled up all dues with you",
            related_id=user_id,
            session=session,
        )
    session.flush()

    logger.info(
        "user %s settled with %s: %d paid, %d received",
        user_id, friend_id, len(owed_by_me), len(owed_to_me),
    )
    return {"paid": len(owed_by_me), "received": len(owed_to_me)}, warnings


def list_dues_between(user_id: int, other_id: int, session: Session) -> list[Due]:
    """All dues in either direction between two users, newest first."""
    get_user_or_404(other_id, session)
    stmt = (
        select(Due)
        .where(
            or_(
                and_(Due.debtor_user_id == user_id, Due.creditor_user_id == other_id),
                and_(Due.debtor_user_id == other_id, Due.creditor_user_id == user_id),
            )
        )
        .order_by(Due.created_at.desc(), Due.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def list_upcoming_dues(
        user_id: int,
        today: date,
        window_days: int,
        session: Session,
) -> list[Due]:
    """Unpaid dues owed by the user that fall due in [today, today + window]."""
    return list_unpaid_dues(user_id, today, today + timedelta(days=window_days), session)


def list_unpaid_dues(
        user_id: int,
        start: date,
        end: date,
        session: Session,
) -> list[Due]:
    """Unpaid dues owed by the user whose expense due_date is in [start, end]."""
    stmt = (
        select(Due)
        .join(Expense, Due.expense_id == Expense.id)
        .where(
            Due.debtor_user_id == user_id,
            Due.paid.is_(False),
            Expense.due_date.is_not(None),
            Expense.due_date >= start,
            Expense.due_date <= end,
        )
        .order_by(Expense.due_date.asc(), Due.id.asc())
    )
    return list(session.execute(stmt).scalars().all())
