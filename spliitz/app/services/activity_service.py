"""
services/activity_service.py — In-app activity feed.

Other services call create_activity() when something happens that a user
should hear about (a proposal waiting for approval, an expense finalized, a
payment to confirm). Activities are rows in the same transaction as the
change that caused them.

send_payment_reminders() is the scheduled job behind
`flask send-payment-reminders`.

Layer rules:
  - No Flask imports. Commits are the caller's responsibility.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from spliitz.app.models.activity import Activity, ActivityType
from spliitz.app.models.due import Due
from spliitz.app.models.expense import Expense

logger = logging.getLogger(__name__)


def create_activity(
        user_id: int,
        type: ActivityType,
        title: str,
        message: str,
        session: Session,
        related_id: int | None = None,
) -> Activity:
    """Adds an unread activity for user_id."""
    activity = Activity(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        related_id=related_id,
        is_read=False,
    )
    session.add(activity)
    logger.debug("activity %s queued for user %s", type.value, user_id)
    return activity


def serialize_activity(activity: Activity) -> dict:
    return {
        "id": activity.id,
        "type": activity.type.value,
        "title": activity.title,
        "message": activity.message,
        "related_id": activity.related_id,
        "is_read": activity.is_read,
        "created_at": activity.created_at.isoformat() if activity.created_at else None,
    }


def list_activities(user_id: int, session: Session, limit: int = 50) -> list[Activity]:
    """Newest first."""
    stmt = (
        select(Activity)
        .where(Activity.user_id == user_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars().all())


def mark_all_read(user_id: int, session: Session) -> int:
    """Marks every unread activity of user_id as read. Returns the count."""
    result = session.execute(
        update(Activity)
        .where(Activity.user_id == user_id, Activity.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    session.flush()
    return result.rowcount or 0


def send_payment_reminders(today: date, days: int, session: Session) -> dict:
    """
    Creates a PAYMENT_DUE_SOON activity for every unpaid due whose expense is
    due exactly `days` days after `today`.

    Returns {"target_date": ..., "dues_found": n, "notifications_sent": n}.
    """
    target = today + timedelta(days=days)

    rows = session.execute(
        select(Due, Expense.title)
        .join(Expense, Due.expense_id == Expense.id)
        .where(
            Due.paid.is_(False),
            Expense.due_date == target,
        )
        .order_by(Due.id)
    ).all()

    for due, title in rows:
        create_activity(
            user_id=due.debtor_user_id,
            type=ActivityType.PAYMENT_DUE_SOON,
            title="Payment Due Soon",
            message=f'You have a payment due in {days} days for "{title}"',
            related_id=due.expense_id,
            session=session,
        )
    session.flush()

    logger.info("payment reminders for %s: %d dues", target.isoformat(), len(rows))
    return {
        "target_date": target.isoformat(),
        "dues_found": len(rows),
        "notifications_sent": len(rows),
    }
