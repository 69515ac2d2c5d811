"""
services/expense_service.py — Expense (proposal) business logic.

Checks enforced here:
  SPLIT_SUM_MISMATCH (422)      — sum(splits.amount) == expense.total_amount exactly
  PAYER_NOT_MEMBER (422)        — payer_user_id, when given, must be a group member
  SPLIT_USER_NOT_MEMBER (422)   — every split.user_id must be a group member
  EXPENSE_HAS_PAYMENTS (409)    — no edit or delete once any due is paid
  FORBIDDEN (403)               — caller must be a group member

Authorization rules:
  - Create/List/Get: caller must be a group member
  - Update/Delete:   caller must be the creator, the payer, or the group owner

Every new or edited expense starts as a proposal. The caller's own share is
approved on their behalf; everyone else approves through
approval_service.approve_expense().

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain ints and dicts; returns ORM objects or raises AppError.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode
from spliitz.app.models.activity import ActivityType
from spliitz.app.models.expense import Expense
from spliitz.app.models.membership import Membership
from spliitz.app.models.split import Split
from spliitz.app.models.user import User
from spliitz.app.services import activity_service, approval_service
from spliitz.app.services.access import (
    get_expense_or_404,
    get_group_or_404,
    get_member_ids,
    require_member,
)

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _validate_payer_is_member(
        payer_user_id: int | None,
        group_id: int,
        member_ids: list[int],
) -> None:
    """Raises PAYER_NOT_MEMBER (422) if a payer is given and is not in the group."""
    if payer_user_id is not None and payer_user_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {payer_user_id} is not a member of group {group_id}.",
            422,
            field="payer_user_id",
        )


def _validate_split_users_are_members(
        splits: list[dict],
        group_id: int,
        member_ids: list[int],
) -> None:
    """Raises SPLIT_USER_NOT_MEMBER (422) for the first split user not in the group."""
    member_set = set(member_ids)
    for split in splits:
        if split["user_id"] not in member_set:
            raise AppError(
                ErrorCode.SPLIT_USER_NOT_MEMBER,
                f"User {split['user_id']} is not a member of group {group_id}.",
                422,
                field="splits",
            )


def _validate_split_sum(splits: list[dict], expected_amount: Decimal) -> None:
    """
    Raises SPLIT_SUM_MISMATCH (422) if sum(splits.amount) != expected_amount.
    Uses Decimal arithmetic — never float.
    """
    total = sum((s["amount"] for s in splits), Decimal("0"))
    if total != expected_amount:
        raise AppError(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({total}) do not equal expense amount ({expected_amount}).",
            422,
            field="splits",
        )


def _validate_expense_input(
        group_id: int,
        payer_user_id: int | None,
        total_amount: Decimal,
        splits: list[dict],
        session: Session,
) -> None:
    member_ids = get_member_ids(group_id, session)
    _validate_payer_is_member(payer_user_id, group_id, member_ids)
    _validate_split_users_are_members(splits, group_id, member_ids)
    _validate_split_sum(splits, total_amount)


def _add_splits(expense: Expense, splits_data: list[dict], approved_by: int) -> None:
    """Appends Split rows; the share of `approved_by` starts approved."""
    for s in splits_data:
        expense.splits.append(
            Split(
                user_id=s["user_id"],
                amount=s["amount"],
                approved=s["user_id"] == approved_by,
            )
        )


def _notify_participants(expense: Expense, actor_id: int, session: Session) -> None:
    """Tells every other participant there is a share waiting for approval."""
    actor = session.get(User, actor_id)
    for split in expense.splits:
        if split.user_id == actor_id:
            continue
        activity_service.create_activity(
            user_id=split.user_id,
            type=ActivityType.EXPENSE_PROPOSED,
            title="New Expense Proposal",
            message=(
                f'{actor.full_name} proposed "{expense.title}". '
                f"Your share is {split.amount}."
            ),
            related_id=expense.id,
            session=session,
        )


def _require_editor(expense: Expense, caller_id: int, action: str) -> None:
    """Creator, payer, or group owner."""
    allowed = {
        expense.created_by_user_id,
        expense.payer_user_id,
        expense.group.owner_user_id,
    }
    if caller_id not in allowed:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the creator, the payer, or the group owner may {action} this expense.",
            403,
        )


def _require_no_payments(expense: Expense) -> None:
    if any(d.paid for d in expense.dues):
        raise AppError(
            ErrorCode.EXPENSE_HAS_PAYMENTS,
            f"Expense {expense.id} has dues that were already paid.",
            409,
        )


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Records a new expense proposal for a group.

    Args:
        group_id:  The group this expense belongs to.
        caller_id: The authenticated user creating the expense.
        data:      Validated dict from CreateExpenseSchema.

    If the caller is the only participant the expense is finalized at once.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)
      AppError(PAYER_NOT_MEMBER, 422)
      AppError(SPLIT_USER_NOT_MEMBER, 422)
      AppError(SPLIT_SUM_MISMATCH, 422)
    """
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    _validate_expense_input(
        group_id,
        data.get("payer_user_id"),
        data["total_amount"],
        data["splits"],
        session,
    )

    expense = Expense(
        group_id=group_id,
        created_by_user_id=caller_id,
        payer_user_id=data.get("payer_user_id"),
        title=data["title"].strip(),
        explanation=data.get("explanation"),
        total_amount=data["total_amount"],
        expense_date=data.get("expense_date") or date.today(),
        due_date=data.get("due_date"),
        proposal=True,
    )
    _add_splits(expense, data["splits"], approved_by=caller_id)
    session.add(expense)
    session.flush()

    _notify_participants(expense, caller_id, session)
    session.flush()
    logger.info("expense %s proposed in group %s", expense.id, group_id)

    approval_service.check_and_finalize(expense, session)
    return expense


def list_group_expenses(group_id: int, caller_id: int, session: Session) -> list[Expense]:
    """Finalized expenses of a group, newest expense_date first."""
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    stmt = (
        select(Expense)
        .where(
            Expense.group_id == group_id,
            Expense.proposal.is_(False),
        )
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def list_pending_proposals(
        caller_id: int,
        session: Session,
        group_id: int | None = None,
) -> list[tuple[Expense, Split]]:
    """
    Proposals the caller has a share in, paired with the caller's split.
    Limited to groups the caller is a member of; optionally to one group.
    """
    stmt = (
        select(Expense, Split)
        .join(Split, Split.expense_id == Expense.id)
        .join(
            Membership,
            (Membership.group_id == Expense.group_id)
            & (Membership.user_id == caller_id),
        )
        .where(
            Split.user_id == caller_id,
            Expense.proposal.is_(True),
            Membership.invite.is_(False),
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )

    if group_id is not None:
        get_group_or_404(group_id, session)
        require_member(group_id, caller_id, session)
        stmt = stmt.where(Expense.group_id == group_id)

    return [(row[0], row[1]) for row in session.execute(stmt).all()]


def get_expense(expense_id: int, caller_id: int, session: Session) -> Expense:
    """
    Returns the expense with its splits and dues.
    The caller must be a member of the expense's group.
    """
    expense = get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)
    return expense


def update_expense(
        expense_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Replaces an expense's fields and shares and turns it back into a proposal.

    Existing dues are removed and finalized_at is cleared. The editor's own
    share starts approved; everyone else must approve again.

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)              — not a member, or not allowed to edit
      AppError(EXPENSE_HAS_PAYMENTS, 409)   — a due has already been paid
      AppError(PAYER_NOT_MEMBER, 422)
      AppError(SPLIT_USER_NOT_MEMBER, 422)
      AppError(SPLIT_SUM_MISMATCH, 422)
    """
    expense = get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)
    _require_editor(expense, caller_id, "edit")
    _require_no_payments(expense)

    payer_user_id = data.get("payer_user_id", expense.payer_user_id)
    _validate_expense_input(
        expense.group_id,
        payer_user_id,
        data["total_amount"],
        data["splits"],
        session,
    )

    # Old rows must be gone before the new ones are inserted:
    # uq_splits_expense_user and uq_dues_expense_debtor.
    expense.dues.clear()
    expense.splits.clear()
    session.flush()

    expense.title = data["title"].strip()
    expense.explanation = data.get("explanation")
    expense.total_amount = data["total_amount"]
    expense.payer_user_id = payer_user_id
    if data.get("expense_date") is not None:
        expense.expense_date = data["expense_date"]
    expense.due_date = data.get("due_date")
    expense.proposal = True
    expense.finalized_at = None
    expense.updated_at = datetime.now(timezone.utc)

    _add_splits(expense, data["splits"], approved_by=caller_id)
    session.flush()

    _notify_participants(expense, caller_id, session)
    session.flush()
    logger.info("expense %s edited by user %s; back to proposal", expense.id, caller_id)

    approval_service.check_and_finalize(expense, session)
    return expense


def delete_expense(expense_id: int, caller_id: int, session: Session) -> None:
    """
    Deletes an expense with its splits and dues.

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)
      AppError(EXPENSE_HAS_PAYMENTS, 409)
    """
    expense = get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)
    _require_editor(expense, caller_id, "delete")
    _require_no_payments(expense)

    session.delete(expense)
    session.flush()
    logger.info("expense %s deleted by user %s", expense_id, caller_id)


def list_calendar_expenses(
        caller_id: int,
        start: date,
        end: date,
        session: Session,
) -> list[Expense]:
    """Expenses across the caller's groups whose due_date is in [start, end]."""
    stmt = (
        select(Expense)
        .join(Membership, Membership.group_id == Expense.group_id)
        .where(
            Membership.user_id == caller_id,
            Membership.invite.is_(False),
            Expense.due_date.is_not(None),
            Expense.due_date >= start,
            Expense.due_date <= end,
        )
        .order_by(Expense.due_date.asc(), Expense.id.asc())
    )
    return list(session.execute(stmt).scalars().all())
