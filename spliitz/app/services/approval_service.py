"""
services/approval_service.py — Expense approval & dues state machine.

    Proposed → PartiallyApproved → Finalized → DuesOutstanding
             → PaidPendingConfirm → Settled

The state is never stored. derive_state() computes it from three facts:
the expense's `proposal` flag, its split approvals, and its dues.

Transitions owned here:
  - approve_expense():     a participant approves their own share
  - check_and_finalize():  every share approved → proposal = False + dues
  - generate_dues():       one due per non-payer split, creditor = payer
  - claim_payer():         a member becomes payer of a payer-less expense
  - reconcile_group():     idempotent sweep that finishes any of the above a
                           crashed client left half-done

Dues transitions (paid, received) live in due_service.py.

Layer rules:
  - No Flask imports. Commits are the caller's responsibility.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode, WarningCode
from spliitz.app.models.activity import ActivityType
from spliitz.app.models.due import Due
from spliitz.app.models.expense import Expense
from spliitz.app.models.group import Group
from spliitz.app.services import activity_service
from spliitz.app.services.access import (
    get_expense_or_404,
    get_group_or_404,
    require_member,
)

logger = logging.getLogger(__name__)


class ExpenseState(str, enum.Enum):
    PROPOSED             = "Proposed"
    PARTIALLY_APPROVED   = "PartiallyApproved"
    FINALIZED            = "Finalized"
    DUES_OUTSTANDING     = "DuesOutstanding"
    PAID_PENDING_CONFIRM = "PaidPendingConfirm"
    SETTLED              = "Settled"


# ── Pure state derivation ──────────────────────────────────────────────────

def derive_state(
        proposal: bool,
        approvals: Iterable[bool],
        dues: Iterable,
        dues_expected: bool = False,
) -> ExpenseState:
    """
    Maps (proposal, approvals, dues) to a state.

    Args:
        proposal:      Expense.proposal.
        approvals:     Split.approved for every share.
        dues:          Objects with `paid` and `received` attributes.
        dues_expected: True when a finalized expense should carry dues but
                       has none yet (no payer, or backfill pending).

    A proposal whose shares are all approved but which has not been
    finalized is still PartiallyApproved; reconciliation finishes it.
    """
    if proposal:
        if any(approvals):
            return ExpenseState.PARTIALLY_APPROVED
        return ExpenseState.PROPOSED

    dues = list(dues)
    if not dues:
        return ExpenseState.FINALIZED if dues_expected else ExpenseState.SETTLED
    if any(not d.paid for d in dues):
        return ExpenseState.DUES_OUTSTANDING
    if any(not d.received for d in dues):
        return ExpenseState.PAID_PENDING_CONFIRM
    return ExpenseState.SETTLED


def _has_non_payer_shares(expense: Expense) -> bool:
    return any(s.user_id != expense.payer_user_id for s in expense.splits)


def _dues_expected(expense: Expense) -> bool:
    """No payer yet, or a payer with other people's shares to collect."""
    return expense.payer_user_id is None or _has_non_payer_shares(expense)


def expense_state(expense: Expense) -> ExpenseState:
    return derive_state(
        expense.proposal,
        [s.approved for s in expense.splits],
        expense.dues,
        dues_expected=_dues_expected(expense),
    )


# ── Transitions ────────────────────────────────────────────────────────────

def generate_dues(expense: Expense, session: Session) -> list[Due]:
    """
    Creates one due per non-payer split: debtor = split user,
    creditor = payer, amount = share.

    Never creates a due for the payer. Does nothing when the expense has no
    payer. Debtors that already have a due for this expense are skipped, so
    calling this twice is harmless.

    Returns the dues created by this call.
    """
    if expense.payer_user_id is None:
        logger.debug("expense %s has no payer; no dues generated", expense.id)
        return []

    existing = {d.debtor_user_id for d in expense.dues}
    created: list[Due] = []

    for split in expense.splits:
        if split.user_id == expense.payer_user_id or split.user_id in existing:
            continue
        due = Due(
            creditor_user_id=expense.payer_user_id,
            debtor_user_id=split.user_id,
            amount=split.amount,
            paid=False,
            received=False,
        )
        expense.dues.append(due)
        created.append(due)

    session.flush()
    if created:
        logger.info("expense %s: generated %d dues", expense.id, len(created))
    return created


def check_and_finalize(expense: Expense, session: Session) -> bool:
    """
    Finalizes the expense if it is still a proposal and every share has
    been approved: proposal = False, finalized_at = now, dues generated,
    participants notified.

    Returns True when this call finalized the expense.
    """
    if not expense.proposal:
        return False
    if not expense.splits or not all(s.approved for s in expense.splits):
        return False

    expense.proposal = False
    expense.finalized_at = datetime.now(timezone.utc)
    session.flush()

    generate_dues(expense, session)

    for split in expense.splits:
        activity_service.create_activity(
            user_id=split.user_id,
            type=ActivityType.EXPENSE_FINALIZED,
            title="Expense Finalized",
            message=f'"{expense.title}" was approved by everyone and finalized',
            related_id=expense.id,
            session=session,
        )
    session.flush()

    logger.info("expense %s finalized", expense.id)
    return True


def approve_expense(
        expense_id: int,
        user_id: int,
        session: Session,
) -> tuple[Expense, list[dict]]:
    """
    Records user_id's approval of their own share, then finalizes the
    expense if that was the last missing approval.

    Approving twice is a no-op. Approving an already finalized expense
    changes nothing and returns an ALREADY_FINALIZED warning.

    Holding a share is the only requirement. A participant who has since
    left the group can still approve, otherwise the proposal could never
    finalize.

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)
      AppError(NOT_SPLIT_PARTICIPANT, 403) — no share in this expense
    """
    expense = get_expense_or_404(expense_id, session)

    split = next((s for s in expense.splits if s.user_id == user_id), None)
    if split is None:
        raise AppError(
            ErrorCode.NOT_SPLIT_PARTICIPANT,
            f"You have no share in expense {expense_id}.",
            403,
        )

    warnings: list[dict] = []
    if not expense.proposal:
        warnings.append({
            "code": WarningCode.ALREADY_FINALIZED,
            "message": f"Expense {expense_id} has already been finalized.",
        })
        return expense, warnings

    if not split.approved:
        split.approved = True
        session.flush()
        logger.debug("user %s approved expense %s", user_id, expense_id)

    check_and_finalize(expense, session)
    return expense, warnings


def claim_payer(expense_id: int, caller_id: int, session: Session) -> Expense:
    """
    Makes the caller the payer of an expense that has none. If the expense
    is already finalized its dues are generated against the new payer.

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)          — not a member of the group
      AppError(PAYER_ALREADY_SET, 409)
    """
    expense = get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)

    if expense.payer_user_id is not None:
        raise AppError(
            ErrorCode.PAYER_ALREADY_SET,
            f"Expense {expense_id} already has a payer.",
            409,
        )

    # Dues must be gone before regenerating: uq_dues_expense_debtor.
    expense.dues.clear()
    expense.payer_user_id = caller_id
    session.flush()

    if not expense.proposal:
        generate_dues(expense, session)

    logger.info("user %s claimed payer of expense %s", caller_id, expense_id)
    return expense


# ── Reconciliation ─────────────────────────────────────────────────────────

def reconcile_group(group_id: int, session: Session) -> dict:
    """
    Idempotent sweep over one group:
      1. every proposal whose shares are all approved is finalized;
      2. every finalized expense with a payer, non-payer shares and no dues
         gets its dues generated.

    Returns {"group_id", "finalized": [expense ids], "backfilled": [expense ids]}.
    """
    finalized: list[int] = []
    backfilled: list[int] = []

    expenses = session.execute(
        select(Expense)
        .where(Expense.group_id == group_id)
        .order_by(Expense.id)
    ).scalars().all()

    for expense in expenses:
        if expense.proposal:
            if check_and_finalize(expense, session):
                finalized.append(expense.id)
            continue

        if (
                expense.payer_user_id is not None
                and not expense.dues
                and _has_non_payer_shares(expense)
        ):
            generate_dues(expense, session)
            backfilled.append(expense.id)

    if finalized or backfilled:
        logger.info(
            "reconciled group %s: finalized=%s backfilled=%s",
            group_id, finalized, backfilled,
        )
    else:
        logger.debug("reconciled group %s: nothing to do", group_id)

    return {"group_id": group_id, "finalized": finalized, "backfilled": backfilled}


def reconcile_group_as_member(group_id: int, caller_id: int, session: Session) -> dict:
    """POST /groups/:id/reconcile — members only."""
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)
    return reconcile_group(group_id, session)


def reconcile_all(session: Session) -> dict:
    """Runs reconcile_group() over every group."""
    group_ids = session.execute(select(Group.id).order_by(Group.id)).scalars().all()

    finalized: list[int] = []
    backfilled: list[int] = []
    for group_id in group_ids:
        result = reconcile_group(group_id, session)
        finalized.extend(result["finalized"])
        backfilled.extend(result["backfilled"])

    logger.info(
        "reconciled %d groups: %d finalized, %d backfilled",
        len(group_ids), len(finalized), len(backfilled),
    )
    return {"groups": len(group_ids), "finalized": finalized, "backfilled": backfilled}
