"""
services/balance_service.py — Group balances over outstanding dues.

This file is the single place balances are computed. Once an expense is
finalized its debts live in the dues table; a due stops counting toward a
balance only when its creditor has confirmed receipt.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Returns plain Python dicts and lists.

Sum guarantee:
  - Every due adds its amount to one user and subtracts it from another,
    so compute_balances() always sums to zero. get_balance_response()
    checks this before responding; a non-zero sum surfaces as a 500.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode
from spliitz.app.models.due import Due
from spliitz.app.models.expense import Expense
from spliitz.app.models.user import User
from spliitz.app.services.access import get_group_or_404, get_member_ids, require_member


# ── Data access helpers ────────────────────────────────────────────────────

def get_outstanding_dues(group_id: int, session: Session) -> list[Due]:
    """Dues in the group whose receipt has not been confirmed."""
    stmt = (
        select(Due)
        .join(Expense, Due.expense_id == Expense.id)
        .where(
            Expense.group_id == group_id,
            Due.received.is_(False),
        )
    )
    return list(session.execute(stmt).scalars().all())


# ── Core algorithms ────────────────────────────────────────────────────────

def compute_balances(group_id: int, session: Session) -> dict[int, Decimal]:
    """
    Returns {user_id: net_balance} for every current member.

    Positive means the group owes the user; negative means the user owes.

      1. Credit each due's creditor with the due amount.
      2. Debit each due's debtor with the same amount.
      3. Ensure every member appears even if their balance is exactly zero.
    """
    balances: dict[int, Decimal] = defaultdict(Decimal)

    for due in get_outstanding_dues(group_id, session):
        balances[due.creditor_user_id] += due.amount
        balances[due.debtor_user_id] -= due.amount

    for member_id in get_member_ids(group_id, session):
        balances.setdefault(member_id, Decimal("0.00"))

    return dict(balances)


def simplify_debts(balances: dict[int, Decimal]) -> list[dict]:
    """
    Greedy minimum cash flow debt simplification.

    Repeatedly matches the largest debtor with the largest creditor until
    all balances reach zero. For N members, produces at most N-1 transfers.

    Args:
        balances: {user_id: net_balance}; must sum to zero.

    Returns:
        List of {"from_user_id": int, "to_user_id": int, "amount": Decimal}
        An empty list means all balances are already zero.
    """
    creditors = sorted(
        [(uid, amt) for uid, amt in balances.items() if amt > 0],
        key=lambda x: x[1],
        reverse=True,
    )
    debtors = sorted(
        [(uid, -amt) for uid, amt in balances.items() if amt < 0],
        key=lambda x: x[1],
        reverse=True,
    )

    transactions: list[dict] = []
    i = j = 0

    while i < len(creditors) and j < len(debtors):
        cid, credit = creditors[i]
        did, debt = debtors[j]

        transfer = min(credit, debt)
        transactions.append({
            "from_user_id": did,
            "to_user_id": cid,
            "amount": transfer,
        })

        creditors[i] = (cid, credit - transfer)
        debtors[j] = (did, debt - transfer)

        if creditors[i][1] == Decimal("0"):
            i += 1
        if debtors[j][1] == Decimal("0"):
            j += 1

    return transactions


def get_balance_response(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)  -- group does not exist.
        AppError(FORBIDDEN, 403)        -- caller not a group member.
        AppError(INTERNAL_ERROR, 500)   -- balances do not sum to zero.
    """
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    balances = compute_balances(group_id, session)

    users = session.execute(
        select(User).where(User.id.in_(list(balances.keys())))
    ).scalars().all() if balances else []
    names = {u.id: u.full_name for u in users}

    balance_sum = sum(balances.values(), Decimal("0.00"))
    if balance_sum != Decimal("0.00"):
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Balance integrity check failed: sum was {balance_sum} (expected 0.00). "
            f"Group {group_id} has inconsistent dues.",
            500,
        )

    balance_list = [
        {
            "user_id": uid,
            "name": names.get(uid, f"user_{uid}"),
            "balance": str(bal),
        }
        for uid, bal in sorted(balances.items())
    ]

    simplified_debts = [
        {
            "from_user_id": t["from_user_id"],
            "from_name": names.get(t["from_user_id"], f"user_{t['from_user_id']}"),
            "to_user_id": t["to_user_id"],
            "to_name": names.get(t["to_user_id"], f"user_{t['to_user_id']}"),
            "amount": str(t["amount"]),
        }
        for t in simplify_debts(balances)
    ]

    return {
        "group_id": group_id,
        "balances": balance_list,
        "simplified_debts": simplified_debts,
        "balance_sum": str(balance_sum),
    }
