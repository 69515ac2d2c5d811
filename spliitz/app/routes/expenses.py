"""
routes/expenses.py — Expense, proposal and approval route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns the group-scoped paths (/groups/:id/expenses), the caller-scoped
/proposals, and the expense-ID paths (/expenses/:id).

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - _serialize_expense() is a pure data-shape helper — not business logic.

Endpoints:
  POST   /groups/:id/expenses                   → 201  propose an expense
  GET    /groups/:id/expenses                   → 200  finalized expenses
  GET    /groups/:id/proposals                  → 200  caller's pending proposals in a group
  GET    /proposals                             → 200  caller's pending proposals
  GET    /expenses/calendar?start=&end=         → 200  expenses by due date
  GET    /expenses/:id                          → 200  expense + splits + dues + state
  PUT    /expenses/:id                          → 200  replace; back to proposal
  DELETE /expenses/:id                          → 200  delete with splits and dues
  POST   /expenses/:id/approve                  → 200  approve own share
  POST   /expenses/:id/claim-payer              → 200  caller becomes payer
  POST   /expenses/:id/dues/pay                 → 200  debtor marks own due paid
  POST   /expenses/:id/dues/:debtor_id/confirm  → 200  creditor confirms receipt
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from spliitz.app.extensions import db
from spliitz.app.middleware.auth_middleware import require_auth
from spliitz.app.models.expense import Expense
from spliitz.app.models.split import Split
from spliitz.app.schemas.due_schema import DateRangeSchema
from spliitz.app.schemas.expense_schema import CreateExpenseSchema, UpdateExpenseSchema
from spliitz.app.services import approval_service, due_service, expense_service

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helpers ──────────────────────────────────────────────────
# Pure data-shaping — no DB access beyond loaded relationships. Amounts as strings.

def _serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict for JSON output."""
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "created_by_user_id": expense.created_by_user_id,
        "payer_user_id": expense.payer_user_id,
        "payer_name": expense.payer.full_name if expense.payer else None,
        "title": expense.title,
        "explanation": expense.explanation,
        "total_amount": str(expense.total_amount),
        "expense_date": expense.expense_date.isoformat(),
        "due_date": expense.due_date.isoformat() if expense.due_date else None,
        "proposal": expense.proposal,
        "state": approval_service.expense_state(expense).value,
        "finalized_at": expense.finalized_at.isoformat() if expense.finalized_at else None,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "updated_at": expense.updated_at.isoformat() if expense.updated_at else None,
        "splits": [_serialize_split(s) for s in expense.splits],
        "dues": [
            {
                "debtor_user_id": d.debtor_user_id,
                "creditor_user_id": d.creditor_user_id,
                "amount": str(d.amount),
                "paid": d.paid,
                "received": d.received,
            }
            for d in expense.dues
        ],
    }


def _serialize_split(split: Split) -> dict:
    return {
        "id": split.id,
        "user_id": split.user_id,
        "full_name": split.user.full_name,
        "amount": str(split.amount),
        "approved": split.approved,
    }


def _serialize_proposals(rows: list[tuple[Expense, Split]]) -> list[dict]:
    return [
        {
            **_serialize_expense(expense),
            "my_share": str(split.amount),
            "my_approved": split.approved,
        }
        for expense, split in rows
    ]


# ── Group-scoped routes ────────────────────────────────────────────────────

@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_expense(group_id: int):
    """
    POST /groups/:id/expenses — Propose a new expense.
    The caller's own share is approved immediately.
    """
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense = expense_service.create_expense(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(group_id: int):
    """GET /groups/:id/expenses — Finalized expenses, newest first."""
    expenses = expense_service.list_group_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


@expenses_bp.route("/groups/<int:group_id>/proposals", methods=["GET"])
@require_auth
def list_group_proposals(group_id: int):
    rows = expense_service.list_pending_proposals(
        caller_id=g.user_id,
        group_id=group_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_proposals(rows), "warnings": []}), 200


@expenses_bp.route("/proposals", methods=["GET"])
@require_auth
def list_proposals():
    rows = expense_service.list_pending_proposals(
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_proposals(rows), "warnings": []}), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses/calendar", methods=["GET"])
@require_auth
def calendar():
    params = DateRangeSchema().load(request.args.to_dict())
    expenses = expense_service.list_calendar_expenses(
        caller_id=g.user_id,
        start=params["start"],
        end=params["end"],
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    """GET /expenses/:id — Expense detail including splits, dues and state."""
    expense = expense_service.get_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["PUT"])
@require_auth
def update_expense(expense_id: int):
    """
    PUT /expenses/:id — Replace the expense and its shares.
    Only the creator, payer or group owner may edit; refused once a due is paid.
    """
    data = UpdateExpenseSchema().load(request.get_json(force=True) or {})
    expense = expense_service.update_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(expense_id: int):
    expense_service.delete_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": expense_id,
        },
        "warnings": [],
    }), 200


@expenses_bp.route("/expenses/<int:expense_id>/approve", methods=["POST"])
@require_auth
def approve_expense(expense_id: int):
    """
    POST /expenses/:id/approve — Approve the caller's share. The last
    approval finalizes the expense and generates its dues.
    """
    expense, warnings = approval_service.approve_expense(
        expense_id=expense_id,
        user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": warnings}), 200


@expenses_bp.route("/expenses/<int:expense_id>/claim-payer", methods=["POST"])
@require_auth
def claim_payer(expense_id: int):
    expense = approval_service.claim_payer(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>/dues/pay", methods=["POST"])
@require_auth
def pay_due(expense_id: int):
    due = due_service.mark_due_paid(
        expense_id=expense_id,
        debtor_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": due_service.serialize_due(due), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>/dues/<int:debtor_id>/confirm", methods=["POST"])
@require_auth
def confirm_due(expense_id: int, debtor_id: int):
    due = due_service.confirm_due_receipt(
        expense_id=expense_id,
        debtor_id=debtor_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": due_service.serialize_due(due), "warnings": []}), 200
