"""
tests/unit/test_state_machine.py — approval_service without a database.

What this file proves:
  - derive_state maps every (proposal, approvals, dues) combination
  - generate_dues: one due per non-payer share, never for the payer,
    nothing without a payer, never twice for the same debtor
  - check_and_finalize only fires when every share is approved
  - approve_expense guards and warnings

Expenses and splits are SimpleNamespace stand-ins; the session is a MagicMock.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from spliitz.app.errors import AppError, ErrorCode, WarningCode
from spliitz.app.models.activity import ActivityType
from spliitz.app.services import approval_service
from spliitz.app.services.approval_service import ExpenseState, derive_state

_PATCH_BASE = "spliitz.app.services.approval_service"


def _due(paid=False, received=False, debtor=2):
    return SimpleNamespace(paid=paid, received=received, debtor_user_id=debtor)


def _split(user_id: int, amount: str, approved=False):
    return SimpleNamespace(user_id=user_id, amount=Decimal(amount), approved=approved)


def _expense(payer=1, proposal=True, splits=None, dues=None):
    return SimpleNamespace(
        id=10,
        group_id=1,
        title="Dinner",
        payer_user_id=payer,
        proposal=proposal,
        finalized_at=None,
        splits=splits if splits is not None else [],
        dues=dues if dues is not None else [],
    )


# ═══════════════════════════════════════════════════════════════════════════
# derive_state
# ═══════════════════════════════════════════════════════════════════════════

class TestDeriveState:

    def test_no_approvals_is_proposed(self):
        assert derive_state(True, [False, False], []) == ExpenseState.PROPOSED

    def test_some_approvals_is_partially_approved(self):
        assert derive_state(True, [True, False], []) == ExpenseState.PARTIALLY_APPROVED

    def test_all_approved_but_still_proposal_is_partially_approved(self):
        assert derive_state(True, [True, True], []) == ExpenseState.PARTIALLY_APPROVED

    def test_finalized_waiting_for_dues(self):
        assert derive_state(False, [True], [], dues_expected=True) == ExpenseState.FINALIZED

    def test_finalized_with_nothing_owed_is_settled(self):
        assert derive_state(False, [True], [], dues_expected=False) == ExpenseState.SETTLED

    def test_any_unpaid_due_is_outstanding(self):
        dues = [_due(paid=True, received=True), _due(paid=False)]
        assert derive_state(False, [True, True], dues) == ExpenseState.DUES_OUTSTANDING

    def test_all_paid_not_all_received(self):
        dues = [_due(paid=True, received=True), _due(paid=True, received=False)]
        assert derive_state(False, [True, True], dues) == ExpenseState.PAID_PENDING_CONFIRM

    def test_all_received_is_settled(self):
        dues = [_due(paid=True, received=True), _due(paid=True, received=True)]
        assert derive_state(False, [True, True], dues) == ExpenseState.SETTLED

    def test_proposal_flag_wins_over_dues(self):
        assert derive_state(True, [False], [_due()]) == ExpenseState.PROPOSED

    def test_expense_state_reads_the_model(self):
        expense = _expense(
            payer=1,
            proposal=False,
            splits=[_split(1, "10.00", True), _split(2, "10.00", True)],
        )
        assert approval_service.expense_state(expense) == ExpenseState.FINALIZED

        expense.payer_user_id = 2
        expense.splits = [_split(2, "20.00", True)]
        assert approval_service.expense_state(expense) == ExpenseState.SETTLED


# ═══════════════════════════════════════════════════════════════════════════
# generate_dues
# ═══════════════════════════════════════════════════════════════════════════

class TestGenerateDues:

    def test_one_due_per_non_payer_share(self):
        expense = _expense(payer=1, splits=[
            _split(1, "10.00"), _split(2, "20.00"), _split(3, "30.00"),
        ])

        created = approval_service.generate_dues(expense, MagicMock())

        assert [(d.debtor_user_id, d.creditor_user_id, d.amount) for d in created] == [
            (2, 1, Decimal("20.00")),
            (3, 1, Decimal("30.00")),
        ]
        assert all(d.paid is False and d.received is False for d in created)
        assert expense.dues == created

    def test_no_payer_no_dues(self):
        expense = _expense(payer=None, splits=[_split(1, "10.00"), _split(2, "10.00")])
        session = MagicMock()

        assert approval_service.generate_dues(expense, session) == []
        assert expense.dues == []
        session.flush.assert_not_called()

    def test_payer_only_share_creates_nothing(self):
        expense = _expense(payer=1, splits=[_split(1, "10.00")])
        assert approval_service.generate_dues(expense, MagicMock()) == []

    def test_existing_debtors_are_skipped(self):
        existing = _due(debtor=2)
        expense = _expense(payer=1, splits=[_split(2, "5.00"), _split(3, "5.00")], dues=[existing])

        created = approval_service.generate_dues(expense, MagicMock())

        assert [d.debtor_user_id for d in created] == [3]
        assert len(expense.dues) == 2

    def test_second_call_is_a_no_op(self):
        expense = _expense(payer=1, splits=[_split(1, "5.00"), _split(2, "5.00")])
        approval_service.generate_dues(expense, MagicMock())
        assert approval_service.generate_dues(expense, MagicMock()) == []
        assert len(expense.dues) == 1


# ═══════════════════════════════════════════════════════════════════════════
# check_and_finalize
# ═══════════════════════════════════════════════════════════════════════════

class TestCheckAndFinalize:

    @patch(f"{_PATCH_BASE}.activity_service.create_activity")
    def test_finalizes_when_everyone_approved(self, mock_activity):
        expense = _expense(payer=1, splits=[_split(1, "5.00", True), _split(2, "5.00", True)])

        assert approval_service.check_and_finalize(expense, MagicMock()) is True

        assert expense.proposal is False
        assert expense.finalized_at is not None
        assert [d.debtor_user_id for d in expense.dues] == [2]
        notified = [c.kwargs["user_id"] for c in mock_activity.call_args_list]
        assert notified == [1, 2]
        assert {c.kwargs["type"] for c in mock_activity.call_args_list} == {ActivityType.EXPENSE_FINALIZED}

    @patch(f"{_PATCH_BASE}.activity_service.create_activity")
    def test_waits_for_missing_approval(self, mock_activity):
        expense = _expense(splits=[_split(1, "5.00", True), _split(2, "5.00", False)])

        assert approval_service.check_and_finalize(expense, MagicMock()) is False

        assert expense.proposal is True
        assert expense.dues == []
        mock_activity.assert_not_called()

    @patch(f"{_PATCH_BASE}.activity_service.create_activity")
    def test_already_finalized_is_left_alone(self, mock_activity):
        expense = _expense(proposal=False, splits=[_split(2, "5.00", True)])
        assert approval_service.check_and_finalize(expense, MagicMock()) is False
        assert expense.dues == []

    def test_expense_without_splits_is_never_finalized(self):
        expense = _expense(splits=[])
        assert approval_service.check_and_finalize(expense, MagicMock()) is False


# ═══════════════════════════════════════════════════════════════════════════
# approve_expense
# ═══════════════════════════════════════════════════════════════════════════

class TestApproveExpense:

    @patch(f"{_PATCH_BASE}.check_and_finalize")
    @patch(f"{_PATCH_BASE}.get_expense_or_404")
    def test_marks_own_share_approved(self, mock_get, mock_finalize):
        split = _split(2, "5.00")
        expense = _expense(splits=[_split(1, "5.00", True), split])
        mock_get.return_value = expense

        result, warnings = approval_service.approve_expense(10, 2, MagicMock())

        assert result is expense
        assert warnings == []
        assert split.approved is True
        mock_finalize.assert_called_once()

    @patch(f"{_PATCH_BASE}.get_expense_or_404")
    def test_non_participant_is_refused(self, mock_get):
        mock_get.return_value = _expense(splits=[_split(1, "5.00", True)])

        with pytest.raises(AppError) as exc_info:
            approval_service.approve_expense(10, 7, MagicMock())

        assert exc_info.value.code == ErrorCode.NOT_SPLIT_PARTICIPANT
        assert exc_info.value.http_status == 403

    @patch(f"{_PATCH_BASE}.check_and_finalize")
    @patch(f"{_PATCH_BASE}.get_expense_or_404")
    def test_finalized_expense_returns_warning(self, mock_get, mock_finalize):
        mock_get.return_value = _expense(proposal=False, splits=[_split(2, "5.00", True)])

        _, warnings = approval_service.approve_expense(10, 2, MagicMock())

        assert [w["code"] for w in warnings] == [WarningCode.ALREADY_FINALIZED]
        mock_finalize.assert_not_called()

    @patch(f"{_PATCH_BASE}.check_and_finalize")
    @patch(f"{_PATCH_BASE}.require_member", side_effect=AppError(ErrorCode.FORBIDDEN, "no", 403))
    @patch(f"{_PATCH_BASE}.get_expense_or_404")
    def test_share_holder_outside_the_group_may_approve(self, mock_get, mock_member, mock_finalize):
        split = _split(2, "5.00")
        mock_get.return_value = _expense(splits=[_split(1, "5.00", True), split])

        approval_service.approve_expense(10, 2, MagicMock())

        assert split.approved is True
        mock_member.assert_not_called()
        mock_finalize.assert_called_once()


# ═══════════════════════════════════════════════════════════════════════════
# claim_payer
# ═══════════════════════════════════════════════════════════════════════════

class TestClaimPayer:

    @patch(f"{_PATCH_BASE}.require_member")
    @patch(f"{_PATCH_BASE}.get_expense_or_404")
    def test_existing_payer_is_refused(self, mock_get, mock_member):
        mock_get.return_value = _expense(payer=1)
        with pytest.raises(AppError) as exc_info:
            approval_service.claim_payer(10, 2, MagicMock())
        assert exc_info.value.code == ErrorCode.PAYER_ALREADY_SET
        assert exc_info.value.http_status == 409

    @patch(f"{_PATCH_BASE}.require_member")
    @patch(f"{_PATCH_BASE}.get_expense_or_404")
    def test_claim_on_finalized_expense_generates_dues(self, mock_get, mock_member):
        expense = _expense(
            payer=None,
            proposal=False,
            splits=[_split(1, "5.00", True), _split(2, "7.00", True)],
        )
        mock_get.return_value = expense

        approval_service.claim_payer(10, 2, MagicMock())

        assert expense.payer_user_id == 2
        assert [(d.debtor_user_id, d.creditor_user_id) for d in expense.dues] == [(1, 2)]
