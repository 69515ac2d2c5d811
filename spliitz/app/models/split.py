"""
models/split.py — Split table definition (one member's share of an expense).

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - `approved` is the member's approval of their own share. The expense is
    finalized once every split row for it is approved.
  - UNIQUE(expense_id, user_id): a user appears at most once per expense
    (also rejected as DUPLICATE_SPLIT_USER at the schema layer).

sum(splits.amount) == expense.total_amount is enforced in
expense_service.py before any split row is written.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spliitz.app.extensions import db


class Split(db.Model):
    __tablename__ = "splits"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_splits_expense_user"),
        CheckConstraint("amount > 0", name="ck_splits_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    approved: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="splits",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="splits",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Split id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"amount={self.amount} "
            f"approved={self.approved}>"
        )
