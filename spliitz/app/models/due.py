"""
models/due.py — Due table definition.

A due is the debt one member owes the payer for one finalized expense.

Key design points:
  - CHECK(creditor_user_id <> debtor_user_id). Dues generation skips
    the payer's own split; the DB constraint backs it up.
  - CHECK(NOT received OR paid). Confirming receipt always sets both.
  - UNIQUE(expense_id, debtor_user_id) keeps reconciliation from
    duplicating dues for an expense.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spliitz.app.extensions import db


class Due(db.Model):
    __tablename__ = "dues"

    __table_args__ = (
        UniqueConstraint("expense_id", "debtor_user_id", name="uq_dues_expense_debtor"),
        CheckConstraint("amount > 0", name="ck_dues_amount_positive"),
        CheckConstraint(
            "creditor_user_id <> debtor_user_id",
            name="ck_dues_no_self_due",
        ),
        CheckConstraint(
            "NOT received OR paid",
            name="ck_dues_received_implies_paid",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # The payer of the expense.
    creditor_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    debtor_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    received: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="dues",
    )

    creditor: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[creditor_user_id],
    )

    debtor: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[debtor_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Due id={self.id} "
            f"expense_id={self.expense_id} "
            f"{self.debtor_user_id}->{self.creditor_user_id} "
            f"amount={self.amount} paid={self.paid} received={self.received}>"
        )
