"""
models/expense.py — Expense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `proposal` is True until every split has been approved. Flipping it to
    False is "finalizing" the expense; dues exist only after that.
  - `payer_user_id` is nullable: an expense can be proposed before anyone
    claims to have paid it. Finalized expenses without a payer carry no dues
    until the payer is claimed.
  - `total_amount` uses Numeric(12, 2) — never Float.
  - Splits and dues are owned by their expense (delete-orphan cascade).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spliitz.app.extensions import db


class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_expenses_total_positive"),
        CheckConstraint(
            "LENGTH(TRIM(title)) > 0",
            name="ck_expenses_title_nonempty",
        ),
        # Reconciliation scans proposals per group.
        Index("idx_expenses_group_proposal", "group_id", "proposal"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    payer_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    explanation: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    expense_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        default=date.today,
    )

    due_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        index=True,
    )

    proposal: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )

    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by_user_id],
    )

    payer: Mapped["User | None"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[payer_user_id],
    )

    splits: Mapped[list["Split"]] = relationship(  # noqa: F821
        "Split",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="Split.id",
    )

    dues: Mapped[list["Due"]] = relationship(  # noqa: F821
        "Due",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="Due.id",
    )

    @property
    def is_finalized(self) -> bool:
        return not self.proposal

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"group_id={self.group_id} "
            f"total={self.total_amount} "
            f"proposal={self.proposal}>"
        )
