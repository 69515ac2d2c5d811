"""Initial schema — all tables, the activity enum, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. PostgreSQL enum type activity_type_enum
  2. Tables in FK dependency order (users → refresh_tokens → groups →
     memberships → expenses → splits → dues → friend tables → activities)
  3. Indexes

ON DELETE policies:
  refresh_tokens.user_id        → CASCADE   (token owned by user)
  memberships.group_id          → CASCADE   (membership owned by group)
  memberships.user_id           → RESTRICT
  expenses.group_id             → CASCADE
  expenses.*_user_id            → RESTRICT
  splits.expense_id, dues.expense_id → CASCADE (owned by expense)
  splits.user_id, dues.*_user_id     → RESTRICT
  friend_requests, friendships, blocks, activities → CASCADE on users
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


ACTIVITY_TYPES = (
    "expense_proposed",
    "expense_finalized",
    "dues_paid",
    "payment_confirmed",
    "payment_due_soon",
    "friend_request",
    "friends",
    "group_invite",
    "joined_group",
)


def _timestamp(name: str, nullable: bool = False, now: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.text("now()") if now else None,
    )


def upgrade() -> None:
    # ── Step 1: enum type ──────────────────────────────────────────────────
    activity_type = postgresql.ENUM(*ACTIVITY_TYPES, name="activity_type_enum")
    activity_type.create(op.get_bind(), checkfirst=True)

    # ── Step 2: users ──────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("LENGTH(TRIM(username)) > 0", name="ck_users_username_nonempty"),
        sa.CheckConstraint("LENGTH(TRIM(full_name)) > 0", name="ck_users_full_name_nonempty"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
    )

    # ── Step 3: refresh_tokens ─────────────────────────────────────────────
    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_hash"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])

    # ── Step 4: groups + memberships ───────────────────────────────────────
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("owner_user_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("LENGTH(TRIM(title)) > 0", name="ck_groups_title_nonempty"),
    )

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("invite", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("joined_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
    )
    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])

    # ── Step 5: expenses, splits, dues ─────────────────────────────────────
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("payer_user_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("proposal", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("finalized_at", nullable=True, now=False),
        _timestamp("created_at"),
        _timestamp("updated_at", nullable=True, now=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["payer_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("total_amount > 0", name="ck_expenses_total_positive"),
        sa.CheckConstraint("LENGTH(TRIM(title)) > 0", name="ck_expenses_title_nonempty"),
    )
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])
    op.create_index("ix_expenses_due_date", "expenses", ["due_date"])
    op.create_index("idx_expenses_group_proposal", "expenses", ["group_id", "proposal"])

    op.create_table(
        "splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("expense_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["expense_id"], ["expenses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("expense_id", "user_id", name="uq_splits_expense_user"),
        sa.CheckConstraint("amount > 0", name="ck_splits_amount_positive"),
    )
    op.create_index("ix_splits_expense_id", "splits", ["expense_id"])
    op.create_index("ix_splits_user_id", "splits", ["user_id"])

    op.create_table(
        "dues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("expense_id", sa.Integer(), nullable=False),
        sa.Column("creditor_user_id", sa.Integer(), nullable=False),
        sa.Column("debtor_user_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("received", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("paid_at", nullable=True, now=False),
        _timestamp("received_at", nullable=True, now=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["expense_id"], ["expenses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["creditor_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["debtor_user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("expense_id", "debtor_user_id", name="uq_dues_expense_debtor"),
        sa.CheckConstraint("amount > 0", name="ck_dues_amount_positive"),
        sa.CheckConstraint("creditor_user_id <> debtor_user_id", name="ck_dues_no_self_due"),
        sa.CheckConstraint("NOT received OR paid", name="ck_dues_received_implies_paid"),
    )
    op.create_index("ix_dues_expense_id", "dues", ["expense_id"])
    op.create_index("ix_dues_creditor_user_id", "dues", ["creditor_user_id"])
    op.create_index("ix_dues_debtor_user_id", "dues", ["debtor_user_id"])

    # ── Step 6: friend_requests, friendships, blocks ───────────────────────
    op.create_table(
        "friend_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sender_user_id", sa.Integer(), nullable=False),
        sa.Column("recipient_user_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["sender_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("sender_user_id", "recipient_user_id", name="uq_friend_requests_pair"),
        sa.CheckConstraint(
            "sender_user_id <> recipient_user_id",
            name="ck_friend_requests_not_self",
        ),
    )
    op.create_index(
        "ix_friend_requests_recipient_user_id", "friend_requests", ["recipient_user_id"],
    )

    for table, index_low in (("friendships", True), ("blocks", False)):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_low_id", sa.Integer(), nullable=False),
            sa.Column("user_high_id", sa.Integer(), nullable=False),
            _timestamp("created_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.ForeignKeyConstraint(["user_low_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_high_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("user_low_id", "user_high_id", name=f"uq_{table}_pair"),
            sa.CheckConstraint("user_low_id < user_high_id", name=f"ck_{table}_sorted"),
        )
        if index_low:
            op.create_index(f"ix_{table}_user_low_id", table, ["user_low_id"])
            op.create_index(f"ix_{table}_user_high_id", table, ["user_high_id"])

    # ── Step 7: activities ─────────────────────────────────────────────────
    op.create_table(
        "activities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "type",
            postgresql.ENUM(*ACTIVITY_TYPES, name="activity_type_enum", create_type=False),
            nullable=False,
        ),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_activities_user_created", "activities", ["user_id", "created_at"])


def downgrade() -> None:
    """
    Drop everything created in upgrade(), in reverse dependency order.
    For local development resets only; production gets corrective migrations.
    """
    op.drop_index("idx_activities_user_created", table_name="activities")
    op.drop_table("activities")

    op.drop_table("blocks")
    op.drop_index("ix_friendships_user_high_id", table_name="friendships")
    op.drop_index("ix_friendships_user_low_id", table_name="friendships")
    op.drop_table("friendships")
    op.drop_index("ix_friend_requests_recipient_user_id", table_name="friend_requests")
    op.drop_table("friend_requests")

    op.drop_index("ix_dues_debtor_user_id", table_name="dues")
    op.drop_index("ix_dues_creditor_user_id", table_name="dues")
    op.drop_index("ix_dues_expense_id", table_name="dues")
    op.drop_table("dues")
    op.drop_index("ix_splits_user_id", table_name="splits")
    op.drop_index("ix_splits_expense_id", table_name="splits")
    op.drop_table("splits")
    op.drop_index("idx_expenses_group_proposal", table_name="expenses")
    op.drop_index("ix_expenses_due_date", table_name="expenses")
    op.drop_index("ix_expenses_group_id", table_name="expenses")
    op.drop_table("expenses")

    op.drop_index("ix_memberships_group_id", table_name="memberships")
    op.drop_index("ix_memberships_user_id", table_name="memberships")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_index("ix_refresh_tokens_user_id", table_name="refresh_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS activity_type_enum")
