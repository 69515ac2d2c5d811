"""
models/friendship.py — FriendRequest, Friendship and Block tables.

Friendship and Block store an unordered pair as (user_low_id, user_high_id)
with user_low_id < user_high_id, so each pair has exactly one row.
FriendRequest is directional: sender → recipient.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spliitz.app.extensions import db


def sorted_pair(a: int, b: int) -> tuple[int, int]:
    """Returns (low, high) for storing an unordered user pair."""
    return (a, b) if a < b else (b, a)


class FriendRequest(db.Model):
    __tablename__ = "friend_requests"

    __table_args__ = (
        UniqueConstraint(
            "sender_user_id", "recipient_user_id",
            name="uq_friend_requests_pair",
        ),
        CheckConstraint(
            "sender_user_id <> recipient_user_id",
            name="ck_friend_requests_not_self",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    sender_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    recipient_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    sender: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[sender_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<FriendRequest id={self.id} "
            f"{self.sender_user_id}->{self.recipient_user_id}>"
        )


class Friendship(db.Model):
    __tablename__ = "friendships"

    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_friendships_pair"),
        CheckConstraint("user_low_id < user_high_id", name="ck_friendships_sorted"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_low_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_high_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def other(self, user_id: int) -> int:
        """The id of the friend on the other side of this pair."""
        return self.user_high_id if self.user_low_id == user_id else self.user_low_id

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Friendship {self.user_low_id}<->{self.user_high_id}>"


class Block(db.Model):
    __tablename__ = "blocks"

    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_blocks_pair"),
        CheckConstraint("user_low_id < user_high_id", name="ck_blocks_sorted"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_low_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    user_high_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Block {self.user_low_id}<->{self.user_high_id}>"
