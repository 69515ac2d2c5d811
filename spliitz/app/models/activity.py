"""
models/activity.py — Activity (in-app notification feed) table definition.

ActivityType is defined here so services can import it without repeating
string literals.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from spliitz.app.extensions import db


class ActivityType(str, enum.Enum):
    EXPENSE_PROPOSED  = "expense_proposed"
    EXPENSE_FINALIZED = "expense_finalized"
    DUES_PAID         = "dues_paid"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_DUE_SOON  = "payment_due_soon"
    FRIEND_REQUEST    = "friend_request"
    FRIENDS           = "friends"
    GROUP_INVITE      = "group_invite"
    JOINED_GROUP      = "joined_group"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Store enum values (e.g. 'dues_paid'), not names ('DUES_PAID')."""
    return [member.value for member in enum_cls]


class Activity(db.Model):
    __tablename__ = "activities"

    __table_args__ = (
        Index("idx_activities_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    type: Mapped[ActivityType] = mapped_column(
        Enum(
            ActivityType,
            name="activity_type_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(120), nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Id of the expense, group, or user the activity points at. Which table
    # it refers to follows from `type`.
    related_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Activity id={self.id} user_id={self.user_id} "
            f"type={self.type.value} read={self.is_read}>"
        )
