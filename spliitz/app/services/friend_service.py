"""
services/friend_service.py — Friend requests, friendships and blocks.

Friendship and Block rows store the pair sorted (user_low_id < user_high_id),
so "are A and B friends?" is a single lookup regardless of who asked whom.
FriendRequest rows are directional (sender → recipient).

Layer rules:
  - No Flask imports. Commits are the caller's responsibility.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode
from spliitz.app.models.activity import ActivityType
from spliitz.app.models.due import Due
from spliitz.app.models.friendship import Block, Friendship, FriendRequest, sorted_pair
from spliitz.app.models.user import User
from spliitz.app.services import activity_service
from spliitz.app.services.access import get_user_or_404, public_user_dict


# ── Private helpers ────────────────────────────────────────────────────────

def _get_friendship(a: int, b: int, session: Session) -> Friendship | None:
    low, high = sorted_pair(a, b)
    return session.execute(
        select(Friendship).where(
            Friendship.user_low_id == low,
            Friendship.user_high_id == high,
        )
    ).scalar_one_or_none()


def _get_block(a: int, b: int, session: Session) -> Block | None:
    low, high = sorted_pair(a, b)
    return session.execute(
        select(Block).where(
            Block.user_low_id == low,
            Block.user_high_id == high,
        )
    ).scalar_one_or_none()


def _get_request(sender_id: int, recipient_id: int, session: Session) -> FriendRequest | None:
    return session.execute(
        select(FriendRequest).where(
            FriendRequest.sender_user_id == sender_id,
            FriendRequest.recipient_user_id == recipient_id,
        )
    ).scalar_one_or_none()


def _delete_requests_between(a: int, b: int, session: Session) -> None:
    session.execute(
        delete(FriendRequest)
        .where(
            or_(
                and_(FriendRequest.sender_user_id == a, FriendRequest.recipient_user_id == b),
                and_(FriendRequest.sender_user_id == b, FriendRequest.recipient_user_id == a),
            )
        )
        .execution_options(synchronize_session=False)
    )


# ── Public service functions ───────────────────────────────────────────────

def send_friend_request(sender_id: int, recipient_id: int, session: Session) -> dict:
    """
    Raises:
      AppError(SELF_FRIEND_REQUEST, 422)
      AppError(USER_NOT_FOUND, 404)
      AppError(USER_BLOCKED, 403)          — a block exists in either direction
      AppError(ALREADY_FRIENDS, 409)
      AppError(FRIEND_REQUEST_EXISTS, 409) — pending in either direction
    """
    if sender_id == recipient_id:
        raise AppError(
            ErrorCode.SELF_FRIEND_REQUEST,
            "You cannot send a friend request to yourself.",
            422,
            field="user_id",
        )

    recipient = get_user_or_404(recipient_id, session)

    if _get_block(sender_id, recipient_id, session) is not None:
        raise AppError(
            ErrorCode.USER_BLOCKED,
            "You cannot send a friend request to this user.",
            403,
        )

    if _get_friendship(sender_id, recipient_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_FRIENDS,
            f"You are already friends with {recipient.username}.",
            409,
        )

    if (
            _get_request(sender_id, recipient_id, session) is not None
            or _get_request(recipient_id, sender_id, session) is not None
    ):
        raise AppError(
            ErrorCode.FRIEND_REQUEST_EXISTS,
            f"A friend request between you and {recipient.username} is already pending.",
            409,
        )

    session.add(FriendRequest(sender_user_id=sender_id, recipient_user_id=recipient_id))

    sender = session.get(User, sender_id)
    activity_service.create_activity(
        user_id=recipient_id,
        type=ActivityType.FRIEND_REQUEST,
        title="Friend Request",
        message=f"{sender.full_name} sent you a friend request",
        related_id=sender_id,
        session=session,
    )
    session.flush()

    return {"sender_user_id": sender_id, "recipient": public_user_dict(recipient)}


def list_friend_requests(user_id: int, session: Session) -> list[dict]:
    """Incoming pending requests, newest first."""
    stmt = (
        select(FriendRequest)
        .where(FriendRequest.recipient_user_id == user_id)
        .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
    )
    return [
        {
            "id": r.id,
            "sender": public_user_dict(r.sender),
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in session.execute(stmt).scalars().all()
    ]


def respond_to_friend_request(
        requester_id: int,
        responder_id: int,
        accept: bool,
        session: Session,
) -> dict:
    """
    Accepts or declines the request requester → responder. The request is
    removed either way; accepting creates the friendship and tells the
    requester.

    Raises:
      AppError(FRIEND_REQUEST_NOT_FOUND, 404)
    """
    if _get_request(requester_id, responder_id, session) is None:
        raise AppError(
            ErrorCode.FRIEND_REQUEST_NOT_FOUND,
            f"No pending friend request from user {requester_id}.",
            404,
        )

    _delete_requests_between(requester_id, responder_id, session)

    if accept and _get_friendship(requester_id, responder_id, session) is None:
        low, high = sorted_pair(requester_id, responder_id)
        session.add(Friendship(user_low_id=low, user_high_id=high))

        responder = session.get(User, responder_id)
        activity_service.create_activity(
            user_id=requester_id,
            type=ActivityType.FRIENDS,
            title="Friend Request Accepted",
            message=f"{responder.full_name} accepted your friend request",
            related_id=responder_id,
            session=session,
        )
    session.flush()

    return {"user_id": requester_id, "friends": accept}


def remove_friend(user_id: int, friend_id: int, session: Session) -> None:
    """Raises USER_NOT_FOUND (404) if the two are not friends."""
    friendship = _get_friendship(user_id, friend_id, session)
    if friendship is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {friend_id} is not in your friends list.",
            404,
        )
    session.delete(friendship)
    session.flush()


def block_user(user_id: int, other_id: int, session: Session) -> None:
    """
    Drops any friendship and pending requests between the two users and
    records a block. Blocking twice is a no-op.
    """
    if user_id == other_id:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "You cannot block yourself.",
            422,
        )
    get_user_or_404(other_id, session)

    friendship = _get_friendship(user_id, other_id, session)
    if friendship is not None:
        session.delete(friendship)
    _delete_requests_between(user_id, other_id, session)

    if _get_block(user_id, other_id, session) is None:
        low, high = sorted_pair(user_id, other_id)
        session.add(Block(user_low_id=low, user_high_id=high))
    session.flush()


def list_friends_with_balances(user_id: int, session: Session) -> list[dict]:
    """
    Friends sorted by full name, each with the net of unreceived dues
    between the two users. Positive balance = the friend owes the caller.
    """
    friendships = session.execute(
        select(Friendship).where(
            or_(Friendship.user_low_id == user_id, Friendship.user_high_id == user_id)
        )
    ).scalars().all()
    friend_ids = [f.other(user_id) for f in friendships]
    if not friend_ids:
        return []

    friends = session.execute(select(User).where(User.id.in_(friend_ids))).scalars().all()

    balances: dict[int, Decimal] = defaultdict(lambda: Decimal("0.00"))
    dues = session.execute(
        select(Due).where(
            Due.received.is_(False),
            or_(
                and_(Due.creditor_user_id == user_id, Due.debtor_user_id.in_(friend_ids)),
                and_(Due.debtor_user_id == user_id, Due.creditor_user_id.in_(friend_ids)),
            ),
        )
    ).scalars().all()
    for due in dues:
        if due.creditor_user_id == user_id:
            balances[due.debtor_user_id] += due.amount
        else:
            balances[due.creditor_user_id] -= due.amount

    return [
        {**public_user_dict(f), "balance": str(balances[f.id])}
        for f in sorted(friends, key=lambda u: (u.full_name.lower(), u.id))
    ]
