"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - User registration and credential validation
  - JWT access token creation (HS256)
  - Refresh token lifecycle (creation, validation, revocation)
  - Password hashing (bcrypt) and verification

Layer rules:
  - No imports from routes or schemas.
  - current_app.config is read only for the JWT secret, token TTLs and the
    bcrypt cost. This is the one service that needs an app context.

Token design:
  - Access token: JWT, HS256, sub = user_id (str).
  - Refresh token: random hex string, stored as a SHA-256 hash, revoked on
    logout and, all at once, on a password change. The raw value is
    returned to the client once.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from spliitz.app.errors import AppError, ErrorCode
from spliitz.app.models.refresh_token import RefreshToken
from spliitz.app.models.user import User

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes for timezone-aware columns."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def _password_matches(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _create_access_token(user_id: int) -> str:
    """Signed JWT with sub, iat, exp and a random jti."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _create_refresh_token(user_id: int, session: Session) -> str:
    """
    Creates a refresh token, stores its hash, and returns the raw value.
    """
    raw_token = secrets.token_hex(32)
    refresh_token = RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.now(timezone.utc) + current_app.config["JWT_REFRESH_TOKEN_EXPIRES"],
    )
    session.add(refresh_token)
    session.flush()
    return raw_token


def _build_token_pair(user_id: int, session: Session) -> dict:
    return {
        "access_token": _create_access_token(user_id),
        "refresh_token": _create_refresh_token(user_id, session),
    }


def build_user_dict(user: User) -> dict:
    """Serialises a User (including email) for the owner of the account."""
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "email": user.email,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _lookup_active_token(raw_refresh_token: str, session: Session) -> RefreshToken | None:
    return session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        username: str,
        email: str,
        full_name: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a new user account and issues an access + refresh token pair.

    Raises:
      AppError(DUPLICATE_EMAIL, 409)    — email already registered
      AppError(DUPLICATE_USERNAME, 409) — username already taken
    """
    if session.execute(select(User).where(User.email == email)).scalar_one_or_none() is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    if session.execute(select(User).where(User.username == username)).scalar_one_or_none() is not None:
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{username}' is already taken.",
            409,
            field="username",
        )

    user = User(
        username=username,
        email=email,
        full_name=full_name.strip(),
        password_hash=_hash_password(password),
    )
    session.add(user)
    session.flush()  # populate user.id before creating the refresh token
    session.refresh(user)

    return {
        "user": build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def login_user(
        username: str,
        password: str,
        session: Session,
) -> dict:
    """
    Validates credentials and issues a new token pair.

    `username` may also be the account's email address.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — unknown user or wrong password.
      The same error for both avoids username enumeration.
    """
    user = session.execute(
        select(User).where(or_(User.username == username, User.email == username))
    ).scalar_one_or_none()

    if user is None or not _password_matches(password, user.password_hash):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The username or password is incorrect.",
            401,
        )

    return {
        "user": build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def refresh_access_token(
        raw_refresh_token: str,
        session: Session,
) -> dict:
    """
    Validates a refresh token and issues a new access token.
    The refresh token itself is not rotated.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — not found, revoked, or expired.
    """
    record = _lookup_active_token(raw_refresh_token, session)
    now = datetime.now(timezone.utc)

    if record is None or record.revoked or _as_utc(record.expires_at) <= now:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid, expired, or has been revoked.",
            401,
        )

    return {"access_token": _create_access_token(record.user_id)}


def logout_user(
        raw_refresh_token: str,
        session: Session,
) -> None:
    """
    Revokes a refresh token.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — token not found or already revoked.
    """
    record = _lookup_active_token(raw_refresh_token, session)

    if record is None or record.revoked:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has already been revoked.",
            401,
        )

    record.revoked = True
    session.flush()


def change_password(
        user_id: int,
        old_password: str,
        new_password: str,
        session: Session,
) -> dict:
    """
    Replaces the user's password after checking the old one, then revokes
    every refresh token the user holds so other devices must sign in again.
    Access tokens already issued stay valid until they expire.

    Returns {"revoked_tokens": n}.

    Raises:
      AppError(USER_NOT_FOUND, 404)
      AppError(INVALID_CREDENTIALS, 401) — old_password is wrong
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )

    if not _password_matches(old_password, user.password_hash):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The current password is incorrect.",
            401,
            field="old_password",
        )

    user.password_hash = _hash_password(new_password)

    active_tokens = session.execute(
        select(RefreshToken).where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked.is_(False),
        )
    ).scalars().all()
    for token in active_tokens:
        token.revoked = True
    session.flush()

    logger.info("user %s changed password; %d refresh tokens revoked", user_id, len(active_tokens))
    return {"revoked_tokens": len(active_tokens)}


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — the user was deleted after the token
        was issued.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return build_user_dict(user)
