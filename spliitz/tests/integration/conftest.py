"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the database in TestingConfig: in-memory SQLite by
    default, or the PostgreSQL database named by TEST_DATABASE_URL.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - After each test every row is deleted, children before parents, so tests
    are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)          → dict with user + tokens
  - login(client, ...)             → dict with user + tokens
  - auth_headers(token)            → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)        → group dict
  - invite_and_join(...)           → invites a user and accepts for them
  - setup_group(client, ...)       → registered users + a group they all joined
  - make_expense(...)              → HTTP response
  - approve(...)                   → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import pytest

from spliitz.app import create_app
from spliitz.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test
    session, creates every table, and drops them at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test.

    metadata.sorted_tables is parent-first, so walking it in reverse deletes
    splits, dues and activities before expenses, groups and users.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        for table in reversed(_db.metadata.sorted_tables):
            _db.session.execute(table.delete())
        _db.session.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    username: str = "alice",
    full_name: str | None = None,
    email: str | None = None,
    password: str = "Password1",
) -> dict:
    """
    Registers a new user and returns the full response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    if email is None:
        email = f"{username}@test.com"
    if full_name is None:
        full_name = username.title()
    resp = client.post(
        "/api/v1/auth/register",
        json={
            "username": username,
            "email": email,
            "full_name": full_name,
            "password": password,
        },
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, username: str, password: str = "Password1") -> dict:
    """
    Logs in a user and returns the response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    resp = client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_group(client, token: str, title: str = "Test Group", description: str | None = None) -> dict:
    """
    Creates a group and returns the group data dict.
    The caller (token owner) becomes the group owner and first member.
    """
    resp = client.post(
        "/api/v1/groups",
        json={"title": title, "description": description},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def invite(client, token: str, group_id: int, user_id: int):
    """Invites a user to a group. Returns the HTTP response."""
    return client.post(
        f"/api/v1/groups/{group_id}/invites",
        json={"user_id": user_id},
        headers=auth_headers(token),
    )


def respond_to_invite(client, token: str, group_id: int, accept: bool = True):
    return client.post(
        f"/api/v1/groups/{group_id}/invites/respond",
        json={"accept": accept},
        headers=auth_headers(token),
    )


def invite_and_join(client, inviter_token: str, group_id: int, user: dict) -> None:
    """Invites `user` (a register() result) and accepts on their behalf."""
    resp = invite(client, inviter_token, group_id, user["user"]["id"])
    assert resp.status_code == 201, f"invite failed: {resp.get_json()}"
    resp = respond_to_invite(client, user["access_token"], group_id, accept=True)
    assert resp.status_code == 200, f"accept failed: {resp.get_json()}"


def setup_group(client, *usernames: str, title: str = "Test Group") -> tuple[dict, dict]:
    """
    Registers every username, creates a group owned by the first one and
    brings the rest in as members.

    Returns ({username: register() result}, group dict).
    """
    if not usernames:
        usernames = ("alice", "bob")
    users = {name: register(client, name) for name in usernames}
    owner = users[usernames[0]]
    group = make_group(client, owner["access_token"], title)
    for name in usernames[1:]:
        invite_and_join(client, owner["access_token"], group["id"], users[name])
    return users, group


def make_expense(
    client,
    token: str,
    group_id: int,
    total_amount: str,
    splits: list[dict],
    payer_user_id: int | None = None,
    title: str = "Test Expense",
    due_date: str | None = None,
    expense_date: str | None = None,
):
    """
    Proposes an expense and returns the HTTP response.
    splits is a list of {user_id, amount} dicts.
    """
    payload: dict = {
        "title": title,
        "total_amount": total_amount,
        "payer_user_id": payer_user_id,
        "splits": splits,
    }
    if due_date is not None:
        payload["due_date"] = due_date
    if expense_date is not None:
        payload["expense_date"] = expense_date

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(token),
    )


def approve(client, token: str, expense_id: int):
    """Approves the caller's share of an expense. Returns the HTTP response."""
    return client.post(
        f"/api/v1/expenses/{expense_id}/approve",
        headers=auth_headers(token),
    )


def get_expense(client, token: str, expense_id: int) -> dict:
    resp = client.get(f"/api/v1/expenses/{expense_id}", headers=auth_headers(token))
    assert resp.status_code == 200, f"get_expense failed: {resp.get_json()}"
    return resp.get_json()["data"]
