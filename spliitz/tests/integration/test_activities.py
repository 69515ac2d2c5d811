"""
tests/integration/test_activities.py — Activity feed and payment reminders.

Endpoints covered:
  GET  /activities
  POST /activities/read-all

CLI covered:
  flask send-payment-reminders --days N
"""

from __future__ import annotations

from datetime import date, timedelta

from spliitz.app.extensions import db
from spliitz.app.services import activity_service

from .conftest import approve, auth_headers, make_expense, setup_group


def _feed(client, user) -> list[dict]:
    resp = client.get("/api/v1/activities", headers=auth_headers(user["access_token"]))
    assert resp.status_code == 200
    return resp.get_json()["data"]


def _owed_expense(client, users, group, due_in_days: int):
    alice, bob = users["alice"], users["bob"]
    expense = make_expense(
        client, alice["access_token"], group["id"], "9.00",
        payer_user_id=alice["user"]["id"],
        title="Concert",
        due_date=(date.today() + timedelta(days=due_in_days)).isoformat(),
        splits=[{"user_id": bob["user"]["id"], "amount": "9.00"}],
    ).get_json()["data"]
    approve(client, bob["access_token"], expense["id"])
    return expense


class TestFeed:

    def test_feed_is_newest_first_and_unread(self, client):
        users, group = setup_group(client, "alice", "bob")
        feed = _feed(client, users["alice"])
        # alice was told bob joined
        assert feed[0]["type"] == "joined_group"
        assert feed[0]["is_read"] is False
        assert "Bob" in feed[0]["message"]

    def test_read_all_marks_everything_read(self, client):
        users, group = setup_group(client, "alice", "bob", "carol")
        alice = users["alice"]

        resp = client.post("/api/v1/activities/read-all", headers=auth_headers(alice["access_token"]))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["updated"] == 2
        assert all(a["is_read"] for a in _feed(client, alice))

        again = client.post("/api/v1/activities/read-all", headers=auth_headers(alice["access_token"]))
        assert again.get_json()["data"]["updated"] == 0

    def test_feed_is_private(self, client):
        users, group = setup_group(client, "alice", "bob")
        bob_ids = {a["id"] for a in _feed(client, users["bob"])}
        alice_ids = {a["id"] for a in _feed(client, users["alice"])}
        assert bob_ids.isdisjoint(alice_ids)


class TestPaymentReminders:

    def test_service_reminds_debtors_due_on_the_target_day(self, app, client):
        users, group = setup_group(client, "alice", "bob")
        expense = _owed_expense(client, users, group, due_in_days=7)
        _owed_expense(client, users, group, due_in_days=3)

        with app.app_context():
            result = activity_service.send_payment_reminders(
                today=date.today(), days=7, session=db.session,
            )
            db.session.commit()

        assert result["dues_found"] == 1
        assert result["target_date"] == (date.today() + timedelta(days=7)).isoformat()

        reminders = [a for a in _feed(client, users["bob"]) if a["type"] == "payment_due_soon"]
        assert len(reminders) == 1
        assert reminders[0]["related_id"] == expense["id"]

    def test_paid_dues_are_not_reminded(self, app, client):
        users, group = setup_group(client, "alice", "bob")
        expense = _owed_expense(client, users, group, due_in_days=7)
        client.post(
            f"/api/v1/expenses/{expense['id']}/dues/pay",
            headers=auth_headers(users["bob"]["access_token"]),
        )

        with app.app_context():
            result = activity_service.send_payment_reminders(
                today=date.today(), days=7, session=db.session,
            )
            db.session.commit()

        assert result["notifications_sent"] == 0

    def test_cli_command(self, app, client):
        users, group = setup_group(client, "alice", "bob")
        _owed_expense(client, users, group, due_in_days=2)

        result = app.test_cli_runner().invoke(args=["send-payment-reminders", "--days", "2"])
        assert result.exit_code == 0, result.output
        assert "1 dues, 1 reminders sent" in result.output

        reminders = [a for a in _feed(client, users["bob"]) if a["type"] == "payment_due_soon"]
        assert len(reminders) == 1
