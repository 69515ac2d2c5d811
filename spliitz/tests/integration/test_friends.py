"""
tests/integration/test_friends.py — Friend requests, friendships and blocks.

Endpoints covered:
  GET    /friends                         → friends with net balances
  GET    /friends/requests                → incoming requests
  POST   /friends/requests                → 201
  POST   /friends/requests/:uid/respond   → accept / decline
  DELETE /friends/:uid                    → unfriend
  POST   /friends/:uid/block              → block
"""

from __future__ import annotations

from .conftest import approve, auth_headers, make_expense, register, setup_group


def _send(client, sender, recipient):
    return client.post(
        "/api/v1/friends/requests",
        json={"user_id": recipient["user"]["id"]},
        headers=auth_headers(sender["access_token"]),
    )


def _respond(client, responder, requester, accept=True):
    return client.post(
        f"/api/v1/friends/requests/{requester['user']['id']}/respond",
        json={"accept": accept},
        headers=auth_headers(responder["access_token"]),
    )


def _friends(client, user) -> list[dict]:
    resp = client.get("/api/v1/friends", headers=auth_headers(user["access_token"]))
    assert resp.status_code == 200
    return resp.get_json()["data"]


class TestFriendRequests:

    def test_request_then_accept_makes_friends_both_ways(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")

        resp = _send(client, alice, bob)
        assert resp.status_code == 201
        assert resp.get_json()["data"]["recipient"]["username"] == "bob"

        incoming = client.get("/api/v1/friends/requests", headers=auth_headers(bob["access_token"]))
        assert [r["sender"]["id"] for r in incoming.get_json()["data"]] == [alice["user"]["id"]]

        resp = _respond(client, bob, alice, accept=True)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["friends"] is True

        assert [f["id"] for f in _friends(client, alice)] == [bob["user"]["id"]]
        assert [f["id"] for f in _friends(client, bob)] == [alice["user"]["id"]]

        incoming = client.get("/api/v1/friends/requests", headers=auth_headers(bob["access_token"]))
        assert incoming.get_json()["data"] == []

    def test_decline_leaves_no_friendship(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob)
        resp = _respond(client, bob, alice, accept=False)
        assert resp.get_json()["data"]["friends"] is False
        assert _friends(client, alice) == []

    def test_accept_notifies_the_requester(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob)
        _respond(client, bob, alice)
        feed = client.get("/api/v1/activities", headers=auth_headers(alice["access_token"]))
        assert feed.get_json()["data"][0]["type"] == "friends"

    def test_request_to_self_returns_422(self, client):
        alice = register(client, "alice")
        resp = _send(client, alice, alice)
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SELF_FRIEND_REQUEST"

    def test_duplicate_request_in_either_direction_returns_409(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob)
        assert _send(client, alice, bob).get_json()["error"]["code"] == "FRIEND_REQUEST_EXISTS"
        assert _send(client, bob, alice).status_code == 409

    def test_request_to_a_friend_returns_409(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob)
        _respond(client, bob, alice)
        resp = _send(client, bob, alice)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ALREADY_FRIENDS"

    def test_responding_without_a_request_returns_404(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        resp = _respond(client, bob, alice)
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "FRIEND_REQUEST_NOT_FOUND"

    def test_request_to_unknown_user_returns_404(self, client):
        alice = register(client, "alice")
        resp = client.post(
            "/api/v1/friends/requests",
            json={"user_id": 99999},
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 404


class TestUnfriendAndBlock:

    def _friends_pair(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob)
        _respond(client, bob, alice)
        return alice, bob

    def test_unfriend(self, client):
        alice, bob = self._friends_pair(client)
        resp = client.delete(
            f"/api/v1/friends/{bob['user']['id']}",
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 200
        assert _friends(client, bob) == []

    def test_unfriend_a_stranger_returns_404(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        resp = client.delete(
            f"/api/v1/friends/{bob['user']['id']}",
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 404

    def test_block_removes_friendship_and_stops_requests(self, client):
        alice, bob = self._friends_pair(client)
        resp = client.post(
            f"/api/v1/friends/{bob['user']['id']}/block",
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["blocked"] is True
        assert _friends(client, alice) == []

        resp = _send(client, bob, alice)
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "USER_BLOCKED"

    def test_blocking_twice_is_harmless(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        for _ in range(2):
            resp = client.post(
                f"/api/v1/friends/{bob['user']['id']}/block",
                headers=auth_headers(alice["access_token"]),
            )
            assert resp.status_code == 200

    def test_cannot_block_self(self, client):
        alice = register(client, "alice")
        resp = client.post(
            f"/api/v1/friends/{alice['user']['id']}/block",
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 422


class TestFriendBalances:

    def test_friend_list_carries_net_balance(self, client):
        users, group = setup_group(client, "alice", "bob")
        alice, bob = users["alice"], users["bob"]
        _send(client, alice, bob)
        _respond(client, bob, alice)

        expense = make_expense(
            client, alice["access_token"], group["id"], "18.00",
            payer_user_id=alice["user"]["id"],
            splits=[{"user_id": bob["user"]["id"], "amount": "18.00"}],
        ).get_json()["data"]
        approve(client, bob["access_token"], expense["id"])

        assert _friends(client, alice)[0]["balance"] == "18.00"
        assert _friends(client, bob)[0]["balance"] == "-18.00"

    def test_friends_sorted_by_full_name(self, client):
        me = register(client, "meg")
        zed = register(client, "zed", full_name="Zed Zulu")
        amy = register(client, "amy", full_name="amy Apple")
        for other in (zed, amy):
            _send(client, me, other)
            _respond(client, other, me)
        assert [f["username"] for f in _friends(client, me)] == ["amy", "zed"]
        assert _friends(client, me)[0]["balance"] == "0.00"
