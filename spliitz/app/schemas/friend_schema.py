"""
schemas/friend_schema.py — Friend request payload.

Existence, blocks and duplicates are checked in friend_service.py.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class FriendRequestSchema(Schema):
    """POST /friends/requests"""

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )
