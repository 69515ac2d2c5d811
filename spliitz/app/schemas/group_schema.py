"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py:
      - membership and ownership checks (FORBIDDEN)
      - USER_NOT_FOUND, ALREADY_MEMBER, INVITE_NOT_FOUND, GROUP_NOT_FOUND

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema


# validate.Length(min=1) alone allows whitespace-only strings like "   ".
# This validator strips first, mirroring CHECK(LENGTH(TRIM(title)) > 0).

def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_TITLE_RULES = [
    validate.Length(
        min=1,
        max=100,
        error="Group title must be between 1 and 100 characters.",
    ),
    _validate_non_empty_after_trim,
]


class CreateGroupSchema(Schema):
    """POST /groups"""

    title = fields.Str(required=True, validate=_TITLE_RULES)

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )


class UpdateGroupSchema(Schema):
    """PATCH /groups/:id — owner only (checked in group_service.py)."""

    title = fields.Str(required=False, validate=_TITLE_RULES)

    description = fields.Str(
        required=False,
        allow_none=True,
        validate=validate.Length(max=500),
    )

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide title or description to update.")


class InviteMemberSchema(Schema):
    """
    POST /groups/:id/invites

    Whether the user exists is a DB concern (USER_NOT_FOUND, 404).
    """

    user_id = fields.Int(
        required=True,
        strict=True,  # reject floats like 1.0
        validate=validate.Range(
            min=1,
            error="user_id must be a positive integer.",
        ),
    )


class RespondSchema(Schema):
    """
    POST /groups/:id/invites/respond and POST /friends/requests/:uid/respond
    """

    accept = fields.Bool(required=True)
