"""
schemas/user_schema.py — Profile update payload.

Uniqueness of a new username is checked in user_service.py.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validates_schema

from spliitz.app.schemas.auth_schema import USERNAME_RULES, validate_full_name


class UpdateProfileSchema(Schema):
    """PATCH /users/me — at least one of full_name / username."""

    full_name = fields.Str(required=False, validate=validate_full_name)
    username = fields.Str(required=False, validate=USERNAME_RULES)

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide full_name or username to update.")
