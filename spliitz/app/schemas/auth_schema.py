"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, regex patterns.
  - services/auth_service.py: DUPLICATE_EMAIL / DUPLICATE_USERNAME checks
    (they need a DB lookup).

IMPORTANT: All schemas inherit from marshmallow.Schema directly.
           Do NOT use ma.Schema — it requires an active Flask app context
           and breaks unit tests.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema


USERNAME_RULES = [
    validate.Length(
        min=3,
        max=50,
        error="Username must be between 3 and 50 characters.",
    ),
    validate.Regexp(
        r"^[a-zA-Z0-9_]+$",
        error="Username may only contain letters, numbers, and underscores.",
    ),
]


def validate_full_name(value: str) -> None:
    if not value.strip():
        raise ValidationError("Full name must not be blank.")
    if len(value.strip()) > 100:
        raise ValidationError("Full name must be at most 100 characters.")


def validate_password_strength(value: str) -> None:
    """Min 8 chars, at least one letter and one digit."""
    if len(value) < 8:
        raise ValidationError("Password must be at least 8 characters long.")
    if not any(c.isalpha() for c in value):
        raise ValidationError("Password must contain at least one letter.")
    if not any(c.isdigit() for c in value):
        raise ValidationError("Password must contain at least one digit.")


class RegisterSchema(Schema):
    """
    POST /auth/register

      username  : 3–50 chars, alphanumeric + underscore only
      email     : valid email format
      full_name : 1–100 chars after trim
      password  : min 8 chars, at least one letter and one digit
    """

    username = fields.Str(required=True, validate=USERNAME_RULES)

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    full_name = fields.Str(required=True, validate=validate_full_name)

    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate_password_strength,
    )


class LoginSchema(Schema):
    """
    POST /auth/login

    `username` may be a username or an email address. Credential correctness
    is checked in auth_service.py (INVALID_CREDENTIALS, 401).
    """

    username = fields.Str(required=True)
    password = fields.Str(required=True, load_only=True)


class RefreshTokenSchema(Schema):
    """POST /auth/refresh and POST /auth/logout"""

    refresh_token = fields.Str(required=True)


class ChangePasswordSchema(Schema):
    """
    POST /auth/change-password

    Whether old_password is correct is checked in auth_service.py
    (INVALID_CREDENTIALS, 401).
    """

    old_password = fields.Str(required=True, load_only=True)
    new_password = fields.Str(
        required=True,
        load_only=True,
        validate=validate_password_strength,
    )
    confirm_password = fields.Str(required=True, load_only=True)

    @validates_schema
    def validate_new_password(self, data: dict, **kwargs) -> None:
        if data["new_password"] != data["confirm_password"]:
            raise ValidationError({"confirm_password": ["New passwords do not match."]})
        if data["new_password"] == data["old_password"]:
            raise ValidationError(
                {"new_password": ["New password must be different from the old password."]}
            )
