"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, decimal precision
      - DUPLICATE_SPLIT_USER (400) — request shape rule
      - Non-empty-after-trim enforcement for title
  - services/expense_service.py:
      - SPLIT_SUM_MISMATCH (422)    — requires Decimal arithmetic over rows
      - PAYER_NOT_MEMBER (422)      — requires DB membership lookup
      - SPLIT_USER_NOT_MEMBER (422) — requires DB membership lookup
      - Edit permission (FORBIDDEN, 403) and EXPENSE_HAS_PAYMENTS (409)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from spliitz.app.errors import ErrorCode


# ── Shared monetary amount validator ──────────────────────────────────────
#
# Used by SplitInputSchema and CreateExpenseSchema.
# Input with more than 2 decimal places is REJECTED with
# INVALID_AMOUNT_PRECISION, never rounded or truncated.
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """
    Validates a monetary Decimal value:
      - Must be strictly greater than zero.
      - Must have at most 2 decimal places.

    The error handler maps INVALID_AMOUNT_PRECISION by matching the raised
    ValidationError message to the known ErrorCode constant.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → reject
    # Decimal("10.12").as_tuple().exponent  == -2  → 2 dp → accept
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    """Mirrors CHECK(LENGTH(TRIM(title)) > 0) at the API layer."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitInputSchema(Schema):
    """
    One member's share. Whether user_id is a group member is checked in
    expense_service.py.
    """

    user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    payer_user_id is optional: a proposal may be created before anyone has
    paid, and the payer claimed later (POST /expenses/:id/claim-payer).

    expense_date defaults to today in the service when omitted.
    """

    title = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Title must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    explanation = fields.Str(load_default=None, allow_none=True)

    total_amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    payer_user_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="payer_user_id must be a positive integer."),
    )

    expense_date = fields.Date(load_default=None, allow_none=True)

    due_date = fields.Date(load_default=None, allow_none=True)

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        required=True,
        validate=validate.Length(min=1, error="At least one split is required."),
    )

    @validates_schema
    def validate_split_users(self, data: dict, **kwargs) -> None:
        """
        DUPLICATE_SPLIT_USER (400): the same user_id appears more than once.

        The sum check and membership checks need Decimal arithmetic and DB
        lookups; both belong in expense_service.py.
        """
        splits = data.get("splits") or []
        user_ids = [s["user_id"] for s in splits]
        if len(user_ids) != len(set(user_ids)):
            raise ValidationError({"splits": [ErrorCode.DUPLICATE_SPLIT_USER]})


# ── Update expense ─────────────────────────────────────────────────────────

class UpdateExpenseSchema(CreateExpenseSchema):
    """
    PUT /expenses/:id

    Same body as create. The splits array replaces the existing shares and
    the expense goes back to being a proposal. When payer_user_id is absent
    the current payer is kept.
    """

    payer_user_id = fields.Int(
        required=False,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="payer_user_id must be a positive integer."),
    )
