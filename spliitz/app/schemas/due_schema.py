"""
schemas/due_schema.py — Settlement payload and date-range query parameters.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from spliitz.app.errors import ErrorCode


class SettleSchema(Schema):
    """POST /dues/settle"""

    friend_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="friend_id must be a positive integer."),
    )


class DateRangeSchema(Schema):
    """
    ?start=YYYY-MM-DD&end=YYYY-MM-DD for GET /dues and GET /expenses/calendar.

    Loaded from request.args, so values arrive as strings.
    """

    start = fields.Date(required=True)
    end = fields.Date(required=True)

    @validates_schema
    def validate_order(self, data: dict, **kwargs) -> None:
        if data["end"] < data["start"]:
            raise ValidationError({"end": [ErrorCode.INVALID_DATE_RANGE]})
