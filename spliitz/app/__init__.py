"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - Alembic to import the metadata without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Set the log level from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register CLI commands (reconcile, send-payment-reminders)
  7. Register a custom JSON provider to serialise Decimal as string

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic or db.create_all() inspects it.
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError

from spliitz.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal.
# Monetary amounts go over the wire as strings to preserve precision.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from spliitz.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    with app.app_context():
        from spliitz.app.models import (  # noqa: F401
            activity,
            due,
            expense,
            friendship,
            group,
            membership,
            refresh_token,
            split,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    from spliitz.app.commands import register_commands
    register_commands(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Applies LOG_LEVEL to app.logger and to the `spliitz` logger tree that
    the service modules log through.
    """
    level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(level)

    package_logger = logging.getLogger("spliitz")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        package_logger.addHandler(handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "" and "/<int:id>").
    """
    from spliitz.app.routes.activities import activities_bp
    from spliitz.app.routes.auth import auth_bp
    from spliitz.app.routes.balances import balances_bp
    from spliitz.app.routes.dues import dues_bp
    from spliitz.app.routes.expenses import expenses_bp
    from spliitz.app.routes.friends import friends_bp
    from spliitz.app.routes.groups import groups_bp
    from spliitz.app.routes.users import users_bp

    app.register_blueprint(auth_bp,       url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp,      url_prefix="/api/v1/users")
    app.register_blueprint(friends_bp,    url_prefix="/api/v1/friends")
    app.register_blueprint(groups_bp,     url_prefix="/api/v1/groups")
    app.register_blueprint(balances_bp,   url_prefix="/api/v1/groups")
    # expenses_bp owns /groups/<id>/expenses, /proposals and /expenses/<id>,
    # so it sits at the bare /api/v1 prefix.
    app.register_blueprint(expenses_bp,   url_prefix="/api/v1")
    app.register_blueprint(dues_bp,       url_prefix="/api/v1/dues")
    app.register_blueprint(activities_bp, url_prefix="/api/v1/activities")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD responses (400)
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from spliitz.app.errors import AppError, ErrorCode

    known_codes = set(vars(ErrorCode).values())

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        if error.http_status >= 500:
            app.logger.error("%s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Only the FIRST error is returned. The error code from the
        ValidationError message is used directly if it matches a known
        ErrorCode constant; otherwise INVALID_FIELD / MISSING_FIELD.
        """
        messages = error.messages  # e.g. {"total_amount": ["INVALID_AMOUNT_PRECISION"]}

        field = None
        raw_message = "Invalid input."

        if isinstance(messages, dict) and messages:
            field_name, field_errors = next(iter(messages.items()))
            field = field_name if field_name != "_schema" else None
            raw_message = _first_message(field_errors)
        elif isinstance(messages, list) and messages:
            raw_message = _first_message(messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        response_body = {"error": {"code": code, "message": message}}
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.
        The full traceback goes to the application logger only.
        """
        from werkzeug.exceptions import HTTPException

        if isinstance(error, HTTPException):
            return jsonify({
                "error": {
                    "code": ErrorCode.INVALID_FIELD if error.code == 400 else ErrorCode.HTTP_ERROR,
                    "message": error.description,
                }
            }), error.code

        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _first_message(errors) -> str:
    """Digs the first string out of marshmallow's nested error structure."""
    while True:
        if isinstance(errors, list):
            if not errors:
                return "Invalid value."
            errors = errors[0]
        elif isinstance(errors, dict):
            if not errors:
                return "Invalid value."
            errors = next(iter(errors.values()))
        else:
            return str(errors)


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself
    (e.g. INVALID_AMOUNT_PRECISION raised as ValidationError in schemas).
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "DUPLICATE_SPLIT_USER": "The same user_id appears more than once in the splits array.",
        "INVALID_DATE_RANGE": "end must be on or after start.",
    }
    return _messages.get(code, "Invalid input.")
