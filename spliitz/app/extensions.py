"""
extensions.py — Flask extension singletons.

SQLAlchemy and marshmallow are created here with no app attached, then bound
inside the app factory with init_app(app). Import them anywhere:

    from spliitz.app.extensions import db, ma

Passing the app directly to SQLAlchemy() at import time would tie every test
to one global app instance.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Validation schemas in app/schemas/ inherit from marshmallow.Schema, not
# ma.Schema: ma.Schema needs an active app context, and the unit tests
# instantiate schemas without one.
ma = Marshmallow()
