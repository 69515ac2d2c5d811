"""
Unit tests run without an app or a database, but a few of them build real
model instances (Due rows from generate_dues). Every model module is
imported here so SQLAlchemy can resolve the string relationship targets
when the mappers configure.
"""

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
