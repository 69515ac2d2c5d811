"""
wsgi.py — Entry point for `flask --app spliitz.wsgi ...` and WSGI servers.

The config is picked from FLASK_ENV (development, testing, production).
"""

from __future__ import annotations

import os

from spliitz.app import create_app

app = create_app(os.getenv("FLASK_ENV", "development"))
