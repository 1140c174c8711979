"""Installable entry point for the Streamlist API.

The application itself lives in the top-level ``app`` package; this package
re-exports it and provides the ``streamlist`` console script.
"""

from __future__ import annotations

from app.main import app, create_app

__version__ = "1.0.0"

__all__ = ["__version__", "app", "create_app"]
