"""
Codio API Package

FastAPI transport surface for one Player and one Recorder per process.
"""

from codio.api.main import app, create_app

__all__ = ["app", "create_app"]
