"""
Change Request Tracker
Database extension. Models import ``db`` from here.
"""

from datetime import timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def as_utc(value):
    """SQLite hands timestamps back naive; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
