"""Shared parsing helpers for blueprints and services.

parse_date:        lenient, returns None on bad input (query strings)
parse_date_input:  strict, raises ValueError on bad input (request bodies)
parse_bool:        form/JSON truthiness
unit_of_work:      commit-or-rollback block for service writes
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    try:
        return parse_date_input(value)
    except ValueError:
        return None


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Same formats as parse_date(); empty input returns None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError:
        raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD.")


def parse_datetime(value):
    """Parse an ISO timestamp; returns None for empty/invalid input."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@contextmanager
def unit_of_work(action: str):
    """Commit everything staged inside the block, or roll it all back.

    Usage::

        with unit_of_work("save task"):
            store.save(task, expected_version)
            meta_store.put(meta)

    IntegrityError   → ConflictError (duplicate / constraint violation)
    SQLAlchemyError  → PersistenceError (store unreachable, lock issues)
    Anything raised by the block itself (workflow errors, conflicts) rolls
    back and propagates unchanged.
    """
    from sqlalchemy.exc import IntegrityError, SQLAlchemyError

    from tracker.core.exceptions import ConflictError, PersistenceError
    from tracker.models import db

    try:
        yield
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error during %s: %s", action, exc.orig)
        raise ConflictError("Record", "constraint", message="Duplicate or constraint violation") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error during %s", action)
        raise PersistenceError(f"Could not {action}; no changes were saved.") from exc
    except Exception:
        db.session.rollback()
        raise
