"""Shared utility functions used by services and blueprints.

get_or_raise:        PK lookup raising NotFoundError
parse_date:          lenient ISO / DD.MM.YYYY parsing (None on bad input)
require_date:        strict variant raising ValidationError
parse_number:        numeric coercion raising ValidationError
db_commit_or_raise:  commit translating store failures into domain errors
"""
import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from pmo.core.exceptions import ConflictError, NotFoundError, StoreError, ValidationError
from pmo.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    try:
        pk = int(pk)
    except (TypeError, ValueError):
        raise NotFoundError(label, pk) from None
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(label, pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def require_date(value, field_name):
    """Like parse_date(), but a non-empty unparseable value is a ValidationError."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid {field_name}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field_name: "invalid date"},
        )
    return parsed


def parse_number(value, field_name, *, minimum=None, maximum=None, integer=False):
    """Coerce a JSON value to float/int, enforcing optional bounds."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", details={field_name: "not a number"})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field_name} must be a number", details={field_name: "not a number"},
        ) from None
    if integer:
        if not number.is_integer():
            raise ValidationError(
                f"{field_name} must be a whole number", details={field_name: "not an integer"},
            )
        number = int(number)
    if minimum is not None and number < minimum:
        raise ValidationError(
            f"{field_name} must be >= {minimum}", details={field_name: "out of range"},
        )
    if maximum is not None and number > maximum:
        raise ValidationError(
            f"{field_name} must be <= {maximum}", details={field_name: "out of range"},
        )
    return number


# ── Database commit helper ───────────────────────────────────────────────────

def _is_unique_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig).lower()
    return "unique" in text or "duplicate" in text


def db_commit_or_raise(resource: str = "Record"):
    """Commit the current session, translating store failures.

    IntegrityError (unique)   → ConflictError
    IntegrityError (other FK) → ValidationError "invalid reference"
    OperationalError / pool timeout → StoreError "store unavailable"

    The session is rolled back before raising.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit (%s): %s", resource, exc.orig)
        if _is_unique_violation(exc):
            raise ConflictError(resource, "unique value") from exc
        raise ValidationError(
            "Invalid reference: a referenced record does not exist",
            details={"reference": "invalid"},
        ) from exc
    except (OperationalError, PoolTimeoutError) as exc:
        db.session.rollback()
        logger.exception("Store unavailable on commit (%s)", resource)
        raise StoreError() from exc
