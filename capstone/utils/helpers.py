"""Input parsing helpers shared by blueprints and services.

parse_date / parse_time:  return None on empty input, raise ValidationError
                          on malformed input so callers get a 400.
parse_bool:               JSON bool or true/false strings; anything else is a 400.
require_fields:           collect every missing field into one ValidationError.
"""
import logging
from datetime import date, datetime, time

from capstone.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def parse_date(value, field: str = "date"):
    """Parse YYYY-MM-DD (or a full ISO datetime, or DD.MM.YYYY) to a date."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
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
    except (ValueError, TypeError) as exc:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD.", details={field: "invalid date"},
        ) from exc


def parse_time(value, field: str = "time", *, strict: bool = False):
    """Parse HH:MM[:SS] to a time.

    strict=True accepts HH:MM:SS only.
    """
    if not value:
        return None
    if isinstance(value, time):
        return value
    formats = ("%H:%M:%S",) if strict else ("%H:%M:%S", "%H:%M")
    for fmt in formats:
        try:
            return datetime.strptime(str(value), fmt).time()
        except (ValueError, TypeError):
            continue
    expected = "HH:MM:SS" if strict else "HH:MM or HH:MM:SS"
    raise ValidationError(f"Invalid {field}. Use {expected}.", details={field: "invalid time"})


def parse_int(value, field: str):
    try:
        return int(value)
    except (ValueError, TypeError) as exc:
        raise ValidationError(f"{field} must be an integer", details={field: "invalid integer"}) from exc


def parse_bool(value, field: str, default: bool = False) -> bool:
    """Accept a JSON bool or the strings true/false, 1/0, yes/no."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    raise ValidationError(f"{field} must be true or false", details={field: "invalid boolean"})


def require_fields(data: dict, *fields: str) -> None:
    """Raise one ValidationError naming every missing / blank field."""
    missing = [
        f for f in fields
        if data.get(f) is None or (isinstance(data.get(f), str) and not data.get(f).strip())
    ]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={f: "required" for f in missing},
            code="ERR_VALIDATION_REQUIRED",
        )
