"""Shared request/value helpers used by services and blueprints."""

from datetime import date, datetime

from testhub.core.exceptions import ValidationError


def parse_date_input(value, field: str = "date"):
    """Parse a date string, raising ValidationError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS, YYYY/MM/DD, date objects.
    Empty input returns None.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%Y/%m/%d").date()
    except ValueError as exc:
        raise ValidationError(
            f"{field} must be a date (YYYY-MM-DD)", details={field: "invalid date"},
        ) from exc


def parse_int(value, field: str, *, minimum: int | None = None, maximum: int | None = None):
    """Coerce ``value`` to int or raise ValidationError naming ``field``."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"})
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"{field} must be an integer", details={field: "not an integer"},
        ) from exc
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: "out of range"})
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", details={field: "out of range"})
    return number


def is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def require_fields(data: dict, *fields: str):
    """Raise ValidationError listing every field that is missing or blank."""
    missing = [f for f in fields if is_blank(data.get(f))]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )


def parse_bool(value, default: bool = True) -> bool:
    """Interpret TRUE/FALSE style flags; empty input yields ``default``."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().upper() in ("TRUE", "1", "YES")
