"""Tolerant date handling for spreadsheet cells and stored timestamps."""

import logging
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser


logger = logging.getLogger(__name__)

# Google Sheets serial dates count days from 1899-12-30
_SHEETS_EPOCH = datetime(1899, 12, 30)
_MIN_SERIAL = 20000  # 1954-10-03; smaller integers are not treated as dates
_MAX_SERIAL = 80000  # 2119-01-10


def parse_sheet_date(value: str | None, *, tz: ZoneInfo, day_first: bool = False) -> datetime | None:
    """Parse a sheet cell into an aware UTC datetime.

    Naive values are interpreted in the sheet's time zone. Empty or
    unparseable cells return None; they never raise.

    Args:
        value: Raw cell text
        tz: Time zone the sheet's dates are written in
        day_first: Whether "01/02/2025" means 1 February

    Returns:
        Aware datetime in UTC, or None
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    parsed: datetime | None = None
    # ASCII only: str.isdigit() also accepts characters like "²" that float() rejects
    if text.isascii() and text.replace(".", "", 1).isdigit():
        serial = float(text)
        if _MIN_SERIAL <= serial <= _MAX_SERIAL:
            parsed = _SHEETS_EPOCH + timedelta(days=serial)
        else:
            logger.debug("Ignoring numeric cell that is not a sheet date: %s", text)
            return None
    else:
        try:
            parsed = date_parser.parse(text, dayfirst=day_first)
        except (ValueError, OverflowError) as e:
            logger.debug("Unparseable date cell %r: %s", text, e)
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(UTC)


def parse_stored(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp read back from storage; naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            logger.warning("Invalid stored timestamp: %s", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_stored(value: datetime | None) -> str | None:
    """Serialize an aware datetime for storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def same_instant(first: datetime | None, second: datetime | None) -> bool:
    """Compare two optional datetimes by the instant they denote."""
    if first is None or second is None:
        return first is None and second is None
    return parse_stored(first) == parse_stored(second)


def local_date(value: datetime, tz: ZoneInfo) -> date:
    """Calendar date of an instant in the given time zone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(tz).date()


def format_day(value: datetime | None, tz: ZoneInfo) -> str:
    """Render a due date for humans, e.g. 2025-01-10."""
    if value is None:
        return "not set"
    return local_date(value, tz).isoformat()
