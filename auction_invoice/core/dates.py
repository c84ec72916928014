"""Date normalization to ISO ``YYYY-MM-DD`` for the ledger API."""
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
DAY_FIRST_DATE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2,4})$")
# Missing parts of a partial date ("November 2025") are filled from here
PARTIAL_DATE_DEFAULT = datetime(2000, 1, 1)


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Normalize a date string to ``YYYY-MM-DD``.

    Supports ISO dates and day-first ``DD/MM/YYYY``, ``DD-MM-YYYY`` and
    ``DD.MM.YYYY`` (two-digit years map to 2000-2099). Anything else goes
    through the dateutil parser. Values that cannot be normalized are
    returned unchanged; this function never raises.

    Args:
        value: Date string as extracted from the invoice

    Returns:
        The normalized date, or the original value if it cannot be parsed
    """
    if not value or not isinstance(value, str):
        return value

    trimmed = value.strip()

    if ISO_DATE.match(trimmed):
        return trimmed

    match = DAY_FIRST_DATE.match(trimmed)
    if match:
        day = match.group(1).zfill(2)
        month = match.group(2).zfill(2)
        year = match.group(3)
        if len(year) == 2:
            year = str(2000 + int(year))

        normalized = f"{year}-{month}-{day}"
        logger.info(f"Normalized date: '{value}' -> '{normalized}'")
        return normalized

    try:
        parsed = date_parser.parse(trimmed, dayfirst=True, default=PARTIAL_DATE_DEFAULT)
    except (ValueError, OverflowError) as exc:
        logger.warning(f"Could not normalize date '{value}': {exc}. Proceeding with original value.")
        return value

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    normalized = parsed.strftime("%Y-%m-%d")
    logger.info(f"Normalized date (fallback): '{value}' -> '{normalized}'")
    return normalized
