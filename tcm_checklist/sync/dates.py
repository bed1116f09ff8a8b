"""Date conversions between the wire format and editable date fields.

The service sends full timestamps (``2024-05-01T00:00:00.000Z``); editable
date fields hold calendar dates (``2024-05-01``). Conversion uses the UTC
calendar day, never local time, so every client agrees on the same day.

Both functions are non-destructive: bad input comes back unchanged.
"""

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

DATE_ONLY_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")

# clientInfo fields that hold calendar dates
CLIENT_INFO_DATE_FIELDS = ("kickoffDate", "goLiveDate")


def parse_timestamp(value: str) -> datetime | None:
    """Parse ISO 8601 or RFC 2822 text; naive results are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_editable_date(value):
    """Return ``value`` as ``YYYY-MM-DD`` when it is a parsable timestamp.

    - None stays None.
    - Non-strings and blank strings come back unchanged.
    - Strings already in ``YYYY-MM-DD`` form come back unchanged, so the
      function is idempotent.
    - Unparsable strings come back unchanged.

    >>> to_editable_date("2024-05-01T22:00:00.000-05:00")
    '2024-05-02'
    """
    if value is None or not isinstance(value, str):
        return value
    if not value.strip():
        return value
    if DATE_ONLY_PATTERN.fullmatch(value):
        return value

    parsed = parse_timestamp(value)
    if parsed is None:
        return value

    try:
        utc = parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # Offset pushes the instant outside year 1..9999
        return value
    return f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}"


def normalize_document_dates(document: dict | None) -> dict | None:
    """Return a shallow copy of ``document`` with clientInfo dates made editable.

    The input is never mutated. ``questions`` and every other field are
    carried over by reference.
    """
    if document is None:
        return None

    normalized = dict(document)
    client_info = normalized.get("clientInfo")
    if client_info is not None:
        client_info = dict(client_info)
        for field in CLIENT_INFO_DATE_FIELDS:
            if field in client_info:
                client_info[field] = to_editable_date(client_info[field])
        normalized["clientInfo"] = client_info
    return normalized
