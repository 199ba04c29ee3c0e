"""Date header parsing against a list of legacy textual formats.

Formats are tried in order and the first match wins. A date that matches
no format is not an error: the raw string stays on the record and the
parsed date is simply absent.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

import regex

from mboxkit.config_schema import DEFAULT_DATE_FORMATS

REGEX_TIMEOUT = 1.0

# Trailing zone comment, e.g. "... +0000 (UTC)" or "... -0800 (PST)"
TRAILING_COMMENT_PATTERN = regex.compile(r"\s*\([^()]*\)\s*$")
WHITESPACE_PATTERN = regex.compile(r"\s+")
# Trailing named zone, e.g. "... 10:00:00 GMT"
ZONE_NAME_PATTERN = regex.compile(r"\s([A-Za-z]{1,3})$")

# RFC 2822 zone names and their numeric offsets
ZONE_OFFSETS = {
    "UT": "+0000",
    "UTC": "+0000",
    "GMT": "+0000",
    "Z": "+0000",
    "EST": "-0500",
    "EDT": "-0400",
    "CST": "-0600",
    "CDT": "-0500",
    "MST": "-0700",
    "MDT": "-0600",
    "PST": "-0800",
    "PDT": "-0700",
}


def _replace_zone_name(text: str) -> str:
    match = ZONE_NAME_PATTERN.search(text, timeout=REGEX_TIMEOUT)
    if match is None:
        return text
    offset = ZONE_OFFSETS.get(match.group(1).upper())
    if offset is None:
        return text
    return f"{text[: match.start(1)]}{offset}"


def _clean_date_text(value: str) -> str:
    try:
        cleaned = TRAILING_COMMENT_PATTERN.sub("", value, timeout=REGEX_TIMEOUT)
        cleaned = WHITESPACE_PATTERN.sub(" ", cleaned, timeout=REGEX_TIMEOUT).strip()
        return _replace_zone_name(cleaned)
    except TimeoutError:
        return value.strip()


def parse_date(
    value: str | None,
    formats: Sequence[str] = DEFAULT_DATE_FORMATS,
) -> datetime | None:
    """Parse a Date: header value.

    Args:
        value: Raw header value
        formats: strptime formats, tried in order

    Returns:
        A timezone-aware datetime (naive matches are taken as UTC),
        or None if no format matches
    """
    if not value or not value.strip():
        return None

    text = _clean_date_text(value)

    for fmt in formats:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    return None
