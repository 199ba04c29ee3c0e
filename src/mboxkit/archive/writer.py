"""mbox serialization.

Turns message records back into mbox wire format and writes them to a
destination archive.

Wire format per message:
    From <address> <asctime timestamp>
    From: ...
    To: ...                (optional)
    Subject: ...
    Date: ...
    Message-ID: ...        (optional)
    In-Reply-To: ...       (optional)
    References: a b c      (optional, space-joined)

    <body>
    <blank line>
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC
from pathlib import Path
from typing import IO, Any

import regex

from mboxkit.core.cancellation import CancellationToken
from mboxkit.core.errors import WriteError
from mboxkit.core.logging import get_logger
from mboxkit.core.progress import ProgressReporter
from mboxkit.models import MessageRecord

logger = get_logger(__name__)

REGEX_TIMEOUT = 1.0

# Body lines that would be mistaken for (or are quoted) envelope lines
FROM_LINE_PATTERN = regex.compile(r"^(>*From )", regex.MULTILINE)

ENVELOPE_SENDER_FALLBACK = "MAILER-DAEMON"
ENVELOPE_DATE_FORMAT = "%a %b %d %H:%M:%S %Y"
ENVELOPE_EPOCH = "Thu Jan 01 00:00:00 1970"


def quote_from_lines(body: str) -> str:
    """Apply mboxrd quoting: prefix '>' to every line matching ^>*From ."""
    if "From " not in body:
        return body
    return FROM_LINE_PATTERN.sub(r">\1", body, timeout=REGEX_TIMEOUT)


def envelope_line(record: MessageRecord) -> str:
    """Build the 'From <sender> <timestamp>' envelope line for a record."""
    sender = record.sender_address or ENVELOPE_SENDER_FALLBACK
    if record.parsed_date is not None:
        timestamp = record.parsed_date.astimezone(UTC).strftime(ENVELOPE_DATE_FORMAT)
    else:
        timestamp = " ".join(record.date.split()) or ENVELOPE_EPOCH
    return f"From {sender} {timestamp}"


def serialize_message(record: MessageRecord, quote_from: bool = True) -> str:
    """Serialize one record to mbox wire format.

    Args:
        record: Message to serialize
        quote_from: Apply mboxrd quoting to the body

    Returns:
        The message text, ending with a blank line
    """
    lines = [envelope_line(record), f"From: {record.sender}"]

    if record.recipient is not None:
        lines.append(f"To: {record.recipient}")

    lines.append(f"Subject: {record.subject}")
    lines.append(f"Date: {record.date}")

    if record.message_id is not None:
        lines.append(f"Message-ID: {record.message_id}")
    if record.in_reply_to is not None:
        lines.append(f"In-Reply-To: {record.in_reply_to}")
    if record.references is not None:
        lines.append(f"References: {' '.join(record.references)}")

    body = quote_from_lines(record.body) if quote_from else record.body
    return "\n".join(lines) + "\n\n" + body + "\n\n"


def open_destination(path: Path, binary: bool = False) -> IO[Any]:
    """Create (truncate) a destination archive for writing.

    Raises:
        WriteError: If the file cannot be created or opened
    """
    try:
        if binary:
            return open(path, "wb")  # noqa: SIM115
        return open(path, "w", encoding="utf-8", newline="\n")  # noqa: SIM115
    except OSError as e:
        raise WriteError(f"Could not create output file {path}: {e}", path=path) from e


def write_messages(
    records: Iterable[MessageRecord],
    destination: Path,
    quote_from: bool = True,
    token: CancellationToken | None = None,
    progress: ProgressReporter | None = None,
    total: int | None = None,
) -> int:
    """Write records to a destination archive in the given order.

    Args:
        records: Records to write
        destination: Output path (created or truncated)
        quote_from: Apply mboxrd quoting to bodies
        token: Cancellation token polled once per message
        progress: Reporter receiving one event per message
        total: Expected record count for progress events

    Returns:
        Number of messages written

    Raises:
        WriteError: If the destination cannot be created or written
        Cancelled: If the token is cancelled; the file is left incomplete
    """
    destination = Path(destination)
    written = 0

    with open_destination(destination) as out:
        for record in records:
            if token is not None:
                token.raise_if_cancelled("write", completed=written)
            try:
                out.write(serialize_message(record, quote_from=quote_from))
            except OSError as e:
                raise WriteError(
                    f"Failed writing message {written + 1} to {destination}: {e}",
                    path=destination,
                ) from e
            written += 1
            if progress is not None and total:
                progress.report(written, total, f"Writing email {written} of {total}...")

    logger.debug("Messages written", path=str(destination), messages=written)
    return written
