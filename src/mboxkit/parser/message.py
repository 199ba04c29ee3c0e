"""Per-message parser.

Turns one raw chunk from the splitter into a MessageRecord, or rejects it.

Header block: lines up to the first blank line. Recognized headers are
From, To, Subject, Date, Message-ID, In-Reply-To and References; names
are matched case-insensitively and folded continuation lines are joined.
Every other header is ignored. Everything after the first blank line is
the body.

A chunk with neither a sender nor a subject is rejected. Such chunks are
almost always boundary artifacts (a stray "From " line in a body, or
leading junk before the first envelope line).

Usage:
    from mboxkit.parser.message import MessageParser

    parser = MessageParser()
    record = parser.parse(chunk)
    if record is None:
        ...  # dropped chunk
"""

from __future__ import annotations

from collections.abc import Sequence

import regex

from mboxkit.config_schema import DEFAULT_DATE_FORMATS, ParserConfig
from mboxkit.core.logging import get_logger
from mboxkit.models import MessageRecord
from mboxkit.parser.attachments import AttachmentDetector, HeuristicAttachmentDetector
from mboxkit.parser.dates import parse_date

logger = get_logger(__name__)

REGEX_TIMEOUT = 1.0

# mboxrd-quoted envelope lines in a body: ">From ", ">>From ", ...
QUOTED_FROM_PATTERN = regex.compile(r"^>(>*From )", regex.MULTILINE)

# Header name (lowercase) -> record field
HEADER_FIELDS = {
    "from": "sender",
    "to": "recipient",
    "subject": "subject",
    "date": "date",
    "message-id": "message_id",
    "in-reply-to": "in_reply_to",
    "references": "references",
}


def unquote_from_lines(body: str) -> str:
    """Remove one level of mboxrd quoting from body lines."""
    if ">From " not in body:
        return body
    try:
        return QUOTED_FROM_PATTERN.sub(r"\1", body, timeout=REGEX_TIMEOUT)
    except TimeoutError:
        logger.warning("Regex timeout while unquoting From lines", body_length=len(body))
        return body


def split_headers(chunk: str) -> tuple[dict[str, str], list[str]]:
    """Split a raw chunk into recognized headers and body lines.

    Args:
        chunk: Raw message text

    Returns:
        Tuple of (headers keyed by record field name, body lines)
    """
    headers: dict[str, str] = {}
    lines = chunk.split("\n")
    current_field: str | None = None

    for index, line in enumerate(lines):
        if not line.strip():
            return headers, lines[index + 1 :]

        if line[0] in " \t":
            # Folded continuation of the previous header
            if current_field is not None:
                headers[current_field] = f"{headers[current_field]} {line.strip()}"
            continue

        name, sep, value = line.partition(":")
        field = HEADER_FIELDS.get(name.strip().lower()) if sep and " " not in name else None
        if field is not None:
            headers[field] = value.strip()
        current_field = field

    return headers, []


class MessageParser:
    """Parses raw message chunks into MessageRecord values.

    Attributes:
        date_formats: strptime formats tried in order for the Date: header
        unquote_from: Remove one level of mboxrd '>From ' quoting from bodies
        attachment_detector: Strategy used to list attachment metadata
    """

    def __init__(
        self,
        date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
        unquote_from: bool = True,
        attachment_detector: AttachmentDetector | None = None,
    ):
        self.date_formats = tuple(date_formats)
        self.unquote_from = unquote_from
        self.attachment_detector = attachment_detector or HeuristicAttachmentDetector()

    @classmethod
    def from_config(cls, config: ParserConfig) -> MessageParser:
        """Build a parser from the parser section of AppConfig."""
        return cls(
            date_formats=config.date_formats,
            unquote_from=config.unquote_from_lines,
            attachment_detector=HeuristicAttachmentDetector(base64_ratio=config.base64_ratio),
        )

    def parse(self, chunk: str) -> MessageRecord | None:
        """Parse one raw chunk.

        Args:
            chunk: Raw message text as produced by the splitter

        Returns:
            MessageRecord, or None if the chunk has no sender and no subject
        """
        headers, body_lines = split_headers(chunk)

        sender = headers.get("sender", "")
        subject = headers.get("subject", "")
        if not sender and not subject:
            return None

        # Trailing blank lines are mbox framing, not message content
        body = "\n".join(body_lines).rstrip("\n")
        if self.unquote_from:
            body = unquote_from_lines(body)

        raw_date = headers.get("date", "")
        references = headers.get("references")
        attachments = self.attachment_detector.detect(chunk)

        return MessageRecord(
            sender=sender,
            subject=subject,
            date=raw_date,
            body=body,
            recipient=headers.get("recipient"),
            parsed_date=parse_date(raw_date, self.date_formats),
            message_id=headers.get("message_id"),
            in_reply_to=headers.get("in_reply_to"),
            references=tuple(references.split()) if references is not None else None,
            attachments=tuple(attachments) if attachments else None,
        )
