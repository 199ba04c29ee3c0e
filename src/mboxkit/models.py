"""Record types produced by the ingestion engine.

All records are frozen dataclasses with tuple-valued collections, so they
are hashable and can be compared as sets (used by the split/merge tests).

Usage:
    from mboxkit.models import AttachmentInfo, MessageRecord, Thread

    record = MessageRecord(sender="Ann <ann@example.com>", subject="Hello", date="")
    print(record.sender_domain)  # "example.com"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import regex

# Bare address inside angle brackets, e.g. "Ann Smith <ann@example.com>"
ANGLE_ADDRESS_PATTERN = regex.compile(r"<([^<>\s]+@[^<>\s]+)>")
# Fallback: first token containing "@"
BARE_ADDRESS_PATTERN = regex.compile(r"[^\s<>\"',;]+@[^\s<>\"',;]+")

REGEX_TIMEOUT = 1.0


@dataclass(frozen=True)
class AttachmentInfo:
    """Attachment metadata inferred from raw MIME-like text.

    Attributes:
        filename: Declared file name (name= or filename= parameter)
        content_type: Declared content type, e.g. "application/pdf"
        size: Estimated decoded size in bytes from base64 line accounting,
              or None when it cannot be estimated. Never an exact size.
    """

    filename: str
    content_type: str
    size: int | None = None


@dataclass(frozen=True)
class MessageRecord:
    """One parsed message.

    Attributes:
        sender: Raw From: header (address with optional display name)
        subject: Subject header (may be empty)
        date: Raw Date: header text, always preserved
        body: Body text after the header block
        recipient: Raw To: header, if present
        parsed_date: Timezone-aware date parsed from `date`, or None
        message_id: Message-ID header, if present
        in_reply_to: In-Reply-To header, if present
        references: References header split on whitespace, if present
        attachments: Attachment metadata, if any was found
    """

    sender: str
    subject: str
    date: str
    body: str = ""
    recipient: str | None = None
    parsed_date: datetime | None = None
    message_id: str | None = None
    in_reply_to: str | None = None
    references: tuple[str, ...] | None = None
    attachments: tuple[AttachmentInfo, ...] | None = None

    @property
    def sender_address(self) -> str:
        """Bare sender address, or empty string if none can be found."""
        return extract_address(self.sender)

    @property
    def sender_domain(self) -> str:
        """Lowercase domain of the sender address, or empty string."""
        return extract_domain(self.sender)

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)

    @property
    def attachment_count(self) -> int:
        return len(self.attachments) if self.attachments else 0

    @property
    def estimated_size(self) -> int:
        """Size estimate used by size-based partitioning.

        Character length of body + subject + sender + recipient.
        """
        return (
            len(self.body)
            + len(self.subject)
            + len(self.sender)
            + len(self.recipient or "")
        )


@dataclass(frozen=True)
class Thread:
    """Messages that share a normalized subject.

    Attributes:
        key: Normalized subject (lowercase, reply/forward prefixes removed)
        messages: Messages ordered by parsed date ascending, undated first
    """

    key: str
    messages: tuple[MessageRecord, ...] = field(default_factory=tuple)

    @property
    def count(self) -> int:
        return len(self.messages)

    @property
    def participants(self) -> tuple[str, ...]:
        """Sorted unique senders."""
        return tuple(sorted({m.sender for m in self.messages if m.sender}))

    @property
    def date_range(self) -> tuple[datetime, datetime] | None:
        """(earliest, latest) parsed dates, or None if no message is dated."""
        dates = [m.parsed_date for m in self.messages if m.parsed_date is not None]
        if not dates:
            return None
        return min(dates), max(dates)


@dataclass(frozen=True)
class PartitionGroup:
    """One output group of a split.

    Attributes:
        label: Strategy-specific label (sequence index, size part, date key, domain)
        messages: Messages in this group, in input order
        filename: Output archive file name for this group
    """

    label: str
    messages: tuple[MessageRecord, ...]
    filename: str

    def __len__(self) -> int:
        return len(self.messages)


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one archive.

    Attributes:
        messages: Records in archive order
        total_chunks: Chunks produced by the splitter
        dropped_chunks: Chunks the parser rejected (no sender and no subject)
    """

    messages: tuple[MessageRecord, ...]
    total_chunks: int
    dropped_chunks: int

    def __len__(self) -> int:
        return len(self.messages)


def extract_address(value: str) -> str:
    """Extract the bare address from a From:/To: style header value.

    Args:
        value: Header value, e.g. '"Smith, Ann" <ann@example.com>'

    Returns:
        The address, or an empty string if none is present
    """
    if not value or "@" not in value:
        return ""
    try:
        match = ANGLE_ADDRESS_PATTERN.search(value, timeout=REGEX_TIMEOUT)
        if match:
            return match.group(1)
        match = BARE_ADDRESS_PATTERN.search(value, timeout=REGEX_TIMEOUT)
        return match.group(0) if match else ""
    except TimeoutError:
        return ""


def extract_domain(value: str) -> str:
    """Extract the lowercase domain from an address or From: header value.

    Args:
        value: Email address, optionally with a display name

    Returns:
        Lowercase domain, or empty string if no address is present
    """
    address = extract_address(value)
    if "@" not in address:
        return ""
    return address.rsplit("@", 1)[1].lower()
