"""Subject-based thread detection.

Messages are grouped into conversations by normalized subject:
lowercased, with any chain of leading "re:", "fwd:", "fw:" and "aw:"
markers removed. Message-ID, In-Reply-To and References are parsed onto
every record but are not consulted here.

Usage:
    from mboxkit.engine.threads import detect_threads, normalize_subject

    threads = detect_threads(records)
    for thread in threads:
        print(thread.key, thread.count, thread.participants)

    normalize_subject("Fwd: Re: Budget Q1")  # "budget q1"
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

import regex

from mboxkit.core.cancellation import CancellationToken
from mboxkit.core.logging import get_logger
from mboxkit.models import MessageRecord, Thread

logger = get_logger(__name__)

# Regex timeout for security (used in match operations)
REGEX_TIMEOUT = 1.0

# One leading reply/forward marker; applied repeatedly on lowercased text.
# Note: timeout is passed at match time (sub, search), not compile time
SUBJECT_PREFIX_PATTERN = regex.compile(r"^\s*(?:re|fwd|fw|aw):\s*")

# Sort key for undated messages: earliest possible
_DISTANT_PAST = datetime.min.replace(tzinfo=UTC)

REPLY_PREFIXES = ("re:", "fwd:", "fw:", "aw:")


def normalize_subject(subject: str) -> str:
    """Normalize a subject into a thread key.

    Args:
        subject: Email subject

    Returns:
        Lowercased subject with leading Re:/Fwd:/Fw:/Aw: markers and
        surrounding whitespace removed
    """
    if not subject:
        return ""

    normalized = subject.lower().strip()
    try:
        # Remove all prefixes (can be chained)
        while True:
            new_normalized = SUBJECT_PREFIX_PATTERN.sub("", normalized, timeout=REGEX_TIMEOUT)
            if new_normalized == normalized:
                break
            normalized = new_normalized
    except (regex.error, TimeoutError):
        # Timeout or error - strip prefixes without regex
        while normalized.startswith(REPLY_PREFIXES):
            normalized = normalized.split(":", 1)[1].strip()
    return normalized.strip()


def date_sort_key(record: MessageRecord) -> datetime:
    """Sort key placing undated records first. Naive dates are taken as UTC."""
    parsed = record.parsed_date
    if parsed is None:
        return _DISTANT_PAST
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def detect_threads(
    messages: Iterable[MessageRecord],
    token: CancellationToken | None = None,
) -> list[Thread]:
    """Group messages into threads by normalized subject.

    Threads are returned by message count, descending. The sort is stable,
    so threads with equal counts keep the order in which their first
    message appeared, and identical inputs always give identical output.

    Args:
        messages: Parsed records
        token: Cancellation token polled once per message

    Returns:
        Threads, largest first
    """
    groups: dict[str, list[MessageRecord]] = {}

    for index, message in enumerate(messages):
        if token is not None:
            token.raise_if_cancelled("detect_threads", completed=index)
        groups.setdefault(normalize_subject(message.subject), []).append(message)

    threads = [
        Thread(key=key, messages=tuple(sorted(members, key=date_sort_key)))
        for key, members in groups.items()
    ]
    threads.sort(key=lambda thread: thread.count, reverse=True)

    logger.debug("Threads detected", threads=len(threads))
    return threads
