"""Archive merging.

Three ways to merge:
- merge_files(): byte-level concatenation of archive files, in order,
  with a newline between files. Inputs are not re-parsed; a malformed
  input ends up in the output as-is unless validate=True.
- merge_records(): sort records by parsed date (undated first) and
  serialize them to one archive.
- merge_mailboxes() / incremental_import(): combine record collections
  in memory with optional de-duplication, for callers that want a
  merged collection before writing it.

Usage:
    from mboxkit.engine.merge import merge_files, merge_records

    merge_files([Path("a.mbox"), Path("b.mbox")], Path("all.mbox"))
    merge_records(records, Path("sorted.mbox"))
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from mboxkit.archive.reader import read_archive_bytes
from mboxkit.archive.writer import open_destination, write_messages
from mboxkit.core.cancellation import CancellationToken
from mboxkit.core.errors import FileNotFound, InvalidFormat, WriteError
from mboxkit.core.logging import get_logger
from mboxkit.core.progress import ProgressReporter
from mboxkit.engine.threads import date_sort_key
from mboxkit.models import MessageRecord

logger = get_logger(__name__)

SortOrder = Literal["date_asc", "date_desc", "sender", "subject", "none"]

# Characters of body text included in a record signature
SIGNATURE_BODY_PREFIX = 100

# Characters of body text compared by message_similarity()
SIMILARITY_BODY_PREFIX = 500

DEFAULT_DUPLICATE_THRESHOLD = 0.85


def _starts_with_envelope(data: bytes) -> bool:
    return data.lstrip(b"\r\n").startswith(b"From ")


def merge_files(
    sources: Sequence[Path],
    destination: Path,
    validate: bool = False,
    token: CancellationToken | None = None,
    progress: ProgressReporter | None = None,
) -> int:
    """Concatenate archive files into one destination archive.

    Args:
        sources: Archives to merge, in output order
        destination: Output path (created or truncated)
        validate: Raise InvalidFormat for a source that does not start with
            an mbox envelope line, instead of copying it blindly
        token: Cancellation token polled once per file
        progress: Reporter receiving files completed / total files

    Returns:
        Number of files merged

    Raises:
        ValueError: If sources is empty or the destination is one of them
        FileNotFound: If a source does not exist; nothing is written
        ReadError: If a source cannot be read
        InvalidFormat: If validate is set and a source is not an mbox archive
        WriteError: If the destination cannot be created or written
        Cancelled: If the token is cancelled; the destination is incomplete
    """
    if not sources:
        raise ValueError("No files to merge")

    destination = Path(destination)
    sources = [Path(source) for source in sources]
    total = len(sources)

    # The destination is truncated on open, so every source is checked first
    target = destination.resolve()
    for source in sources:
        if not source.exists():
            raise FileNotFound(f"Archive not found: {source}", path=source)
        if source.resolve() == target:
            raise ValueError(f"Destination {destination} is also a merge source")

    with open_destination(destination, binary=True) as out:
        for index, source in enumerate(sources):
            if token is not None:
                token.raise_if_cancelled("merge_files", completed=index)

            data = read_archive_bytes(source)
            if validate and data.strip() and not _starts_with_envelope(data):
                raise InvalidFormat(
                    f"{source} does not start with an mbox 'From ' envelope line",
                    path=source,
                )

            try:
                out.write(data)
                if index < total - 1:
                    out.write(b"\n")
            except OSError as e:
                raise WriteError(
                    f"Failed writing {source.name} into {destination}: {e}",
                    path=destination,
                ) from e

            if progress is not None:
                progress.report(index + 1, total, f"Merged {source.name} ({index + 1} of {total})")

    logger.info("Files merged", destination=str(destination), files=total)
    return total


def sort_records(records: Iterable[MessageRecord], order: SortOrder = "date_asc") -> list[MessageRecord]:
    """Sort records for output. All orders are stable.

    Args:
        records: Records to sort
        order: date_asc (undated first), date_desc (undated last),
            sender, subject (case-insensitive) or none

    Returns:
        A new sorted list
    """
    items = list(records)
    if order == "date_asc":
        items.sort(key=date_sort_key)
    elif order == "date_desc":
        items.sort(key=date_sort_key, reverse=True)
    elif order == "sender":
        items.sort(key=lambda r: r.sender.lower())
    elif order == "subject":
        items.sort(key=lambda r: r.subject.lower())
    elif order != "none":
        raise ValueError(f"Unknown sort order: {order!r}")
    return items


def merge_records(
    records: Sequence[MessageRecord],
    destination: Path,
    quote_from: bool = True,
    token: CancellationToken | None = None,
    progress: ProgressReporter | None = None,
) -> int:
    """Sort records by parsed date and write them to one archive.

    Records without a parsed date sort first (earliest possible); ties
    keep their input order.

    Args:
        records: Records to merge
        destination: Output path (created or truncated)
        quote_from: Apply mboxrd quoting to bodies
        token: Cancellation token polled once per message
        progress: Reporter receiving messages written / total

    Returns:
        Number of messages written

    Raises:
        WriteError: If the destination cannot be created or written
        Cancelled: If the token is cancelled; the destination is incomplete
    """
    ordered = sort_records(records, "date_asc")
    written = write_messages(
        ordered,
        Path(destination),
        quote_from=quote_from,
        token=token,
        progress=progress,
        total=len(ordered),
    )
    logger.info("Records merged", destination=str(destination), messages=written)
    return written


def record_signature(record: MessageRecord) -> str:
    """Exact identity used by incremental_import() to skip known records.

    The Message-ID when present, otherwise sender, subject, raw date and
    the start of the body.
    """
    if record.message_id:
        return record.message_id
    return "|".join(
        [
            record.sender.lower(),
            record.subject.lower().strip(),
            record.date,
            record.body[:SIGNATURE_BODY_PREFIX].lower(),
        ]
    )


def text_similarity(first: str, second: str) -> float:
    """Case-insensitive word-set Jaccard similarity in [0, 1]."""
    a = first.lower()
    b = second.lower()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    words_a = set(a.split())
    words_b = set(b.split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def message_similarity(first: MessageRecord, second: MessageRecord) -> float:
    """Weighted likelihood that two records are copies of one message.

    Equal Message-IDs score 1.0 outright. Otherwise the score combines
    subject similarity (0.3), exact sender match (0.2), closeness of the
    parsed dates (0.2: 1.0 under a minute apart, 0.5 under an hour) and
    similarity of the first body characters (0.3).
    """
    if first.message_id and second.message_id and first.message_id == second.message_id:
        return 1.0

    subject = text_similarity(first.subject, second.subject)
    sender = 1.0 if first.sender.lower() == second.sender.lower() else 0.0

    date = 0.0
    if first.parsed_date is not None and second.parsed_date is not None:
        apart = abs((date_sort_key(first) - date_sort_key(second)).total_seconds())
        if apart < 60:
            date = 1.0
        elif apart < 3600:
            date = 0.5

    body = text_similarity(
        first.body[:SIMILARITY_BODY_PREFIX],
        second.body[:SIMILARITY_BODY_PREFIX],
    )
    return subject * 0.3 + sender * 0.2 + date * 0.2 + body * 0.3


def find_duplicate_groups(
    records: Sequence[MessageRecord],
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
    token: CancellationToken | None = None,
) -> list[list[int]]:
    """Group indexes of records that look like copies of one message.

    Each not-yet-grouped record seeds a group and collects every later
    ungrouped record whose similarity to the seed reaches the threshold.
    Only groups with more than one member are returned.
    """
    grouped: set[int] = set()
    groups: list[list[int]] = []

    for index, seed in enumerate(records):
        if token is not None:
            token.raise_if_cancelled("merge_mailboxes", completed=index)
        if index in grouped:
            continue
        grouped.add(index)
        group = [index]
        for other in range(index + 1, len(records)):
            if other in grouped:
                continue
            if message_similarity(seed, records[other]) >= threshold:
                group.append(other)
                grouped.add(other)
        if len(group) > 1:
            groups.append(group)

    return groups


def completeness_score(record: MessageRecord) -> int:
    """Higher for copies carrying more data; used to pick which duplicate to keep."""
    score = 0
    if record.message_id:
        score += 10
    if record.attachments:
        score += 5
    if record.references:
        score += 5
    score += min(len(record.body) // 100, 20)
    return score


@dataclass
class MergeResult:
    """Result of merge_mailboxes().

    Attributes:
        messages: Merged records in the requested order
        total_before: Records across all input mailboxes
        duplicates_removed: Records dropped as duplicates
        duplicate_groups: Each group of records judged to be copies
    """

    messages: list[MessageRecord]
    total_before: int
    duplicates_removed: int = 0
    duplicate_groups: list[list[MessageRecord]] = field(default_factory=list)

    @property
    def total_after(self) -> int:
        return len(self.messages)


@dataclass
class IncrementalResult:
    """Result of incremental_import().

    Attributes:
        messages: Existing records followed by the newly added ones
        added: Records from the new batch that were not already present
        skipped: Records from the new batch that were already present
    """

    messages: list[MessageRecord]
    added: list[MessageRecord] = field(default_factory=list)
    skipped: list[MessageRecord] = field(default_factory=list)


def merge_mailboxes(
    mailboxes: Sequence[Sequence[MessageRecord]],
    remove_duplicates: bool = True,
    sort_order: SortOrder = "date_asc",
    duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
    token: CancellationToken | None = None,
) -> MergeResult:
    """Combine several record collections into one.

    When remove_duplicates is set, records whose message_similarity() to a
    group's first record reaches duplicate_threshold are treated as copies.
    Only the most complete copy of each group is kept, at its own position.

    Args:
        mailboxes: Record collections, in order
        remove_duplicates: Collapse near-identical records
        sort_order: Order of the merged records
        duplicate_threshold: Similarity in [0, 1] at which records are copies
        token: Cancellation token polled once per record

    Returns:
        MergeResult with the merged records and duplicate statistics

    Raises:
        ValueError: If duplicate_threshold is outside [0, 1]
    """
    if not 0.0 <= duplicate_threshold <= 1.0:
        raise ValueError(f"duplicate_threshold must be within [0, 1], got {duplicate_threshold}")

    combined = [record for mailbox in mailboxes for record in mailbox]
    total_before = len(combined)
    duplicate_groups: list[list[MessageRecord]] = []

    if remove_duplicates:
        dropped: set[int] = set()
        for group in find_duplicate_groups(combined, duplicate_threshold, token=token):
            duplicate_groups.append([combined[i] for i in group])
            # max() keeps the earliest of equally complete copies
            best = max(group, key=lambda i: completeness_score(combined[i]))
            dropped.update(i for i in group if i != best)
        combined = [record for i, record in enumerate(combined) if i not in dropped]

    merged = sort_records(combined, sort_order)

    logger.info(
        "Mailboxes merged",
        mailboxes=len(mailboxes),
        total_before=total_before,
        total_after=len(merged),
        duplicates_removed=total_before - len(merged),
    )

    return MergeResult(
        messages=merged,
        total_before=total_before,
        duplicates_removed=total_before - len(merged),
        duplicate_groups=duplicate_groups,
    )


def incremental_import(
    existing: Sequence[MessageRecord],
    new: Iterable[MessageRecord],
    sort_order: SortOrder = "none",
    token: CancellationToken | None = None,
) -> IncrementalResult:
    """Add records from `new` whose signature is not already in `existing`.

    Args:
        existing: Records already held by the caller
        new: Freshly parsed records
        sort_order: Order of the combined records
        token: Cancellation token polled once per new record

    Returns:
        IncrementalResult with combined records and added/skipped lists
    """
    seen = {record_signature(record) for record in existing}
    added: list[MessageRecord] = []
    skipped: list[MessageRecord] = []

    for index, record in enumerate(new):
        if token is not None:
            token.raise_if_cancelled("incremental_import", completed=index)
        signature = record_signature(record)
        if signature in seen:
            skipped.append(record)
        else:
            seen.add(signature)
            added.append(record)

    logger.info("Incremental import", added=len(added), skipped=len(skipped))

    return IncrementalResult(
        messages=sort_records([*existing, *added], sort_order),
        added=added,
        skipped=skipped,
    )
