"""Archive partitioning (split) strategies.

partition() is a pure function from an ordered message collection and a
strategy to an ordered list of PartitionGroup values. write_partitions()
then serializes each group to its own archive.

Strategies:
- ByCount(n): consecutive runs of up to n messages, never reordered
- BySize(max_bytes): greedy runs whose estimated size stays <= max_bytes;
  an oversized message becomes a group of its own
- ByDate(granularity): buckets by day, month or year of the parsed date (UTC)
- BySenderDomain(domains): first requested domain contained in the sender
  domain, else the "other" bucket

Usage:
    from mboxkit.engine.partition import ByCount, partition, write_partitions

    groups = partition(records, ByCount(500))
    paths = write_partitions(groups, Path("out/"))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC
from pathlib import Path
from typing import Literal

import regex

from mboxkit.archive.writer import write_messages
from mboxkit.core.cancellation import CancellationToken
from mboxkit.core.errors import WriteError
from mboxkit.core.logging import get_logger
from mboxkit.core.progress import ProgressReporter
from mboxkit.models import MessageRecord, PartitionGroup

logger = get_logger(__name__)

REGEX_TIMEOUT = 1.0

DEFAULT_OTHER_LABEL = "other"
DEFAULT_UNDATED_LABEL = "unknown"

# Characters not allowed in output file names (Windows-illegal + control chars)
ILLEGAL_FILENAME_CHARS = regex.compile(r'[<>:"/\\|?*\x00-\x1f]')

Granularity = Literal["day", "month", "year"]


@dataclass(frozen=True)
class ByCount:
    """Consecutive runs of up to `count` messages."""

    count: int

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"ByCount needs a count of at least 1, got {self.count}")


@dataclass(frozen=True)
class BySize:
    """Greedy runs whose summed estimated size stays within `max_bytes`."""

    max_bytes: int

    def __post_init__(self) -> None:
        if self.max_bytes < 1:
            raise ValueError(f"BySize needs max_bytes of at least 1, got {self.max_bytes}")


@dataclass(frozen=True)
class ByDate:
    """Buckets by calendar period of the parsed date.

    Attributes:
        granularity: "day", "month" or "year"
        include_undated: Put undated messages in an extra bucket instead of
            dropping them. None means unset: dropped unless filled from config
        undated_label: Label of that extra bucket. None means unset:
            DEFAULT_UNDATED_LABEL unless filled from config
    """

    granularity: Granularity = "month"
    include_undated: bool | None = None
    undated_label: str | None = None

    def __post_init__(self) -> None:
        if self.granularity not in ("day", "month", "year"):
            raise ValueError(
                f"ByDate granularity must be 'day', 'month' or 'year', got {self.granularity!r}"
            )


@dataclass(frozen=True)
class BySenderDomain:
    """Buckets by requested sender domains, first match wins.

    Attributes:
        domains: Domain strings matched case-insensitively as substrings
        other_label: Label of the bucket for senders matching none of them.
            None means unset: DEFAULT_OTHER_LABEL unless filled from config
    """

    domains: tuple[str, ...]
    other_label: str | None = None

    def __post_init__(self) -> None:
        # Accept any sequence, store a tuple so the strategy stays hashable
        object.__setattr__(self, "domains", tuple(d for d in self.domains if d and d.strip()))


PartitionStrategy = ByCount | BySize | ByDate | BySenderDomain


def safe_filename(label: str, maxlen: int = 120) -> str:
    """Make a group label safe to use as a file name stem."""
    cleaned = ILLEGAL_FILENAME_CHARS.sub(".", label.strip(), timeout=REGEX_TIMEOUT)
    cleaned = cleaned.replace("..", ".").strip(" .")
    if not cleaned:
        cleaned = "archive"
    if len(cleaned) > maxlen:
        cleaned = cleaned[:maxlen].rstrip(" .")
    return cleaned


def partition(
    messages: Sequence[MessageRecord],
    strategy: PartitionStrategy,
) -> list[PartitionGroup]:
    """Split an ordered message collection into groups.

    Args:
        messages: Messages in their original order
        strategy: ByCount, BySize, ByDate or BySenderDomain

    Returns:
        Groups in output order; each group keeps input order internally
    """
    if isinstance(strategy, ByCount):
        return _partition_by_count(messages, strategy.count)
    if isinstance(strategy, BySize):
        return _partition_by_size(messages, strategy.max_bytes)
    if isinstance(strategy, ByDate):
        return _partition_by_date(messages, strategy)
    if isinstance(strategy, BySenderDomain):
        return _partition_by_sender(messages, strategy)
    raise TypeError(f"Unknown partition strategy: {type(strategy).__name__}")


def _partition_by_count(messages: Sequence[MessageRecord], count: int) -> list[PartitionGroup]:
    runs = [tuple(messages[i : i + count]) for i in range(0, len(messages), count)]
    total = len(runs)
    return [
        PartitionGroup(
            label=str(index),
            messages=run,
            filename=f"part_{index}_of_{total}.mbox",
        )
        for index, run in enumerate(runs, start=1)
    ]


def _partition_by_size(messages: Sequence[MessageRecord], max_bytes: int) -> list[PartitionGroup]:
    runs: list[tuple[MessageRecord, ...]] = []
    current: list[MessageRecord] = []
    current_size = 0

    for message in messages:
        size = message.estimated_size
        if current and current_size + size > max_bytes:
            runs.append(tuple(current))
            current = []
            current_size = 0
        current.append(message)
        current_size += size

    if current:
        runs.append(tuple(current))

    return [
        PartitionGroup(
            label=str(index),
            messages=run,
            filename=f"part_{index}_max{max_bytes}b.mbox",
        )
        for index, run in enumerate(runs, start=1)
    ]


def date_bucket_key(message: MessageRecord, granularity: Granularity) -> str | None:
    """Bucket key (start of period, YYYY-MM-DD in UTC) or None if undated."""
    if message.parsed_date is None:
        return None
    parsed = message.parsed_date
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    date = parsed.astimezone(UTC).date()
    if granularity == "year":
        date = date.replace(month=1, day=1)
    elif granularity == "month":
        date = date.replace(day=1)
    return date.isoformat()


def _partition_by_date(messages: Sequence[MessageRecord], strategy: ByDate) -> list[PartitionGroup]:
    buckets: dict[str, list[MessageRecord]] = {}
    undated: list[MessageRecord] = []

    for message in messages:
        key = date_bucket_key(message, strategy.granularity)
        if key is None:
            undated.append(message)
        else:
            buckets.setdefault(key, []).append(message)

    groups = [
        PartitionGroup(label=key, messages=tuple(buckets[key]), filename=f"{key}.mbox")
        for key in sorted(buckets)
    ]

    if undated:
        if strategy.include_undated:
            label = DEFAULT_UNDATED_LABEL if strategy.undated_label is None else strategy.undated_label
            groups.append(
                PartitionGroup(
                    label=label,
                    messages=tuple(undated),
                    filename=f"{safe_filename(label)}.mbox",
                )
            )
        else:
            logger.info(
                "Undated messages excluded from date split",
                undated=len(undated),
                granularity=strategy.granularity,
            )

    return groups


def match_sender_domain(message: MessageRecord, domains: Sequence[str]) -> str | None:
    """First requested domain contained (case-insensitively) in the sender domain."""
    sender_domain = message.sender_domain
    if not sender_domain:
        return None
    for domain in domains:
        if domain.strip().lower() in sender_domain:
            return domain
    return None


def _partition_by_sender(
    messages: Sequence[MessageRecord],
    strategy: BySenderDomain,
) -> list[PartitionGroup]:
    buckets: dict[str, list[MessageRecord]] = {}
    other_label = DEFAULT_OTHER_LABEL if strategy.other_label is None else strategy.other_label

    for message in messages:
        key = match_sender_domain(message, strategy.domains) or other_label
        buckets.setdefault(key, []).append(message)

    return [
        PartitionGroup(label=key, messages=tuple(buckets[key]), filename=f"{safe_filename(key)}.mbox")
        for key in sorted(buckets)
    ]


def write_partitions(
    groups: Sequence[PartitionGroup],
    output_dir: Path,
    quote_from: bool = True,
    token: CancellationToken | None = None,
    progress: ProgressReporter | None = None,
) -> list[Path]:
    """Serialize each group to its own archive in output_dir.

    Args:
        groups: Output of partition()
        output_dir: Destination directory (created if missing)
        quote_from: Apply mboxrd quoting to bodies
        token: Cancellation token polled once per group and per message
        progress: Reporter receiving groups completed / total groups

    Returns:
        Written paths, in group order

    Raises:
        WriteError: If the directory or a file cannot be written
        Cancelled: If the token is cancelled; written files are incomplete
    """
    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(f"Could not create output directory {output_dir}: {e}", path=output_dir) from e

    paths: list[Path] = []
    total = len(groups)

    for index, group in enumerate(groups):
        if token is not None:
            token.raise_if_cancelled("split", completed=index)

        path = output_dir / group.filename
        write_messages(group.messages, path, quote_from=quote_from, token=token)
        paths.append(path)

        logger.debug("Partition written", path=str(path), label=group.label, messages=len(group))
        if progress is not None:
            progress.report(index + 1, total, f"Wrote {group.filename} ({index + 1} of {total})")

    return paths
