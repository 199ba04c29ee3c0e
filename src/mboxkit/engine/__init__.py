"""Archive processing engines.

This package provides the operations run over parsed records:
- Archive engine tying reading, parsing, cancellation and progress together
- Subject-based thread detection
- Partitioning (split) strategies
- File and record merging
"""

from mboxkit.engine.archive_engine import ArchiveEngine
from mboxkit.engine.merge import (
    IncrementalResult,
    MergeResult,
    incremental_import,
    merge_files,
    merge_mailboxes,
    merge_records,
)
from mboxkit.engine.partition import (
    ByCount,
    ByDate,
    BySenderDomain,
    BySize,
    partition,
    write_partitions,
)
from mboxkit.engine.threads import detect_threads, normalize_subject

__all__ = [
    # Engine
    "ArchiveEngine",
    # Merge
    "IncrementalResult",
    "MergeResult",
    "incremental_import",
    "merge_files",
    "merge_mailboxes",
    "merge_records",
    # Partition
    "ByCount",
    "ByDate",
    "BySenderDomain",
    "BySize",
    "partition",
    "write_partitions",
    # Threads
    "detect_threads",
    "normalize_subject",
]
