"""Archive I/O.

This package reads, splits and writes mbox archives:
- Reader with primary/fallback encoding
- Splitter cutting text at mbox envelope boundaries
- Writer serializing records back to mbox
"""

from mboxkit.archive.reader import decode_archive, read_archive, read_archive_bytes
from mboxkit.archive.splitter import iter_chunks, split_chunks
from mboxkit.archive.writer import serialize_message, write_messages

__all__ = [
    # Reader
    "decode_archive",
    "read_archive",
    "read_archive_bytes",
    # Splitter
    "iter_chunks",
    "split_chunks",
    # Writer
    "serialize_message",
    "write_messages",
]
