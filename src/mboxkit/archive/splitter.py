"""Message boundary splitter.

Cuts raw archive text into one chunk per message at the canonical mbox
boundary: a newline followed by a line starting with "From ".

The splitter works on the raw text only. It does not look at mboxrd
quoting, so a body line that really begins with "From " (unquoted) will
start a new chunk. Quoted lines (">From ") never match the boundary and
are unquoted later by the parser.
"""

from collections.abc import Iterator

from mboxkit.core.cancellation import CancellationToken
from mboxkit.core.progress import ProgressReporter

MESSAGE_BOUNDARY = "\nFrom "


def split_chunks(text: str) -> list[str]:
    """Split archive text into raw message chunks.

    CRLF line endings are normalized first. Empty and whitespace-only
    chunks are discarded.

    Args:
        text: Full archive text

    Returns:
        Non-empty chunks in archive order
    """
    if not text:
        return []
    normalized = text.replace("\r\n", "\n")
    return [chunk for chunk in normalized.split(MESSAGE_BOUNDARY) if chunk.strip()]


def iter_chunks(
    text: str,
    token: CancellationToken | None = None,
    progress: ProgressReporter | None = None,
) -> Iterator[str]:
    """Yield message chunks lazily with cancellation and progress.

    The token is polled once before each chunk is handed out. Progress is
    reported after the consumer has finished with each chunk, as
    (chunks processed / total chunks).

    Args:
        text: Full archive text
        token: Cancellation token polled once per chunk
        progress: Reporter receiving one event per chunk

    Yields:
        Raw chunks in archive order

    Raises:
        Cancelled: If the token is cancelled; remaining chunks are abandoned
    """
    chunks = split_chunks(text)
    total = len(chunks)

    for index, chunk in enumerate(chunks):
        if token is not None:
            token.raise_if_cancelled("split", completed=index)
        yield chunk
        if progress is not None:
            progress.report(index + 1, total, f"Parsing email {index + 1} of {total}...")
