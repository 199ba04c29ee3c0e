"""Archive reader.

Loads a whole archive into memory as one text buffer. Decoding is tried
with the primary encoding first and then with a single-byte fallback,
which is how real-world mailboxes with mixed or legacy encodings are
still made readable.

Usage:
    from mboxkit.archive.reader import read_archive

    text = read_archive(Path("inbox.mbox"))
"""

from pathlib import Path

from mboxkit.core.errors import FileNotFound, ReadError
from mboxkit.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PRIMARY_ENCODING = "utf-8"
DEFAULT_FALLBACK_ENCODING = "latin-1"


def read_archive_bytes(path: Path) -> bytes:
    """Read an archive's raw bytes.

    Args:
        path: Archive path

    Returns:
        File contents

    Raises:
        FileNotFound: If the path does not exist
        ReadError: If the operating system refuses the read
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFound(f"Archive not found: {path}", path=path)

    try:
        return path.read_bytes()
    except OSError as e:
        raise ReadError(f"Could not read archive {path}: {e}", path=path) from e


def decode_archive(
    data: bytes,
    primary_encoding: str = DEFAULT_PRIMARY_ENCODING,
    fallback_encoding: str = DEFAULT_FALLBACK_ENCODING,
    path: Path | None = None,
) -> str:
    """Decode archive bytes with encoding fallback.

    Args:
        data: Raw archive bytes
        primary_encoding: Encoding tried first
        fallback_encoding: Encoding tried when the first one fails
        path: Source path, for error messages only

    Returns:
        Decoded text

    Raises:
        ReadError: If both encodings fail
    """
    try:
        return data.decode(primary_encoding)
    except (UnicodeDecodeError, LookupError) as primary_error:
        logger.debug(
            "Primary encoding failed, retrying with fallback",
            path=str(path) if path else None,
            primary_encoding=primary_encoding,
            fallback_encoding=fallback_encoding,
            error=str(primary_error),
        )

    try:
        return data.decode(fallback_encoding)
    except (UnicodeDecodeError, LookupError) as e:
        raise ReadError(
            f"Could not decode archive {path or '<bytes>'} as {primary_encoding} "
            f"or {fallback_encoding}: {e}",
            path=path,
        ) from e


def read_archive(
    path: Path,
    primary_encoding: str = DEFAULT_PRIMARY_ENCODING,
    fallback_encoding: str = DEFAULT_FALLBACK_ENCODING,
) -> str:
    """Read an archive as text.

    Args:
        path: Archive path
        primary_encoding: Encoding tried first
        fallback_encoding: Single-byte encoding tried second

    Returns:
        Full archive text

    Raises:
        FileNotFound: If the path does not exist (checked before reading)
        ReadError: If the read fails or neither encoding decodes the file
    """
    path = Path(path)
    data = read_archive_bytes(path)
    text = decode_archive(data, primary_encoding, fallback_encoding, path=path)

    logger.debug("Archive read", path=str(path), size_bytes=len(data))
    return text
