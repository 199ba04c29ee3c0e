"""Heuristic attachment metadata detection.

This is deliberately not a MIME parser. It reads the raw message text,
finds Content-Type headers that carry a file name, and estimates the
attachment size from the length of the base64 block that follows the
part's headers. No payload is ever decoded.

Callers depend only on the AttachmentDetector protocol, so a real
RFC 2045 parser can replace HeuristicAttachmentDetector later.

CRITICAL SECURITY NOTE:
All regex operations use the `regex` library with a timeout on match
operations, since the input is untrusted mail content.

Usage:
    from mboxkit.parser.attachments import HeuristicAttachmentDetector

    detector = HeuristicAttachmentDetector()
    for info in detector.detect(raw_chunk):
        print(info.filename, info.content_type, info.size)
"""

from __future__ import annotations

from typing import Protocol

import regex

from mboxkit.core.logging import get_logger
from mboxkit.models import AttachmentInfo

logger = get_logger(__name__)

REGEX_TIMEOUT = 1.0

DEFAULT_BASE64_RATIO = 0.75

# Start of a Content-Type header line (the value is captured up to ';' or EOL)
CONTENT_TYPE_PATTERN = regex.compile(
    r"^Content-Type:[ \t]*([^;\n]+)",
    regex.MULTILINE | regex.IGNORECASE,
)

# name="..." / filename="..." (quoted or bare), inside one part's header block
FILENAME_PATTERN = regex.compile(
    r"""\b(?:file)?name\*?=\s*(?:"([^"\n]+)"|([^\s;"]+))""",
    regex.IGNORECASE,
)

BASE64_MARKER_PATTERN = regex.compile(
    r"^Content-Transfer-Encoding:[ \t]*base64\b",
    regex.MULTILINE | regex.IGNORECASE,
)


class AttachmentDetector(Protocol):
    """Anything that can list attachment metadata for a raw message chunk."""

    def detect(self, chunk: str) -> list[AttachmentInfo]: ...


class HeuristicAttachmentDetector:
    """Regex-based attachment detection over raw message text.

    For every Content-Type header whose part header block carries a name=
    or filename= parameter (and whose type is not multipart/*), one
    AttachmentInfo is produced. When that part is declared base64, the
    size is estimated as the summed length of the non-empty lines after
    the part headers, up to the next blank line or boundary marker,
    scaled by base64_ratio.

    Attributes:
        base64_ratio: Decoded-to-encoded size ratio (default 0.75)
    """

    def __init__(self, base64_ratio: float = DEFAULT_BASE64_RATIO):
        self.base64_ratio = base64_ratio

    def detect(self, chunk: str) -> list[AttachmentInfo]:
        """List attachments declared in a raw message chunk.

        Args:
            chunk: Raw message text (headers and body)

        Returns:
            AttachmentInfo per detected attachment, in order of appearance.
            Empty if nothing is found or a regex times out.
        """
        if not chunk or "content-type" not in chunk.lower():
            return []

        try:
            return self._detect(chunk)
        except TimeoutError:
            logger.warning("Regex timeout during attachment detection", chunk_length=len(chunk))
            return []

    def _detect(self, chunk: str) -> list[AttachmentInfo]:
        attachments: list[AttachmentInfo] = []
        has_base64 = BASE64_MARKER_PATTERN.search(chunk, timeout=REGEX_TIMEOUT) is not None

        for match in CONTENT_TYPE_PATTERN.finditer(chunk, timeout=REGEX_TIMEOUT):
            content_type = match.group(1).strip()
            if "multipart" in content_type.lower():
                continue

            header_block, payload_start = _part_header_block(chunk, match.start())
            filename = _find_filename(header_block)
            if not filename:
                continue

            size = None
            if has_base64 and BASE64_MARKER_PATTERN.search(header_block, timeout=REGEX_TIMEOUT):
                size = self._estimate_size(chunk, payload_start)

            attachments.append(
                AttachmentInfo(filename=filename, content_type=content_type, size=size)
            )

        return attachments

    def _estimate_size(self, chunk: str, payload_start: int) -> int | None:
        """Estimate decoded size of the base64 block starting at payload_start."""
        encoded_length = 0
        for line in chunk[payload_start:].split("\n"):
            stripped = line.strip()
            if not stripped or stripped.startswith("--"):
                break
            encoded_length += len(stripped)

        if encoded_length == 0:
            return None
        return int(encoded_length * self.base64_ratio)


def _part_header_block(chunk: str, start: int) -> tuple[str, int]:
    """Return the header block of the MIME part containing `start`.

    The block runs from the nearest preceding boundary line (or blank
    line) to the next blank line. The second value is the offset of the
    first payload line after that blank line.
    """
    block_start = 0
    for marker in ("\n--", "\n\n"):
        found = chunk.rfind(marker, 0, start)
        if found != -1:
            block_start = max(block_start, found + 1)

    block_end = chunk.find("\n\n", start)
    if block_end == -1:
        return chunk[block_start:], len(chunk)
    return chunk[block_start:block_end], block_end + 2


def _find_filename(header_block: str) -> str | None:
    match = FILENAME_PATTERN.search(header_block, timeout=REGEX_TIMEOUT)
    if not match:
        return None
    filename = (match.group(1) or match.group(2) or "").strip()
    return filename or None
