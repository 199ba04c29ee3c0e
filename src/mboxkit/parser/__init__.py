"""Message parsing.

This package turns raw message chunks into records:
- Header/body parser
- Legacy date format parsing
- Heuristic attachment metadata detection
"""

from mboxkit.parser.attachments import AttachmentDetector, HeuristicAttachmentDetector
from mboxkit.parser.dates import parse_date
from mboxkit.parser.message import MessageParser

__all__ = [
    "AttachmentDetector",
    "HeuristicAttachmentDetector",
    "MessageParser",
    "parse_date",
]
