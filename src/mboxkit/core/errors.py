"""Custom exception types for mboxkit.

Error messages should say:
- What failed (specific operation or component)
- Where it failed (file path, operation name)
- Why it failed (the specific condition)
- How to fix it, when there is something the caller can do
"""

from pathlib import Path


class MboxError(Exception):
    """Base exception for all mboxkit errors."""

    pass


class ConfigValidationError(MboxError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(MboxError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class FileNotFound(MboxError):
    """Raised when a source archive does not exist.

    Checked before any read is attempted.

    Attributes:
        path: The missing path
    """

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ReadError(MboxError):
    """Raised when an archive cannot be read or decoded.

    Decoding is attempted with the primary encoding, then with the
    single-byte fallback. This is raised only when both fail, or when
    the operating system refuses the read.

    Attributes:
        path: The archive that could not be read
    """

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class WriteError(MboxError):
    """Raised when a destination archive cannot be created or written.

    Attributes:
        path: The destination path
    """

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class InvalidFormat(MboxError):
    """Raised when archive content is structurally unrecoverable.

    Only strict-mode file merges raise this today; the parser drops
    malformed chunks instead of failing the whole archive.

    Attributes:
        path: The offending archive (if known)
    """

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class Cancelled(MboxError):
    """Raised when cooperative cancellation is observed.

    Any destination file written by the cancelled operation is left
    incomplete. Callers must discard it or restart; there is no resume.

    Attributes:
        operation: Name of the operation that was cancelled
        completed: Units of work finished before cancellation was observed
    """

    def __init__(self, message: str, operation: str | None = None, completed: int = 0):
        super().__init__(message)
        self.operation = operation
        self.completed = completed
