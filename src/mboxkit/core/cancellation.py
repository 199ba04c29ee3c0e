"""Cooperative cancellation for long-running archive operations.

A CancellationToken is created per engine (or per call) and threaded
through every loop that walks chunks, messages, files or groups. Loops
poll it once per iteration; nothing is interrupted preemptively.

Usage:
    from mboxkit.core.cancellation import CancellationToken

    token = CancellationToken()

    # From a UI thread or a progress subscriber:
    token.cancel()

    # Inside a loop:
    token.raise_if_cancelled("parse", completed=index)
"""

import threading

from mboxkit.core.errors import Cancelled
from mboxkit.core.logging import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """A one-shot cancellation flag.

    Backed by threading.Event so cancel() may be called from another
    thread, even though the operations themselves are single-threaded.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        if not self._event.is_set():
            logger.info("cancellation_requested")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str, completed: int = 0) -> None:
        """Raise Cancelled if cancellation has been requested.

        Args:
            operation: Name of the polling operation (for the error)
            completed: Units of work already finished

        Raises:
            Cancelled: If cancel() has been called
        """
        if self._event.is_set():
            raise Cancelled(
                f"Operation '{operation}' cancelled after {completed} unit(s) of work. "
                "Any partially written output is incomplete and should be discarded.",
                operation=operation,
                completed=completed,
            )
