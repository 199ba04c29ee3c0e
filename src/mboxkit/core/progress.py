"""Structured progress reporting.

Operations report progress as ProgressEvent values. A ProgressReporter
keeps the events of the current run in order and fans each one out to
any number of subscribers, so a CLI progress bar, a UI adapter and a
test can all observe the same run.

Usage:
    from mboxkit.core.progress import ProgressReporter

    reporter = ProgressReporter()
    reporter.subscribe(lambda event: print(f"{event.fraction:.0%} {event.status}"))

    reporter.start("parse")
    reporter.report(3, 10, "Parsing message 3 of 10")

    # Replay everything reported so far (restartable, finite)
    for event in reporter:
        ...
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass

ProgressCallback = Callable[["ProgressEvent"], None]


@dataclass(frozen=True)
class ProgressEvent:
    """One progress observation.

    Attributes:
        operation: Name of the running operation (parse, split, merge_files, ...)
        completed: Units of work finished
        total: Units of work expected (0 when unknown or empty)
        status: Human-readable status line
        done: True only on the terminal event of an operation
    """

    operation: str
    completed: int
    total: int
    status: str
    done: bool = False

    @property
    def fraction(self) -> float:
        """Completed fraction clamped to [0, 1]."""
        if self.done:
            return 1.0
        if self.total <= 0:
            return 0.0
        return max(0.0, min(1.0, self.completed / self.total))


class ProgressReporter:
    """Collects progress events for one operation and notifies subscribers.

    Subscribers are called synchronously in the reporting thread; marshalling
    onto a UI thread is the subscriber's job.
    """

    def __init__(self) -> None:
        self._subscribers: list[ProgressCallback] = []
        self._events: list[ProgressEvent] = []
        self._operation = ""

    @property
    def operation(self) -> str:
        return self._operation

    @property
    def events(self) -> tuple[ProgressEvent, ...]:
        """Events reported since the last start()."""
        return tuple(self._events)

    @property
    def latest(self) -> ProgressEvent | None:
        return self._events[-1] if self._events else None

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a subscriber.

        Args:
            callback: Called with each new ProgressEvent

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def start(self, operation: str, status: str = "Starting...") -> None:
        """Begin a new operation, discarding events of the previous one."""
        self._operation = operation
        self._events = []
        self._emit(ProgressEvent(operation=operation, completed=0, total=0, status=status))

    def report(self, completed: int, total: int, status: str) -> None:
        """Record progress for the current operation."""
        self._emit(
            ProgressEvent(
                operation=self._operation,
                completed=completed,
                total=total,
                status=status,
            )
        )

    def finish(self, total: int, status: str = "Completed") -> None:
        """Record the terminal event of the current operation."""
        self._emit(
            ProgressEvent(
                operation=self._operation,
                completed=total,
                total=total,
                status=status,
                done=True,
            )
        )

    def _emit(self, event: ProgressEvent) -> None:
        self._events.append(event)
        for callback in list(self._subscribers):
            callback(event)

    def __iter__(self) -> Iterator[ProgressEvent]:
        return iter(tuple(self._events))

    def __len__(self) -> int:
        return len(self._events)
