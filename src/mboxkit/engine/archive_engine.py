"""Archive engine: one explicit value per operation.

The engine wires the reader, splitter and parser together and exposes
the parse, thread, split and merge operations. Each engine owns exactly
one CancellationToken and one ProgressReporter. Create a new engine for
each operation; running two operations on the same engine at the same
time is not supported.

Usage:
    from mboxkit.engine.archive_engine import ArchiveEngine

    engine = ArchiveEngine(config)
    engine.progress.subscribe(lambda e: print(f"{e.fraction:.0%} {e.status}"))

    result = engine.parse_file(Path("inbox.mbox"))
    threads = engine.detect_threads(result.messages)

    # From another thread or a progress subscriber:
    engine.cancel()
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path

from mboxkit.archive.reader import read_archive
from mboxkit.archive.splitter import iter_chunks
from mboxkit.archive.writer import write_messages
from mboxkit.config_schema import AppConfig
from mboxkit.core.cancellation import CancellationToken
from mboxkit.core.errors import Cancelled
from mboxkit.core.logging import get_logger, get_operation_id, set_operation_id
from mboxkit.core.progress import ProgressReporter
from mboxkit.engine.merge import merge_files, merge_mailboxes, merge_records
from mboxkit.engine.partition import (
    ByDate,
    BySenderDomain,
    PartitionStrategy,
    partition,
    write_partitions,
)
from mboxkit.engine.threads import detect_threads
from mboxkit.models import MessageRecord, PartitionGroup, ParseResult, Thread
from mboxkit.parser.message import MessageParser

logger = get_logger(__name__)


class ArchiveEngine:
    """Runs ingestion and re-partitioning operations.

    Attributes:
        config: Application configuration
        token: Cancellation token shared by every loop of this engine
        progress: Progress reporter for the running operation
        parser: Message parser built from config.parser
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
        parser: MessageParser | None = None,
    ):
        self.config = config or AppConfig()
        self.token = token or CancellationToken()
        self.progress = progress or ProgressReporter()
        self.parser = parser or MessageParser.from_config(self.config.parser)

    def cancel(self) -> None:
        """Request cancellation of the in-flight operation."""
        self.token.cancel()

    @contextmanager
    def _operation(self, name: str, status: str) -> Iterator[None]:
        """Scope one operation: operation ID for logs and a fresh progress run."""
        previous_id = get_operation_id()
        set_operation_id(str(uuid.uuid4()))
        self.progress.start(name, status)
        try:
            yield
        except Cancelled as e:
            logger.warning("Operation cancelled", operation=name, completed=e.completed)
            raise
        finally:
            set_operation_id(previous_id)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def read(self, path: Path) -> str:
        """Read an archive as text using the configured encodings."""
        return read_archive(
            Path(path),
            primary_encoding=self.config.reader.primary_encoding,
            fallback_encoding=self.config.reader.fallback_encoding,
        )

    def _parse_chunks(self, text: str) -> ParseResult:
        messages: list[MessageRecord] = []
        total = 0
        dropped = 0

        for chunk in iter_chunks(text, token=self.token, progress=self.progress):
            total += 1
            record = self.parser.parse(chunk)
            if record is None:
                dropped += 1
                logger.debug("Chunk dropped", chunk_index=total - 1, chunk_length=len(chunk))
            else:
                messages.append(record)

        return ParseResult(messages=tuple(messages), total_chunks=total, dropped_chunks=dropped)

    def parse_text(self, text: str) -> ParseResult:
        """Parse archive text already held in memory.

        Raises:
            Cancelled: If cancellation is observed between chunks
        """
        with self._operation("parse", "Parsing emails..."):
            result = self._parse_chunks(text)
            self.progress.finish(result.total_chunks)

        logger.info(
            "Archive parsed",
            messages=len(result.messages),
            total_chunks=result.total_chunks,
            dropped_chunks=result.dropped_chunks,
        )
        return result

    def parse_file(self, path: Path) -> ParseResult:
        """Read and parse one archive.

        Raises:
            FileNotFound: If the archive does not exist
            ReadError: If it cannot be read or decoded
            Cancelled: If cancellation is observed between chunks
        """
        path = Path(path)
        with self._operation("parse", "Reading file..."):
            text = self.read(path)
            self.progress.report(0, 0, "Parsing emails...")
            result = self._parse_chunks(text)
            self.progress.finish(result.total_chunks)

        logger.info(
            "Archive parsed",
            path=str(path),
            messages=len(result.messages),
            total_chunks=result.total_chunks,
            dropped_chunks=result.dropped_chunks,
        )
        return result

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    def detect_threads(self, messages: Sequence[MessageRecord]) -> list[Thread]:
        """Group messages into subject threads, largest first."""
        with self._operation("detect_threads", "Detecting threads..."):
            threads = detect_threads(messages, token=self.token)
            self.progress.finish(len(messages))
        return threads

    # ------------------------------------------------------------------
    # Split
    # ------------------------------------------------------------------

    def apply_partition_defaults(self, strategy: PartitionStrategy) -> PartitionStrategy:
        """Fill strategy options the caller left unset (None) from config.

        Options set explicitly on the strategy are never overridden.
        """
        settings = self.config.partition
        if isinstance(strategy, ByDate):
            updates: dict[str, object] = {}
            if strategy.include_undated is None:
                updates["include_undated"] = settings.undated_policy == "bucket"
            if strategy.undated_label is None:
                updates["undated_label"] = settings.undated_label
            return replace(strategy, **updates) if updates else strategy
        if isinstance(strategy, BySenderDomain) and strategy.other_label is None:
            return replace(strategy, other_label=settings.other_label)
        return strategy

    def split_records(
        self,
        messages: Sequence[MessageRecord],
        strategy: PartitionStrategy,
        output_dir: Path,
    ) -> list[Path]:
        """Partition records and write one archive per group.

        Returns:
            Written archive paths in group order
        """
        strategy = self.apply_partition_defaults(strategy)
        with self._operation("split", "Splitting emails..."):
            groups = self.partition(messages, strategy)
            paths = write_partitions(
                groups,
                Path(output_dir),
                quote_from=self.config.writer.quote_from_lines,
                token=self.token,
                progress=self.progress,
            )
            self.progress.finish(len(groups))

        logger.info(
            "Split complete",
            strategy=type(strategy).__name__,
            messages=len(messages),
            groups=len(groups),
            output_dir=str(output_dir),
        )
        return paths

    def partition(
        self,
        messages: Sequence[MessageRecord],
        strategy: PartitionStrategy,
    ) -> list[PartitionGroup]:
        """Pure partitioning, no files written."""
        return partition(messages, strategy)

    def split_file(self, path: Path, strategy: PartitionStrategy, output_dir: Path) -> list[Path]:
        """Parse an archive, partition it and write one archive per group."""
        result = self.parse_file(path)
        return self.split_records(result.messages, strategy, output_dir)

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge_files(self, sources: Sequence[Path], destination: Path, validate: bool | None = None) -> int:
        """Concatenate archive files into one archive."""
        if validate is None:
            validate = self.config.merge.validate_inputs
        with self._operation("merge_files", "Merging files..."):
            count = merge_files(
                [Path(s) for s in sources],
                Path(destination),
                validate=validate,
                token=self.token,
                progress=self.progress,
            )
            self.progress.finish(count)
        return count

    def merge_records(self, messages: Sequence[MessageRecord], destination: Path) -> int:
        """Sort records by date and write them to one archive."""
        with self._operation("merge_records", "Writing merged archive..."):
            written = merge_records(
                messages,
                Path(destination),
                quote_from=self.config.writer.quote_from_lines,
                token=self.token,
                progress=self.progress,
            )
            self.progress.finish(written)
        return written

    def merge_archives(self, sources: Sequence[Path], destination: Path) -> int:
        """Parse several archives and merge their records into one archive.

        De-duplication and ordering follow the merge section of config.
        """
        mailboxes = [self.parse_file(source).messages for source in sources]
        settings = self.config.merge
        merged = merge_mailboxes(
            mailboxes,
            remove_duplicates=settings.remove_duplicates,
            sort_order=settings.sort_order,
            duplicate_threshold=settings.duplicate_threshold,
            token=self.token,
        )
        with self._operation("merge_records", "Writing merged archive..."):
            written = write_messages(
                merged.messages,
                Path(destination),
                quote_from=self.config.writer.quote_from_lines,
                token=self.token,
                progress=self.progress,
                total=merged.total_after,
            )
            self.progress.finish(written)
        return written
