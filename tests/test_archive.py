"""Tests for archive I/O: reader, splitter and writer."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from mboxkit.archive.reader import decode_archive, read_archive
from mboxkit.archive.splitter import iter_chunks, split_chunks
from mboxkit.archive.writer import (
    envelope_line,
    quote_from_lines,
    serialize_message,
    write_messages,
)
from mboxkit.core.cancellation import CancellationToken
from mboxkit.core.errors import Cancelled, FileNotFound, ReadError, WriteError
from mboxkit.core.progress import ProgressReporter
from mboxkit.models import MessageRecord

# =============================================================================
# Reader
# =============================================================================


class TestReadArchive:
    """Tests for reading archives with encoding fallback."""

    def test_reads_utf8(self, tmp_path: Path) -> None:
        """UTF-8 content decodes with the primary encoding."""
        path = tmp_path / "a.mbox"
        path.write_bytes("Subject: Grüße\n".encode())
        assert read_archive(path) == "Subject: Grüße\n"

    def test_falls_back_to_latin1(self, tmp_path: Path) -> None:
        """Invalid UTF-8 is retried with the single-byte fallback."""
        path = tmp_path / "a.mbox"
        path.write_bytes("Subject: café\n".encode("latin-1"))
        assert read_archive(path) == "Subject: café\n"

    def test_missing_file_raises_file_not_found(self, tmp_path: Path) -> None:
        """A missing path fails before any read with FileNotFound."""
        missing = tmp_path / "nope.mbox"
        with pytest.raises(FileNotFound) as exc_info:
            read_archive(missing)
        assert exc_info.value.path == missing

    def test_both_encodings_failing_raises_read_error(self) -> None:
        """ReadError when the fallback cannot decode either."""
        with pytest.raises(ReadError):
            decode_archive(b"\xff\xfe\xfa", primary_encoding="utf-8", fallback_encoding="ascii")

    def test_directory_raises_read_error(self, tmp_path: Path) -> None:
        """The OS refusing the read surfaces as ReadError."""
        with pytest.raises(ReadError):
            read_archive(tmp_path)


# =============================================================================
# Splitter
# =============================================================================


class TestSplitChunks:
    """Tests for cutting text at envelope boundaries."""

    def test_splits_on_envelope_lines(self, three_message_archive: str) -> None:
        chunks = split_chunks(three_message_archive)
        assert len(chunks) == 3
        assert chunks[0].startswith("From alice@example.com")
        assert chunks[1].startswith("bob@corp.org")

    def test_empty_text(self) -> None:
        assert split_chunks("") == []

    def test_drops_whitespace_only_chunks(self) -> None:
        text = "\n\nFrom a@b.c x\nFrom: a@b.c\n\nbody\n\nFrom \n"
        chunks = split_chunks(text)
        assert len(chunks) == 1

    def test_normalizes_crlf(self) -> None:
        text = "From a x\r\nFrom: a@b.c\r\n\r\nbody\r\n\r\nFrom b y\r\nFrom: b@b.c\r\n\r\nbody\r\n"
        chunks = split_chunks(text)
        assert len(chunks) == 2
        assert "\r" not in chunks[0]

    def test_from_header_is_not_a_boundary(self) -> None:
        """'From:' headers never split; only 'From ' lines do."""
        text = "From a x\nFrom: a@b.c\nSubject: s\n\nbody\n"
        assert len(split_chunks(text)) == 1

    def test_unquoted_from_in_body_splits(self) -> None:
        """Documented gap: an unquoted body line starting with 'From ' starts a chunk."""
        text = "From a x\nFrom: a@b.c\nSubject: s\n\nhello\nFrom here on we agree\n"
        assert len(split_chunks(text)) == 2


class TestIterChunks:
    """Tests for the lazy, cancellable splitter."""

    def test_reports_progress_after_each_chunk(self, three_message_archive: str) -> None:
        reporter = ProgressReporter()
        reporter.start("parse")
        chunks = list(iter_chunks(three_message_archive, progress=reporter))

        assert len(chunks) == 3
        completed = [(e.completed, e.total) for e in reporter.events[1:]]
        assert completed == [(1, 3), (2, 3), (3, 3)]

    def test_cancellation_abandons_remaining_chunks(self, three_message_archive: str) -> None:
        token = CancellationToken()
        seen = []
        with pytest.raises(Cancelled) as exc_info:
            for chunk in iter_chunks(three_message_archive, token=token):
                seen.append(chunk)
                token.cancel()
        assert len(seen) == 1
        assert exc_info.value.completed == 1
        assert exc_info.value.operation == "split"


# =============================================================================
# Writer
# =============================================================================


def _record(**overrides) -> MessageRecord:
    fields = {
        "sender": "Ann <ann@example.com>",
        "subject": "Status",
        "date": "Mon, 02 Jan 2023 10:00:00 +0000",
        "body": "All good.",
        "parsed_date": datetime(2023, 1, 2, 10, 0, tzinfo=UTC),
    }
    fields.update(overrides)
    return MessageRecord(**fields)


class TestSerializeMessage:
    """Tests for mbox wire format."""

    def test_header_order_and_optional_fields(self) -> None:
        record = _record(
            recipient="bob@example.org",
            message_id="<1@x>",
            in_reply_to="<0@x>",
            references=("<a@x>", "<0@x>"),
        )
        text = serialize_message(record)
        assert text.split("\n")[:8] == [
            "From ann@example.com Mon Jan 02 10:00:00 2023",
            "From: Ann <ann@example.com>",
            "To: bob@example.org",
            "Subject: Status",
            "Date: Mon, 02 Jan 2023 10:00:00 +0000",
            "Message-ID: <1@x>",
            "In-Reply-To: <0@x>",
            "References: <a@x> <0@x>",
        ]
        assert text.endswith("\n\nAll good.\n\n")

    def test_omits_absent_optional_headers(self) -> None:
        text = serialize_message(_record())
        assert "To:" not in text
        assert "Message-ID:" not in text
        assert "References:" not in text

    def test_envelope_falls_back_to_raw_date_and_daemon(self) -> None:
        record = _record(sender="Nobody", date="sometime", parsed_date=None)
        assert envelope_line(record) == "From MAILER-DAEMON sometime"

    def test_quotes_from_lines_in_body(self) -> None:
        record = _record(body="From the top\n>From quoted\nnot From here")
        text = serialize_message(record)
        assert ">From the top" in text
        assert ">>From quoted" in text
        assert "not From here" in text
        assert "\nFrom the top" not in text

    def test_quoting_can_be_disabled(self) -> None:
        text = serialize_message(_record(body="From the top"), quote_from=False)
        assert "\nFrom the top" in text

    def test_quote_from_lines_leaves_other_text(self) -> None:
        assert quote_from_lines("no envelope here") == "no envelope here"


class TestWriteMessages:
    """Tests for writing archives."""

    def test_writes_all_records(self, tmp_path: Path) -> None:
        dest = tmp_path / "out.mbox"
        written = write_messages([_record(), _record(subject="Two")], dest)
        assert written == 2
        assert dest.read_text().count("\nSubject: ") == 2

    def test_unwritable_destination_raises_write_error(self, tmp_path: Path) -> None:
        dest = tmp_path / "missing-dir" / "out.mbox"
        with pytest.raises(WriteError) as exc_info:
            write_messages([_record()], dest)
        assert exc_info.value.path == dest
