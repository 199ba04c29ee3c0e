"""Tests for partitioning strategies and partition output."""

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from mboxkit.core.cancellation import CancellationToken
from mboxkit.core.errors import Cancelled, WriteError
from mboxkit.core.progress import ProgressReporter
from mboxkit.engine.partition import (
    ByCount,
    ByDate,
    BySenderDomain,
    BySize,
    date_bucket_key,
    partition,
    safe_filename,
    write_partitions,
)
from mboxkit.models import MessageRecord


def _msg(
    n: int,
    sender: str = "a@example.com",
    when: datetime | None = None,
    body: str = "",
) -> MessageRecord:
    return MessageRecord(sender=sender, subject=f"m{n}", date="", body=body, parsed_date=when)


def _flatten(groups) -> list[MessageRecord]:
    return [m for g in groups for m in g.messages]


# =============================================================================
# Strategy validation
# =============================================================================


class TestStrategyValidation:
    """Tests for strategy argument checks."""

    @pytest.mark.parametrize("count", [0, -1])
    def test_count_must_be_positive(self, count: int) -> None:
        with pytest.raises(ValueError):
            ByCount(count)

    def test_max_bytes_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BySize(0)

    def test_granularity_is_checked(self) -> None:
        with pytest.raises(ValueError):
            ByDate(granularity="week")  # type: ignore[arg-type]

    def test_domains_become_tuple_without_blanks(self) -> None:
        strategy = BySenderDomain(domains=["corp.org", "", "  "])  # type: ignore[arg-type]
        assert strategy.domains == ("corp.org",)


# =============================================================================
# ByCount
# =============================================================================


class TestByCount:
    """Tests for fixed-size runs."""

    @pytest.mark.parametrize("n,k,expected", [(10, 3, [3, 3, 3, 1]), (9, 3, [3, 3, 3]), (2, 5, [2])])
    def test_run_lengths(self, n: int, k: int, expected: list[int]) -> None:
        messages = [_msg(i) for i in range(n)]
        groups = partition(messages, ByCount(k))

        assert [len(g) for g in groups] == expected
        assert _flatten(groups) == messages

    def test_filenames(self) -> None:
        groups = partition([_msg(i) for i in range(5)], ByCount(2))
        assert [g.filename for g in groups] == ["part_1_of_3.mbox", "part_2_of_3.mbox", "part_3_of_3.mbox"]
        assert [g.label for g in groups] == ["1", "2", "3"]

    def test_empty_input(self) -> None:
        assert partition([], ByCount(3)) == []


# =============================================================================
# BySize
# =============================================================================


class TestBySize:
    """Tests for greedy size-capped runs."""

    def test_greedy_runs(self) -> None:
        # estimated_size = len(body) + len(subject) + len(sender)
        messages = [_msg(i, sender="", body="x" * 38) for i in range(5)]
        assert messages[0].estimated_size == 40

        groups = partition(messages, BySize(100))
        assert [len(g) for g in groups] == [2, 2, 1]
        assert _flatten(groups) == messages
        assert groups[0].filename == "part_1_max100b.mbox"

    def test_oversized_message_is_its_own_group(self) -> None:
        small = _msg(1, sender="", body="x" * 8)
        huge = _msg(2, sender="", body="x" * 148)
        assert huge.estimated_size == 150

        groups = partition([small, huge, small], BySize(100))
        assert [g.messages for g in groups] == [(small,), (huge,), (small,)]

    def test_every_message_appears_once(self) -> None:
        messages = [_msg(i, body="y" * (i * 7)) for i in range(20)]
        groups = partition(messages, BySize(120))
        assert _flatten(groups) == messages


# =============================================================================
# ByDate
# =============================================================================


class TestByDate:
    """Tests for calendar buckets."""

    def test_month_buckets(self) -> None:
        jan_a = _msg(1, when=datetime(2023, 1, 2, tzinfo=UTC))
        feb = _msg(2, when=datetime(2023, 2, 1, tzinfo=UTC))
        jan_b = _msg(3, when=datetime(2023, 1, 30, tzinfo=UTC))

        groups = partition([jan_a, feb, jan_b], ByDate("month"))

        assert [g.label for g in groups] == ["2023-01-01", "2023-02-01"]
        assert groups[0].messages == (jan_a, jan_b)
        assert groups[0].filename == "2023-01-01.mbox"

    def test_day_and_year_keys(self) -> None:
        message = _msg(1, when=datetime(2023, 7, 14, 9, tzinfo=UTC))
        assert date_bucket_key(message, "day") == "2023-07-14"
        assert date_bucket_key(message, "month") == "2023-07-01"
        assert date_bucket_key(message, "year") == "2023-01-01"

    def test_bucket_uses_utc(self) -> None:
        late_evening = datetime(2023, 1, 31, 23, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert date_bucket_key(_msg(1, when=late_evening), "month") == "2023-02-01"

    def test_undated_dropped_by_default(self) -> None:
        dated = _msg(1, when=datetime(2023, 1, 2, tzinfo=UTC))
        groups = partition([dated, _msg(2)], ByDate("month"))
        assert _flatten(groups) == [dated]

    def test_undated_bucket_sorts_last(self) -> None:
        dated = _msg(1, when=datetime(2023, 1, 2, tzinfo=UTC))
        undated = _msg(2)
        groups = partition([undated, dated], ByDate("year", include_undated=True, undated_label="no date"))

        assert [g.label for g in groups] == ["2023-01-01", "no date"]
        assert groups[-1].messages == (undated,)
        assert groups[-1].filename == "no date.mbox"

    def test_unset_label_uses_default(self) -> None:
        groups = partition([_msg(1)], ByDate("day", include_undated=True))
        assert [(g.label, g.filename) for g in groups] == [("unknown", "unknown.mbox")]

    def test_naive_date_bucketed_as_utc(self) -> None:
        message = _msg(1, when=datetime(2023, 1, 31, 23, 30))
        assert date_bucket_key(message, "month") == "2023-01-01"


# =============================================================================
# BySenderDomain
# =============================================================================


class TestBySenderDomain:
    """Tests for domain buckets."""

    def test_buckets_and_other(self) -> None:
        corp = _msg(1, sender="Bob <bob@corp.org>")
        sub = _msg(2, sender="eve@mail.corp.org")
        ex = _msg(3, sender="Ann <ann@Example.com>")
        stray = _msg(4, sender="someone@elsewhere.net")
        nobody = _msg(5, sender="Anonymous")

        groups = partition([corp, sub, ex, stray, nobody], BySenderDomain(domains=("corp.org", "example.com")))

        by_label = {g.label: g.messages for g in groups}
        assert by_label == {
            "corp.org": (corp, sub),
            "example.com": (ex,),
            "other": (stray, nobody),
        }
        assert [g.label for g in groups] == sorted(by_label)

    def test_first_matching_domain_wins(self) -> None:
        message = _msg(1, sender="x@mail.corp.org")
        groups = partition([message], BySenderDomain(domains=("corp.org", "mail.corp.org")))
        assert [g.label for g in groups] == ["corp.org"]

    def test_custom_other_label(self) -> None:
        groups = partition([_msg(1, sender="x@y.z")], BySenderDomain(domains=("corp.org",), other_label="misc"))
        assert [(g.label, g.filename) for g in groups] == [("misc", "misc.mbox")]


class TestSafeFilename:
    """Tests for label sanitizing."""

    def test_replaces_illegal_characters(self) -> None:
        assert safe_filename('a/b:c*"d') == "a.b.c.d"

    def test_blank_label(self) -> None:
        assert safe_filename("  ") == "archive"


# =============================================================================
# write_partitions
# =============================================================================


class TestWritePartitions:
    """Tests for writing one archive per group."""

    def test_writes_each_group(self, tmp_path: Path) -> None:
        groups = partition([_msg(i) for i in range(5)], ByCount(2))
        reporter = ProgressReporter()
        reporter.start("split")

        paths = write_partitions(groups, tmp_path / "out", progress=reporter)

        assert [p.name for p in paths] == ["part_1_of_3.mbox", "part_2_of_3.mbox", "part_3_of_3.mbox"]
        assert all(p.exists() for p in paths)
        assert paths[0].read_text().count("\nSubject: ") == 2
        assert [(e.completed, e.total) for e in reporter.events[1:]] == [(1, 3), (2, 3), (3, 3)]

    def test_unwritable_directory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(WriteError):
            write_partitions(partition([_msg(1)], ByCount(1)), blocker / "out")

    def test_cancellation_stops_between_groups(self, tmp_path: Path) -> None:
        groups = partition([_msg(i) for i in range(4)], ByCount(1))
        token = CancellationToken()
        reporter = ProgressReporter()
        reporter.subscribe(lambda event: token.cancel() if event.completed == 2 else None)

        with pytest.raises(Cancelled) as exc_info:
            write_partitions(groups, tmp_path, token=token, progress=reporter)

        assert exc_info.value.completed == 2
        assert not (tmp_path / "part_3_of_4.mbox").exists()
