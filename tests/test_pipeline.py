# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Tests for yt_history.pipeline."""

from __future__ import annotations

import threading
from datetime import UTC, datetime

import pytest

from yt_history.config import ParserConfig
from yt_history.models import (
    EntryFields,
    ParseState,
    Product,
    ProgressEvent,
    RawEntryFragment,
    TimestampCandidate,
    TimestampExtractionResult,
)
from yt_history.pipeline import (
    DocumentParseError,
    ParseRun,
    build_record,
    record_id,
    run_parse,
)
from yt_history.timestamps import STRATEGY_IDS

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def _make_entry(
    video_id: str = "abc123def45",
    title: str = "Some Video",
    timestamp: str = "Aug 11, 2025, 10:30:00 PM CDT",
    product: str = "YouTube",
) -> str:
    return (
        '<div class="outer-cell mdl-cell mdl-cell--12-col mdl-shadow--2dp">'
        '<div class="mdl-grid">'
        '<div class="header-cell mdl-cell mdl-cell--12-col">'
        f'<p class="mdl-typography--title">{product}<br></p></div>'
        '<div class="content-cell mdl-cell mdl-cell--6-col mdl-typography--body-1">'
        f'Watched&nbsp;<a href="https://www.youtube.com/watch?v={video_id}">{title}</a><br>'
        f'<a href="https://www.youtube.com/channel/UC{video_id}">Channel {video_id}</a><br>'
        f"{timestamp}<br></div>"
        '<div class="content-cell mdl-cell mdl-cell--12-col mdl-typography--caption">'
        f"<b>Products:</b><br>&emsp;{product}<br></div>"
        "</div></div>"
    )


def _make_document(entries: list[str]) -> str:
    return (
        "<html><head><title>History</title></head><body>"
        '<div class="mdl-grid">' + "".join(entries) + "</div></body></html>"
    )


def _make_config(**overrides: object) -> ParserConfig:
    return ParserConfig(**overrides)  # type: ignore[arg-type]


def _many_entries(count: int) -> list[str]:
    return [
        _make_entry(
            video_id=f"vid{i:08d}",
            timestamp=f"Jul {i + 1}, 2025, 10:{i:02d}:00 AM PDT",
        )
        for i in range(count)
    ]


# ---------------------------------------------------------------------------
# Record assembly
# ---------------------------------------------------------------------------


class TestRecordId:
    def test_uses_video_id(self) -> None:
        frag = RawEntryFragment(plain_text="x", markup_text="", ordinal=7)
        assert record_id(frag, "abc") == "000007-abc"

    def test_hash_fallback_is_stable(self) -> None:
        frag = RawEntryFragment(plain_text="same text", markup_text="", ordinal=2)
        first = record_id(frag, None)
        assert first.startswith("000002-x")
        assert len(first) == len("000002-x") + 12
        assert record_id(frag, None) == first


class TestBuildRecord:
    def test_calendar_fields(self) -> None:
        frag = RawEntryFragment(plain_text="x", markup_text="", ordinal=0)
        extraction = TimestampExtractionResult(
            candidate=TimestampCandidate(
                instant=datetime(2025, 8, 12, 3, 30, tzinfo=UTC),
                confidence=85,
                strategy_id="full_with_timezone",
                raw_text="Aug 11, 2025, 10:30:00 PM CDT",
            )
        )
        record = build_record(frag, EntryFields(video_id="abc"), extraction)
        assert record.id == "000000-abc"
        assert record.watched_at == datetime(2025, 8, 12, 3, 30, tzinfo=UTC)
        assert record.year == 2025
        assert record.month == 8
        assert record.week == 33
        assert record.day_of_week == 2  # Tuesday, Sunday = 0
        assert record.hour == 3
        assert record.yoy_key == "2025-08"
        assert record.raw_timestamp_text == "Aug 11, 2025, 10:30:00 PM CDT"

    def test_no_timestamp_leaves_calendar_empty(self) -> None:
        frag = RawEntryFragment(plain_text="x", markup_text="", ordinal=0)
        extraction = TimestampExtractionResult(candidate=TimestampCandidate(strategy_id="none"))
        record = build_record(frag, EntryFields(), extraction)
        assert record.watched_at is None
        assert record.timestamp_confidence == 0
        assert record.year is None
        assert record.yoy_key is None


# ---------------------------------------------------------------------------
# Whole-document behaviour
# ---------------------------------------------------------------------------


class TestIsolation:
    def test_four_entries_distinct_dates(self) -> None:
        doc = _make_document(
            [
                _make_entry(video_id="v1", timestamp="Aug 11, 2025, 10:30:00 PM CDT"),
                _make_entry(video_id="v2", timestamp="Aug 10, 2025, 8:15:00 AM CDT"),
                _make_entry(video_id="v3", timestamp="Jul 25, 2025, 6:45:30 PM CDT"),
                _make_entry(video_id="v4", timestamp="Jun 20, 2025, 11:05:10 AM CDT"),
            ]
        )
        result = run_parse(doc, _make_config(), now=NOW)
        assert [r.video_id for r in result.records] == ["v1", "v2", "v3", "v4"]
        assert [r.watched_at for r in result.records] == [
            datetime(2025, 8, 12, 3, 30, tzinfo=UTC),
            datetime(2025, 8, 10, 13, 15, tzinfo=UTC),
            datetime(2025, 7, 25, 23, 45, 30, tzinfo=UTC),
            datetime(2025, 6, 20, 16, 5, 10, tzinfo=UTC),
        ]
        assert all(r.timestamp_confidence == 85 for r in result.records)

    def test_entry_without_timestamp_does_not_borrow_neighbour(self) -> None:
        doc = _make_document(
            [
                _make_entry(video_id="v1", timestamp="Aug 11, 2025, 10:30:00 PM CDT"),
                _make_entry(video_id="v2", timestamp=""),
                _make_entry(video_id="v3", timestamp="Aug 9, 2025, 10:30:00 PM CDT"),
            ]
        )
        result = run_parse(doc, _make_config(), now=NOW)
        assert len(result.records) == 3
        assert result.records[1].watched_at is None
        assert result.records[1].timestamp_confidence == 0
        assert result.records[0].watched_at != result.records[2].watched_at

    def test_date_in_title_not_taken(self) -> None:
        entry = _make_entry(title="Live stream Jan 5, 2024, 8:00:00 PM EST replay")
        result = run_parse(_make_document([entry]), _make_config(), now=NOW)
        assert result.records[0].watched_at == datetime(2025, 8, 12, 3, 30, tzinfo=UTC)
        assert result.records[0].raw_timestamp_text == "Aug 11, 2025, 10:30:00 PM CDT"

    def test_isolation_across_chunks(self) -> None:
        entries = _many_entries(12)
        result = run_parse(
            _make_document(entries), _make_config(chunk_size_bytes=1024), now=NOW
        )
        assert result.statistics.chunks_total > 1
        days = [r.watched_at.day for r in result.records if r.watched_at is not None]
        assert days == list(range(1, 13))
        assert [int(r.id[:6]) for r in result.records] == list(range(12))


class TestDeterminism:
    def test_two_runs_identical(self) -> None:
        doc = _make_document(_many_entries(8))
        config = _make_config(chunk_size_bytes=2048)
        first = run_parse(doc, config, now=NOW)
        second = run_parse(doc, config, now=NOW)
        assert first.model_dump_json() == second.model_dump_json()


class TestGracefulDegradation:
    def test_ten_valid_one_empty(self) -> None:
        entries = _many_entries(10)
        empty = (
            '<div class="outer-cell"><div class="mdl-grid">'
            '<div class="content-cell"></div></div></div>'
        )
        entries.insert(4, empty)
        result = run_parse(_make_document(entries), _make_config(), now=NOW)
        assert result.state == ParseState.DONE
        assert len(result.records) == 10
        assert result.statistics.skipped_entries == 1
        assert result.statistics.total_entries == 10

    def test_field_extraction_failure_is_counted(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from yt_history import pipeline

        real = pipeline.extract_fields

        def flaky(fragment: RawEntryFragment) -> EntryFields:
            if fragment.ordinal == 1:
                raise RuntimeError("unexpected structure")
            return real(fragment)

        monkeypatch.setattr(pipeline, "extract_fields", flaky)
        result = run_parse(_make_document(_many_entries(3)), _make_config(), now=NOW)
        assert len(result.records) == 3
        assert result.statistics.failed_entries == 1
        assert result.records[1].video_id is None
        assert result.records[1].watched_at is not None
        assert result.records[2].video_id == "vid00000002"

    def test_timestamp_failure_is_counted(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from yt_history import pipeline

        def broken(*args: object, **kwargs: object) -> TimestampExtractionResult:
            raise ValueError("boom")

        monkeypatch.setattr(pipeline, "extract_timestamp", broken)
        result = run_parse(_make_document(_many_entries(2)), _make_config(), now=NOW)
        assert len(result.records) == 2
        assert result.statistics.failed_entries == 2
        assert all(r.watched_at is None for r in result.records)

    def test_assembly_failure_counted_once(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from yt_history import pipeline

        real_fields = pipeline.extract_fields
        real_build = pipeline.build_record

        def flaky_fields(fragment: RawEntryFragment) -> EntryFields:
            if fragment.ordinal == 1:
                raise RuntimeError("unexpected structure")
            return real_fields(fragment)

        def flaky_build(fragment, fields, extraction):
            if fragment.ordinal == 1:
                raise ValueError("cannot assemble")
            return real_build(fragment, fields, extraction)

        monkeypatch.setattr(pipeline, "extract_fields", flaky_fields)
        monkeypatch.setattr(pipeline, "build_record", flaky_build)
        result = run_parse(_make_document(_many_entries(3)), _make_config(), now=NOW)
        assert [r.video_id for r in result.records] == ["vid00000000", "vid00000002"]
        assert result.statistics.failed_entries == 1
        assert result.statistics.total_entries == 2
        assert result.statistics.entries_with_timestamp == 2

    def test_content_cell_documents_skip_nothing(self) -> None:
        entries = "".join(
            '<div class="content-cell mdl-typography--body-1">'
            f'Watched <a href="https://www.youtube.com/watch?v=c{i}">V{i}</a><br>'
            f"Jul {i + 1}, 2025, 10:00:00 AM PDT<br></div>"
            '<div class="content-cell mdl-typography--body-1 mdl-typography--text-right">'
            "</div>"
            for i in range(10)
        )
        events: list[ProgressEvent] = []
        result = run_parse(
            f"<html><body>{entries}</body></html>",
            _make_config(),
            on_progress=events.append,
            now=NOW,
        )
        assert len(result.records) == 10
        assert result.statistics.skipped_entries == 0
        assert events[-1].total_estimate == 10

    def test_chunk_failure_counts_lost_entries(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from yt_history import pipeline

        def broken(chunk: str, first_ordinal: int = 0) -> object:
            raise AssertionError("parser rejected markup")

        monkeypatch.setattr(pipeline, "segment_chunk", broken)
        result = run_parse(_make_document(_many_entries(3)), _make_config(), now=NOW)
        assert result.state == ParseState.DONE
        assert result.records == []
        assert result.statistics.skipped_entries == 3

    def test_ads_not_records(self) -> None:
        ad = _make_entry(video_id="ad1").replace(
            "<b>Products:</b>", "<b>Details:</b> From Google Ads <b>Products:</b>"
        )
        result = run_parse(_make_document([_make_entry(), ad]), _make_config(), now=NOW)
        assert len(result.records) == 1
        assert result.statistics.skipped_ads == 1


class TestDocumentErrors:
    @pytest.mark.parametrize("document", ["", "   \n\t", "Aug 11, 2025 with no markup"])
    def test_not_markup(self, document: str) -> None:
        with pytest.raises(DocumentParseError):
            run_parse(document, _make_config(), now=NOW)

    def test_not_a_string(self) -> None:
        with pytest.raises(DocumentParseError):
            run_parse(b"<html></html>", _make_config(), now=NOW)  # type: ignore[arg-type]

    def test_failed_state(self) -> None:
        run = ParseRun(_make_config(), now=NOW)
        with pytest.raises(DocumentParseError):
            run.execute("")
        assert run.state == ParseState.FAILED

    def test_markup_without_entries_is_empty_result(self) -> None:
        result = run_parse("<html><body><p>hi</p></body></html>", _make_config(), now=NOW)
        assert result.state == ParseState.DONE
        assert result.records == []

    def test_run_executes_once(self) -> None:
        run = ParseRun(_make_config(), now=NOW)
        run.execute(_make_document([_make_entry()]))
        with pytest.raises(RuntimeError):
            run.execute(_make_document([_make_entry()]))


class TestStatistics:
    def test_counts(self) -> None:
        doc = _make_document(
            [
                _make_entry(video_id="v1", timestamp="Aug 11, 2025, 10:30:00 PM CDT"),
                _make_entry(video_id="v2", timestamp="Aug 10, 2025, 10:30:00 PM"),
                _make_entry(video_id="v3", timestamp="no time here"),
                _make_entry(video_id="v4", timestamp="Jan 1, 2000, 12:00:00 PM UTC"),
            ]
        )
        stats = run_parse(doc, _make_config(), now=NOW).statistics
        assert stats.total_entries == 4
        assert stats.entries_with_timestamp == 2
        assert stats.entries_without_timestamp == 2
        assert stats.average_confidence == 80.0
        assert stats.low_confidence_entries == 1
        assert stats.implausible_dates == 1
        assert stats.strategy_usage == {"full_with_timezone": 1, "full_without_timezone": 1}
        assert stats.quality.with_timezone == 1
        assert stats.quality.date_reasonable == 2

    def test_per_strategy_performance(self) -> None:
        result = run_parse(_make_document(_many_entries(3)), _make_config(), now=NOW)
        perf = result.statistics.per_strategy_performance
        assert [p.strategy_id for p in perf] == list(STRATEGY_IDS)
        by_id = {p.strategy_id: p for p in perf}
        assert by_id["full_with_timezone"].attempts == 3
        assert by_id["full_with_timezone"].successes == 3
        assert by_id["numeric_slash"].successes == 0

    def test_product_detected(self) -> None:
        doc = _make_document([_make_entry(product="YouTube Music")])
        result = run_parse(doc, _make_config(), now=NOW)
        assert result.records[0].product == Product.YOUTUBE_MUSIC


class TestCancellation:
    def test_cancelled_before_start(self) -> None:
        cancel = threading.Event()
        cancel.set()
        result = run_parse(
            _make_document(_many_entries(3)), _make_config(), cancel_event=cancel, now=NOW
        )
        assert result.state == ParseState.CANCELLED
        assert result.cancelled is True
        assert result.records == []

    def test_cancel_between_chunks_keeps_partial_results(self) -> None:
        cancel = threading.Event()

        def on_progress(event: ProgressEvent) -> None:
            cancel.set()

        result = run_parse(
            _make_document(_many_entries(10)),
            _make_config(chunk_size_bytes=1024, progress_interval_seconds=0),
            on_progress=on_progress,
            cancel_event=cancel,
            now=NOW,
        )
        assert result.cancelled is True
        assert 0 < len(result.records) < 10
        stats = result.statistics
        assert stats.chunks_processed < stats.chunks_total
        assert [int(r.id[:6]) for r in result.records] == list(range(len(result.records)))


class TestProgress:
    def test_throttled_with_final_event(self) -> None:
        events: list[ProgressEvent] = []
        result = run_parse(
            _make_document(_many_entries(10)),
            _make_config(chunk_size_bytes=1024, progress_interval_seconds=3600),
            on_progress=events.append,
            now=NOW,
        )
        assert result.statistics.chunks_total > 2
        assert len(events) == 2
        assert events[-1].percentage == 100.0
        assert events[-1].processed_count == 10
        assert events[-1].total_estimate == 10

    def test_unthrottled_reports_every_chunk(self) -> None:
        events: list[ProgressEvent] = []
        result = run_parse(
            _make_document(_many_entries(5)),
            _make_config(chunk_size_bytes=1024, progress_interval_seconds=0),
            on_progress=events.append,
            now=NOW,
        )
        assert len(events) == result.statistics.chunks_total + 1
        counts = [e.processed_count for e in events]
        assert counts == sorted(counts)


class TestDebugTrace:
    def test_trace_logged(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from yt_history import pipeline

        calls: list[tuple[str, dict[str, object]]] = []

        class _Recorder:
            def __getattr__(self, level: str):
                def log(event: str, **kw: object) -> None:
                    calls.append((event, kw))

                return log

        monkeypatch.setattr(pipeline, "logger", _Recorder())
        run_parse(_make_document([_make_entry()]), _make_config(debug_trace=True), now=NOW)
        traces = [kw for event, kw in calls if event == "timestamp_cascade"]
        assert len(traces) == 1
        assert traces[0]["strategy"] == "full_with_timezone"
        assert len(traces[0]["attempts"]) == len(STRATEGY_IDS)  # type: ignore[arg-type]
