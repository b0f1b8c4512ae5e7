# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Parse orchestration: chunk, segment, extract, and assemble watch records."""

from __future__ import annotations

import hashlib
import threading
import uuid
from datetime import UTC, datetime

import structlog

from yt_history.config import ParserConfig
from yt_history.fields import extract_fields
from yt_history.models import (
    EntryFields,
    ParseResult,
    ParseRunStatistics,
    ParseState,
    QualityCounts,
    RawEntryFragment,
    StrategyPerformance,
    TimestampExtractionResult,
    WatchRecord,
)
from yt_history.plausibility import IMPLAUSIBLE_DATE
from yt_history.progress import ProgressCallback, ProgressReporter
from yt_history.segmenter import (
    contains_markup,
    estimate_entry_count,
    optimal_chunk_size,
    segment_chunk,
    split_into_chunks,
)
from yt_history.timestamps import STRATEGY_IDS, extract_timestamp, no_timestamp

logger = structlog.get_logger()

# Selected timestamps below this confidence are reported as low-confidence.
LOW_CONFIDENCE_THRESHOLD = 80

_TRANSITIONS: dict[ParseState, set[ParseState]] = {
    ParseState.IDLE: {ParseState.SEGMENTING, ParseState.FAILED},
    ParseState.SEGMENTING: {ParseState.EXTRACTING, ParseState.FAILED},
    ParseState.EXTRACTING: {ParseState.FINALIZING, ParseState.FAILED},
    ParseState.FINALIZING: {ParseState.DONE, ParseState.CANCELLED, ParseState.FAILED},
    ParseState.DONE: set(),
    ParseState.CANCELLED: set(),
    ParseState.FAILED: set(),
}


class DocumentParseError(Exception):
    """Raised when the input cannot be treated as a markup document at all."""


class EntryParseError(Exception):
    """Raised when a single fragment cannot be assembled into a record."""


# ---------------------------------------------------------------------------
# Record assembly
# ---------------------------------------------------------------------------


def record_id(fragment: RawEntryFragment, video_id: str | None) -> str:
    """Stable id from the ordinal and video id, or a content hash fallback."""
    if video_id:
        return f"{fragment.ordinal:06d}-{video_id}"
    digest = hashlib.sha1(fragment.plain_text.encode("utf-8")).hexdigest()[:12]
    return f"{fragment.ordinal:06d}-x{digest}"


def _calendar_fields(watched_at: datetime | None) -> dict[str, object]:
    if watched_at is None:
        return {}
    utc = watched_at.astimezone(UTC)
    return {
        "year": utc.year,
        "month": utc.month,
        "week": utc.isocalendar().week,
        "day_of_week": (utc.weekday() + 1) % 7,
        "hour": utc.hour,
        "yoy_key": f"{utc.year}-{utc.month:02d}",
    }


def build_record(
    fragment: RawEntryFragment,
    fields: EntryFields,
    extraction: TimestampExtractionResult,
) -> WatchRecord:
    """Assemble the immutable ``WatchRecord`` for one fragment."""
    watched_at = extraction.instant
    raw_text = extraction.raw_text
    if raw_text is None:
        # Keep the best matched text for auditing even when it was rejected.
        raw_text = next((a.raw_text for a in extraction.attempts if a.raw_text), None)
    return WatchRecord(
        id=record_id(fragment, fields.video_id),
        watched_at=watched_at,
        video_id=fields.video_id,
        video_title=fields.video_title,
        video_url=fields.video_url,
        channel_id=fields.channel_id,
        channel_title=fields.channel_title,
        channel_url=fields.channel_url,
        product=fields.product,
        raw_timestamp_text=raw_text,
        timestamp_confidence=extraction.confidence,
        **_calendar_fields(watched_at),
    )


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class StatisticsAccumulator:
    """Run-level aggregate state; owned and updated only by the orchestrator."""

    def __init__(self) -> None:
        self._strategies: dict[str, StrategyPerformance] = {
            sid: StrategyPerformance(strategy_id=sid) for sid in STRATEGY_IDS
        }
        self._quality = QualityCounts()
        self._usage: dict[str, int] = {}
        self._confidence_sum = 0
        self.total_entries = 0
        self.with_timestamp = 0
        self.skipped_entries = 0
        self.skipped_ads = 0
        self.failed_entries = 0
        self.low_confidence = 0
        self.implausible = 0
        self.chunks_processed = 0
        self.chunks_total = 0

    def record_extraction(self, extraction: TimestampExtractionResult) -> None:
        self.total_entries += 1
        for attempt in extraction.attempts:
            perf = self._strategies.setdefault(
                attempt.strategy_id, StrategyPerformance(strategy_id=attempt.strategy_id)
            )
            perf.attempts += 1
            if attempt.selected:
                perf.successes += 1
        if any(a.rejected_reason == IMPLAUSIBLE_DATE for a in extraction.attempts):
            self.implausible += 1

        if not extraction.found:
            return
        self.with_timestamp += 1
        self._usage[extraction.candidate.strategy_id] = (
            self._usage.get(extraction.candidate.strategy_id, 0) + 1
        )
        self._confidence_sum += extraction.confidence
        if extraction.confidence < LOW_CONFIDENCE_THRESHOLD:
            self.low_confidence += 1
        quality = extraction.candidate.quality
        self._quality.with_timezone += int(quality.has_timezone)
        self._quality.with_full_date_time += int(quality.has_full_date_time)
        self._quality.format_recognized += int(quality.format_recognized)
        self._quality.date_reasonable += int(quality.date_reasonable)

    def finalize(self) -> ParseRunStatistics:
        average = self._confidence_sum / self.with_timestamp if self.with_timestamp else 0.0
        return ParseRunStatistics(
            total_entries=self.total_entries,
            entries_with_timestamp=self.with_timestamp,
            entries_without_timestamp=self.total_entries - self.with_timestamp,
            average_confidence=round(average, 2),
            per_strategy_performance=[p.model_copy() for p in self._strategies.values()],
            skipped_entries=self.skipped_entries,
            skipped_ads=self.skipped_ads,
            failed_entries=self.failed_entries,
            low_confidence_entries=self.low_confidence,
            implausible_dates=self.implausible,
            strategy_usage=dict(self._usage),
            quality=self._quality.model_copy(),
            chunks_processed=self.chunks_processed,
            chunks_total=self.chunks_total,
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ParseRun:
    """One document parse: ``idle -> segmenting -> extracting -> finalizing -> done``.

    ``failed`` is reached only for document-level problems; per-entry
    problems are absorbed into statistics while extracting. A run whose
    ``cancel_event`` is set stops between chunks and finishes as
    ``cancelled`` with the records assembled so far.

    Args:
        config: Parser configuration.
        on_progress: Optional callback for throttled ``ProgressEvent``\\ s.
        cancel_event: Optional event checked before each chunk.
        now: Reference time for the plausibility gate; captured once per
            run so every entry is judged against the same instant.
    """

    def __init__(
        self,
        config: ParserConfig | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        now: datetime | None = None,
    ) -> None:
        self.config = config or ParserConfig()
        self._on_progress = on_progress
        self._cancel_event = cancel_event
        self._now = now
        self._state = ParseState.IDLE
        self._stats = StatisticsAccumulator()
        self._records: list[WatchRecord] = []
        self._next_ordinal = 0

    @property
    def state(self) -> ParseState:
        return self._state

    def _transition(self, new_state: ParseState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Invalid parse state transition {self._state} -> {new_state}")
        logger.debug("parse_state_changed", old=self._state.value, new=new_state.value)
        self._state = new_state

    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def _process_fragment(self, fragment: RawEntryFragment, now: datetime) -> WatchRecord:
        failed = False
        try:
            fields = extract_fields(fragment)
        except Exception as exc:
            failed = True
            fields = EntryFields()
            logger.warning(
                "entry_failed",
                ordinal=fragment.ordinal,
                stage="fields",
                error=str(exc),
            )

        try:
            extraction = extract_timestamp(
                fragment.plain_text, fragment.markup_text, self.config, now=now
            )
        except Exception as exc:
            failed = True
            extraction = no_timestamp()
            logger.warning(
                "entry_failed",
                ordinal=fragment.ordinal,
                stage="timestamp",
                error=str(exc),
            )

        self._trace(fragment, extraction)
        try:
            record = build_record(fragment, fields, extraction)
        except Exception as exc:
            raise EntryParseError(
                f"Failed to assemble record for entry {fragment.ordinal}: {exc}"
            ) from exc

        # Only fragments that yield a record are counted as entries.
        if failed:
            self._stats.failed_entries += 1
        self._stats.record_extraction(extraction)
        return record

    def _trace(self, fragment: RawEntryFragment, extraction: TimestampExtractionResult) -> None:
        if not extraction.found:
            logger.debug(
                "timestamp_not_found",
                ordinal=fragment.ordinal,
                text_snippet=fragment.plain_text[:100],
            )
        if self.config.debug_trace:
            logger.debug(
                "timestamp_cascade",
                ordinal=fragment.ordinal,
                strategy=extraction.strategy_id,
                confidence=extraction.confidence,
                raw_timestamp=extraction.raw_text,
                attempts=[a.model_dump(exclude_defaults=True) for a in extraction.attempts],
            )

    def _validate_document(self, document: object) -> str:
        if not isinstance(document, str):
            raise DocumentParseError(
                f"Expected the export document as text, got {type(document).__name__}"
            )
        if not document.strip():
            raise DocumentParseError("Document is empty")
        if not contains_markup(document):
            raise DocumentParseError("Document contains no markup elements")
        return document

    def _fail(self, exc: Exception) -> None:
        self._transition(ParseState.FAILED)
        logger.error("parse_failed", error=str(exc))

    def execute(self, document: str) -> ParseResult:
        """Parse the whole document.

        Returns:
            A ``ParseResult`` with records in document order and the run
            statistics. ``state`` is ``done`` or ``cancelled``.

        Raises:
            DocumentParseError: If the input is not a markup document.
        """
        if self._state != ParseState.IDLE:
            raise RuntimeError("A ParseRun can only be executed once")

        if self._now is None:
            self._now = datetime.now(tz=UTC)
        run_id = uuid.uuid4().hex[:8]
        with structlog.contextvars.bound_contextvars(run_id=run_id):
            self._transition(ParseState.SEGMENTING)
            try:
                document = self._validate_document(document)
            except DocumentParseError as exc:
                self._fail(exc)
                raise

            if self.config.adaptive_chunking:
                chunk_size = optimal_chunk_size(document, self.config.chunk_size_bytes)
            else:
                chunk_size = self.config.chunk_size_bytes
            chunks = split_into_chunks(document, chunk_size)
            total_estimate = estimate_entry_count(document)
            self._stats.chunks_total = len(chunks)
            logger.info(
                "parse_started",
                document_chars=len(document),
                chunk_size=chunk_size,
                chunk_count=len(chunks),
                entry_estimate=total_estimate,
            )

            reporter = ProgressReporter(
                self._on_progress,
                total_estimate=total_estimate,
                total_chunks=len(chunks),
                min_interval=self.config.progress_interval_seconds,
            )

            self._transition(ParseState.EXTRACTING)
            cancelled = False
            for index, chunk in enumerate(chunks, start=1):
                if self._cancelled():
                    cancelled = True
                    logger.info(
                        "parse_cancelled",
                        chunks_processed=self._stats.chunks_processed,
                        records=len(self._records),
                    )
                    break
                self._extract_chunk(chunk, index)
                reporter.update(len(self._records), current_chunk=index)

            self._transition(ParseState.FINALIZING)
            if not cancelled:
                reporter.update(len(self._records), current_chunk=len(chunks), final=True)
            statistics = self._stats.finalize()
            self._transition(ParseState.CANCELLED if cancelled else ParseState.DONE)

            logger.info(
                "parse_complete",
                state=self._state.value,
                records=len(self._records),
                with_timestamp=statistics.entries_with_timestamp,
                without_timestamp=statistics.entries_without_timestamp,
                skipped=statistics.skipped_entries,
                ads=statistics.skipped_ads,
                failed=statistics.failed_entries,
                average_confidence=statistics.average_confidence,
            )
            return ParseResult(
                records=list(self._records),
                statistics=statistics,
                state=self._state,
            )

    def _extract_chunk(self, chunk: str, index: int) -> None:
        try:
            segmentation = segment_chunk(chunk, first_ordinal=self._next_ordinal)
        except Exception as exc:
            lost = estimate_entry_count(chunk)
            self._stats.skipped_entries += lost
            self._stats.chunks_processed += 1
            logger.warning("chunk_failed", chunk=index, lost_entries=lost, error=str(exc))
            return

        self._next_ordinal += len(segmentation.fragments)
        self._stats.skipped_entries += segmentation.skipped
        self._stats.skipped_ads += segmentation.ads
        now = self._now or datetime.now(tz=UTC)
        for fragment in segmentation.fragments:
            try:
                record = self._process_fragment(fragment, now)
            except EntryParseError as exc:
                self._stats.failed_entries += 1
                logger.warning("entry_failed", ordinal=fragment.ordinal, error=str(exc))
                continue
            self._records.append(record)
        self._stats.chunks_processed += 1
        logger.debug(
            "chunk_parsed",
            chunk=index,
            fragments=len(segmentation.fragments),
            records=len(self._records),
        )


def run_parse(
    document: str,
    config: ParserConfig | None = None,
    *,
    on_progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
    now: datetime | None = None,
) -> ParseResult:
    """Parse a Takeout watch-history document into watch records.

    Args:
        document: The full exported markup.
        config: Parser configuration; defaults to ``ParserConfig()``.
        on_progress: Optional callback for throttled progress events.
        cancel_event: Optional event; when set, the run stops before the
            next chunk and returns what it has.
        now: Reference time for the plausibility gate (tests).

    Returns:
        A ``ParseResult``.

    Raises:
        DocumentParseError: If the input is not a markup document.
    """
    run = ParseRun(config, on_progress=on_progress, cancel_event=cancel_event, now=now)
    return run.execute(document)
