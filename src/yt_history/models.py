# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Pydantic data models for yt-history."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Core Enums
# ---------------------------------------------------------------------------


class Product(StrEnum):
    YOUTUBE = "YouTube"
    YOUTUBE_MUSIC = "YouTube Music"


class ParseState(StrEnum):
    IDLE = "idle"
    SEGMENTING = "segmenting"
    EXTRACTING = "extracting"
    FINALIZING = "finalizing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Segmentation Models
# ---------------------------------------------------------------------------


class RawEntryFragment(BaseModel):
    """One isolated segment of the export corresponding to a single watch event."""

    model_config = ConfigDict(frozen=True)

    plain_text: str
    markup_text: str
    ordinal: int = Field(ge=0)
    caption_text: str = ""  # "Products: ..." block, used for product hints only


class EntryFields(BaseModel):
    """Partial record extracted from one fragment; any field but product may be None."""

    video_id: str | None = None
    video_title: str | None = None
    video_url: str | None = None
    channel_id: str | None = None
    channel_title: str | None = None
    channel_url: str | None = None
    product: Product = Product.YOUTUBE


# ---------------------------------------------------------------------------
# Timestamp Models
# ---------------------------------------------------------------------------


class TimestampQuality(BaseModel):
    """Quality flags computed from what a strategy's pattern actually captured."""

    model_config = ConfigDict(frozen=True)

    has_timezone: bool = False
    has_full_date_time: bool = False
    format_recognized: bool = False
    date_reasonable: bool = False


class TimestampCandidate(BaseModel):
    """One strategy's proposed timestamp for a fragment."""

    model_config = ConfigDict(frozen=True)

    instant: datetime | None = None
    confidence: int = Field(default=0, ge=0, le=100)
    strategy_id: str
    quality: TimestampQuality = Field(default_factory=TimestampQuality)
    raw_text: str | None = None
    offset: int = -1

    @model_validator(mode="after")
    def _check_instant_confidence(self) -> TimestampCandidate:
        if (self.instant is None) != (self.confidence == 0):
            raise ValueError("instant must be absent exactly when confidence is 0")
        if self.instant is not None and self.instant.utcoffset() is None:
            raise ValueError("instant must be timezone-aware")
        return self

    @property
    def found(self) -> bool:
        return self.instant is not None

    def instant_utc(self) -> datetime | None:
        """Return ``instant`` converted to UTC."""
        if self.instant is None:
            return None
        return self.instant.astimezone(UTC)


class StrategyAttempt(BaseModel):
    """Diagnostic record of one cascade stage for one fragment."""

    strategy_id: str
    source: str  # "text" or "markup"
    matched: bool = False
    confidence: int = 0
    raw_text: str | None = None
    rejected_reason: str | None = None
    selected: bool = False


class TimestampExtractionResult(BaseModel):
    """The selected candidate for one fragment plus the cascade trace."""

    candidate: TimestampCandidate
    attempts: list[StrategyAttempt] = Field(default_factory=list)

    @property
    def instant(self) -> datetime | None:
        return self.candidate.instant_utc()

    @property
    def confidence(self) -> int:
        return self.candidate.confidence

    @property
    def strategy_id(self) -> str | None:
        return self.candidate.strategy_id if self.candidate.found else None

    @property
    def raw_text(self) -> str | None:
        return self.candidate.raw_text

    @property
    def found(self) -> bool:
        return self.candidate.found


# ---------------------------------------------------------------------------
# Output Models
# ---------------------------------------------------------------------------


class WatchRecord(BaseModel):
    """One normalized viewing event."""

    model_config = ConfigDict(frozen=True)

    id: str
    watched_at: datetime | None = None
    video_id: str | None = None
    video_title: str | None = None
    video_url: str | None = None
    channel_id: str | None = None
    channel_title: str | None = None
    channel_url: str | None = None
    product: Product = Product.YOUTUBE
    raw_timestamp_text: str | None = None
    timestamp_confidence: int = Field(default=0, ge=0, le=100)

    # Calendar fields derived from watched_at (UTC)
    year: int | None = None
    month: int | None = None
    week: int | None = None  # ISO week number
    day_of_week: int | None = None  # 0 = Sunday
    hour: int | None = None
    yoy_key: str | None = None  # "YYYY-MM"


class StrategyPerformance(BaseModel):
    """Run-level attempts/successes for one cascade stage."""

    strategy_id: str
    attempts: int = 0
    successes: int = 0

    @property
    def success_rate(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.successes / self.attempts * 100


class QualityCounts(BaseModel):
    """How many selected timestamps carried each quality flag."""

    with_timezone: int = 0
    with_full_date_time: int = 0
    format_recognized: int = 0
    date_reasonable: int = 0


class ParseRunStatistics(BaseModel):
    """Aggregate over one full-document parse."""

    total_entries: int = 0
    entries_with_timestamp: int = 0
    entries_without_timestamp: int = 0
    average_confidence: float = 0.0
    per_strategy_performance: list[StrategyPerformance] = Field(default_factory=list)

    skipped_entries: int = 0
    skipped_ads: int = 0
    failed_entries: int = 0
    low_confidence_entries: int = 0
    implausible_dates: int = 0
    strategy_usage: dict[str, int] = Field(default_factory=dict)
    quality: QualityCounts = Field(default_factory=QualityCounts)
    chunks_processed: int = 0
    chunks_total: int = 0


class ProgressEvent(BaseModel):
    """Throttled progress notification for a UI layer."""

    processed_count: int
    total_estimate: int
    percentage: float = Field(ge=0.0, le=100.0)
    eta_seconds: float | None = None
    current_chunk: int = 0
    total_chunks: int = 0


class ParseResult(BaseModel):
    """Records and statistics for one document parse."""

    records: list[WatchRecord] = Field(default_factory=list)
    statistics: ParseRunStatistics = Field(default_factory=ParseRunStatistics)
    state: ParseState = ParseState.DONE

    @property
    def cancelled(self) -> bool:
        return self.state == ParseState.CANCELLED


class ProductBreakdown(BaseModel):
    youtube: int = 0
    youtube_music: int = 0


class ImportSummary(BaseModel):
    """Caller-facing digest of a parse, suitable for an import screen."""

    total_records: int
    unique_channels: int
    date_range_start: datetime | None = None
    date_range_end: datetime | None = None
    product_breakdown: ProductBreakdown = Field(default_factory=ProductBreakdown)
    parse_errors: int = 0
    statistics: ParseRunStatistics
