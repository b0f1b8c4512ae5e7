# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Resilient timestamp extraction for a single history entry.

The extractor receives nothing but one entry's own text and markup plus
the parser configuration, and returns a value. It keeps no state between
calls: compiled ``re`` patterns carry no match position, every scan starts
from the beginning of the string it is given, and statistics are left to
the caller. Running it over entries in any order, or twice over the same
entry, gives the same answers.

Strategies, in cascade order:

1. ``full_with_timezone``    ``Aug 11, 2025, 10:30:00 PM CDT``   (85)
2. ``full_without_timezone`` ``Aug 11, 2025, 10:30:00 PM``       (75)
3. ``numeric_slash``         ``8/11/2025, 10:30:00 PM``          (70)
4. ``international_dotted``  ``11.8.2025, 22:30:00``             (65)
5. ``iso_like``              ``2025-08-11 22:30:00``             (70)
6. ``locale_words``          ``11 août 2025 à 22h30``            (60)

Every strategy reports its earliest valid match. In the entry text each
strategy first scans the timestamp line (the last line of the entry body,
after the title and channel links) and only scans the whole text when that
line has no match, so a date inside a video title never beats the watch
time. Among the candidates that clear the plausibility gate and the
minimum confidence, timestamp-line matches win; then the one starting
earliest; at equal offsets the higher confidence, then cascade order.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, timezone

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from yt_history.config import ParserConfig
from yt_history.locales import DAY_FIRST_MONTHS, ENGLISH_MONTHS, lookup_month
from yt_history.models import (
    StrategyAttempt,
    TimestampCandidate,
    TimestampExtractionResult,
    TimestampQuality,
)
from yt_history.normalize import normalize_text
from yt_history.plausibility import IMPLAUSIBLE_DATE, apply_gate
from yt_history.timezones import ZONE_PATTERN, zone_for

BELOW_MIN_CONFIDENCE = "below_min_confidence"

# Precision penalties applied on top of a strategy's base confidence.
_MISSING_SECONDS_PENALTY = 5
_MISSING_TIME_PENALTY = 10

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_TIME = (
    r"(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?"
    r"(?: ?(?P<meridiem>[AaPp]\.?[Mm]\.?)(?![A-Za-z]))?"
)
_ZONE_SUFFIX = rf" (?P<zone>{ZONE_PATTERN})(?![A-Za-z\d:])"
_OPTIONAL_ZONE = rf"(?:{_ZONE_SUFFIX})?"

# "Aug 11, 2025, 10:30:00 PM" plus "Aug 11, 2025 10:30 PM", "... at ...", "... • ..."
_FULL_DATE_TIME = (
    r"(?<![A-Za-z])(?P<month>[A-Za-z]{3,9})\.? (?P<day>\d{1,2}), (?P<year>\d{4})"
    r"(?P<sep>, | at | • | )" + _TIME
)

_FULL_WITH_ZONE_RE = re.compile(_FULL_DATE_TIME + _ZONE_SUFFIX)
_FULL_RE = re.compile(_FULL_DATE_TIME)

_SLASH_RE = re.compile(
    r"(?<![\d/])(?P<month>\d{1,2})/(?P<day>\d{1,2})/(?P<year>\d{4}),? " + _TIME + _OPTIONAL_ZONE
)

_DOTTED_RE = re.compile(
    r"(?<![\d.])(?P<day>\d{1,2})\.(?P<month>\d{1,2})\.(?P<year>\d{4}),? "
    r"(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?(?: Uhr)?" + _OPTIONAL_ZONE
)

_ISO_RE = re.compile(
    r"(?<!\d)(?P<year>\d{4})(?P<dsep>[-/])(?P<month>\d{2})(?P=dsep)(?P<day>\d{2})"
    r"[ T](?P<hour>\d{2}):(?P<minute>\d{2})(?::(?P<second>\d{2})(?:\.\d+)?)?"
    r"(?: ?(?P<zone>Z|[+-]\d{2}:?\d{2}|UTC|GMT)(?![A-Za-z\d]))?"
)

# "11 août 2025 à 22h30", "11. August 2025, 22:30 Uhr", "11 de agosto de 2025, 22:30"
_DAY_FIRST_WORDS_RE = re.compile(
    r"(?<![\w.])(?P<day>\d{1,2})\.?(?: de)? (?P<month>[^\W\d_]{3,10})\.?(?: de)? (?P<year>\d{4})"
    r"(?:(?:,| à| a las| às| um| alle| om| at)? (?P<hour>\d{1,2})[:h](?P<minute>\d{2})"
    r"(?::(?P<second>\d{2}))?(?: ?Uhr)?" + _OPTIONAL_ZONE + r")?"
)

# "2025年8月11日 22:30"
_CJK_RE = re.compile(
    r"(?P<year>\d{4})年(?P<month>\d{1,2})月(?P<day>\d{1,2})日\s?"
    r"(?:(?P<hour>\d{1,2})[:時](?P<minute>\d{2})(?:[:分](?P<second>\d{2}))?)?"
)

# Tags that start a new visual line in an entry body.
_LINE_BREAK_TAGS = frozenset({"br", "div", "p", "li", "tr"})

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _hour_24(hour: int, meridiem: str | None) -> int | None:
    """Convert a clock hour to 24h form; None when out of range."""
    if meridiem is None:
        return hour if 0 <= hour <= 23 else None
    if not 1 <= hour <= 12:
        return None
    is_pm = meridiem[0].lower() == "p"
    if is_pm and hour < 12:
        return hour + 12
    if not is_pm and hour == 12:
        return 0
    return hour


def _iso_zone(token: str) -> timezone | None:
    if token == "Z":
        return UTC
    if token[0] in "+-":
        digits = token[1:].replace(":", "")
        hours, minutes = int(digits[:2]), int(digits[2:])
        if hours > 14 or minutes >= 60:
            return None
        offset = timedelta(hours=hours, minutes=minutes)
        return timezone(-offset if token[0] == "-" else offset)
    return zone_for(token)


def _naive_zone(offset_minutes: int) -> timezone:
    if offset_minutes == 0:
        return UTC
    return timezone(timedelta(minutes=offset_minutes))


def _build_instant(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: int,
    tz: timezone,
) -> datetime | None:
    """Assemble an aware UTC datetime, or None for impossible calendar values."""
    try:
        local = datetime(year, month, day, hour, minute, second, tzinfo=tz)
    except ValueError:
        return None
    return local.astimezone(UTC)


@dataclass(frozen=True)
class _Fields:
    """Calendar fields captured by one regex match."""

    year: int
    month: int
    day: int
    hour: int | None
    minute: int | None
    second: int | None
    meridiem: str | None
    zone: str | None


def _numeric_fields(match: re.Match[str], month: int | None = None) -> _Fields:
    groups = match.groupdict()

    def _int(name: str) -> int | None:
        value = groups.get(name)
        return int(value) if value is not None else None

    return _Fields(
        year=int(groups["year"]),
        month=month if month is not None else int(groups["month"]),
        day=int(groups["day"]),
        hour=_int("hour"),
        minute=_int("minute"),
        second=_int("second"),
        meridiem=groups.get("meridiem"),
        zone=groups.get("zone"),
    )


def _resolve(
    fields: _Fields,
    naive_offset_minutes: int,
    zone_resolver: Callable[[str], timezone | None] = zone_for,
) -> tuple[datetime, bool] | None:
    """Turn captured fields into (UTC instant, has_timezone)."""
    if fields.hour is None:
        hour: int | None = 0
        minute = second = 0
    else:
        hour = _hour_24(fields.hour, fields.meridiem)
        minute = fields.minute or 0
        second = fields.second or 0
    if hour is None or minute > 59 or second > 59:
        return None

    if fields.zone is not None:
        tz = zone_resolver(fields.zone)
        if tz is None:
            return None
        has_timezone = True
    else:
        tz = _naive_zone(naive_offset_minutes)
        has_timezone = False

    instant = _build_instant(fields.year, fields.month, fields.day, hour, minute, second, tz)
    if instant is None:
        return None
    return instant, has_timezone


def _score(base: int, fields: _Fields) -> int:
    if fields.hour is None:
        return max(base - _MISSING_TIME_PENALTY, 1)
    if fields.second is None:
        return max(base - _MISSING_SECONDS_PENALTY, 1)
    return base


def _candidate(
    strategy_id: str,
    base: int,
    match: re.Match[str],
    fields: _Fields,
    resolved: tuple[datetime, bool],
    format_recognized: bool = False,
) -> TimestampCandidate:
    instant, has_timezone = resolved
    return TimestampCandidate(
        instant=instant,
        confidence=_score(base, fields),
        strategy_id=strategy_id,
        quality=TimestampQuality(
            has_timezone=has_timezone,
            has_full_date_time=fields.hour is not None and fields.second is not None,
            format_recognized=format_recognized,
        ),
        raw_text=match.group(0),
        offset=match.start(),
    )


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Strategy:
    """One cascade stage: a pure ``(text, naive_offset) -> candidate`` function."""

    strategy_id: str
    base_confidence: int
    run: Callable[[str, int], TimestampCandidate | None]


def _full_format(
    pattern: re.Pattern[str],
    strategy_id: str,
    base: int,
    text: str,
    naive_offset_minutes: int,
) -> TimestampCandidate | None:
    for match in pattern.finditer(text):
        month = lookup_month(match.group("month"), ENGLISH_MONTHS)
        if month is None:
            continue
        fields = _numeric_fields(match, month=month)
        resolved = _resolve(fields, naive_offset_minutes)
        if resolved is None:
            continue
        canonical = (
            match.group("sep") == ", "
            and fields.second is not None
            and fields.meridiem is not None
        )
        return _candidate(strategy_id, base, match, fields, resolved, canonical)
    return None


def full_with_timezone(text: str, naive_offset_minutes: int = 0) -> TimestampCandidate | None:
    """Takeout's canonical shape with a trailing zone abbreviation."""
    return _full_format(_FULL_WITH_ZONE_RE, "full_with_timezone", 85, text, naive_offset_minutes)


def full_without_timezone(
    text: str, naive_offset_minutes: int = 0
) -> TimestampCandidate | None:
    """Takeout's canonical shape with no zone; the configured naive offset applies."""
    return _full_format(_FULL_RE, "full_without_timezone", 75, text, naive_offset_minutes)


def _numeric(
    pattern: re.Pattern[str],
    strategy_id: str,
    base: int,
    text: str,
    naive_offset_minutes: int,
    zone_resolver: Callable[[str], timezone | None] = zone_for,
) -> TimestampCandidate | None:
    for match in pattern.finditer(text):
        fields = _numeric_fields(match)
        resolved = _resolve(fields, naive_offset_minutes, zone_resolver)
        if resolved is None:
            continue
        return _candidate(strategy_id, base, match, fields, resolved)
    return None


def numeric_slash(text: str, naive_offset_minutes: int = 0) -> TimestampCandidate | None:
    """US numeric ``M/D/YYYY, H:MM:SS AM/PM``."""
    return _numeric(_SLASH_RE, "numeric_slash", 70, text, naive_offset_minutes)


def international_dotted(text: str, naive_offset_minutes: int = 0) -> TimestampCandidate | None:
    """Day-first dotted ``D.M.YYYY, HH:MM:SS`` (24h)."""
    return _numeric(_DOTTED_RE, "international_dotted", 65, text, naive_offset_minutes)


def iso_like(text: str, naive_offset_minutes: int = 0) -> TimestampCandidate | None:
    """``YYYY-MM-DD HH:MM:SS`` with optional ``Z``/offset."""
    return _numeric(_ISO_RE, "iso_like", 70, text, naive_offset_minutes, _iso_zone)


def locale_words(text: str, naive_offset_minutes: int = 0) -> TimestampCandidate | None:
    """Day-first month names (French, German, Spanish, ...) and CJK dates."""
    found: list[TimestampCandidate] = []

    for match in _DAY_FIRST_WORDS_RE.finditer(text):
        month = lookup_month(match.group("month"), DAY_FIRST_MONTHS)
        if month is None:
            continue
        fields = _numeric_fields(match, month=month)
        resolved = _resolve(fields, naive_offset_minutes)
        if resolved is not None:
            found.append(_candidate("locale_words", 60, match, fields, resolved))
            break

    for match in _CJK_RE.finditer(text):
        fields = _numeric_fields(match)
        resolved = _resolve(fields, naive_offset_minutes)
        if resolved is not None:
            found.append(_candidate("locale_words", 60, match, fields, resolved))
            break

    if not found:
        return None
    return min(found, key=lambda c: c.offset)


STRATEGIES: tuple[Strategy, ...] = (
    Strategy("full_with_timezone", 85, full_with_timezone),
    Strategy("full_without_timezone", 75, full_without_timezone),
    Strategy("numeric_slash", 70, numeric_slash),
    Strategy("international_dotted", 65, international_dotted),
    Strategy("iso_like", 70, iso_like),
    Strategy("locale_words", 60, locale_words),
)

STRATEGY_IDS: tuple[str, ...] = tuple(s.strategy_id for s in STRATEGIES)

# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


def markup_to_text(markup: str) -> str:
    """Flatten markup to normalized text, keeping tag boundaries as spaces."""
    if not markup:
        return ""
    return normalize_text(BeautifulSoup(markup, "html.parser").get_text(" "))


def timestamp_line(markup: str) -> str:
    """Return the last non-empty line of an entry body.

    ``<br>`` and block tags start a new line. In a Takeout entry this is
    the line after the video and channel links, i.e. the watch time.
    """
    if not markup:
        return ""
    lines: list[list[str]] = [[]]
    for node in BeautifulSoup(markup, "html.parser").descendants:
        if isinstance(node, Tag):
            if node.name in _LINE_BREAK_TAGS:
                lines.append([])
        elif isinstance(node, NavigableString) and not isinstance(node, PreformattedString):
            lines[-1].append(str(node))
    for parts in reversed(lines):
        text = normalize_text(" ".join(parts))
        if text:
            return text
    return ""


def no_timestamp(attempts: list[StrategyAttempt] | None = None) -> TimestampExtractionResult:
    """The valid terminal state for an entry with no usable timestamp text."""
    return TimestampExtractionResult(
        candidate=TimestampCandidate(strategy_id="none"),
        attempts=attempts or [],
    )


def _text_windows(text: str, markup: str) -> tuple[tuple[int, str], ...]:
    """Windows of ``text`` to scan, most specific first, with their start offsets."""
    line = timestamp_line(markup)
    start = text.rfind(line) if line else -1
    if start <= 0:
        return ((0, text),)
    return ((start, text[start:]), (0, text))


def _run_source(
    source: str,
    windows: tuple[tuple[int, str], ...],
    config: ParserConfig,
    now: datetime | None,
    attempts: list[StrategyAttempt],
) -> list[tuple[int, TimestampCandidate, int]]:
    """Run every strategy over one source.

    Each strategy scans the windows in order and stops at the first that
    matches. Returns eligible ``(window rank, candidate, attempt index)``.
    """
    eligible: list[tuple[int, TimestampCandidate, int]] = []
    for strategy in STRATEGIES:
        attempt = StrategyAttempt(strategy_id=strategy.strategy_id, source=source)
        raw: TimestampCandidate | None = None
        rank = 0
        for rank, (start, window) in enumerate(windows):
            if not window:
                continue
            raw = strategy.run(window, config.naive_timezone_offset_minutes)
            if raw is not None:
                if start:
                    raw = raw.model_copy(update={"offset": raw.offset + start})
                break
        if raw is not None:
            attempt.matched = True
            attempt.raw_text = raw.raw_text
            attempt.confidence = raw.confidence
            gated = apply_gate(raw, config.plausibility_window, now)
            if not gated.found:
                attempt.rejected_reason = IMPLAUSIBLE_DATE
            elif gated.confidence < config.minimum_confidence:
                attempt.rejected_reason = BELOW_MIN_CONFIDENCE
            else:
                eligible.append((rank, gated, len(attempts)))
        attempts.append(attempt)
    return eligible


def extract_timestamp(
    plain_text: str,
    markup_text: str,
    config: ParserConfig,
    *,
    now: datetime | None = None,
) -> TimestampExtractionResult:
    """Extract the best timestamp from one entry's own text and markup.

    The plain text is searched first, starting with its timestamp line;
    the markup (flattened) is searched only if the plain text yields
    nothing eligible.

    Args:
        plain_text: The entry's human-readable text.
        markup_text: The entry's raw markup.
        config: Parser configuration (minimum confidence, plausibility
            window, naive timezone offset).
        now: Reference time for the plausibility gate; defaults to the
            wall clock.

    Returns:
        A ``TimestampExtractionResult``. When nothing qualifies the
        candidate has no instant and confidence 0; this is not an error.
    """
    attempts: list[StrategyAttempt] = []
    text = normalize_text(plain_text)

    for source in ("text", "markup"):
        if source == "text":
            windows = _text_windows(text, markup_text)
        else:
            windows = ((0, markup_to_text(markup_text)),)
        eligible = _run_source(source, windows, config, now, attempts)
        if not eligible:
            continue
        _, best, index = min(
            eligible,
            key=lambda item: (item[0], item[1].offset, -item[1].confidence, item[2]),
        )
        attempts[index].selected = True
        return TimestampExtractionResult(candidate=best, attempts=attempts)

    return no_timestamp(attempts)
