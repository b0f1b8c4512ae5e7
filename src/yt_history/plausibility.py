# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Validity and plausibility gate for extracted timestamps."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

from yt_history.config import PlausibilityWindow
from yt_history.models import TimestampCandidate

IMPLAUSIBLE_DATE = "implausible_date"


def latest_allowed_date(window: PlausibilityWindow, now: datetime | None = None) -> date:
    """Last calendar day (UTC) still accepted: today plus the slack."""
    current = now.astimezone(UTC) if now is not None else datetime.now(tz=UTC)
    return current.date() + timedelta(days=window.future_slack_days)


def is_plausible(
    instant: datetime,
    window: PlausibilityWindow,
    now: datetime | None = None,
) -> bool:
    """Check that ``instant`` falls inside the plausibility window.

    Both bounds are inclusive and compared on UTC calendar days.

    Args:
        instant: A timezone-aware instant.
        window: Earliest accepted day and future slack.
        now: Reference "current time"; defaults to the wall clock.

    Returns:
        True if the instant's UTC date lies within the window.
    """
    day = instant.astimezone(UTC).date()
    if day < window.earliest:
        return False
    return day <= latest_allowed_date(window, now)


def apply_gate(
    candidate: TimestampCandidate,
    window: PlausibilityWindow,
    now: datetime | None = None,
) -> TimestampCandidate:
    """Return the candidate with ``date_reasonable`` set, or a rejected copy.

    A rejected candidate keeps its strategy, matched text, and other quality
    flags but has no instant and zero confidence.
    """
    if candidate.instant is None:
        return candidate
    if is_plausible(candidate.instant, window, now):
        quality = candidate.quality.model_copy(update={"date_reasonable": True})
        return candidate.model_copy(update={"quality": quality})
    quality = candidate.quality.model_copy(update={"date_reasonable": False})
    return TimestampCandidate(
        instant=None,
        confidence=0,
        strategy_id=candidate.strategy_id,
        quality=quality,
        raw_text=candidate.raw_text,
        offset=candidate.offset,
    )
