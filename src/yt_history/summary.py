# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Import summary over a finished parse."""

from __future__ import annotations

from collections.abc import Sequence

from yt_history.models import (
    ImportSummary,
    ParseRunStatistics,
    Product,
    ProductBreakdown,
    WatchRecord,
)


def summarize_records(
    records: Sequence[WatchRecord],
    statistics: ParseRunStatistics,
) -> ImportSummary:
    """Digest records into counts and a date range for an import screen."""
    channels = {r.channel_title for r in records if r.channel_title}
    instants = [r.watched_at for r in records if r.watched_at is not None]
    breakdown = ProductBreakdown(
        youtube=sum(1 for r in records if r.product == Product.YOUTUBE),
        youtube_music=sum(1 for r in records if r.product == Product.YOUTUBE_MUSIC),
    )
    return ImportSummary(
        total_records=len(records),
        unique_channels=len(channels),
        date_range_start=min(instants) if instants else None,
        date_range_end=max(instants) if instants else None,
        product_breakdown=breakdown,
        parse_errors=statistics.failed_entries,
        statistics=statistics,
    )
