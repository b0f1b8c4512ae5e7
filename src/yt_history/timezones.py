# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Fixed timezone-abbreviation table.

Abbreviations such as "CST" or "IST" mean different things on different
hosts, so the host's tz database is never consulted: every abbreviation
resolves through this table and therefore identically everywhere.
"""

from __future__ import annotations

import re
from datetime import timedelta, timezone

# Offsets in minutes east of UTC. Where an abbreviation is ambiguous the
# North American reading wins, since Takeout renders US zones for US
# accounts and numeric GMT offsets for most others.
TIMEZONE_OFFSETS_MINUTES: dict[str, int] = {
    "UTC": 0,
    "GMT": 0,
    "Z": 0,
    "WET": 0,
    "WEST": 60,
    "BST": 60,
    "CET": 60,
    "CEST": 120,
    "EET": 120,
    "EEST": 180,
    "MSK": 180,
    "IST": 330,
    "SGT": 480,
    "HKT": 480,
    "AWST": 480,
    "JST": 540,
    "KST": 540,
    "ACST": 570,
    "ACDT": 630,
    "AEST": 600,
    "AEDT": 660,
    "NZST": 720,
    "NZDT": 780,
    "NST": -210,
    "NDT": -150,
    "AST": -240,
    "ADT": -180,
    "EST": -300,
    "EDT": -240,
    "CST": -360,
    "CDT": -300,
    "MST": -420,
    "MDT": -360,
    "PST": -480,
    "PDT": -420,
    "AKST": -540,
    "AKDT": -480,
    "HST": -600,
    "HDT": -540,
}

# "GMT+2", "GMT-05:00", "UTC+0530"
_NUMERIC_OFFSET = re.compile(r"^(?:GMT|UTC)([+-])(\d{1,2})(?::?(\d{2}))?$")

# Alternation used inside the timestamp patterns; longest names first so
# "AKDT" is not read as "AK" + trailing garbage.
ZONE_PATTERN = (
    r"(?:(?:GMT|UTC)[+-]\d{1,2}(?::?\d{2})?|"
    + "|".join(sorted(TIMEZONE_OFFSETS_MINUTES, key=len, reverse=True))
    + r")"
)


def zone_offset_minutes(token: str) -> int | None:
    """Resolve a zone token to minutes east of UTC, or None if unknown."""
    token = token.strip().upper()
    if token in TIMEZONE_OFFSETS_MINUTES:
        return TIMEZONE_OFFSETS_MINUTES[token]
    match = _NUMERIC_OFFSET.match(token)
    if match is None:
        return None
    sign, hours, minutes = match.groups()
    total = int(hours) * 60 + int(minutes or 0)
    if total > 14 * 60 or int(minutes or 0) >= 60:
        return None
    return -total if sign == "-" else total


def zone_for(token: str) -> timezone | None:
    """Return a fixed-offset ``timezone`` for a zone token, or None."""
    minutes = zone_offset_minutes(token)
    if minutes is None:
        return None
    return timezone(timedelta(minutes=minutes))
