# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Tests for yt_history.normalize."""

from __future__ import annotations

import pytest

from yt_history.normalize import normalize_text


class TestNormalizeText:
    def test_empty_string(self) -> None:
        assert normalize_text("") == ""

    def test_whitespace_only(self) -> None:
        assert normalize_text(" \t\n ") == ""

    def test_collapses_runs_of_whitespace(self) -> None:
        assert normalize_text("Watched   a\n\n video") == "Watched a video"

    def test_strips_ends(self) -> None:
        assert normalize_text("  hello  ") == "hello"

    @pytest.mark.parametrize(
        "space",
        ["\u00a0", "\u202f", "\u2009", "\u3000", "\u2007"],
    )
    def test_space_variants_become_plain_space(self, space: str) -> None:
        assert normalize_text(f"10:30:00{space}PM") == "10:30:00 PM"

    def test_takeout_narrow_nbsp_before_meridiem(self) -> None:
        raw = "Aug 11, 2025, 10:30:00\u202fPM CDT"
        assert normalize_text(raw) == "Aug 11, 2025, 10:30:00 PM CDT"

    def test_zero_width_characters_removed(self) -> None:
        assert normalize_text("Aug\u200b 11,\ufeff 2025") == "Aug 11, 2025"

    def test_nfc_composition(self) -> None:
        decomposed = "ao\u0302ut"
        assert normalize_text(decomposed) == "a\u00f4ut"

    def test_idempotent(self) -> None:
        once = normalize_text("a\u00a0\u00a0b  c")
        assert normalize_text(once) == once
