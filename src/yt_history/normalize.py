# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Whitespace normalization for fragment text."""

from __future__ import annotations

import re
import unicodedata

# Space variants Takeout exports are known to contain. U+202F shows up
# between the seconds and the AM/PM marker in recent exports.
_SPACE_VARIANTS = re.compile("[\u00a0\u1680\u2000-\u200a\u2028\u2029\u202f\u205f\u3000]")
_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")
_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Replace Unicode space variants with a plain space and collapse runs.

    Applies NFC so that composed and decomposed accents in localized month
    names compare equal. Never fails; empty input yields an empty string.
    """
    if not text:
        return ""
    text = unicodedata.normalize("NFC", text)
    text = _ZERO_WIDTH.sub("", text)
    text = _SPACE_VARIANTS.sub(" ", text)
    text = _WHITESPACE_RUN.sub(" ", text)
    return text.strip()
