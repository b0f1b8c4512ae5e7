# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Document chunking and entry segmentation.

A Takeout ``watch-history.html`` is one long list of
``<div class="outer-cell ...">`` blocks. Each block holds a header cell,
a body ``content-cell`` (title link, channel link, timestamp), an empty
right-hand cell, and a caption cell ("Products: YouTube").

Chunking cuts the raw document only immediately before an entry's
opening tag, so no entry is ever split across two chunks. Segmentation
parses one chunk at a time and copies each entry's text and markup out
into an immutable ``RawEntryFragment``; the parse tree is discarded
before the next chunk is read.
"""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field

import structlog
from bs4 import BeautifulSoup, Tag

from yt_history.config import DEFAULT_CHUNK_SIZE_BYTES
from yt_history.fields import VIDEO_URL_RE, has_video_reference
from yt_history.models import RawEntryFragment
from yt_history.normalize import normalize_text

logger = structlog.get_logger()

_OUTER_CELL_START_RE = re.compile(r"<div\b[^>]*\bclass=[\"'][^\"']*\bouter-cell\b")
_CONTENT_CELL_START_RE = re.compile(r"<div\b[^>]*\bclass=[\"'][^\"']*\bcontent-cell\b")
# A content-cell that is neither a caption nor empty: one per entry body.
_BODY_CELL_START_RE = re.compile(
    r"<div\b[^>]*\bclass=[\"'](?![^\"']*\bmdl-typography--caption\b)"
    r"[^\"']*\bcontent-cell\b[^>]*>(?!\s*</div>)"
)
_TAG_RE = re.compile(r"<[^>]+>")
_ANY_ELEMENT_RE = re.compile(r"<[A-Za-z!/][^>]*>")

_AD_MARKERS = ("viewed ads on youtube", "from google ads")

_MIN_ADAPTIVE_CHUNK = 512 * 1024
_MAX_ADAPTIVE_CHUNK = 2 * 1024 * 1024


@dataclass
class Segmentation:
    """Fragments found in one chunk plus what was dropped."""

    fragments: list[RawEntryFragment] = field(default_factory=list)
    skipped: int = 0
    ads: int = 0


# ---------------------------------------------------------------------------
# Document-level helpers
# ---------------------------------------------------------------------------


def contains_markup(document: str) -> bool:
    """True if the document has at least one markup element."""
    return _ANY_ELEMENT_RE.search(document) is not None


def _boundary_pattern(document: str) -> re.Pattern[str]:
    if _OUTER_CELL_START_RE.search(document):
        return _OUTER_CELL_START_RE
    return _CONTENT_CELL_START_RE


def estimate_entry_count(document: str) -> int:
    """Cheap upper-bound estimate of entries, for progress reporting."""
    pattern = _boundary_pattern(document)
    if pattern is _CONTENT_CELL_START_RE:
        pattern = _BODY_CELL_START_RE
    return sum(1 for _ in pattern.finditer(document))


def optimal_chunk_size(document: str, base: int = DEFAULT_CHUNK_SIZE_BYTES) -> int:
    """Shrink chunks for tag-dense markup and grow them for sparse markup.

    Density is measured in tags per thousand characters: above 50 the
    chunk is halved (not below 512 KiB), below 10 it grows by half (not
    above 2 MiB).
    """
    if not document:
        return base
    tag_count = sum(1 for _ in _TAG_RE.finditer(document))
    density = tag_count / (len(document) / 1000)
    if density > 50:
        return max(_MIN_ADAPTIVE_CHUNK, base // 2)
    if density < 10:
        return min(_MAX_ADAPTIVE_CHUNK, base * 3 // 2)
    return base


def split_into_chunks(document: str, chunk_size: int) -> list[str]:
    """Split a document into chunks of roughly ``chunk_size`` characters.

    Each cut is moved back to the nearest entry start at or before the size
    limit. When a single entry is larger than the limit, the cut moves
    forward to the next entry start instead. A document with no entry
    starts is returned whole.

    Args:
        document: The full export markup.
        chunk_size: Target chunk length.

    Returns:
        Chunks that concatenate back to ``document``.
    """
    if len(document) <= chunk_size:
        return [document]

    starts = [m.start() for m in _boundary_pattern(document).finditer(document)]
    if not starts:
        return [document]

    chunks: list[str] = []
    pos = 0
    while pos < len(document):
        limit = pos + chunk_size
        if limit >= len(document):
            chunks.append(document[pos:])
            break
        i = bisect_right(starts, limit) - 1
        if i >= 0 and starts[i] > pos:
            cut = starts[i]
        else:
            j = bisect_right(starts, limit)
            cut = starts[j] if j < len(starts) else len(document)
        chunks.append(document[pos:cut])
        pos = cut
    return chunks


# ---------------------------------------------------------------------------
# Chunk segmentation
# ---------------------------------------------------------------------------


def _has_class(tag: Tag, name: str) -> bool:
    classes = tag.get("class") or []
    return name in classes


def _is_ad(*texts: str) -> bool:
    lowered = " ".join(texts).lower()
    return any(marker in lowered for marker in _AD_MARKERS)


def _is_watch_anchor(tag: Tag) -> bool:
    return tag.name == "a" and VIDEO_URL_RE.search(str(tag.get("href", ""))) is not None


def _contains_watch_anchor(tag: Tag) -> bool:
    if _is_watch_anchor(tag):
        return True
    return any(_is_watch_anchor(a) for a in tag.find_all("a", href=True))


def _fragment(
    ordinal: int,
    plain_text: str,
    markup_text: str,
    caption_text: str = "",
) -> RawEntryFragment:
    return RawEntryFragment(
        plain_text=normalize_text(plain_text),
        markup_text=markup_text,
        ordinal=ordinal,
        caption_text=normalize_text(caption_text),
    )


def _accept(
    result: Segmentation,
    ordinal: int,
    plain_text: str,
    markup_text: str,
    caption_text: str = "",
) -> None:
    """Append a fragment, or count it as an ad or as structurally invalid."""
    if _is_ad(plain_text, caption_text):
        result.ads += 1
        return
    if not has_video_reference(markup_text, plain_text):
        result.skipped += 1
        return
    result.fragments.append(
        _fragment(ordinal + len(result.fragments), plain_text, markup_text, caption_text)
    )


def _segment_outer_cells(outer_cells: list[Tag], result: Segmentation, ordinal: int) -> None:
    for outer in outer_cells:
        body: Tag | None = None
        caption: Tag | None = None
        for cell in outer.find_all("div", class_="content-cell"):
            if _has_class(cell, "mdl-typography--caption"):
                if caption is None:
                    caption = cell
            elif body is None and cell.get_text(strip=True):
                body = cell
        if body is None:
            result.skipped += 1
            continue
        _accept(
            result,
            ordinal,
            body.get_text(" "),
            body.decode_contents(),
            caption.get_text(" ") if caption is not None else "",
        )


def _segment_content_cells(cells: list[Tag], result: Segmentation, ordinal: int) -> None:
    for cell in cells:
        if _has_class(cell, "mdl-typography--caption") or not cell.get_text(strip=True):
            continue
        _accept(result, ordinal, cell.get_text(" "), cell.decode_contents())


def _sibling_window(anchor: Tag) -> tuple[str, str]:
    """Text and markup from ``anchor`` up to the next watch link among its siblings."""
    nodes: list[str] = [str(anchor)]
    texts: list[str] = [anchor.get_text(" ")]
    for sibling in anchor.next_siblings:
        if isinstance(sibling, Tag):
            if _contains_watch_anchor(sibling):
                break
            texts.append(sibling.get_text(" "))
        else:
            texts.append(str(sibling))
        nodes.append(str(sibling))
    return " ".join(texts), "".join(nodes)


def _segment_watch_links(soup: BeautifulSoup, result: Segmentation, ordinal: int) -> None:
    seen: set[int] = set()
    for anchor in soup.find_all("a", href=True):
        if not _is_watch_anchor(anchor):
            continue
        container = anchor.find_parent("div")
        if container is not None and id(container) in seen:
            continue
        if container is not None:
            watch_links = [a for a in container.find_all("a", href=True) if _is_watch_anchor(a)]
            if len(watch_links) == 1:
                seen.add(id(container))
                _accept(result, ordinal, container.get_text(" "), container.decode_contents())
                continue
        text, markup = _sibling_window(anchor)
        _accept(result, ordinal, text, markup)


def segment_chunk(chunk: str, first_ordinal: int = 0) -> Segmentation:
    """Split one chunk into isolated entry fragments.

    Structure is tried in order: Takeout ``outer-cell`` blocks, bare
    ``content-cell`` blocks, then the nearest enclosing ``div`` of each
    watch link (or, when that ``div`` holds several entries, the run of
    siblings from the link to the next one).

    Args:
        chunk: Markup for a whole number of entries.
        first_ordinal: Ordinal to assign to the first fragment.

    Returns:
        A ``Segmentation`` with fragments numbered consecutively from
        ``first_ordinal`` and counts of skipped and ad entries.
    """
    result = Segmentation()
    soup = BeautifulSoup(chunk, "html.parser")
    try:
        outer_cells = soup.find_all("div", class_="outer-cell")
        if outer_cells:
            _segment_outer_cells(outer_cells, result, first_ordinal)
            return result

        content_cells = soup.find_all("div", class_="content-cell")
        if content_cells:
            _segment_content_cells(content_cells, result, first_ordinal)
            return result

        _segment_watch_links(soup, result, first_ordinal)
        return result
    finally:
        soup.decompose()
        logger.debug(
            "chunk_segmented",
            first_ordinal=first_ordinal,
            fragments=len(result.fragments),
            skipped=result.skipped,
            ads=result.ads,
        )
