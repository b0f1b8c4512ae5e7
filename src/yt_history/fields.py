# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Per-entry field extraction: video, channel, and product."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, NavigableString, Tag

from yt_history.models import EntryFields, Product, RawEntryFragment
from yt_history.normalize import normalize_text

# watch?v=, m./music. hosts, /shorts/ and youtu.be short links
VIDEO_URL_RE = re.compile(
    r"https?://(?:www\.|m\.|music\.)?"
    r"(?:youtube\.com/(?:watch\?(?:[^\s\"'<>#]*?&(?:amp;)?)?v=(?P<watch>[\w-]+)"
    r"|shorts/(?P<short>[\w-]+))"
    r"|youtu\.be/(?P<be>[\w-]+))"
    r"[^\s\"'<>]*"
)

CHANNEL_URL_RE = re.compile(
    r"https?://(?:www\.|m\.)?youtube\.com/"
    r"(?:channel/(?P<channel>[\w-]+)|(?P<handle>@[\w.%-]+)|c/(?P<custom>[^/?#\s\"'<>]+)"
    r"|user/(?P<user>[^/?#\s\"'<>]+))"
)

_MUSIC_TEXT_PREFIX = "listened to"


def video_id_from_url(url: str | None) -> str | None:
    """Return the video id of a watch/shorts/youtu.be URL, else None."""
    if not url:
        return None
    match = VIDEO_URL_RE.search(url)
    if match is None:
        return None
    return match.group("watch") or match.group("short") or match.group("be")


def channel_id_from_url(url: str | None) -> str | None:
    """Return the ``UC…`` id, ``@handle`` or custom name of a channel URL."""
    if not url:
        return None
    match = CHANNEL_URL_RE.search(url)
    if match is None:
        return None
    return (
        match.group("channel")
        or match.group("handle")
        or match.group("custom")
        or match.group("user")
    )


def has_video_reference(markup: str, text: str = "") -> bool:
    """True if the markup or text mentions a video URL at all."""
    return VIDEO_URL_RE.search(markup) is not None or VIDEO_URL_RE.search(text) is not None


def _looks_like_url(value: str) -> bool:
    return value.startswith(("http://", "https://")) or "youtube.com/" in value


def _title_after(anchor: Tag) -> str | None:
    """Text following an anchor up to the next line break or link."""
    parts: list[str] = []
    for sibling in anchor.next_siblings:
        if isinstance(sibling, Tag):
            if sibling.name in ("br", "a"):
                break
            parts.append(sibling.get_text(" "))
        elif isinstance(sibling, NavigableString):
            parts.append(str(sibling))
    title = normalize_text(" ".join(parts))
    if not title or _looks_like_url(title):
        return None
    return title


def _video_title(anchor: Tag) -> str | None:
    title = normalize_text(anchor.get_text(" "))
    if title and not _looks_like_url(title):
        return title
    # Deleted/private videos render the URL as the link text.
    return _title_after(anchor)


def _detect_product(fragment: RawEntryFragment, video_url: str | None) -> Product:
    if "youtube music" in fragment.caption_text.lower():
        return Product.YOUTUBE_MUSIC
    if video_url and "music.youtube.com" in video_url:
        return Product.YOUTUBE_MUSIC
    if fragment.plain_text.lower().startswith(_MUSIC_TEXT_PREFIX):
        return Product.YOUTUBE_MUSIC
    return Product.YOUTUBE


def extract_fields(fragment: RawEntryFragment) -> EntryFields:
    """Extract video, channel, and product fields from one fragment.

    Anchors in the fragment's own markup are consulted first; if the
    markup carries no video anchor the plain text is scanned for a bare
    video URL. Missing optional fields come back as None, never raise.

    Args:
        fragment: The isolated entry fragment.

    Returns:
        An ``EntryFields`` partial record.
    """
    soup = BeautifulSoup(fragment.markup_text, "html.parser")
    anchors = [a for a in soup.find_all("a") if isinstance(a, Tag) and a.get("href")]

    video_anchor: Tag | None = None
    for anchor in anchors:
        if VIDEO_URL_RE.search(str(anchor["href"])):
            video_anchor = anchor
            break

    fields = EntryFields()
    if video_anchor is not None:
        video_url = str(video_anchor["href"])
        fields.video_url = video_url
        fields.video_id = video_id_from_url(video_url)
        fields.video_title = _video_title(video_anchor)
    else:
        bare = VIDEO_URL_RE.search(fragment.plain_text)
        if bare is not None:
            fields.video_url = bare.group(0)
            fields.video_id = video_id_from_url(bare.group(0))

    seen = {fields.video_url} if fields.video_url else set()
    for anchor in anchors:
        href = str(anchor["href"])
        if href in seen:
            continue
        seen.add(href)
        if CHANNEL_URL_RE.search(href):
            fields.channel_url = href
            fields.channel_id = channel_id_from_url(href)
            fields.channel_title = normalize_text(anchor.get_text(" ")) or None
            break

    fields.product = _detect_product(fragment, fields.video_url)
    soup.decompose()
    return fields
