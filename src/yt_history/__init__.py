# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""yt-history: Parse YouTube watch-history exports into normalized watch records.

Library API
-----------

Sync usage::

    from yt_history import parse_history

    with open("watch-history.html", encoding="utf-8") as f:
        result = parse_history(f.read())

    for record in result.records:
        print(record.watched_at, record.video_title)

Async usage (the parse runs on a worker thread)::

    from yt_history import parse_history_async, ParserConfig

    config = ParserConfig(minimum_confidence=60)
    result = await parse_history_async(document, config=config)

Cancellation and progress::

    cancel = threading.Event()
    result = parse_history(document, on_progress=print, cancel_event=cancel)
    if result.cancelled:
        ...

Output rendering::

    from yt_history import render_json, render_markdown

    json_str = render_json(result)
    md_str = render_markdown(result)
"""

from __future__ import annotations

import asyncio
import threading

__version__ = "0.1.0"


# Re-exports for public API
from yt_history.config import ParserConfig as ParserConfig
from yt_history.models import ImportSummary as ImportSummary
from yt_history.models import ParseResult as ParseResult
from yt_history.models import ProgressEvent as ProgressEvent
from yt_history.models import WatchRecord as WatchRecord
from yt_history.pipeline import DocumentParseError as DocumentParseError
from yt_history.pipeline import run_parse
from yt_history.progress import ProgressCallback
from yt_history.rendering import render_json as render_json
from yt_history.rendering import render_markdown as render_markdown
from yt_history.summary import summarize_records as summarize_records


def parse_history(
    document: str,
    config: ParserConfig | None = None,
    *,
    on_progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> ParseResult:
    """Parse a watch-history export document.

    This is the primary library API entry point. It wraps
    ``run_parse()`` with default configuration.

    Args:
        document: Full text of ``watch-history.html``.
        config: Optional ``ParserConfig``. Defaults to ``ParserConfig()``;
            use ``load_config()`` to honour the TOML file and environment.
        on_progress: Optional callback receiving throttled ``ProgressEvent``\\ s.
        cancel_event: Optional ``threading.Event``; setting it stops the
            parse before the next chunk.

    Returns:
        A ``ParseResult`` with records in document order and run
        statistics.

    Raises:
        DocumentParseError: If the input is not a markup document.
    """
    return run_parse(
        document,
        config or ParserConfig(),
        on_progress=on_progress,
        cancel_event=cancel_event,
    )


async def parse_history_async(
    document: str,
    config: ParserConfig | None = None,
    *,
    on_progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> ParseResult:
    """Async wrapper for :func:`parse_history`.

    The parse runs on a worker thread so the event loop stays responsive;
    ``on_progress`` is therefore called from that thread.

    Example::

        result = await parse_history_async(document)
        print(render_markdown(result))
    """
    return await asyncio.to_thread(
        parse_history,
        document,
        config,
        on_progress=on_progress,
        cancel_event=cancel_event,
    )
