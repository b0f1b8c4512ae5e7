# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Tests for yt_history public library API."""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import patch

import pytest

from yt_history import (
    DocumentParseError,
    ParserConfig,
    ParseResult,
    ProgressEvent,
    WatchRecord,
    parse_history,
    parse_history_async,
    render_json,
    render_markdown,
    summarize_records,
)
from yt_history.models import ParseState

ENTRY = (
    '<div class="outer-cell mdl-cell mdl-cell--12-col mdl-shadow--2dp">'
    '<div class="mdl-grid">'
    '<div class="content-cell mdl-cell mdl-cell--6-col mdl-typography--body-1">'
    'Watched&nbsp;<a href="https://www.youtube.com/watch?v={vid}">Video {vid}</a><br>'
    '<a href="https://www.youtube.com/channel/UCchan">Channel</a><br>'
    "Aug 11, 2025, 10:30:00 PM CDT<br></div>"
    "</div></div>"
)


def _make_document(count: int = 2) -> str:
    entries = "".join(ENTRY.format(vid=f"vid{i}") for i in range(count))
    return f"<html><body>{entries}</body></html>"


# ---------------------------------------------------------------------------
# Re-exports
# ---------------------------------------------------------------------------


class TestReExports:
    def test_parser_config_importable(self) -> None:
        assert ParserConfig is not None

    def test_models_importable(self) -> None:
        assert ParseResult is not None
        assert WatchRecord is not None
        assert ProgressEvent is not None

    def test_document_error_importable(self) -> None:
        assert issubclass(DocumentParseError, Exception)

    def test_renderers_importable(self) -> None:
        assert callable(render_json)
        assert callable(render_markdown)
        assert callable(summarize_records)


# ---------------------------------------------------------------------------
# parse_history()
# ---------------------------------------------------------------------------


class TestParseHistory:
    def test_returns_parse_result(self) -> None:
        result = parse_history(_make_document())
        assert isinstance(result, ParseResult)
        assert result.state == ParseState.DONE
        assert [r.video_id for r in result.records] == ["vid0", "vid1"]

    def test_default_config(self) -> None:
        with patch("yt_history.run_parse", return_value=ParseResult()) as mock_run:
            parse_history("<p>x</p>")
        config = mock_run.call_args.args[1]
        assert isinstance(config, ParserConfig)
        assert config == ParserConfig()

    def test_custom_config(self) -> None:
        result = parse_history(_make_document(), config=ParserConfig(minimum_confidence=90))
        assert all(r.watched_at is None for r in result.records)

    def test_progress_callback(self) -> None:
        events: list[ProgressEvent] = []
        parse_history(_make_document(), on_progress=events.append)
        assert events
        assert events[-1].percentage == 100.0

    def test_preset_cancel_event(self) -> None:
        cancel = threading.Event()
        cancel.set()
        result = parse_history(_make_document(), cancel_event=cancel)
        assert result.cancelled
        assert result.records == []

    def test_document_error_propagates(self) -> None:
        with pytest.raises(DocumentParseError, match="no markup"):
            parse_history("plain text only")


# ---------------------------------------------------------------------------
# parse_history_async()
# ---------------------------------------------------------------------------


class TestParseHistoryAsync:
    def test_returns_parse_result(self) -> None:
        result = asyncio.run(parse_history_async(_make_document(3)))
        assert isinstance(result, ParseResult)
        assert len(result.records) == 3

    def test_matches_sync_result(self) -> None:
        document = _make_document()
        sync_result = parse_history(document)
        async_result = asyncio.run(parse_history_async(document))
        assert [r.id for r in async_result.records] == [r.id for r in sync_result.records]

    def test_document_error_propagates(self) -> None:
        with pytest.raises(DocumentParseError):
            asyncio.run(parse_history_async(""))


# ---------------------------------------------------------------------------
# Rendering from public API
# ---------------------------------------------------------------------------


class TestRenderingFromApi:
    def test_render_json_from_result(self) -> None:
        json_str = render_json(parse_history(_make_document()))
        assert '"video_id": "vid0"' in json_str

    def test_render_markdown_from_result(self) -> None:
        md = render_markdown(parse_history(_make_document()))
        assert "## Summary" in md
        assert "- **Records:** 2" in md
