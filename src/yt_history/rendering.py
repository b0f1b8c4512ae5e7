# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Output rendering: JSON and Markdown formats."""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path

import structlog

from yt_history.models import ImportSummary, ParseResult, StrategyPerformance
from yt_history.summary import summarize_records

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------


def render_json(result: ParseResult, *, indent: int = 2) -> str:
    """Serialize a ParseResult to a JSON string.

    The document carries ``state``, ``summary``, ``statistics`` and
    ``records``.

    Args:
        result: The parse output to serialize.
        indent: JSON indentation level.

    Returns:
        JSON string representation.
    """
    summary = summarize_records(result.records, result.statistics)
    payload = {
        "state": result.state.value,
        "summary": summary.model_dump(mode="json", exclude={"statistics"}),
        "statistics": result.statistics.model_dump(mode="json"),
        "records": [r.model_dump(mode="json") for r in result.records],
    }
    return json.dumps(payload, indent=indent, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Markdown rendering
# ---------------------------------------------------------------------------


def _format_date(value: datetime | None) -> str:
    return value.isoformat() if value is not None else "n/a"


def _render_summary(summary: ImportSummary, state: str) -> str:
    lines = ["## Summary", ""]
    lines.append(f"- **Records:** {summary.total_records}")
    lines.append(f"- **Unique channels:** {summary.unique_channels}")
    lines.append(
        f"- **Date range:** {_format_date(summary.date_range_start)}"
        f" to {_format_date(summary.date_range_end)}"
    )
    lines.append(
        f"- **Products:** YouTube {summary.product_breakdown.youtube},"
        f" YouTube Music {summary.product_breakdown.youtube_music}"
    )
    lines.append(f"- **Parse errors:** {summary.parse_errors}")
    if state != "done":
        lines.append(f"- **State:** {state} (partial results)")
    return "\n".join(lines)


def _render_quality(summary: ImportSummary) -> str:
    stats = summary.statistics
    lines = ["## Timestamp Quality", ""]
    lines.append(
        f"{stats.entries_without_timestamp} of {stats.total_entries} entries"
        " had no recoverable timestamp."
    )
    lines.append("")
    lines.append(f"- **Average confidence:** {stats.average_confidence:.1f}")
    lines.append(f"- **Low confidence:** {stats.low_confidence_entries}")
    lines.append(f"- **Implausible dates rejected:** {stats.implausible_dates}")
    lines.append(f"- **With timezone:** {stats.quality.with_timezone}")
    lines.append(f"- **Skipped entries:** {stats.skipped_entries}")
    lines.append(f"- **Skipped ads:** {stats.skipped_ads}")
    return "\n".join(lines)


def _render_strategies(performance: list[StrategyPerformance]) -> str:
    if not performance:
        return ""
    lines = ["## Strategy Performance", ""]
    lines.append("| Strategy | Attempts | Successes | Success rate |")
    lines.append("|---|---:|---:|---:|")
    for perf in performance:
        lines.append(
            f"| {perf.strategy_id} | {perf.attempts} | {perf.successes}"
            f" | {perf.success_rate:.1f}% |"
        )
    return "\n".join(lines)


def render_markdown(result: ParseResult) -> str:
    """Render a ParseResult as a human-readable Markdown report.

    Sections:
        - Summary
        - Timestamp Quality
        - Strategy Performance

    Args:
        result: The parse output to render.

    Returns:
        Markdown string.
    """
    summary = summarize_records(result.records, result.statistics)
    sections = [
        "# yt-history Import Report",
        _render_summary(summary, result.state.value),
        _render_quality(summary),
        _render_strategies(result.statistics.per_strategy_performance),
    ]
    content = "\n\n".join(s for s in sections if s)
    if not content.endswith("\n"):
        content += "\n"
    return content


# ---------------------------------------------------------------------------
# Atomic file writing
# ---------------------------------------------------------------------------


def write_output(content: str, output_path: Path) -> None:
    """Write content to a file atomically.

    Writes to a temporary file in the same directory, then renames
    to the target path, so the output file is never in a partial state.

    Args:
        content: String content to write.
        output_path: Destination file path.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=output_path.parent,
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, output_path)
        logger.info("output_written", path=str(output_path))
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise
