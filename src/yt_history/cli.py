# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""CLI entry point for yt-history."""

from __future__ import annotations

import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import click
import structlog

from yt_history import __version__
from yt_history.config import ParserConfig, load_config
from yt_history.logging import setup_logging
from yt_history.models import ParseResult, ProgressEvent
from yt_history.pipeline import DocumentParseError, run_parse
from yt_history.progress import ProgressCallback
from yt_history.rendering import render_json, render_markdown, write_output

logger = structlog.get_logger()

# Exit codes
EXIT_SUCCESS = 0
EXIT_GENERAL = 1
EXIT_INPUT = 2
EXIT_CANCELLED = 3

# Maps CLI option names to ParserConfig / load_config keys.
_OVERRIDE_KEYS: dict[str, str] = {
    "output_format": "output_format",
    "output_path": "output_path",
    "log_level": "log_level",
    "min_confidence": "minimum_confidence",
    "chunk_size": "chunk_size_bytes",
    "future_slack_days": "future_slack_days",
    "naive_tz_offset": "naive_timezone_offset_minutes",
}


@click.group()
def cli() -> None:
    """yt-history: Parse YouTube watch-history exports into watch records."""


@cli.command()
def version() -> None:
    """Print yt-history version."""
    click.echo(f"yt-history {__version__}")


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "markdown"]),
    default=None,
    help="Output format (default: json).",
)
@click.option(
    "--output",
    "-o",
    "output_path",
    type=click.Path(),
    default=None,
    help="Output file path (default: stdout).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Config file path.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging verbosity (default: INFO).",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Write log lines to stderr as JSON objects.",
)
@click.option(
    "--min-confidence",
    type=click.IntRange(0, 100),
    default=None,
    help="Minimum timestamp confidence to accept (default: 70).",
)
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1024),
    default=None,
    help="Chunk size in characters (default: adaptive around 1 MiB).",
)
@click.option(
    "--debug-trace",
    is_flag=True,
    default=False,
    help="Log every timestamp strategy attempt at DEBUG level.",
)
@click.option(
    "--earliest-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Reject timestamps before this date (default: 2005-02-14).",
)
@click.option(
    "--future-slack-days",
    type=click.IntRange(min=0),
    default=None,
    help="Accept timestamps up to this many days after today (default: 1).",
)
@click.option(
    "--naive-tz-offset",
    type=click.IntRange(-720, 840),
    default=None,
    help="UTC offset in minutes for timestamps without a zone (default: 0).",
)
@click.option(
    "--progress/--no-progress",
    default=False,
    help="Show parse progress on stderr.",
)
def parse(file: Path, **kwargs: Any) -> None:
    """Parse a watch-history export FILE."""
    cli_overrides: dict[str, Any] = {}
    for option, key in _OVERRIDE_KEYS.items():
        if kwargs.get(option) is not None:
            cli_overrides[key] = kwargs[option]
    if kwargs.get("earliest_date") is not None:
        cli_overrides["earliest_date"] = kwargs["earliest_date"].date()
    if kwargs.get("debug_trace"):
        cli_overrides["debug_trace"] = True
    if kwargs.get("log_json"):
        cli_overrides["log_json"] = True

    config_file = Path(kwargs["config_path"]) if kwargs.get("config_path") else None
    config = load_config(cli_overrides=cli_overrides, config_path=config_file)

    setup_logging(config.log_level, json_logs=config.log_json)
    log = logger.bind(component="cli")

    try:
        document = file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        log.error("input_unreadable", path=str(file), error=str(exc))
        click.echo(f"Error: cannot read {file}: {exc}", err=True)
        sys.exit(EXIT_INPUT)

    log.info("starting_parse", path=str(file), chars=len(document))
    on_progress = _print_progress if kwargs.get("progress") else None

    try:
        result = _run_interruptible(document, config, on_progress)
    except DocumentParseError as exc:
        log.error("document_rejected", error=str(exc))
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_INPUT)
    except Exception as exc:
        log.error("unexpected_error", error=str(exc))
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_GENERAL)

    fmt = config.output_format
    output = render_markdown(result) if fmt == "markdown" else render_json(result)

    if config.output_path:
        out = _resolve_output_path(config.output_path, file.stem, fmt)
        write_output(output, out)
        click.echo(f"Output written to {out}", err=True)
    else:
        click.echo(output)

    if result.cancelled:
        click.echo("Parse cancelled; partial results written.", err=True)
        sys.exit(EXIT_CANCELLED)


def _run_interruptible(
    document: str,
    config: ParserConfig,
    on_progress: ProgressCallback | None,
) -> ParseResult:
    """Run the parse on a worker thread; Ctrl-C requests cooperative cancellation."""
    cancel_event = threading.Event()
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="yt-history") as pool:
        future = pool.submit(
            run_parse,
            document,
            config,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
        while True:
            try:
                return future.result(timeout=0.1)
            except TimeoutError:
                continue
            except KeyboardInterrupt:
                cancel_event.set()
                click.echo("\nCancelling...", err=True)
                return future.result()


def _print_progress(event: ProgressEvent) -> None:
    eta = f", eta {event.eta_seconds:.0f}s" if event.eta_seconds is not None else ""
    click.echo(
        f"[{event.percentage:5.1f}%] {event.processed_count}/{event.total_estimate} entries"
        f" (chunk {event.current_chunk}/{event.total_chunks}{eta})",
        err=True,
    )


def _resolve_output_path(raw: str, stem: str, fmt: str) -> Path:
    """Resolve the output path, auto-naming when *raw* is a directory.

    Rules:
        - Trailing ``/`` → treat as directory, auto-generate filename.
        - Existing directory → auto-generate filename.
        - Otherwise → use as-is (explicit filename).

    Auto-generated filenames use ``<input stem>.<ext>`` where *ext* is
    ``md`` for markdown and ``json`` for everything else.
    """
    p = Path(raw)
    is_dir = raw.endswith(("/", "\\")) or p.is_dir()
    if is_dir:
        ext = "md" if fmt == "markdown" else "json"
        return p / f"{stem}.{ext}"
    return p
