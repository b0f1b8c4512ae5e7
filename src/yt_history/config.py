# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Configuration loading for yt-history.

Precedence (highest to lowest):
1. CLI flag overrides
2. Environment variables (prefixed with YT_HISTORY_)
3. TOML config file
4. Built-in defaults
"""

from __future__ import annotations

import os
import tomllib
from datetime import date
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "yt-history" / "config.toml"

# YouTube's founding date; nothing in a watch history can predate it.
PLATFORM_EARLIEST_DATE = date(2005, 2, 14)

DEFAULT_CHUNK_SIZE_BYTES = 1024 * 1024


class PlausibilityWindow(BaseModel):
    """Calendar range outside of which a well-formed date is rejected."""

    earliest: date = PLATFORM_EARLIEST_DATE
    future_slack_days: int = Field(default=1, ge=0)


class ParserConfig(BaseModel):
    """Parser configuration."""

    minimum_confidence: int = Field(default=70, ge=0, le=100)
    chunk_size_bytes: int = Field(default=DEFAULT_CHUNK_SIZE_BYTES, ge=1024)
    debug_trace: bool = False
    plausibility_window: PlausibilityWindow = Field(default_factory=PlausibilityWindow)
    # Offset applied to timestamps that carry no zone; 0 keeps them as UTC.
    naive_timezone_offset_minutes: int = Field(default=0, ge=-720, le=840)
    progress_interval_seconds: float = Field(default=0.25, ge=0.0)
    log_level: str = "INFO"
    log_json: bool = False
    output_format: str = "json"
    output_path: str | None = None

    @property
    def adaptive_chunking(self) -> bool:
        """True when the caller left ``chunk_size_bytes`` at its default."""
        return "chunk_size_bytes" not in self.model_fields_set


ENV_PREFIX = "YT_HISTORY_"

_ENV_FIELD_MAP: dict[str, str] = {
    "YT_HISTORY_MIN_CONFIDENCE": "minimum_confidence",
    "YT_HISTORY_CHUNK_SIZE": "chunk_size_bytes",
    "YT_HISTORY_DEBUG_TRACE": "debug_trace",
    "YT_HISTORY_LOG_LEVEL": "log_level",
    "YT_HISTORY_LOG_JSON": "log_json",
    "YT_HISTORY_FORMAT": "output_format",
    "YT_HISTORY_EARLIEST_DATE": "earliest_date",
    "YT_HISTORY_FUTURE_SLACK_DAYS": "future_slack_days",
    "YT_HISTORY_NAIVE_TZ_OFFSET": "naive_timezone_offset_minutes",
}

# Flat keys accepted from env/CLI/TOML and folded into plausibility_window.
_WINDOW_KEYS: dict[str, str] = {
    "earliest_date": "earliest",
    "future_slack_days": "future_slack_days",
}


def _read_toml_config(config_path: Path) -> dict[str, Any]:
    """Read a TOML config file and return its contents as a dict.

    Returns an empty dict if the file does not exist or cannot be parsed.
    """
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _read_env_vars() -> dict[str, Any]:
    """Read configuration from environment variables."""
    result: dict[str, Any] = {}
    for env_key, field_name in _ENV_FIELD_MAP.items():
        value = os.environ.get(env_key)
        if value is not None:
            result[field_name] = value
    return result


def _fold_window(merged: dict[str, Any]) -> dict[str, Any]:
    """Move flat plausibility keys into the nested ``plausibility_window`` dict."""
    window = dict(merged.pop("plausibility_window", None) or {})
    for flat_key, window_key in _WINDOW_KEYS.items():
        if flat_key in merged:
            window[window_key] = merged.pop(flat_key)
    if window:
        merged["plausibility_window"] = window
    return merged


def load_config(
    cli_overrides: dict[str, Any] | None = None,
    config_path: Path | None = None,
) -> ParserConfig:
    """Load configuration with precedence: CLI > env > file > defaults.

    Args:
        cli_overrides: Dict of values from CLI flags. Keys with ``None``
            values are ignored (treated as "not provided").
        config_path: Path to a TOML config file. Falls back to
            ``~/.config/yt-history/config.toml`` if not specified.

    Returns:
        A validated ``ParserConfig`` instance.
    """
    effective_path = config_path or DEFAULT_CONFIG_PATH

    file_values = _fold_window(_read_toml_config(effective_path))
    env_values = _fold_window(_read_env_vars())
    cli_values = _fold_window(
        {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    )

    # Merge: file < env < cli  (later dict wins, window merged key by key)
    merged: dict[str, Any] = {}
    window: dict[str, Any] = {}
    for layer in (file_values, env_values, cli_values):
        window.update(layer.pop("plausibility_window", {}))
        merged.update(layer)
    if window:
        merged["plausibility_window"] = window

    return ParserConfig(**merged)
