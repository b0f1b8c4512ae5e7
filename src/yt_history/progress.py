# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Throttled progress reporting for document parses.

The orchestrator calls :meth:`ProgressReporter.update` after every chunk;
the reporter forwards at most one event per ``min_interval`` seconds to
the caller's callback, plus the final event, so a UI progress bar is
never flooded regardless of how small the chunks are.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from yt_history.models import ProgressEvent

logger = structlog.get_logger()

ProgressCallback = Callable[[ProgressEvent], None]


class ProgressReporter:
    """Rate-limited progress event emitter.

    Usage::

        reporter = ProgressReporter(on_progress, total_estimate=5000, total_chunks=12)
        for i, chunk in enumerate(chunks, start=1):
            ...
            reporter.update(processed_count, current_chunk=i)
        reporter.update(processed_count, current_chunk=len(chunks), final=True)

    Args:
        callback: Receives each emitted ``ProgressEvent``; may be None, in
            which case events are only logged.
        total_estimate: Estimated number of entries in the document.
        total_chunks: Number of chunks the document was split into.
        min_interval: Minimum seconds between two emitted events.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        callback: ProgressCallback | None,
        total_estimate: int,
        total_chunks: int,
        min_interval: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._total_estimate = total_estimate
        self._total_chunks = max(total_chunks, 1)
        self._min_interval = min_interval
        self._clock = clock
        self._start_time = clock()
        self._last_emit: float | None = None
        self.emitted = 0

    def _eta(self, current_chunk: int) -> float | None:
        if current_chunk <= 0:
            return None
        remaining = self._total_chunks - current_chunk
        if remaining <= 0:
            return 0.0
        elapsed = self._clock() - self._start_time
        return elapsed / current_chunk * remaining

    def update(
        self,
        processed_count: int,
        current_chunk: int,
        *,
        final: bool = False,
    ) -> ProgressEvent | None:
        """Record progress; return the event if one was emitted."""
        now = self._clock()
        if (
            not final
            and self._last_emit is not None
            and now - self._last_emit < self._min_interval
        ):
            return None

        percentage = min(current_chunk / self._total_chunks * 100, 100.0)
        eta = self._eta(current_chunk)
        event = ProgressEvent(
            processed_count=processed_count,
            total_estimate=max(self._total_estimate, processed_count),
            percentage=round(percentage, 1),
            eta_seconds=round(eta, 2) if eta is not None else None,
            current_chunk=current_chunk,
            total_chunks=self._total_chunks,
        )
        self._last_emit = now
        self.emitted += 1

        logger.debug(
            "parse_progress",
            processed=processed_count,
            total_estimate=event.total_estimate,
            percent=event.percentage,
            eta_seconds=event.eta_seconds,
        )
        if self._callback is not None:
            self._callback(event)
        return event
