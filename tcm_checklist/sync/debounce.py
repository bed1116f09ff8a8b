"""Debounced value holder.

``DebouncedValue`` mirrors an input value, but only once the input has been
quiet for ``delay_ms``. Every ``set()`` cancels the pending timer and starts
a new one, so at most one timer is alive at any time. ``close()`` cancels
the outstanding timer; use the holder as a context manager to make that
automatic.

Timers come from ``timer_factory(interval_seconds, callback)`` and must
expose ``start()`` and ``cancel()``. The default is ``threading.Timer``;
tests pass a factory driven by a fake clock.

Usage:
    with DebouncedValue(False, delay_ms=1000, on_settle=lambda v: v and session.save()) as changes:
        changes.set(True)
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 500


class DebouncedValue:
    """Value that settles ``delay_ms`` after its last change."""

    def __init__(
        self,
        initial: Any = None,
        delay_ms: int = DEFAULT_DELAY_MS,
        on_settle: Callable[[Any], None] | None = None,
        timer_factory: Callable[[float, Callable[[], None]], Any] | None = None,
    ) -> None:
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self.delay_ms = delay_ms
        self._on_settle = on_settle
        self._timer_factory = timer_factory or threading.Timer
        self._lock = threading.Lock()
        self._value = initial
        self._pending_value = None
        self._timer = None
        # Bumped on every schedule/cancel; a timer only applies its own generation
        self._generation = 0
        self._closed = False

    # ── State ────────────────────────────────────────────────────────────────

    @property
    def value(self) -> Any:
        """The last input that survived the quiet period."""
        return self._value

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Input ────────────────────────────────────────────────────────────────

    def set(self, value: Any) -> None:
        """Feed a new input value and restart the quiet period."""
        with self._lock:
            if self._closed:
                logger.debug("Ignoring input for closed debounced value")
                return
            self._cancel_locked()
            self._generation += 1
            generation = self._generation
            self._pending_value = value
            timer = self._timer_factory(
                self.delay_ms / 1000.0,
                lambda: self._settle(generation),
            )
            if isinstance(timer, threading.Timer):
                timer.daemon = True
            self._timer = timer
            timer.start()

    def flush(self) -> bool:
        """Settle a pending value now. Returns False when nothing was pending."""
        with self._lock:
            if self._timer is None or self._closed:
                return False
            generation = self._generation
        self._settle(generation, cancel_timer=True)
        return True

    def cancel(self) -> None:
        """Drop the pending value, if any; the settled value is kept."""
        with self._lock:
            self._cancel_locked()

    def close(self) -> None:
        """Cancel the outstanding timer and refuse further input."""
        with self._lock:
            self._cancel_locked()
            self._closed = True

    def __enter__(self) -> "DebouncedValue":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Internals ────────────────────────────────────────────────────────────

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self._generation += 1

    def _settle(self, generation: int, cancel_timer: bool = False) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return
            if cancel_timer and self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._value = self._pending_value
            self._pending_value = None
            settled = self._value
        if self._on_settle is not None:
            self._on_settle(settled)
