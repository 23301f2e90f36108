"""Debounced "run discovery again" trigger.

Change notifications call ``request()``; the owning loop calls ``poll()``.
At most one pass is pending at a time and passes never overlap: a request
that arrives while a pass is running is folded into a single follow-up pass.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

REFRESH_DEBOUNCE_SECONDS = 0.5


class DebouncedRefresher:
    """Coalesce bursts of change signals into single refresh passes."""

    def __init__(
        self,
        callback: Callable[[], object],
        *,
        debounce_seconds: float = REFRESH_DEBOUNCE_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._debounce_seconds = debounce_seconds
        self._monotonic = monotonic
        self._pending_since: float | None = None
        self._in_flight = False
        self.runs = 0

    @property
    def pending(self) -> bool:
        return self._pending_since is not None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def request(self) -> None:
        """Schedule a pass; each new signal restarts the debounce window."""
        self._pending_since = self._monotonic()

    def cancel(self) -> None:
        self._pending_since = None

    def poll(self) -> bool:
        """Run the callback if a request has settled. Returns whether it ran."""
        if self._in_flight or self._pending_since is None:
            return False
        if (self._monotonic() - self._pending_since) < self._debounce_seconds:
            return False
        return self.run_now()

    def run_now(self) -> bool:
        """Run a pass immediately unless one is already in flight."""
        if self._in_flight:
            self._pending_since = self._monotonic()
            return False
        self._pending_since = None
        self._in_flight = True
        try:
            self._callback()
        except Exception:
            logger.exception("Debounced refresh failed")
        finally:
            self._in_flight = False
            self.runs += 1
        return True


__all__ = ["REFRESH_DEBOUNCE_SECONDS", "DebouncedRefresher"]
