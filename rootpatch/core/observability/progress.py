"""
ProgressEstimator — liveness heartbeat for privileged operations.

The privileged process reports no step-level progress, so this is not
a measurement.  While an operation is active the value climbs by a
fixed step on a fixed interval, capped below 1.0.  ``complete()`` forces
1.0 and resets to 0 after a grace delay.  Nothing may treat this value
as evidence that an operation finished.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from rootpatch.core.services.patcher.data import constants as C

logger = logging.getLogger(__name__)


class ProgressEstimator:
    """Monotonic, bounded heartbeat driven by a daemon timer chain."""

    def __init__(
        self,
        *,
        interval_s: float = C.PROGRESS_INTERVAL_S,
        step: float = C.PROGRESS_STEP,
        cap: float = C.PROGRESS_CAP,
        grace_s: float = C.PROGRESS_GRACE_S,
        on_change: Callable[[float], None] | None = None,
    ) -> None:
        self._interval_s = interval_s
        self._step = step
        self._cap = cap
        self._grace_s = grace_s
        self._on_change = on_change

        self._lock = threading.Lock()
        self._value = 0.0
        self._active = False
        self._timer: threading.Timer | None = None
        self._reset_timer: threading.Timer | None = None
        self._generation = 0              # bumped whenever the timer chain is cut

    # ── Read ────────────────────────────────────────────────────

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> None:
        """Begin a new heartbeat from 0."""
        with self._lock:
            self._cancel_timers()
            self._value = 0.0
            self._active = True
            self._schedule()
        self._notify(0.0)

    def tick(self) -> float:
        """Advance one step (no-op when inactive or at the cap)."""
        with self._lock:
            if not self._active:
                return self._value
            value = self._advance()
        self._notify(value)
        return value

    def complete(self) -> None:
        """Force 1.0, then reset to 0 after the grace delay."""
        with self._lock:
            self._cancel_timers()
            self._active = False
            self._value = 1.0
            if self._grace_s > 0:
                self._reset_timer = threading.Timer(self._grace_s, self._reset)
                self._reset_timer.daemon = True
                self._reset_timer.start()
        self._notify(1.0)
        if self._grace_s <= 0:
            self._reset()

    def stop(self) -> None:
        """Stop immediately and reset to 0 (failure or cancel)."""
        with self._lock:
            self._cancel_timers()
            self._active = False
            self._value = 0.0
        self._notify(0.0)

    # ── Internals ───────────────────────────────────────────────

    def _advance(self) -> float:
        # Caller holds the lock.
        if self._value < self._cap:
            self._value = min(self._value + self._step, self._cap)
        return self._value

    def _schedule(self) -> None:
        # Caller holds the lock.
        self._timer = threading.Timer(self._interval_s, self._on_timer, args=(self._generation,))
        self._timer.daemon = True
        self._timer.start()

    def _on_timer(self, generation: int) -> None:
        # A timer that already fired cannot be canceled; one from an
        # earlier start() must neither tick nor re-arm.
        with self._lock:
            if generation != self._generation or not self._active:
                return
            value = self._advance()
            self._schedule()
        self._notify(value)

    def _reset(self) -> None:
        with self._lock:
            self._reset_timer = None
            if self._active:
                return
            self._value = 0.0
        self._notify(0.0)

    def _cancel_timers(self) -> None:
        # Caller holds the lock.
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None

    def _notify(self, value: float) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(value)
        except Exception as e:
            logger.debug("Progress listener failed: %s", e)
