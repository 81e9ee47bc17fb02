"""
EventLog — bounded, ordered, thread-safe record of operation events.

The orchestrator owns one instance.  Components append message keys
with parameters; observers never touch the buffer directly and read
either a snapshot (an immutable tuple) or a subscription queue.

Thread safety model
───────────────────
- ``_lock`` protects ``_seq``, ``_buffer`` and ``_subscribers``; every
  append happens under it, so back-to-back appends from the compiler
  and the executor thread are serialized.
- The buffer is a ``deque(maxlen=capacity)``: appending past the cap
  evicts the oldest entry and keeps insertion order of the rest.
- Each subscriber gets its own bounded ``queue.Queue``; a subscriber
  whose queue fills up is dropped rather than blocking appends.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import deque

from rootpatch.core.models.event import EventLogEntry
from rootpatch.core.services.patcher.data.constants import EVENT_LOG_CAPACITY

logger = logging.getLogger(__name__)


class EventLog:
    """Append-only ring buffer of ``EventLogEntry`` records.

    Parameters
    ----------
    capacity : int
        Maximum number of entries retained.  Older entries are evicted.
    subscriber_queue_size : int
        Maximum backlog per subscriber before it is dropped.
    """

    def __init__(
        self,
        capacity: int = EVENT_LOG_CAPACITY,
        *,
        subscriber_queue_size: int = 200,
    ) -> None:
        if capacity < 1:
            raise ValueError("EventLog capacity must be at least 1")
        self._lock = threading.Lock()
        self._seq: int = 0
        self._buffer: deque[EventLogEntry] = deque(maxlen=capacity)
        self._subscribers: list[queue.Queue[EventLogEntry]] = []
        self._subscriber_queue_size = subscriber_queue_size

    # ── Properties ──────────────────────────────────────────────

    @property
    def capacity(self) -> int:
        return self._buffer.maxlen or 0

    @property
    def seq(self) -> int:
        """Sequence number of the most recent append."""
        with self._lock:
            return self._seq

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    # ── Appending ───────────────────────────────────────────────

    def append(self, key: str, *parameters: object) -> EventLogEntry:
        """Record an event and broadcast it to subscribers.

        Parameters are stringified; ``key`` may be empty for a message
        that is already plain text.
        """
        with self._lock:
            self._seq += 1
            entry = EventLogEntry(
                seq=self._seq,
                key=key,
                parameters=tuple(str(p) for p in parameters),
            )
            self._buffer.append(entry)

            dead: list[queue.Queue[EventLogEntry]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(entry)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._subscribers.remove(q)

        if dead:
            logger.info("Dropped %d unresponsive event subscriber(s)", len(dead))
        logger.debug("event %s %s", key or "-", " ".join(entry.parameters))
        return entry

    def plain(self, message: str) -> EventLogEntry:
        """Record an already-rendered message."""
        return self.append("", message)

    @staticmethod
    def render(entry: EventLogEntry) -> str:
        return entry.message

    # ── Reading ─────────────────────────────────────────────────

    def snapshot(self) -> tuple[EventLogEntry, ...]:
        """Entries oldest-first, as an immutable copy."""
        with self._lock:
            return tuple(self._buffer)

    def keys(self) -> list[str]:
        return [e.key for e in self.snapshot()]

    def since(self, seq: int) -> tuple[EventLogEntry, ...]:
        """Entries appended after ``seq`` that are still retained."""
        with self._lock:
            return tuple(e for e in self._buffer if e.seq > seq)

    # ── Subscribing ─────────────────────────────────────────────

    def subscribe(self) -> queue.Queue[EventLogEntry]:
        """Register a subscriber and return its private queue."""
        q: queue.Queue[EventLogEntry] = queue.Queue(maxsize=self._subscriber_queue_size)
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue[EventLogEntry]) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
