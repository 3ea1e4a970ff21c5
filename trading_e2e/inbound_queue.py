"""
Ordered in-memory buffer of received events with a movable read cursor.

Events before the cursor have been consumed by an earlier expectation; events
from the cursor on are unconsumed. Moving the cursor never deletes anything:
only splice_consumed() and clear() remove events, so a failed match attempt
cannot lose data.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ReceivedEvent:
    """A decoded event and the monotonic time (ms) it was queued at."""
    event: Dict[str, Any]
    received_at: float


class InboundQueue:
    """
    Append-only event buffer with a read cursor.

    Invariant: 0 <= cursor <= len(queue). Arrival order is never changed.
    """

    def __init__(self):
        self._events: List[ReceivedEvent] = []
        self._cursor = 0
        self._last_received_at = 0.0

    def __len__(self) -> int:
        return len(self._events)

    @property
    def cursor(self) -> int:
        return self._cursor

    def _next_timestamp(self) -> float:
        # strictly increasing even when the clock does not advance between pushes
        now = time.monotonic() * 1000
        if now <= self._last_received_at:
            now = self._last_received_at + 0.001
        self._last_received_at = now
        return now

    def push(self, event: Dict[str, Any]) -> ReceivedEvent:
        """Append an event; never blocks, never drops."""
        received = ReceivedEvent(event, self._next_timestamp())
        self._events.append(received)
        return received

    def unconsumed_count(self) -> int:
        return len(self._events) - self._cursor

    def peek(self, offset: int) -> Optional[Dict[str, Any]]:
        """Unconsumed event at ``cursor + offset``, or None past the end."""
        index = self._cursor + offset
        if offset < 0 or index >= len(self._events):
            return None
        return self._events[index].event

    def peek_window(self, count: int) -> List[Dict[str, Any]]:
        """Up to ``count`` unconsumed events from the cursor, without consuming them."""
        end = self._cursor + max(count, 0)
        return [received.event for received in self._events[self._cursor:end]]

    def advance(self, n: int) -> int:
        """Move the cursor forward by ``n`` (clamped to the queue length); returns the new cursor."""
        self._cursor = min(self._cursor + max(n, 0), len(self._events))
        return self._cursor

    def rewind(self):
        """Reset the cursor to the start without removing anything."""
        self._cursor = 0

    def splice_consumed(self) -> List[Dict[str, Any]]:
        """Remove every event before the cursor and reset the cursor to 0."""
        consumed = self._events[:self._cursor]
        del self._events[:self._cursor]
        self._cursor = 0
        return [received.event for received in consumed]

    def take(self, index: int) -> Dict[str, Any]:
        """Remove and return the event at absolute ``index``, keeping the cursor on the same event."""
        received = self._events.pop(index)
        if index < self._cursor:
            self._cursor -= 1
        return received.event

    def clear(self) -> List[Dict[str, Any]]:
        """Empty the queue, returning everything it held (consumed or not)."""
        events = [received.event for received in self._events]
        self._events = []
        self._cursor = 0
        return events

    def events(self) -> List[Dict[str, Any]]:
        """Snapshot of all queued events, for diagnostics."""
        return [received.event for received in self._events]

    def received(self) -> List[ReceivedEvent]:
        """Snapshot of all queued events with their receipt timestamps."""
        return list(self._events)

    def __repr__(self):
        return f"InboundQueue(length={len(self._events)}, cursor={self._cursor})"
