"""
Utterance cancellation registry for barge-in.

``stop`` requests mark an utterance id; the stream producing that utterance
checks the mark before every chunk and consumes it when observed. Marks for
utterances with no stream in flight expire after a TTL so the registry does
not grow without bound.

The lock is a plain ``threading.Lock`` and is never held across an
``await``; every operation is a short critical section.
"""

import threading
import time
from typing import Callable, Dict, Set


class UtteranceCancellationRegistry:
    def __init__(self, ttl_sec: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._marks: Dict[str, float] = {}
        self._in_flight: Set[str] = set()

    def _expire_locked(self, now: float) -> None:
        stale = [uid for uid, marked_at in self._marks.items()
                 if uid not in self._in_flight and now - marked_at > self._ttl]
        for uid in stale:
            del self._marks[uid]

    def mark(self, utterance_id: str) -> bool:
        """Request cancellation. Returns True when a stream for the id is in flight."""
        with self._lock:
            now = self._clock()
            self._expire_locked(now)
            self._marks[utterance_id] = now
            return utterance_id in self._in_flight

    def contains(self, utterance_id: str) -> bool:
        with self._lock:
            self._expire_locked(self._clock())
            return utterance_id in self._marks

    def consume(self, utterance_id: str) -> bool:
        """Remove and report a pending mark, as a stream does at a chunk boundary."""
        with self._lock:
            self._expire_locked(self._clock())
            return self._marks.pop(utterance_id, None) is not None

    def clear(self, utterance_id: str) -> None:
        with self._lock:
            self._marks.pop(utterance_id, None)

    def begin(self, utterance_id: str) -> None:
        with self._lock:
            self._in_flight.add(utterance_id)

    def finish(self, utterance_id: str) -> None:
        """Stream ended: drop the in-flight entry and any mark it never observed."""
        with self._lock:
            self._in_flight.discard(utterance_id)
            self._marks.pop(utterance_id, None)

    def in_flight(self, utterance_id: str) -> bool:
        with self._lock:
            return utterance_id in self._in_flight

    def __len__(self) -> int:
        with self._lock:
            return len(self._marks)
