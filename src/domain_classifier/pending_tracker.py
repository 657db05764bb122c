"""
Pending Request Tracker for the domain classifier system.

Tracks domains awaiting external classification so that concurrent lookups
of the same unresolved domain produce a single outbound request. A domain
stays pending from enqueue until the worker removes it, including the time
its request is in flight.
"""

import threading
from typing import Callable, Optional


class PendingRequestTracker:
    """
    Thread-safe set of domains queued for, or undergoing, external resolution.

    Guarded by its own lock so lookups never wait on the domain table lock
    or on network I/O.
    """

    def __init__(self, on_enqueue: Optional[Callable[[], None]] = None) -> None:
        """
        Initialize the tracker.

        Args:
            on_enqueue: Called (outside the lock) after a new domain is queued
        """
        self._lock = threading.Lock()
        # dict keeps insertion order, giving FIFO dequeue
        self._queued: dict[str, None] = {}
        self._in_flight: set[str] = set()
        self._on_enqueue = on_enqueue

    def set_listener(self, on_enqueue: Optional[Callable[[], None]]) -> None:
        with self._lock:
            self._on_enqueue = on_enqueue

    def enqueue(self, domain: str) -> bool:
        """
        Queue a domain for resolution.

        Returns:
            True if the domain was newly queued, False if already pending
        """
        with self._lock:
            if domain in self._queued or domain in self._in_flight:
                return False
            self._queued[domain] = None
            listener = self._on_enqueue

        if listener is not None:
            listener()
        return True

    def is_pending(self, domain: str) -> bool:
        with self._lock:
            return domain in self._queued or domain in self._in_flight

    def dequeue_next(self) -> Optional[str]:
        """
        Take the oldest queued domain and mark it in flight.

        Returns:
            The domain, or None when nothing is queued
        """
        with self._lock:
            if not self._queued:
                return None
            domain = next(iter(self._queued))
            del self._queued[domain]
            self._in_flight.add(domain)
            return domain

    def remove(self, domain: str) -> None:
        """Forget a domain whether queued or in flight."""
        with self._lock:
            self._queued.pop(domain, None)
            self._in_flight.discard(domain)

    def clear(self) -> None:
        with self._lock:
            self._queued.clear()
            self._in_flight.clear()

    @property
    def queued_count(self) -> int:
        with self._lock:
            return len(self._queued)

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queued) + len(self._in_flight)

    def snapshot(self) -> list[str]:
        """Pending domains, in-flight first, then in queue order."""
        with self._lock:
            return sorted(self._in_flight) + list(self._queued)
