"""
Event Queue — bounded, ordered, thread-safe multi-producer/single-consumer buffer.

Overflow policy is explicit:
  drop_oldest: evict the oldest queued event to make room
  block:       wait up to block_timeout for the consumer, then drop oldest
Every eviction is counted and logged; nothing is lost silently.
"""

import logging
import threading
from collections import deque
from typing import Deque, List, Optional

from hive_kernel.models.config import OverflowPolicy, QueueConfig
from hive_kernel.models.history import AnyEvent

logger = logging.getLogger("hive_kernel.ingest.queue")


class QueueClosed(Exception):
    """Raised when putting onto a closed queue."""
    pass


class EventQueue:
    """Bounded FIFO of normalized events shared by producers and the pipeline."""

    def __init__(self, config: Optional[QueueConfig] = None):
        self.config = config or QueueConfig()
        self._items: Deque[AnyEvent] = deque()
        self._lock = threading.Lock()
        self._not_full = threading.Condition(self._lock)
        self._dropped = 0
        self._enqueued = 0
        self._closed = False

    @property
    def capacity(self) -> int:
        return self.config.capacity

    @property
    def dropped(self) -> int:
        """Events evicted by the overflow policy."""
        with self._lock:
            return self._dropped

    @property
    def enqueued(self) -> int:
        with self._lock:
            return self._enqueued

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def put(self, event: AnyEvent) -> bool:
        """
        Enqueue an event. Returns False if an older event had to be evicted
        to make room for it.
        """
        with self._not_full:
            if self._closed:
                raise QueueClosed("event queue is closed")

            if (
                len(self._items) >= self.config.capacity
                and self.config.overflow_policy == OverflowPolicy.BLOCK
            ):
                self._not_full.wait_for(
                    lambda: len(self._items) < self.config.capacity or self._closed,
                    timeout=self.config.block_timeout,
                )
                if self._closed:
                    raise QueueClosed("event queue is closed")

            evicted = False
            while len(self._items) >= self.config.capacity:
                self._items.popleft()
                self._dropped += 1
                evicted = True

            self._items.append(event)
            self._enqueued += 1

        if evicted:
            logger.warning(
                "Event queue full (capacity %d); dropped oldest event",
                self.config.capacity,
            )
        return not evicted

    def put_many(self, events: List[AnyEvent]) -> int:
        """Enqueue in order. Returns how many evictions happened."""
        evictions = 0
        for event in events:
            if not self.put(event):
                evictions += 1
        return evictions

    def drain(self, max_items: Optional[int] = None) -> List[AnyEvent]:
        """Remove and return queued events in FIFO order."""
        with self._not_full:
            count = len(self._items) if max_items is None else min(max_items, len(self._items))
            batch = [self._items.popleft() for _ in range(count)]
            if batch:
                self._not_full.notify_all()
        return batch

    def clear(self) -> int:
        """Discard everything queued. Returns the number of discarded events."""
        with self._not_full:
            count = len(self._items)
            self._items.clear()
            self._not_full.notify_all()
        return count

    def close(self) -> None:
        """Reject further puts and wake any blocked producer."""
        with self._not_full:
            self._closed = True
            self._not_full.notify_all()
