"""In-memory batch buffer for records waiting on remote delivery."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

Payload = Mapping[str, Any]


class BatchBuffer:
    """Ordered (oldest first) queue of pending record payloads.

    Inside an event loop every operation completes within one scheduling turn,
    so `drain_all` is atomic with respect to `enqueue`. The lock covers the
    case where a delivery worker thread reinserts a failed batch while the
    caller keeps logging.

    `on_threshold` is always invoked outside the lock.
    """

    def __init__(self, *, batch_size: int, on_threshold: Callable[[], None] | None = None) -> None:
        """Create an empty buffer.

        Args:
            batch_size: Length at which `enqueue` calls `on_threshold`.
            on_threshold: Invoked synchronously from `enqueue` once the buffer
                holds at least `batch_size` records.
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0. Got: {batch_size}")
        self.batch_size = batch_size
        self._on_threshold = on_threshold
        self._records: list[Payload] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def enqueue(self, record: Payload) -> None:
        """Append a record; trigger a flush when the batch size is reached."""
        with self._lock:
            self._records.append(record)
            reached = len(self._records) >= self.batch_size
        if reached and self._on_threshold is not None:
            self._on_threshold()

    def drain_all(self) -> list[Payload]:
        """Remove and return every buffered record, in insertion order."""
        with self._lock:
            drained, self._records = self._records, []
        return drained

    def reinsert_front(self, records: Iterable[Payload], cap: int) -> int:
        """Put `records` back ahead of everything buffered, then cap the length.

        Only the first `cap` entries survive; newer ones beyond the cap are
        dropped. Returns how many were dropped.
        """
        with self._lock:
            merged = list(records) + self._records
            dropped = max(0, len(merged) - cap)
            self._records = merged[:cap]
        return dropped

    def prepend(self, records: Iterable[Payload]) -> None:
        """Put `records` ahead of everything buffered, without a cap."""
        with self._lock:
            self._records = list(records) + self._records

    def snapshot(self) -> Sequence[Payload]:
        """Return a point-in-time copy of the buffered records."""
        with self._lock:
            return list(self._records)
