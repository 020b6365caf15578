"""Flush controller: batching, delivery, durability and backoff for remote logs.

The controller ties together:

- `BatchBuffer`: pending records, flushed when `batch_size` is reached or when
  the recurring timer fires.
- `HttpTransport`: one POST per flush, run in a worker thread and raced against
  the request timeout.
- `DurableQueue`: where failed batches go when reliable mode is on.
- `calc_backoff`: how long the timer stays disarmed after a failure.

Inside an event loop, timer and backoff bookkeeping happens on the loop thread.
Without a running loop, each flush is handed to a single delivery thread owned
by the controller and a failure blocks threshold flushes until the backoff
deadline passes. `enqueue` never blocks on the network.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from config import RemoteOptions

from .backoff import calc_backoff
from .buffer import BatchBuffer, Payload
from .durable_queue import DurableQueue, DurableQueueError
from .transport import DeliveryOutcome, DeliveryTarget, HttpTransport

# How long `flush_remote` yields so an in-flight delivery can complete.
FLUSH_GRACE_S = 0.2


class Transport(Protocol):
    def send(self, batch: Sequence[Mapping[str, Any]], target: DeliveryTarget) -> DeliveryOutcome:
        """Deliver one batch synchronously and report the outcome."""


class FlushState(str, Enum):
    IDLE = "idle"
    FLUSHING = "flushing"
    BACKOFF = "backoff"


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class FlushController:
    """Owns the retry state (fail count + timer) for one logger instance.

    Members:
    - Pending records: `BatchBuffer`
    - Recurring timer: `_timer_task` (at most one, started lazily inside a loop)
    - Backoff: `_backoff_handle` (timer disarmed until it fires)
    - In-flight deliveries: `_in_flight` (loop tasks) and `_worker_futures`
      (delivery thread, used when no loop is running)
    - Fail count: `_fail_count` (monotonic; not reset on success)
    """

    def __init__(
        self,
        *,
        options: RemoteOptions,
        reliable: bool = False,
        queue_path: str | Path | None = None,
        use_gzip: bool = False,
        transport: Transport | None = None,
        flush_grace_s: float = FLUSH_GRACE_S,
    ) -> None:
        """Create a controller and arm the timer if an event loop is running.

        Args:
            options: Remote collector settings.
            reliable: Persist failed batches to `queue_path` instead of
                reinserting them in memory.
            queue_path: Durable queue file (used only when `reliable`).
            use_gzip: Compress request bodies (ignored when `transport` is given).
            transport: Override the HTTP transport (tests, custom protocols).
            flush_grace_s: Wait used by `flush_remote`.
        """
        self._options = options
        self._target = DeliveryTarget.parse(options.url)
        self._transport: Transport = transport or HttpTransport(
            headers=options.headers,
            timeout_s=options.timeout_s,
            use_gzip=use_gzip,
        )
        self._flush_grace_s = flush_grace_s
        self._buffer = BatchBuffer(batch_size=options.batch_size, on_threshold=self.flush)

        self._queue: DurableQueue | None = None
        if reliable and queue_path:
            self._queue = DurableQueue(queue_path)
            try:
                self._queue.ensure_exists()
            except OSError:
                self._record_queue_error()

        self._fail_count = 0
        self._timer_task: asyncio.Task[None] | None = None
        self._backoff_handle: asyncio.TimerHandle | None = None
        self._in_flight: set[asyncio.Task[None]] = set()
        self._closed = False
        # Set once the final batch has been taken; later failures are drops.
        self._final_flushed = False

        # Delivery without a running event loop.
        self._executor: ThreadPoolExecutor | None = None
        self._worker_futures: set[Future[None]] = set()
        self._blocking_backoff_until = 0.0

        # Degradation tracking: failures are never raised to the caller.
        self._dropped_records = 0
        self._queue_errors = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None
        self._last_failure_reason: str | None = None

        self.start()

    @property
    def target(self) -> DeliveryTarget | None:
        """Parsed collector endpoint, or None when the URL is malformed."""
        return self._target

    @property
    def queue(self) -> DurableQueue | None:
        return self._queue

    @property
    def fail_count(self) -> int:
        return self._fail_count

    @property
    def pending(self) -> int:
        """Number of records waiting in the in-memory buffer."""
        return len(self._buffer)

    def buffered(self) -> Sequence[Payload]:
        """Point-in-time copy of the in-memory buffer (oldest first)."""
        return self._buffer.snapshot()

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def state(self) -> FlushState:
        if self._backoff_handle is not None or self._blocking_backoff_active():
            return FlushState.BACKOFF
        if self._in_flight or self._worker_futures:
            return FlushState.FLUSHING
        return FlushState.IDLE

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Arm the recurring timer (idempotent; no-op outside an event loop)."""
        if self._closed or self._backoff_handle is not None or self.timer_running:
            return
        loop = _running_loop()
        if loop is None:
            return
        self._timer_task = loop.create_task(self._timer_loop(), name="smartlog-remote-timer")

    def stop(self) -> None:
        """Disarm the recurring timer (idempotent)."""
        task, self._timer_task = self._timer_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self._options.interval_s)
            if len(self._buffer):
                self.flush()

    def _cancel_backoff(self) -> None:
        handle, self._backoff_handle = self._backoff_handle, None
        if handle is not None:
            handle.cancel()

    def _schedule_backoff(self) -> None:
        """Disarm the timer and re-arm it after the backoff delay."""
        self.stop()
        self._cancel_backoff()
        if self._closed:
            return
        delay_ms = calc_backoff(self._fail_count)
        loop = asyncio.get_running_loop()
        self._backoff_handle = loop.call_later(delay_ms / 1000.0, self._resume_after_backoff)

    def _resume_after_backoff(self) -> None:
        self._backoff_handle = None
        self.start()

    # ------------------------------------------------------------------
    # Flush protocol
    # ------------------------------------------------------------------

    def enqueue(self, record: Payload) -> None:
        """Buffer a record; flushes immediately once `batch_size` is reached."""
        if self._closed:
            return
        if self._target is None and len(self._buffer) >= self._options.max_buffer:
            # Nothing can be delivered; keep the oldest `max_buffer` records.
            self._dropped_records += 1
            return
        self.start()
        self._buffer.enqueue(record)

    def flush(self) -> asyncio.Task[None] | Future[None] | None:
        """Drain the buffer and start one delivery attempt in the background.

        Inside an event loop the attempt is an asyncio task. Without one it is
        submitted to the controller's delivery thread.

        Returns the task or future, or None when nothing was sent: empty buffer,
        malformed URL (the buffer is left untouched), or a pending backoff on
        the delivery thread (records stay buffered for the next flush).
        """
        if self._target is None:
            return None
        loop = _running_loop()
        if loop is None:
            return self._flush_on_worker(self._target)
        batch = self._buffer.drain_all()
        if not batch:
            return None
        task = loop.create_task(self._deliver(batch, self._target), name="smartlog-remote-delivery")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    def _blocking_backoff_active(self) -> bool:
        return time.monotonic() < self._blocking_backoff_until

    def _flush_on_worker(self, target: DeliveryTarget) -> Future[None] | None:
        if self._closed or self._blocking_backoff_active():
            return None
        batch = self._buffer.drain_all()
        if not batch:
            return None
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="smartlog-remote")
        future = self._executor.submit(self._deliver_blocking, batch, target)
        self._worker_futures.add(future)
        future.add_done_callback(self._worker_futures.discard)
        return future

    def _deliver_blocking(self, batch: list[Payload], target: DeliveryTarget) -> None:
        try:
            outcome = self._transport.send(batch, target)
        except Exception as exc:  # noqa: BLE001 - logging must never crash the host
            outcome = DeliveryOutcome.failed(f"{type(exc).__name__}: {exc}")
        if outcome.success:
            return
        self._handle_failure(batch, outcome.reason)
        delay_ms = calc_backoff(self._fail_count)
        self._blocking_backoff_until = time.monotonic() + delay_ms / 1000.0

    async def _send(self, batch: Sequence[Payload], target: DeliveryTarget) -> DeliveryOutcome:
        """Run the blocking transport in a thread, raced against the timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._transport.send, batch, target),
                timeout=self._options.timeout_s,
            )
        except TimeoutError:
            return DeliveryOutcome.failed(f"timeout after {self._options.timeout_ms}ms")
        except Exception as exc:  # noqa: BLE001 - logging must never crash the host
            return DeliveryOutcome.failed(f"{type(exc).__name__}: {exc}")

    async def _deliver(self, batch: list[Payload], target: DeliveryTarget) -> None:
        outcome = await self._send(batch, target)
        if outcome.success:
            return
        self._handle_failure(batch, outcome.reason)
        self._schedule_backoff()

    def _handle_failure(self, batch: list[Payload], reason: str | None) -> None:
        """Keep the failed batch (disk or memory) and bump the fail count."""
        if self._queue is not None:
            try:
                self._queue.append(batch)
            except OSError:
                # Batch is lost.
                self._record_queue_error()
        elif self._final_flushed:
            # Nothing will flush the buffer again.
            self._dropped_records += len(batch)
        else:
            self._dropped_records += self._buffer.reinsert_front(batch, self._options.max_buffer)

        self._fail_count += 1
        now = _utc_now()
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now
        self._last_failure_reason = reason

    def _record_queue_error(self) -> None:
        self._queue_errors += 1

    async def flush_remote(self) -> None:
        """Force a flush and give it a short grace period to complete.

        Stops the timer, flushes if anything is buffered, sleeps
        `flush_grace_s`, then re-arms the timer unless a backoff is pending.
        """
        self.stop()
        if len(self._buffer):
            self.flush()
        await asyncio.sleep(self._flush_grace_s)
        self.start()

    def drain_persisted_queue(self) -> int:
        """Move up to `batch_size` durable records to the front of the buffer and flush.

        Returns the number of records taken from disk. A corrupt or unreadable
        queue file is left untouched and nothing is taken.
        """
        if self._queue is None:
            return 0
        try:
            batch = self._queue.drain(self._options.batch_size)
        except (DurableQueueError, OSError):
            self._record_queue_error()
            return 0
        if not batch:
            return 0
        self._buffer.prepend(batch)
        self.flush()
        return len(batch)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def _final_batch(self) -> list[Payload]:
        self._closed = True
        self.stop()
        self._cancel_backoff()
        self._final_flushed = True
        return self._buffer.drain_all()

    def _handle_final_outcome(self, batch: list[Payload], outcome: DeliveryOutcome) -> None:
        if not outcome.success:
            self._handle_failure(batch, outcome.reason)

    def _shutdown_executor(self) -> None:
        executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def close(self) -> None:
        """Stop the timer and make one last blocking best-effort flush.

        Waits for the delivery thread but not for event-loop tasks; a loop
        delivery that fails after this point counts its batch as dropped (or
        persists it in reliable mode). Records already in the durable queue
        stay on disk for a future drain. Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        self.stop()
        self._cancel_backoff()
        self._shutdown_executor()
        batch = self._final_batch()
        if not batch:
            return
        if self._target is None:
            self._dropped_records += len(batch)
            return
        try:
            outcome = self._transport.send(batch, self._target)
        except Exception as exc:  # noqa: BLE001 - logging must never crash the host
            outcome = DeliveryOutcome.failed(f"{type(exc).__name__}: {exc}")
        self._handle_final_outcome(batch, outcome)

    async def aclose(self) -> None:
        """Async variant of `close`: waits for in-flight deliveries first.

        The final flush runs in a worker thread so the event loop stays free.
        """
        if self._closed:
            return
        self._closed = True
        self.stop()
        self._cancel_backoff()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        if self._executor is not None:
            await asyncio.to_thread(self._shutdown_executor)
        batch = self._final_batch()
        if not batch:
            return
        if self._target is None:
            self._dropped_records += len(batch)
            return
        outcome = await self._send(batch, self._target)
        self._handle_final_outcome(batch, outcome)

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        return {
            "fail_count": self._fail_count,
            "dropped_records": self._dropped_records,
            "queue_errors": self._queue_errors,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
            "last_failure_reason": self._last_failure_reason,
        }
