"""Remote delivery for log records.

This package batches records in memory, posts them to a collector over
HTTP(S), and on failure either keeps them in memory or persists them to a
line-delimited JSON queue on disk, backing off before the next periodic flush.
"""

from .backoff import calc_backoff
from .buffer import BatchBuffer
from .controller import FlushController, FlushState
from .durable_queue import DurableQueue, DurableQueueError
from .transport import DeliveryOutcome, DeliveryTarget, HttpTransport

__all__ = [
    "BatchBuffer",
    "DeliveryOutcome",
    "DeliveryTarget",
    "DurableQueue",
    "DurableQueueError",
    "FlushController",
    "FlushState",
    "HttpTransport",
    "calc_backoff",
]
