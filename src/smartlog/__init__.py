"""Structured logging with local files and batched remote delivery.

- `SmartLogger` filters by level, renders plain/colored or JSON lines, writes
  them to the console and an optional rotating file.
- When a remote collector is configured, each record is also handed to the
  `delivery` package, which batches, retries with backoff and (optionally)
  persists failed batches to disk.
"""

from .logger import SmartLogger
from .models import EventRecord
from .sinks import ConsoleSink, InMemoryLogSink, LogSink, RotatingFileSink

__all__ = [
    "ConsoleSink",
    "EventRecord",
    "InMemoryLogSink",
    "LogSink",
    "RotatingFileSink",
    "SmartLogger",
]
