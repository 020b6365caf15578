"""Disk-backed durability queue for batches that failed delivery.

The queue is a UTF-8 file holding one compact JSON record per line. It is
append-only in normal operation; `drain` removes a prefix by rewriting the file
with the remaining lines.

Known limitation: the rewrite is not atomic. A crash between reading the file
and rewriting it can duplicate or lose the drained prefix. The file is assumed
to have a single writer (one logger instance).
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any


class DurableQueueError(RuntimeError):
    """A line in the queue file could not be parsed as a record."""

    def __init__(self, *, path: Path, line_number: int, reason: str) -> None:
        """Create an error pointing at the corrupt line (1-based)."""
        self.path = path
        self.line_number = line_number
        super().__init__(f"Corrupt durable queue record at {path}:{line_number}: {reason}")


def _serialize(record: Mapping[str, Any]) -> str:
    return json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str)


class DurableQueue:
    """Line-delimited JSON record log on local disk."""

    def __init__(self, path: str | Path) -> None:
        """Bind the queue to `path` (nothing is created until first use)."""
        self.path = Path(path).resolve()

    def ensure_exists(self) -> None:
        """Create the parent directory and an empty file if they are missing."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)

    def append(self, records: Sequence[Mapping[str, Any]]) -> None:
        """Append each record as one JSON line. No-op for an empty sequence."""
        if not records:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = "".join(_serialize(r) + "\n" for r in records)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(data)

    def _read_lines(self) -> list[str]:
        if not self.path.exists():
            return []
        data = self.path.read_text(encoding="utf-8")
        # Only "\n" separates records; other Unicode line breaks may appear inside one.
        return [line for line in data.split("\n") if line.strip()]

    def __len__(self) -> int:
        return len(self._read_lines())

    def drain(self, max_count: int) -> list[dict[str, Any]]:
        """Remove and return up to `max_count` records from the head of the queue.

        Raises:
        - `DurableQueueError` when any of the taken lines is not valid JSON.
          The file is left untouched in that case.
        - `OSError` for read/write failures.
        """
        lines = self._read_lines()
        if not lines:
            return []

        take = min(len(lines), max(max_count, 0))
        batch: list[dict[str, Any]] = []
        for idx, line in enumerate(lines[:take], start=1):
            try:
                batch.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise DurableQueueError(path=self.path, line_number=idx, reason=exc.msg) from exc

        remaining = lines[take:]
        self.path.write_text("\n".join(remaining) + ("\n" if remaining else ""), encoding="utf-8")
        return batch
