"""Log line sinks (console, in-memory, rotating file)."""

from __future__ import annotations

import os
import sys
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TextIO

from config import Level, RotationOptions


class LogSink(Protocol):
    """A synchronous destination for rendered log lines."""

    def write(self, line: str, *, level: Level) -> None:
        """Persist or display a single rendered line."""

    def close(self) -> None:
        """Close any underlying resources."""


class ConsoleSink:
    """Writes error/warn lines to stderr and everything else to stdout."""

    def write(self, line: str, *, level: Level) -> None:
        stream = sys.stderr if level in ("error", "warn") else sys.stdout
        print(line, file=stream)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""


class InMemoryLogSink:
    """In-memory sink for tests and local debugging."""

    def __init__(self) -> None:
        """Create an empty in-memory sink."""
        self._lock = threading.Lock()
        self._lines: list[tuple[Level, str]] = []

    def write(self, line: str, *, level: Level) -> None:
        """Append a line to the in-memory list (thread-safe)."""
        with self._lock:
            self._lines.append((level, line))

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""

    def snapshot(self) -> Sequence[tuple[Level, str]]:
        """Return a point-in-time copy of all `(level, line)` entries."""
        with self._lock:
            return list(self._lines)


@dataclass(frozen=True)
class FileSinkOptions:
    path: Path
    rotation: RotationOptions | None = None


class RotatingFileSink:
    """Appends lines to a local file, rotating it by size.

    Rotation shifts `file.N-1 -> file.N` down to `file -> file.1`, keeping at
    most `rotation.max_files` rotated files. Write and rotation failures are
    counted, never raised.
    """

    def __init__(self, *, path: str | Path, rotation: RotationOptions | None = None) -> None:
        """Open (creating parent directories) the file for appending.

        Raises:
        - `OSError` when the file cannot be opened.
        """
        self._opts = FileSinkOptions(path=Path(path).resolve(), rotation=rotation)
        self._lock = threading.Lock()
        self._stream: TextIO | None = None
        self.write_failures = 0
        self._open()

    @property
    def path(self) -> Path:
        return self._opts.path

    def _open(self) -> None:
        self._opts.path.parent.mkdir(parents=True, exist_ok=True)
        self._stream = self._opts.path.open("a", encoding="utf-8")

    def write(self, line: str, *, level: Level) -> None:
        """Append one line, then rotate if the size threshold is reached."""
        with self._lock:
            if self._stream is None:
                return
            try:
                self._stream.write(line + "\n")
                self._stream.flush()
                if self._opts.rotation is not None:
                    self._rotate_if_needed(self._opts.rotation)
            except OSError:
                self.write_failures += 1

    def _rotate_if_needed(self, rotation: RotationOptions) -> None:
        path = self._opts.path
        if path.stat().st_size < rotation.size:
            return
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        try:
            for i in range(rotation.max_files - 1, -1, -1):
                src = path if i == 0 else path.with_name(f"{path.name}.{i}")
                dest = path.with_name(f"{path.name}.{i + 1}")
                if src.exists():
                    os.replace(src, dest)
        finally:
            self._open()

    def close(self) -> None:
        """Close the underlying file handle."""
        with self._lock:
            if self._stream is not None:
                self._stream.close()
                self._stream = None
