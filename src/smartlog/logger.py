"""Logger front end: level filtering, formatting, sinks and remote delivery."""

from __future__ import annotations

from typing import Any

from config import Level, LoggerConfig, load_config
from delivery.controller import FlushController, Transport

from .formatter import format_line, prepare_message, strip_ansi, timestamp
from .models import LEVEL_RANKS, EventRecord
from .sinks import ConsoleSink, LogSink, RotatingFileSink


class SmartLogger:
    """Structured logger writing to the console, an optional rotating file,
    and an optional remote collector.

    Remote delivery never raises into the caller: failures are retried with
    backoff and are only visible through `remote.degraded_status()`.
    """

    def __init__(
        self,
        config: LoggerConfig | None = None,
        *,
        console: LogSink | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Create a logger.

        Args:
            config: Logger settings (defaults to `LoggerConfig()`).
            console: Console sink override (tests capture output with
                `InMemoryLogSink`).
            transport: Remote transport override passed to the flush controller.
        """
        self.config = config or LoggerConfig()
        self._level = LEVEL_RANKS[self.config.level]
        self._console: LogSink = console or ConsoleSink()
        self._transport = transport

        self._file: RotatingFileSink | None = None
        if self.config.file:
            try:
                self._file = RotatingFileSink(path=self.config.file, rotation=self.config.rotation)
            except OSError as exc:
                self._write_console("warn", f"failed to open log file {self.config.file}: {exc}")

        self._remote: FlushController | None = None
        remote = self.config.remote
        if remote is not None and remote.url:
            self._remote = FlushController(
                options=remote,
                reliable=self.config.remote_reliable,
                queue_path=self.config.remote_queue_path,
                use_gzip=self.config.remote_gzip,
                transport=transport,
            )

    @classmethod
    def from_env(cls, **kwargs: Any) -> SmartLogger:
        """Create a logger from `SMARTLOG_*` environment variables."""
        return cls(load_config(), **kwargs)

    @property
    def level(self) -> Level:
        for name, rank in LEVEL_RANKS.items():
            if rank == self._level:
                return name  # type: ignore[return-value]
        return "info"

    @property
    def remote(self) -> FlushController | None:
        return self._remote

    @property
    def file_sink(self) -> RotatingFileSink | None:
        return self._file

    def set_level(self, level: str) -> None:
        """Change the threshold; unknown level names are ignored."""
        rank = LEVEL_RANKS.get(level)
        if rank is not None:
            self._level = rank

    def _should_log(self, level: str) -> bool:
        if self.config.env == "production" and level == "debug":
            return False
        rank = LEVEL_RANKS.get(level)
        return rank is not None and rank <= self._level

    def _write_console(self, level: Level, message: str) -> None:
        record = EventRecord(timestamp=timestamp(self.config.time_zone), level=level, message=message)
        self._console.write(format_line(record, colors=self.config.colors), level=level)

    def log(self, level: Level, msg: Any, *args: Any) -> None:
        """Emit one event at `level` if it passes the level filter."""
        if not self._should_log(level):
            return

        message, context = prepare_message(msg, args)
        record = EventRecord(
            timestamp=timestamp(self.config.time_zone),
            level=level,
            label=self.config.label or None,
            message=message,
            context=context,
        )
        line = format_line(record, json_output=self.config.json_output, colors=self.config.colors)

        self._console.write(line, level=level)
        if self._file is not None:
            self._file.write(line if self.config.json_output else strip_ansi(line), level=level)
        if self._remote is not None:
            self._remote.enqueue(record.to_payload())

    def error(self, msg: Any, *args: Any) -> None:
        self.log("error", msg, *args)

    def warn(self, msg: Any, *args: Any) -> None:
        self.log("warn", msg, *args)

    def info(self, msg: Any, *args: Any) -> None:
        self.log("info", msg, *args)

    def debug(self, msg: Any, *args: Any) -> None:
        self.log("debug", msg, *args)

    def child(self, **overrides: Any) -> SmartLogger:
        """Create a logger inheriting level, env, label, colors, json and file.

        Remote delivery is not inherited; pass `remote=` to give the child its own.
        """
        base = {
            "level": self.level,
            "env": self.config.env,
            "label": self.config.label,
            "colors": self.config.colors,
            "json_output": self.config.json_output,
            "file": self.config.file,
            "time_zone": self.config.time_zone,
        }
        base.update(overrides)
        return SmartLogger(LoggerConfig(**base), console=self._console, transport=self._transport)

    async def flush_remote(self) -> None:
        """Force a remote flush and wait a short grace period for it to land."""
        if self._remote is not None:
            await self._remote.flush_remote()

    def drain_persisted_queue(self) -> int:
        """Re-submit up to `batch_size` records from the durable queue."""
        if self._remote is None:
            return 0
        return self._remote.drain_persisted_queue()

    def close(self) -> None:
        """Close the file and make a final blocking remote flush. Idempotent."""
        if self._file is not None:
            self._file.close()
            self._file = None
        if self._remote is not None:
            self._remote.close()

    async def aclose(self) -> None:
        """Close without blocking the event loop on the final remote flush."""
        if self._remote is not None:
            await self._remote.aclose()
        if self._file is not None:
            self._file.close()
            self._file = None
