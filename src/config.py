"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into strongly-typed Pydantic models.
- Validating values and providing actionable error messages.
"""

import json
import os
from typing import Literal, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import dotenv
from pydantic import BaseModel, Field, field_validator

_T = TypeVar("_T", int, float)

Level = Literal["error", "warn", "info", "debug"]


def _get_env_str(name: str, default: str | None = None) -> str | None:
    """Read a string env var, treating empty values as unset."""
    value = os.getenv(name, "").strip()
    return value or default


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


def _get_env_headers(name: str) -> dict[str, str]:
    """Read a JSON object of static HTTP headers."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{name} must be a JSON object of header names to values. Got: {raw!r}") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"{name} must be a JSON object of header names to values. Got: {raw!r}")
    return {str(k): str(v) for k, v in parsed.items()}


class RotationOptions(BaseModel):
    """Size-based rotation for the local log file."""

    size: int = Field(..., gt=0, description="Rotate once the file reaches this many bytes")
    max_files: int = Field(default=5, gt=0, description="Number of rotated files kept (file.1 .. file.N)")


class RemoteOptions(BaseModel):
    """Remote collector settings.

    `url` is deliberately not validated: a malformed URL disables delivery at
    flush time instead of failing logger construction.
    """

    url: str = Field(..., description="Collector endpoint (http/https)")
    interval_ms: int = Field(default=5000, gt=0, description="Recurring flush-check period")
    batch_size: int = Field(default=10, gt=0, description="Records per flush / per durable drain")
    headers: dict[str, str] = Field(default_factory=dict, description="Static headers added to every request")
    timeout_ms: int = Field(default=5000, gt=0, description="Per-request timeout")
    max_buffer: int = Field(default=1000, gt=0, description="Cap on in-memory reinsertion after failure")

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000.0

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


class LoggerConfig(BaseModel):
    """Top-level logger configuration."""

    level: Level = Field(default="info", description="Most verbose level that is emitted")
    env: str = Field(default="development", description="Runtime environment; 'production' drops debug")
    label: str = Field(default="", description="Optional label rendered as [label]")
    colors: bool = Field(default=True, description="ANSI colors in plain console output")
    json_output: bool = Field(default=False, description="Render lines as compact JSON")
    file: str | None = Field(default=None, description="Append rendered lines to this file")
    rotation: RotationOptions | None = Field(default=None, description="Size-based file rotation")
    remote: RemoteOptions | None = Field(default=None, description="Remote collector delivery")
    time_zone: str | None = Field(default=None, description="IANA zone for timestamps (UTC when unset)")
    remote_reliable: bool = Field(default=False, description="Persist failed batches to the durable queue")
    remote_queue_path: str | None = Field(default="./logs/remote-queue.jsonl", description="Durable queue file")
    remote_gzip: bool = Field(default=False, description="Gzip request bodies")

    @field_validator("time_zone")
    def validate_time_zone(cls, v: str | None) -> str | None:
        """Validate the zone name resolves through the IANA database."""
        if v is None or v == "":
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"time_zone must be an IANA zone name (e.g. 'Europe/Paris'). Got: {v!r}") from exc
        return v


def load_config() -> LoggerConfig:
    """Load logger configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when a value cannot be parsed.
    """
    dotenv.load_dotenv()

    remote: RemoteOptions | None = None
    remote_url = _get_env_str("SMARTLOG_REMOTE_URL")
    if remote_url:
        remote = RemoteOptions(
            url=remote_url,
            interval_ms=_get_env_number("SMARTLOG_REMOTE_INTERVAL_MS", 5000, int),
            batch_size=_get_env_number("SMARTLOG_REMOTE_BATCH_SIZE", 10, int),
            headers=_get_env_headers("SMARTLOG_REMOTE_HEADERS"),
            timeout_ms=_get_env_number("SMARTLOG_REMOTE_TIMEOUT_MS", 5000, int),
            max_buffer=_get_env_number("SMARTLOG_REMOTE_MAX_BUFFER", 1000, int),
        )

    rotation: RotationOptions | None = None
    rotation_size = _get_env_number("SMARTLOG_ROTATION_SIZE", 0, int)
    if rotation_size:
        rotation = RotationOptions(
            size=rotation_size,
            max_files=_get_env_number("SMARTLOG_ROTATION_MAX_FILES", 5, int),
        )

    return LoggerConfig(
        level=_get_env_str("SMARTLOG_LEVEL", "info"),  # type: ignore[arg-type]
        env=_get_env_str("SMARTLOG_ENV") or _get_env_str("ENVIRONMENT", "development"),
        label=_get_env_str("SMARTLOG_LABEL", ""),
        colors=_get_env_bool("SMARTLOG_COLORS", True),
        json_output=_get_env_bool("SMARTLOG_JSON", False),
        file=_get_env_str("SMARTLOG_FILE"),
        rotation=rotation,
        remote=remote,
        time_zone=_get_env_str("SMARTLOG_TIME_ZONE"),
        remote_reliable=_get_env_bool("SMARTLOG_REMOTE_RELIABLE", False),
        remote_queue_path=_get_env_str("SMARTLOG_REMOTE_QUEUE_PATH", "./logs/remote-queue.jsonl"),
        remote_gzip=_get_env_bool("SMARTLOG_REMOTE_GZIP", False),
    )
