"""Rendering of log events into console/file lines."""

from __future__ import annotations

import json
import re
import traceback
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from .models import EventRecord

COLORS: dict[str, str] = {
    "error": "\x1b[31m",
    "warn": "\x1b[33m",
    "info": "\x1b[32m",
    "debug": "\x1b[36m",
    "reset": "\x1b[0m",
    "dim": "\x1b[2m",
}

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def timestamp(time_zone: str | None = None) -> str:
    """Current time as ISO-8601.

    UTC renders as `2024-01-02T03:04:05.678Z`. With a zone, the local wall time
    is rendered without an offset suffix (`2024-01-02T04:04:05.678`). Unknown
    zones fall back to UTC.
    """
    now = datetime.now(tz=timezone.utc)
    if time_zone:
        try:
            local = now.astimezone(ZoneInfo(time_zone))
        except (KeyError, ValueError):
            pass
        else:
            return local.strftime("%Y-%m-%dT%H:%M:%S.") + f"{local.microsecond // 1000:03d}"
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _is_structured(value: Any) -> bool:
    return isinstance(value, (Mapping, list, tuple))


def prepare_message(msg: Any, args: tuple[Any, ...]) -> tuple[str, Any]:
    """Split a log call's arguments into `(message, context)`.

    - An exception becomes its message, with the formatted traceback under
      `context["stack"]` and any extra args under `context["extra"]`.
    - A single mapping/sequence argument becomes the context.
    - Anything else is joined into the message with spaces.
    """
    if isinstance(msg, BaseException):
        context: dict[str, Any] = {"stack": "".join(traceback.format_exception(msg)).rstrip()}
        if args:
            context["extra"] = list(args)
        return str(msg), context

    if not args:
        return str(msg), None

    if len(args) == 1 and _is_structured(args[0]):
        return str(msg), args[0]

    parts = [str(msg)]
    for arg in args:
        parts.append(json.dumps(arg, default=str) if _is_structured(arg) else str(arg))
    return " ".join(parts), None


def _render_context(context: Any) -> str:
    if isinstance(context, str):
        return context
    try:
        return json.dumps(context, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(context)


def format_line(record: EventRecord, *, json_output: bool = False, colors: bool = True) -> str:
    """Render a record as compact JSON or as a (optionally colored) plain line."""
    if json_output:
        return json.dumps(record.to_payload(), separators=(",", ":"), ensure_ascii=False, default=str)

    color = COLORS[record.level] if colors else ""
    reset = COLORS["reset"] if colors else ""
    dim = COLORS["dim"] if colors else ""
    label = f"[{record.label}]" if record.label else ""

    ctx = ""
    if record.context is not None:
        ctx = f" {dim}{_render_context(record.context)}{reset}"
    return f"{color}{record.timestamp} {record.level.upper()} {label}{reset} - {record.message}{ctx}"


def strip_ansi(line: str) -> str:
    """Remove ANSI color escapes (used before writing plain lines to files)."""
    return _ANSI_RE.sub("", line)
