"""Log event models.

An `EventRecord` is what the formatter renders and what remote delivery ships.
Records are immutable once created; containers (the delivery buffer or the
durable queue) hold their JSON payload form.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from config import Level

# Lower is more severe; a record is emitted when its rank <= the logger's rank.
LEVEL_RANKS: dict[str, int] = {"error": 0, "warn": 1, "info": 2, "debug": 3}


class EventRecord(BaseModel):
    """One structured log entry."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    timestamp: str
    level: Level
    message: str

    # Optional fields are omitted from the payload when empty.
    label: str | None = None
    context: Any = None

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready mapping (key order: timestamp, level, label, message, context)."""
        payload: dict[str, Any] = {"timestamp": self.timestamp, "level": self.level}
        if self.label:
            payload["label"] = self.label
        payload["message"] = self.message
        if self.context is not None:
            payload["context"] = self.context
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> EventRecord:
        """Parse a payload produced by `to_payload` (or read back from disk)."""
        return cls.model_validate(dict(payload))
