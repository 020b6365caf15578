"""HTTP delivery of record batches to a remote collector.

One call to `HttpTransport.send` issues exactly one POST. There is no retry
here: retry and backoff belong to the flush controller.

The HTTP call uses `requests`; the controller runs it in a worker thread so the
event loop is never blocked on the network.
"""

from __future__ import annotations

import gzip
import json
import zlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import requests  # type: ignore


@dataclass(frozen=True)
class DeliveryTarget:
    """A validated collector endpoint."""

    url: str
    scheme: str
    host: str

    @classmethod
    def parse(cls, url: str | None) -> DeliveryTarget | None:
        """Return a target for an absolute http(s) URL, or None when malformed."""
        if not url:
            return None
        try:
            parts = urlsplit(url.strip())
            # Accessing .port validates it (raises ValueError when out of range).
            parts.port
        except ValueError:
            return None
        if parts.scheme not in {"http", "https"} or not parts.hostname:
            return None
        return cls(url=url.strip(), scheme=parts.scheme, host=parts.hostname)


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of a single delivery attempt."""

    success: bool
    reason: str | None = None
    status_code: int | None = None

    @classmethod
    def ok(cls, status_code: int | None = None) -> DeliveryOutcome:
        return cls(success=True, status_code=status_code)

    @classmethod
    def failed(cls, reason: str) -> DeliveryOutcome:
        return cls(success=False, reason=reason)


@dataclass(frozen=True)
class EncodedBody:
    data: bytes
    headers: dict[str, str] = field(default_factory=dict)


def encode_batch(batch: Sequence[Mapping[str, Any]], *, use_gzip: bool) -> EncodedBody:
    """Serialize a batch as a JSON array, gzip-compressing it when requested.

    Compression failures fall back to the plain body without the
    `Content-Encoding` marker.
    """
    raw = json.dumps(list(batch), separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")
    if use_gzip:
        try:
            return EncodedBody(data=gzip.compress(raw), headers={"Content-Encoding": "gzip"})
        except (OSError, zlib.error):
            pass
    return EncodedBody(data=raw)


class HttpTransport:
    """Posts batches to a collector and classifies the result.

    Any completed HTTP exchange counts as delivered: status codes and bodies are
    not inspected, so 4xx/5xx responses are treated as success. Connection
    errors, DNS failures, resets and timeouts are failures.
    """

    def __init__(
        self,
        *,
        headers: Mapping[str, str] | None = None,
        timeout_s: float = 5.0,
        use_gzip: bool = False,
    ) -> None:
        """Create a transport.

        Args:
            headers: Static headers merged into every request (e.g. auth tokens).
            timeout_s: Connect/read timeout for each request.
            use_gzip: Compress request bodies.
        """
        self.headers: dict[str, str] = dict(headers or {})
        self.timeout_s = timeout_s
        self.use_gzip = use_gzip

    def build_headers(self, body: EncodedBody) -> dict[str, str]:
        """Default headers, then static headers, then the encoding marker."""
        headers = {"Content-Type": "application/json", "Content-Length": str(len(body.data))}
        headers.update(self.headers)
        headers.update(body.headers)
        return headers

    def send(self, batch: Sequence[Mapping[str, Any]], target: DeliveryTarget) -> DeliveryOutcome:
        """Issue one POST for `batch` (runs synchronously; call from a worker thread)."""
        body = encode_batch(batch, use_gzip=self.use_gzip)
        try:
            resp = requests.post(
                target.url,
                data=body.data,
                headers=self.build_headers(body),
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            return DeliveryOutcome.failed(f"{type(exc).__name__}: {exc}")
        # Response body is drained by requests and discarded.
        resp.close()
        return DeliveryOutcome.ok(resp.status_code)
