from __future__ import annotations

import asyncio
import gzip
import json
import socket
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

import pytest

from config import LoggerConfig, RemoteOptions
from smartlog import InMemoryLogSink, SmartLogger


class _Collector:
    """Minimal local collector capturing POSTed batches."""

    def __init__(self, status_code: int = 200) -> None:
        self.requests: list[dict[str, Any]] = []
        collector = self

        class _Handler(BaseHTTPRequestHandler):
            def do_POST(self) -> None:  # noqa: N802 - http.server naming
                length = int(self.headers.get("Content-Length", "0"))
                body = self.rfile.read(length)
                collector.requests.append({"headers": dict(self.headers), "body": body})
                self.send_response(status_code)
                self.end_headers()

            def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
                return

        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
        self.url = f"http://127.0.0.1:{self.server.server_address[1]}/ingest"
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    def __enter__(self) -> _Collector:
        self._thread.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.server.shutdown()
        self.server.server_close()


@pytest.fixture
def collector() -> Iterator[_Collector]:
    with _Collector() as c:
        yield c


def _unused_port_url() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"http://127.0.0.1:{port}/ingest"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gzip_batch_reaches_local_collector(collector: _Collector) -> None:
    logger = SmartLogger(
        LoggerConfig(
            label="it",
            remote=RemoteOptions(url=collector.url, batch_size=3, headers={"X-Api-Key": "k"}, timeout_ms=2000),
            remote_gzip=True,
        ),
        console=InMemoryLogSink(),
    )
    try:
        for i in range(3):
            logger.info("event", {"seq": i})
        await logger.flush_remote()
        for _ in range(50):
            if collector.requests:
                break
            await asyncio.sleep(0.05)
    finally:
        await logger.aclose()

    assert len(collector.requests) == 1
    req = collector.requests[0]
    assert req["headers"]["Content-Encoding"] == "gzip"
    assert req["headers"]["X-Api-Key"] == "k"
    batch = json.loads(gzip.decompress(req["body"]))
    assert [r["context"]["seq"] for r in batch] == [0, 1, 2]
    assert all(r["label"] == "it" for r in batch)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_server_error_status_still_counts_as_delivered() -> None:
    with _Collector(status_code=500) as c:
        logger = SmartLogger(
            LoggerConfig(remote=RemoteOptions(url=c.url, batch_size=1, timeout_ms=2000)),
            console=InMemoryLogSink(),
        )
        try:
            logger.error("boom")
            await logger.flush_remote()
            for _ in range(50):
                if c.requests:
                    break
                await asyncio.sleep(0.05)
        finally:
            await logger.aclose()

        assert len(c.requests) == 1
        assert logger.remote is not None
        assert logger.remote.fail_count == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unreachable_collector_persists_batch_to_durable_queue(tmp_path: Path) -> None:
    queue_path = tmp_path / "q.jsonl"
    logger = SmartLogger(
        LoggerConfig(
            remote=RemoteOptions(url=_unused_port_url(), batch_size=2, timeout_ms=1000),
            remote_reliable=True,
            remote_queue_path=str(queue_path),
        ),
        console=InMemoryLogSink(),
    )
    assert logger.remote is not None
    try:
        logger.info("A")
        logger.info("B")
        for _ in range(60):
            if logger.remote.fail_count:
                break
            await asyncio.sleep(0.05)

        lines = queue_path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["A", "B"]
        assert logger.remote.fail_count == 1
    finally:
        await logger.aclose()
