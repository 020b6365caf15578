from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _no_threads_in_unit_tests(monkeypatch: pytest.MonkeyPatch):
    """Run `asyncio.to_thread` inline for unit tests.

    The flush controller uses `asyncio.to_thread` to keep the blocking HTTP call
    off the event loop. In unit tests the transport is fake, and threadpool
    workers can keep the Python process alive longer than expected.
    """

    async def _to_thread(func, /, *args, **kwargs):  # noqa: ANN001, D401
        return func(*args, **kwargs)

    monkeypatch.setattr("delivery.controller.asyncio.to_thread", _to_thread)
    yield
