"""Demo entrypoint wiring together the logger and remote delivery.

This module intentionally contains a small, end-to-end "smoke test" that:

- Loads configuration from environment.
- Re-submits records left in the durable queue by a previous run.
- Emits a handful of events at every level.
- Flushes remote delivery and closes the logger.

It is **not** intended to be production logic; it is a convenient manual
harness for pointing the logger at a collector (set `SMARTLOG_REMOTE_URL`).
"""

from __future__ import annotations

import asyncio
import os

from smartlog import SmartLogger


async def run_demo() -> None:
    """Emit a few events and flush them to the configured collector (best-effort)."""
    logger = SmartLogger.from_env()
    try:
        # Records persisted by an earlier run go out first.
        drained = logger.drain_persisted_queue()
        if drained:
            logger.info("re-submitted persisted records", {"count": drained})

        count = int(os.getenv("DEMO_EVENT_COUNT", "5"))
        for i in range(count):
            logger.info("demo event", {"seq": i})
        logger.warn("disk usage above threshold", {"percent": 91})
        logger.debug("debug detail", "shown only outside production")
        try:
            raise RuntimeError("demo failure")
        except RuntimeError as exc:
            logger.error(exc)

        await logger.flush_remote()
    finally:
        await logger.aclose()

    if logger.remote is not None:
        print(f"[remote] {logger.remote.degraded_status()}")


def main() -> None:
    """CLI entrypoint for running the demo with `python -m main` / `python src/main.py`."""
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
