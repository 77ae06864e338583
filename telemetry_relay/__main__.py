# Run: python -m telemetry_relay

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from telemetry_relay.config import settings
from telemetry_relay.server import build_relay

log = logging.getLogger("telemetry_relay")


async def main() -> None:
    gateway = build_relay(settings)
    await gateway.start()
    log.info("server started on http://localhost:%d", gateway.port)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # not available on Windows event loops; Ctrl+C still raises there
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        await gateway.stop()


def run() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    run()
