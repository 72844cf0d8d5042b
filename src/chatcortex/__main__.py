"""Main entry point for running the chatcortex server."""

import asyncio
import contextlib
import logging
import os
from dataclasses import dataclass

from aiohttp import web

from chatcortex.app import build_application, configure_logging
from chatcortex.core.config import get_config
from chatcortex.core.error_handling import (
    install_global_exception_hooks,
    register_asyncio_exception_handler,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _EntrypointState:
    server_runner: web.AppRunner | None = None


_STATE = _EntrypointState()


async def shutdown() -> None:
    """Stop the HTTP server; safe to call multiple times."""
    if _STATE.server_runner is not None:
        with contextlib.suppress(OSError, RuntimeError):
            await _STATE.server_runner.cleanup()
        _STATE.server_runner = None


async def serve() -> None:
    """Start the HTTP server and run until cancelled."""
    config = get_config()
    configure_logging(config)

    _STATE.server_runner = web.AppRunner(build_application(config))
    await _STATE.server_runner.setup()
    port = int(os.environ.get("PORT", str(config.get("port", 8001))))
    host = os.environ.get("HOST", config.get("host"))
    await web.TCPSite(_STATE.server_runner, host, port).start()
    logger.info("chatcortex listening on %s:%d", host or "0.0.0.0", port)  # noqa: S104

    try:
        await asyncio.Event().wait()
    finally:
        await asyncio.shield(shutdown())


def main() -> None:
    """Run the application entry point."""
    install_global_exception_hooks()
    with asyncio.Runner() as runner:
        register_asyncio_exception_handler(runner.get_loop())
        try:
            runner.run(serve())
        except KeyboardInterrupt:
            with contextlib.suppress(KeyboardInterrupt):
                runner.run(shutdown())


if __name__ == "__main__":
    main()
