from __future__ import annotations

import asyncio
import logging
import os
import signal

import uvicorn

from multi_git.api import create_app
from multi_git.config import load_options
from multi_git.sanitize import RedactingFilter
from multi_git.service import MultiGitService

__VERSION__ = "0.1.0"


def configure_logging(level: str) -> None:
    log_level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    logging.basicConfig(
        level=log_level_map.get(level.lower(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(RedactingFilter())


async def main() -> None:
    options = load_options()
    configure_logging(options.log_level)

    service = MultiGitService(options)
    build_version = os.getenv("MULTI_GIT_BUILD_VERSION", "dev")
    logging.getLogger(__name__).info(
        "Multi Git service starting | version=%s | build=%s | repositories=%d | state=%s",
        __VERSION__,
        build_version,
        len(service.store.list()),
        service.store.path,
    )
    app = create_app(service)
    http_port = service.options.http_api_port
    server: uvicorn.Server | None = None
    if http_port > 0:
        config = uvicorn.Config(
            app, host=service.options.http_host, port=http_port, log_level="info"
        )
        server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()

    def _shutdown_signal() -> None:
        if server:
            server.should_exit = True
        loop.create_task(service.shutdown())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown_signal)

    async with asyncio.TaskGroup() as tg:
        tg.create_task(service.run())
        if server:
            tg.create_task(server.serve())


if __name__ == "__main__":
    asyncio.run(main())
