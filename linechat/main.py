"""linechat 진입점."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, Sequence, TextIO

from .config import Settings, parse_args
from .hub import ServerHub
from .peer import ConnectionManager
from .protocol import EXIT_FAILURE, EXIT_OK, ConfigError, ListenError
from .send_queue import SendQueue
from .terminal import Console, PromptLogHandler, RawInput

LOGGER = logging.getLogger("linechat")


def configure_logging(
    role: str,
    level: str,
    *,
    stream: TextIO = sys.stdout,
    handler: Optional[logging.Handler] = None,
) -> int:
    tag = f"\x1b[32m{role}\x1b[0m" if stream.isatty() else role
    log_level = getattr(logging, level.upper(), logging.INFO)
    fmt = f"%(asctime)s [{tag}] [%(levelname)s] %(name)s: %(message)s"
    if handler is not None:
        logging.basicConfig(level=log_level, format=fmt, handlers=[handler], force=True)
    else:
        logging.basicConfig(level=log_level, format=fmt, stream=stream, force=True)
    return log_level


# ---------- hub ----------
async def serve_hub(settings: Settings) -> int:
    hub = ServerHub(settings.host, settings.port)
    try:
        await hub.start()
        await hub.serve()
    except ListenError as exc:
        LOGGER.error("hub stopped: %s", exc)
    finally:
        hub.stop()
    return EXIT_FAILURE


def run_hub(settings: Settings) -> int:
    configure_logging("server", settings.log_level)
    LOGGER.info("Running server")
    try:
        return asyncio.run(serve_hub(settings))
    except KeyboardInterrupt:
        LOGGER.info("KeyboardInterrupt → shutting down")
        return EXIT_OK


# ---------- peer ----------
async def run_peer_session(settings: Settings, console: Console) -> int:
    loop = asyncio.get_running_loop()
    done: asyncio.Future = loop.create_future()

    def on_quit(code: int) -> None:
        if not done.done():
            done.set_result(code)

    queue = SendQueue()
    manager = ConnectionManager(settings.host, settings.port, queue=queue)
    console.on_submit = queue.submit
    console.on_quit = on_quit
    raw_input = RawInput(console)
    raw_input.attach(loop)
    manager.start()
    try:
        return await done
    finally:
        manager.stop()
        queue.close()
        raw_input.detach(loop)
        console.close()


def run_peer(settings: Settings) -> int:
    console = Console(sys.stdout)
    console.base_level = configure_logging(
        "client", settings.log_level, handler=PromptLogHandler(console)
    )
    try:
        return asyncio.run(run_peer_session(settings, console))
    except KeyboardInterrupt:
        return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        settings = parse_args(argv)
    except ConfigError as exc:
        sys.stderr.write(f"{exc}\n")
        return EXIT_FAILURE
    if settings.use == "server":
        return run_hub(settings)
    return run_peer(settings)


if __name__ == "__main__":
    sys.exit(main())
