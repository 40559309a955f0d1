import asyncio
import contextlib
import logging
import os
import stat
import sys
from collections.abc import AsyncIterator
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

from rich.console import Console

from .config import Config
from .constants import APP_NAME, LOG_FILE
from .session import AutosaveSession

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console(highlight=False)


def setup_logging(interactive: bool, max_log_size: int | None = None) -> None:
    """Attaches handlers to the shared application logger.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr
                            and to the rotating log file.
        max_log_size (int | None, optional): Bytes before the log file rotates.
                                             Defaults to the configured limit.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # In listen mode stdout carries protocol replies, so logs go to stderr.
    stream_handler = logging.StreamHandler(sys.stdout if interactive else sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size or Config().limits.max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


async def _open_pipe(
    stream: TextIO,
) -> tuple[asyncio.ReadTransport, asyncio.StreamReader] | None:
    """Attaches a stream reader when `stream` is a pipe, terminal or socket."""
    try:
        mode = os.fstat(stream.fileno()).st_mode
    except (AttributeError, OSError, ValueError):
        return None
    if not (stat.S_ISFIFO(mode) or stat.S_ISCHR(mode) or stat.S_ISSOCK(mode)):
        return None

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    transport, _ = await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), stream
    )
    return transport, reader


async def read_lines(stream: TextIO) -> AsyncIterator[str]:
    """Yields lines from a stream without stalling the event loop.

    Pipes and terminals are watched by the loop itself, so an interrupt never
    waits on a reader thread blocked in `readline`. In-memory buffers and
    regular files cannot block and are read directly.
    """
    piped = await _open_pipe(stream)
    if piped is None:
        for line in iter(stream.readline, ""):
            yield line
            # Lets timers and running jobs progress between lines.
            await asyncio.sleep(0)
        return

    transport, reader = piped
    encoding = getattr(stream, "encoding", None) or "utf-8"
    try:
        while True:
            raw = await reader.readline()
            if not raw:
                return
            yield raw.decode(encoding, errors="replace")
    finally:
        transport.close()


def handle_line(session: AutosaveSession, line: str) -> bool:
    """Applies one line of the listen protocol to a session.

    A line is either a file path (a save event) or a control command prefixed
    with ':' (`:enable`, `:disable`, `:toggle`, `:status`, `:quit`).

    Args:
        session (AutosaveSession): The session receiving the event.
        line (str): The raw line, trailing newline included.

    Returns:
        bool: False when the listener should stop, True otherwise.
    """
    text = line.strip()
    if not text:
        return True

    if not text.startswith(":"):
        session.submit(text)
        return True

    command = text[1:].strip().lower()
    if command == "enable":
        session.enable()
        console.print("autosaver: Enabled")
    elif command == "disable":
        session.disable()
        console.print("autosaver: Disabled")
    elif command == "toggle":
        state = "Enabled" if session.toggle() else "Disabled"
        console.print(f"autosaver: {state}")
    elif command == "status":
        console.print(str(session.status()))
    elif command in ("quit", "exit"):
        return False
    else:
        logger.warning(f"Unknown command '{text}'. Ignoring.")
    return True


async def listen(session: AutosaveSession, stream: TextIO) -> None:
    """Feeds a session from a line stream until EOF or `:quit`.

    On exit, saves still inside the debounce window are admitted and the queue
    is drained, so the last edit before the editor closes is still pushed.
    """
    logger.info("LISTENING for save events.")
    try:
        async with contextlib.aclosing(read_lines(stream)) as lines:
            async for line in lines:
                if not handle_line(session, line):
                    break
    finally:
        await session.shutdown(flush=True)
        logger.info(
            f"STOPPED: {session.succeeded} pushed, {session.failed} failed."
        )


async def save_once(session: AutosaveSession, path: Path) -> bool:
    """Runs a single save through the pipeline without waiting out the debounce.

    Returns:
        bool: True if the save was admitted and reached DONE.
    """
    if not session.submit(path):
        return False
    session.scheduler.flush()
    await session.drain()
    return session.failed == 0 and session.succeeded > 0


def main(
    config: Config | None = None,
    stream: TextIO | None = None,
    interactive: bool = False,
) -> None:
    """The listen loop entry point.

    Args:
        config (Config | None, optional): Configuration to use. Defaults to the
                                          layered configuration for the cwd.
        stream (TextIO | None, optional): Event source. Defaults to stdin.
        interactive (bool, optional): Log to stdout instead of stderr and file.
                                      Defaults to False.
    """
    config = config or Config.load(Path.cwd())
    setup_logging(interactive, config.limits.max_log_size)
    session = AutosaveSession(config)
    try:
        asyncio.run(listen(session, stream or sys.stdin))
    except KeyboardInterrupt:
        logger.info("Interrupted.")


if __name__ == "__main__":
    main()
