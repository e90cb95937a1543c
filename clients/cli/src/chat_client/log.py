"""Process-wide logging setup for the terminal client."""

from __future__ import annotations

import logging
from pathlib import Path

DEFAULT_LOG_FILE = Path.home() / ".chat_client" / "chat_client.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Path | str = "") -> Path:
    """Send log records to a file; the curses screen owns the terminal.

    Returns the path written to.
    """

    target = Path(log_file).expanduser() if log_file else DEFAULT_LOG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.FileHandler(target, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.ERROR)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.info("Logging initialized: level=%s, file=%s", level, target)
    return target
