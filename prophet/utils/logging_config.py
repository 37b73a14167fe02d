"""
Logging Setup
=============
One root configuration for the API process: coloured console output on
stderr plus an optional daily file under LOG_DIR.

Application modules log through `logging.getLogger(__name__)`, so everything
under `prophet.*` inherits from here. httpx/httpcore log every request at
INFO; they are held at WARNING so inference traffic does not drown the
sandbox output.
"""
import logging
import os
import sys
from datetime import datetime
from typing import Optional, Union

from prophet.core.config import LOG_DIR, LOG_LEVEL

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_PROPAGATED = ("prophet", "main", "uvicorn", "uvicorn.error", "uvicorn.access")
_QUIETED = ("httpx", "httpcore")


class ColoredFormatter(logging.Formatter):
    """Colours the whole record by level; unknown levels are left plain."""

    COLOURS = {
        logging.DEBUG: "\x1b[36m",
        logging.INFO: "\x1b[32m",
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record):
        text = super().format(record)
        colour = self.COLOURS.get(record.levelno)
        return f"{colour}{text}{self.RESET}" if colour else text


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _daily_file_handler(log_dir: str) -> logging.Handler:
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.join(log_dir, f"prophet_{datetime.now().strftime('%Y%m%d')}.log")
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(level: Union[int, str] = LOG_LEVEL, log_dir: Optional[str] = LOG_DIR) -> None:
    """Install console (+ daily file) handlers on the root logger, replacing existing ones."""
    level = _resolve_level(level)
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ColoredFormatter())
    root_logger.addHandler(console)

    if log_dir:
        root_logger.addHandler(_daily_file_handler(log_dir))

    for name in _PROPAGATED:
        named = logging.getLogger(name)
        named.setLevel(level)
        named.propagate = True
    for name in _QUIETED:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    root_logger.info(
        "Logging initialized at %s (console%s)",
        logging.getLevelName(level), f" + {log_dir}" if log_dir else "",
    )
