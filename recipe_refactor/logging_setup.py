from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "[%(asctime)s] [%(levelname)s] [%(threadName)s] %(message)s"
CONSOLE_FORMAT = "[%(threadName)s] %(message)s"
DATE_FORMAT = "%H:%M:%S"

_HANDLER_MARKER = "_recipe_refactor_handler"


class RoutineNoiseFilter(logging.Filter):
    """Keep per-entry scan chatter (``extra={"routine": True}``) out of the console."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True
        return not getattr(record, "routine", False)


def configure_logging(
    log_file: Optional[Path],
    *,
    level: int = logging.INFO,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Install the console and append-only file handlers on the root logger.

    Calling it again replaces the handlers from the previous call.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        log_time_format=DATE_FORMAT,
    )
    console_handler.setLevel(level)
    console_handler.addFilter(RoutineNoiseFilter())
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    setattr(console_handler, _HANDLER_MARKER, True)
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        setattr(file_handler, _HANDLER_MARKER, True)
        root.addHandler(file_handler)
    return root
