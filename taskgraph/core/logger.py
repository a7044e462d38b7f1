import logging
import sys
from pathlib import Path
from typing import Optional

from taskgraph.core.config import settings

LEVEL_COLOURS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"

# Third-party loggers that drown out engine output at INFO
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


class ColourFormatter(logging.Formatter):
    """Console formatter that colours the level name only."""

    def format(self, record: logging.LogRecord) -> str:
        plain = record.levelname
        colour = LEVEL_COLOURS.get(plain)
        if colour:
            record.levelname = f"{colour}{plain}{RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def setup_logging(log_file: Optional[Path] = None) -> None:
    """
    Configure the root logger once for the process.

    Console output is coloured, the file copy is plain and carries the
    calling function and line.
    :param log_file: Where to write the file copy, ``logs/taskgraph.log`` by default.
    """
    if log_file is None:
        log_file = Path("logs") / "taskgraph.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ColourFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(console)

    to_file = logging.FileHandler(log_file)
    to_file.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(to_file)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
