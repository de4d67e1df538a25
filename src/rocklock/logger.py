"""Logging setup for the rocklock command-line driver."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tqdm import tqdm

if TYPE_CHECKING:
    from .config import Settings

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s"

# Only shown when rocklock itself logs at debug level
THIRD_PARTY_LOGGERS = ("urllib3", "requests")


class ProgressAwareHandler(logging.StreamHandler):
    """Writes records with :func:`tqdm.write`, so a download progress bar is redrawn below them."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
            self.flush()
        except Exception:  # noqa: BLE001
            self.handleError(record)


def parse_log_level(name: str) -> int | None:
    """Return the numeric level called ``name`` (case-insensitive), or None if there is no such level."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else None


def setup_logger(settings: Settings) -> None:
    """Route every rocklock log record to stderr, and to ``settings.log_file`` when one is set.

    Handlers from an earlier call are replaced. An unknown ``settings.log_level``
    falls back to info and is reported once the handlers are in place.
    """
    level = parse_log_level(settings.log_level)
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root_logger.setLevel(logging.INFO if level is None else level)

    console = ProgressAwareHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console)
    if settings.log_file is not None:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)

    third_party_level = logging.DEBUG if level == logging.DEBUG else max(root_logger.level, logging.WARNING)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    if level is None:
        logging.getLogger(__name__).warning("Unknown log level %r, using info", settings.log_level)
