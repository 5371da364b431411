"""
Logging setup for the supervisor and the operator commands.

Writes a rotating, append-only log inside the working directory. Each
record is one line; messages spanning several lines keep their
continuation lines indented with a literal tab.
"""

import logging
from logging.handlers import RotatingFileHandler

from .config import Config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ContinuationFormatter(logging.Formatter):
    """Formatter that tab-indents every line after the first."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        return "\n\t".join(text.splitlines()) if "\n" in text else text


def setup_logging(config: Config, console: bool = True, level: int = logging.INFO) -> logging.Logger:
    """Attach file (and optionally console) handlers to the root logger."""
    formatter = ContinuationFormatter(LOG_FORMAT)

    # Rotating file handler (auto-compaction)
    file_handler = RotatingFileHandler(
        config.log_file,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )
    file_handler.setFormatter(formatter)
    handlers = [file_handler]

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    return logging.getLogger("procsentry")
