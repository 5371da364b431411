"""
Filesystem mailbox carrying operator intents to the supervisor loop.

An intent is pending while its marker file exists. The operator commands
are the only writers of new intents and the loop is the only reader, so
exclusive create and atomic rename are all the coordination needed.
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class CommandChannel(ABC):
    """Pending STOP and ABORT intents."""

    @abstractmethod
    def post_stop(self):
        """Request a stop. Posting twice is the same as posting once."""

    @abstractmethod
    def post_abort(self):
        """Request an abort. Posting twice is the same as posting once."""

    @abstractmethod
    def clear_stop(self):
        """Withdraw a stop request so the process may be started again."""

    @abstractmethod
    def clear_abort_escalate_to_stop(self):
        """Turn a serviced abort into a stop so the process stays down."""

    @abstractmethod
    def is_stop_requested(self) -> bool:
        ...

    @abstractmethod
    def is_abort_requested(self) -> bool:
        ...


class FileCommandChannel(CommandChannel):
    """Intents stored as marker files in the working directory."""

    def __init__(self, stop_file: Path, abort_file: Path):
        self.stop_file = Path(stop_file)
        self.abort_file = Path(abort_file)

    @staticmethod
    def _touch(path: Path):
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return
        os.close(fd)

    def post_stop(self):
        self._touch(self.stop_file)

    def post_abort(self):
        self._touch(self.abort_file)

    def clear_stop(self):
        self.stop_file.unlink(missing_ok=True)

    def clear_abort_escalate_to_stop(self):
        # One rename both sets stop and clears abort
        try:
            os.replace(self.abort_file, self.stop_file)
        except FileNotFoundError:
            self._touch(self.stop_file)
        logger.info("Abort serviced, stop request left in place")

    def is_stop_requested(self) -> bool:
        return self.stop_file.exists()

    def is_abort_requested(self) -> bool:
        return self.abort_file.exists()


class MemoryCommandChannel(CommandChannel):
    """In-process channel, used where no working directory is involved."""

    def __init__(self, stop: bool = False, abort: bool = False):
        self.stop = stop
        self.abort = abort

    def post_stop(self):
        self.stop = True

    def post_abort(self):
        self.abort = True

    def clear_stop(self):
        self.stop = False

    def clear_abort_escalate_to_stop(self):
        self.stop = True
        self.abort = False

    def is_stop_requested(self) -> bool:
        return self.stop

    def is_abort_requested(self) -> bool:
        return self.abort
