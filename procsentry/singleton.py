"""
Single-instance guard for a working directory.

The lock record holds the PID of the supervisor that owns the directory.
A record only counts as held when that PID is alive *and* the program it
runs is the supervisor, so a PID reused by an unrelated process is
reclaimed even when one of its arguments happens to mention the identity.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import psutil

from .errors import AlreadyRunning, CorruptRecord
from .storage import write_atomic

logger = logging.getLogger(__name__)

# Interpreter options that consume the following argument
PYTHON_OPTIONS_WITH_VALUE = ("-W", "-X", "-Q")


def entry_point(cmdline: list[str]) -> Optional[str]:
    """
    Name of the program a command line runs.

    For a Python interpreter this is the module after `-m` or the script
    it was given, so `python -m procsentry dir` and `/venv/bin/procsentry dir`
    both give "procsentry". Returns None for `python -c` and empty command lines.
    """
    args = list(cmdline)
    if args and os.path.basename(args[0]).startswith("python"):
        args.pop(0)
        while args and args[0].startswith("-") and args[0] != "-":
            option = args.pop(0)
            if option.startswith("-c"):
                return None
            if option == "-m":
                return args[0] if args else None
            if option.startswith("-m"):
                return option[2:]
            if option in PYTHON_OPTIONS_WITH_VALUE and args:
                args.pop(0)
    if not args:
        return None
    return os.path.basename(args[0])


class SingletonGuard:
    """Lock record with a liveness check."""

    def __init__(self, lock_file: Path, identity: str, pid: int = None):
        self.lock_file = Path(lock_file)
        self.identity = identity
        self.pid = pid or os.getpid()

    def read_owner(self) -> Optional[int]:
        """PID stored in the record, None if there is no record."""
        try:
            text = self.lock_file.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CorruptRecord(f"Lock record {self.lock_file} is unreadable: {e}")
        try:
            return int(text)
        except ValueError:
            raise CorruptRecord(f"Lock record {self.lock_file} is empty or unreadable: {text!r}")

    def is_supervisor(self, pid: int) -> bool:
        """True if `pid` is a live process running this supervisor."""
        try:
            proc = psutil.Process(pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                return False
            cmdline = proc.cmdline()
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            logger.warning(f"Access denied inspecting PID {pid}, assuming it is not a supervisor")
            return False
        name = entry_point(cmdline)
        if name is None:
            return False
        return self.identity in (name, name.split(".")[0])

    def acquire(self):
        """Take ownership of the directory or raise AlreadyRunning."""
        try:
            fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            pass
        else:
            with os.fdopen(fd, "w") as f:
                f.write(f"{self.pid}\n")
            logger.info(f"Acquired lock {self.lock_file}")
            return

        owner = self.read_owner()
        if owner == self.pid:
            return

        if owner is not None and self.is_supervisor(owner):
            raise AlreadyRunning(owner)

        logger.info(f"Reclaiming stale lock {self.lock_file} from PID {owner}")
        write_atomic(self.lock_file, f"{self.pid}\n")

    def release(self):
        """Drop the record if we own it."""
        try:
            if self.read_owner() == self.pid:
                self.lock_file.unlink()
                logger.info(f"Released lock {self.lock_file}")
        except (CorruptRecord, FileNotFoundError):
            pass

    def is_held(self) -> bool:
        """Whether a live supervisor currently owns the directory."""
        try:
            owner = self.read_owner()
        except CorruptRecord:
            return False
        return owner is not None and self.is_supervisor(owner)
