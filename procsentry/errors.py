"""Exceptions raised by procsentry. All of them are fatal at startup."""


class ProcsentryError(Exception):
    """Base class for unrecoverable supervisor conditions."""


class ConfigError(ProcsentryError):
    """The working directory or its command file is missing or unusable."""


class CorruptRecord(ProcsentryError):
    """A PID or lock record exists but is empty or unreadable."""


class AlreadyRunning(ProcsentryError):
    """Another live supervisor already owns the working directory."""

    def __init__(self, pid: int):
        super().__init__(f"Supervisor already running with PID {pid}")
        self.pid = pid
