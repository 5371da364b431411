"""
Configuration for a supervised working directory.

Loads settings from environment variables with sensible defaults. A `.env`
file inside the working directory is read first, so each supervised
directory can carry its own timing overrides. All persistent state lives
inside the working directory.
"""

import os
import signal
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError


@dataclass
class Config:
    """Supervisor configuration for one working directory."""

    base_dir: Path

    # Paths
    command_file: Path = None
    pid_file: Path = None
    lock_file: Path = None
    supervisor_started_file: Path = None
    process_started_file: Path = None
    stop_file: Path = None
    abort_file: Path = None
    log_file: Path = None
    output_file: Path = None
    db_path: Path = None

    # Logging
    log_max_bytes: int = 10 * 1024 * 1024  # 10MB
    log_backup_count: int = 5

    # Scheduling
    poll_interval: float = 0.5
    start_grace: float = 1.0
    stop_grace: float = 2.0

    # Stop/abort retry policy, 0 disables the limit
    max_signal_attempts: int = 0
    escalate_after: int = 0
    escalation_signal: int = signal.SIGKILL

    # Resources
    core_dump_limit: int = 0

    # Token that must appear in a live supervisor's command line
    identity: str = "procsentry"

    # Statistics
    history_limit: int = 10

    def __post_init__(self):
        """Initialize derived paths."""
        self.base_dir = Path(self.base_dir)
        self.command_file = self.base_dir / "command"
        self.pid_file = self.base_dir / "pid"
        self.lock_file = self.base_dir / "lock"
        self.supervisor_started_file = self.base_dir / "supervisor.started"
        self.process_started_file = self.base_dir / "process.started"
        self.stop_file = self.base_dir / "stop"
        self.abort_file = self.base_dir / "abort"
        self.log_file = self.base_dir / "supervisor.log"
        self.output_file = self.base_dir / "output.log"
        self.db_path = self.base_dir / "history.db"

    def counter_file(self, name: str) -> Path:
        """Path of the file backing a named counter."""
        return self.base_dir / f"count.{name}"

    def hook_file(self, state_name: str) -> Path:
        """Path of the hook executable bound to a state."""
        return self.base_dir / f"on_{state_name.lower()}"

    @classmethod
    def from_env(cls, base_dir) -> "Config":
        """Build a config for `base_dir`, honouring `<base_dir>/.env` and the environment."""
        base_dir = Path(base_dir).expanduser().resolve()
        if not base_dir.is_dir():
            raise ConfigError(f"Configuration directory {base_dir} does not exist")

        load_dotenv(base_dir / ".env")

        return cls(
            base_dir=base_dir,
            log_max_bytes=int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024))),
            log_backup_count=int(os.environ.get("LOG_BACKUP_COUNT", "5")),
            poll_interval=float(os.environ.get("PROCSENTRY_POLL_INTERVAL", "0.5")),
            start_grace=float(os.environ.get("PROCSENTRY_START_GRACE", "1.0")),
            stop_grace=float(os.environ.get("PROCSENTRY_STOP_GRACE", "2.0")),
            max_signal_attempts=int(os.environ.get("PROCSENTRY_MAX_SIGNAL_ATTEMPTS", "0")),
            escalate_after=int(os.environ.get("PROCSENTRY_ESCALATE_AFTER", "0")),
            core_dump_limit=int(os.environ.get("PROCSENTRY_CORE_DUMP_LIMIT", "0")),
            identity=os.environ.get("PROCSENTRY_IDENTITY", "procsentry"),
            history_limit=int(os.environ.get("PROCSENTRY_HISTORY_LIMIT", "10")),
        )
