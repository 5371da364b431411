"""
Persistent records shared between the supervisor loop and operator commands.

The loop is the only writer of everything here; operator commands only
read. File writes go through a temporary file and an atomic rename so a
reader never sees a half-written record.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import Config
from .errors import CorruptRecord
from .models import Transition, initialize_db

logger = logging.getLogger(__name__)

COUNTER_NAMES = ("manual_start", "auto_start", "stop", "abort")


def write_atomic(path: Path, text: str):
    """Replace `path` with `text` in one rename."""
    tmp = path.parent / f".{path.name}.tmp"
    with open(tmp, "w") as f:
        f.write(text)
    os.replace(tmp, path)


class ContextStore(ABC):
    """Storage behind the supervisor context."""

    @abstractmethod
    def read_command_line(self) -> Optional[str]:
        ...

    @abstractmethod
    def read_pid(self) -> Optional[int]:
        """PID record of the monitored process, None if absent."""

    @abstractmethod
    def write_pid(self, pid: int):
        ...

    @abstractmethod
    def clear_pid(self):
        ...

    @abstractmethod
    def read_timestamp(self, name: str) -> Optional[datetime]:
        ...

    @abstractmethod
    def write_timestamp(self, name: str, when: datetime):
        ...

    @abstractmethod
    def read_counter(self, name: str) -> int:
        ...

    @abstractmethod
    def write_counter(self, name: str, value: int):
        ...

    @abstractmethod
    def record_transition(self, from_state: str, to_state: str, pid: Optional[int] = None, note: str = None):
        ...

    @abstractmethod
    def recent_transitions(self, limit: int = 10) -> list[dict]:
        """Most recent transitions, newest first."""


class FileContextStore(ContextStore):
    """Records kept as small files in the working directory, history in SQLite."""

    def __init__(self, config: Config):
        self.config = config
        self._db_ready = False

    def _timestamp_file(self, name: str) -> Path:
        if name == "supervisor":
            return self.config.supervisor_started_file
        if name == "process":
            return self.config.process_started_file
        raise ValueError(f"Unknown timestamp record: {name}")

    def _ensure_db(self):
        if not self._db_ready:
            initialize_db(self.config.db_path)
            self._db_ready = True

    def read_command_line(self) -> Optional[str]:
        try:
            command = self.config.command_file.read_text().strip()
        except FileNotFoundError:
            return None
        return command or None

    def read_pid(self) -> Optional[int]:
        try:
            text = self.config.pid_file.read_text().strip()
        except FileNotFoundError:
            return None
        try:
            return int(text)
        except ValueError:
            raise CorruptRecord(f"PID record {self.config.pid_file} is empty or unreadable: {text!r}")

    def write_pid(self, pid: int):
        write_atomic(self.config.pid_file, f"{pid}\n")

    def clear_pid(self):
        self.config.pid_file.unlink(missing_ok=True)

    def read_timestamp(self, name: str) -> Optional[datetime]:
        path = self._timestamp_file(name)
        try:
            return datetime.fromisoformat(path.read_text().strip())
        except FileNotFoundError:
            return None
        except ValueError:
            logger.warning(f"Ignoring unreadable timestamp in {path}")
            return None

    def write_timestamp(self, name: str, when: datetime):
        write_atomic(self._timestamp_file(name), when.isoformat() + "\n")

    def read_counter(self, name: str) -> int:
        path = self.config.counter_file(name)
        try:
            return int(path.read_text().strip())
        except FileNotFoundError:
            return 0
        except ValueError:
            logger.warning(f"Ignoring unreadable counter in {path}")
            return 0

    def write_counter(self, name: str, value: int):
        write_atomic(self.config.counter_file(name), f"{value}\n")

    def record_transition(self, from_state: str, to_state: str, pid: Optional[int] = None, note: str = None):
        self._ensure_db()
        Transition.create(from_state=from_state, to_state=to_state, pid=pid, note=note)

    def recent_transitions(self, limit: int = 10) -> list[dict]:
        if not self.config.db_path.exists():
            return []
        self._ensure_db()
        query = Transition.select().order_by(Transition.timestamp.desc(), Transition.id.desc()).limit(limit)
        return [t.to_dict() for t in query]


class MemoryContextStore(ContextStore):
    """Dictionary-backed store with the same semantics as the file store."""

    def __init__(self, command_line: str = None):
        self.command_line = command_line
        self.pid = None
        self.timestamps: dict[str, datetime] = {}
        self.counters: dict[str, int] = {}
        self.transitions: list[dict] = []

    def read_command_line(self) -> Optional[str]:
        return self.command_line

    def read_pid(self) -> Optional[int]:
        return self.pid

    def write_pid(self, pid: int):
        self.pid = pid

    def clear_pid(self):
        self.pid = None

    def read_timestamp(self, name: str) -> Optional[datetime]:
        return self.timestamps.get(name)

    def write_timestamp(self, name: str, when: datetime):
        self.timestamps[name] = when

    def read_counter(self, name: str) -> int:
        return self.counters.get(name, 0)

    def write_counter(self, name: str, value: int):
        self.counters[name] = value

    def record_transition(self, from_state: str, to_state: str, pid: Optional[int] = None, note: str = None):
        self.transitions.append({
            "from_state": from_state,
            "to_state": to_state,
            "pid": pid,
            "note": note,
            "timestamp": datetime.now().isoformat(),
        })

    def recent_transitions(self, limit: int = 10) -> list[dict]:
        return list(reversed(self.transitions))[:limit]


@dataclass
class Counters:
    """Lifecycle counters of one supervisor instance."""

    manual_start: int = 0
    auto_start: int = 0
    stop: int = 0
    abort: int = 0


class PersistentCounters:
    """Counters written through to a store on every change."""

    def __init__(self, store: ContextStore):
        self.store = store
        self.values = Counters()

    def reset(self):
        """Zero every counter, discarding the previous instance's values."""
        self.values = Counters()
        for name in COUNTER_NAMES:
            self.store.write_counter(name, 0)

    def increment(self, name: str) -> int:
        if name not in COUNTER_NAMES:
            raise ValueError(f"Unknown counter: {name}")
        value = getattr(self.values, name) + 1
        setattr(self.values, name, value)
        self.store.write_counter(name, value)
        return value

    @staticmethod
    def load(store: ContextStore) -> Counters:
        """Read the last persisted values, for reporting."""
        return Counters(**{name: store.read_counter(name) for name in COUNTER_NAMES})

    def to_dict(self) -> dict:
        return asdict(self.values)
