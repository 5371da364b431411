"""
Operator commands against a supervised working directory.

Each command performs one action on the mailbox or reads the persisted
records, and returns the text to show the operator. Rejections are
answers, not errors.
"""

import logging
from datetime import datetime
from typing import Optional

from .channel import CommandChannel, FileCommandChannel
from .config import Config
from .probe import ProcessProbe, ProcessState
from .singleton import SingletonGuard
from .storage import ContextStore, FileContextStore, PersistentCounters

logger = logging.getLogger(__name__)

COMMANDS = ("start", "stop", "abort", "status", "statistics")


def format_duration(seconds: float) -> str:
    """Render seconds as e.g. '1d 02:03:04'."""
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    clock = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{days}d {clock}" if days else clock


class OperatorCommands:
    """START, STOP, ABORT, STATUS and STATISTICS."""

    def __init__(
        self,
        store: ContextStore,
        channel: CommandChannel,
        probe: ProcessProbe = None,
        guard: Optional[SingletonGuard] = None,
        history_limit: int = 10,
    ):
        self.store = store
        self.channel = channel
        self.probe = probe or ProcessProbe()
        self.guard = guard
        self.history_limit = history_limit

    @classmethod
    def for_directory(cls, config: Config) -> "OperatorCommands":
        return cls(
            store=FileContextStore(config),
            channel=FileCommandChannel(config.stop_file, config.abort_file),
            probe=ProcessProbe(),
            guard=SingletonGuard(config.lock_file, config.identity),
            history_limit=config.history_limit,
        )

    def run(self, command: str) -> str:
        """Dispatch a case-insensitive command name."""
        name = command.strip().lower()
        if name not in COMMANDS:
            return f"Unknown command {command!r}, expected one of: {', '.join(COMMANDS)}"
        logger.info(f"Operator command: {name}")
        return getattr(self, name)()

    def stop(self) -> str:
        if self.channel.is_abort_requested():
            return "Rejected: an abort is already in progress"
        if self.channel.is_stop_requested():
            return "Rejected: a stop is already in progress"
        self.channel.post_stop()
        return "Stop requested"

    def start(self) -> str:
        if self.channel.is_abort_requested():
            return "Rejected: an abort is in progress, retry once it has stopped"
        if not self.channel.is_stop_requested():
            return "Already started"
        if self._pid_alive():
            return "Rejected: process is still stopping, retry once it has stopped"
        self.channel.clear_stop()
        return "Start requested"

    def abort(self) -> str:
        if self.channel.is_abort_requested():
            return "Rejected: an abort is already in progress"
        if self.channel.is_stop_requested():
            return "Rejected: a stop is already in progress"
        self.channel.post_abort()
        return "Abort requested"

    def _pid_alive(self) -> bool:
        """A PID record only counts while the process it names is alive."""
        pid = self.store.read_pid()
        return pid is not None and self.probe.probe(pid) == ProcessState.RUNNING

    def phase(self) -> str:
        """Lifecycle phase derived from intents, the PID record and a probe."""
        alive = self._pid_alive()
        if self.channel.is_abort_requested():
            return "ABORTING" if alive else "STOPPED"
        if self.channel.is_stop_requested():
            return "STOPPING" if alive else "STOPPED"
        return "RUNNING" if alive else "STARTING"

    def status(self) -> str:
        phase = self.phase()
        lines = [phase]
        pid = self.store.read_pid()
        if pid is not None:
            lines.append(f"PID: {pid}")
        if self.guard is not None and not self.guard.is_held():
            lines.append("Supervisor: not running")
        return "\n".join(lines)

    def statistics(self) -> str:
        counters = PersistentCounters.load(self.store)
        now = datetime.now()
        running = self.guard.is_held() if self.guard is not None else True
        supervisor_started = self.store.read_timestamp("supervisor")

        lines = []
        if supervisor_started is None:
            lines.append("Supervisor: never started")
        elif running:
            lines.append(f"Supervisor uptime: {format_duration((now - supervisor_started).total_seconds())}")
        else:
            lines.append(f"Supervisor: not running (last started {supervisor_started:%Y-%m-%d %H:%M:%S})")
            lines.append("Counters below are from the last supervisor instance")

        process_started = self.store.read_timestamp("process")
        pid = self.store.read_pid()
        if pid is not None and process_started and self.probe.probe(pid) == ProcessState.RUNNING:
            lines.append(f"Process uptime: {format_duration((now - process_started).total_seconds())}")

        lines.extend([
            f"Manual starts: {counters.manual_start}",
            f"Auto starts: {counters.auto_start}",
            f"Stops: {counters.stop}",
            f"Aborts: {counters.abort}",
        ])

        transitions = self.store.recent_transitions(self.history_limit)
        if transitions:
            lines.append("Recent transitions:")
            for t in transitions:
                note = f" ({t['note']})" if t.get("note") else ""
                lines.append(f"\t{t['timestamp']} {t['from_state']} -> {t['to_state']}{note}")

        return "\n".join(lines)
