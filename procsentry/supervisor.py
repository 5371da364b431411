"""
Supervisor loop for a single monitored process.

Each tick reconciles the operator's intents (stop/abort markers) against
what the OS reports about the monitored PID and performs at most one
lifecycle step: start, stop, abort, or crash detection. Stops and aborts
that are not confirmed within the grace period stay in progress and are
retried on the next tick. All waits go through one event so the loop can
be shut down promptly.
"""

import logging
import resource
import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .channel import CommandChannel, FileCommandChannel
from .config import Config
from .errors import ConfigError, ProcsentryError
from .hooks import ActionHook, ExecutableActionHook, NullActionHook
from .probe import ProcessProbe, ProcessState
from .process import ProcessLauncher
from .singleton import SingletonGuard
from .storage import ContextStore, FileContextStore, PersistentCounters

logger = logging.getLogger(__name__)


class SupervisorState(Enum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    ABORTING = "ABORTING"


@dataclass
class MonitoredProcess:
    """The command under supervision and its current incarnation."""

    command_line: str
    pid: Optional[int] = None
    started_at: Optional[datetime] = None


@dataclass
class SupervisorContext:
    """Everything the loop knows, threaded through every step."""

    process: MonitoredProcess
    state: SupervisorState = SupervisorState.STOPPED
    started_at: datetime = field(default_factory=datetime.now)
    signal_attempts: int = 0


def clamp_core_dumps(limit: int) -> int:
    """Lower the core dump soft limit to `limit` bytes (never above the hard limit)."""
    soft, hard = resource.getrlimit(resource.RLIMIT_CORE)
    new_soft = limit if hard == resource.RLIM_INFINITY else min(limit, hard)
    resource.setrlimit(resource.RLIMIT_CORE, (new_soft, hard))
    logger.info(f"Core dump size limited to {new_soft} bytes (was {soft})")
    return new_soft


class SupervisorLoop:
    """State machine driving the monitored process."""

    def __init__(
        self,
        config: Config,
        store: ContextStore,
        channel: CommandChannel,
        launcher: ProcessLauncher,
        probe: ProcessProbe = None,
        hook: ActionHook = None,
        guard: SingletonGuard = None,
    ):
        self.config = config
        self.store = store
        self.channel = channel
        self.launcher = launcher
        self.probe = probe or ProcessProbe()
        self.hook = hook or NullActionHook()
        self.guard = guard
        self.counters = PersistentCounters(store)
        self.context: Optional[SupervisorContext] = None
        self._shutdown = threading.Event()

    @classmethod
    def for_directory(cls, config: Config) -> "SupervisorLoop":
        """Wire a loop to the files of a working directory."""
        return cls(
            config=config,
            store=FileContextStore(config),
            channel=FileCommandChannel(config.stop_file, config.abort_file),
            launcher=ProcessLauncher(config.output_file, working_dir=config.base_dir),
            probe=ProcessProbe(),
            hook=ExecutableActionHook(config.hook_file, working_dir=config.base_dir),
            guard=SingletonGuard(config.lock_file, config.identity),
        )

    @property
    def state(self) -> SupervisorState:
        return self.context.state if self.context else SupervisorState.STOPPED

    def startup(self) -> SupervisorContext:
        """Claim the directory and initialise a fresh context."""
        if self.guard:
            self.guard.acquire()

        clamp_core_dumps(self.config.core_dump_limit)

        command_line = self.store.read_command_line()
        if not command_line:
            raise ConfigError(f"No command line configured in {self.config.command_file}")

        now = datetime.now()
        self.counters.reset()
        self.store.write_timestamp("supervisor", now)
        self.context = SupervisorContext(process=MonitoredProcess(command_line), started_at=now)

        pid = self.store.read_pid()
        if pid and self.probe.probe(pid) == ProcessState.RUNNING:
            # Left running by a previous supervisor instance
            self.context.state = SupervisorState.RUNNING
            self.context.process.pid = pid
            self.context.process.started_at = self.store.read_timestamp("process")
            logger.info(f"Adopted running PID {pid}")

        logger.info(f"Supervising {command_line!r} in {self.config.base_dir}")
        return self.context

    def shutdown(self):
        """Ask the loop to exit. The monitored process is left alone."""
        self._shutdown.set()

    def run(self):
        """Tick at the poll interval until shut down."""
        try:
            if self.context is None:
                self.startup()

            while not self._shutdown.is_set():
                try:
                    self.tick()
                except ProcsentryError:
                    raise
                except Exception as e:
                    logger.error(f"Error in supervisor loop: {e}")
                self._wait(self.config.poll_interval)
        finally:
            if self.guard:
                self.guard.release()
            logger.info("Supervisor stopped")

    def tick(self):
        """Perform at most one lifecycle step."""
        state = self.context.state

        if state == SupervisorState.STOPPED:
            if self.channel.is_stop_requested() or self.channel.is_abort_requested():
                self._drop_dead_pid_record()
                return
            self._start()

        elif state == SupervisorState.RUNNING:
            if self.channel.is_abort_requested():
                self._terminate(SupervisorState.ABORTING)
            elif self.channel.is_stop_requested():
                self._terminate(SupervisorState.STOPPING)
            elif self._observe() == ProcessState.STOPPED:
                pid = self.context.process.pid
                logger.warning(f"PID {pid} exited unexpectedly, restarting")
                self.context.process.pid = None
                self._transition(SupervisorState.STOPPED, pid=pid, note="crashed")

        elif state in (SupervisorState.STOPPING, SupervisorState.ABORTING):
            self._terminate(state)

    def _wait(self, seconds: float) -> bool:
        """Sleep, returning True if shutdown was requested meanwhile."""
        return self._shutdown.wait(seconds)

    def _observe(self) -> ProcessState:
        self.launcher.reap()
        return self.probe.probe(self.context.process.pid)

    def _drop_dead_pid_record(self):
        """Forget a crashed process's record once the process is being kept down."""
        pid = self.store.read_pid()
        if pid is not None and self.probe.probe(pid) == ProcessState.STOPPED:
            logger.info(f"Clearing PID record of exited process {pid}")
            self.store.clear_pid()

    def _transition(self, new_state: SupervisorState, pid: int = None, note: str = None):
        old_state = self.context.state
        self.context.state = new_state
        pid = pid or self.context.process.pid
        detail = f" PID {pid}" if pid else ""
        logger.info(f"{old_state.value} -> {new_state.value}{detail}" + (f": {note}" if note else ""))
        self.store.record_transition(old_state.value, new_state.value, pid=pid, note=note)
        self.hook.fire(new_state.value)

    def _start(self):
        process = self.context.process
        stale = self.store.read_pid() is not None

        self._transition(SupervisorState.STARTING)

        process.command_line = self.store.read_command_line() or process.command_line
        try:
            pid = self.launcher.spawn(process.command_line)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to spawn {process.command_line!r}: {e}")
            self._transition(SupervisorState.STOPPED, note=f"spawn failed: {e}")
            return

        process.pid = pid
        process.started_at = datetime.now()
        self.store.write_pid(pid)
        self.store.write_timestamp("process", process.started_at)

        if self._wait(self.config.start_grace):
            return

        if self._observe() == ProcessState.RUNNING:
            counter = "auto_start" if stale else "manual_start"
            self.counters.increment(counter)
            self._transition(SupervisorState.RUNNING, note=counter)
        else:
            logger.warning(f"PID {pid} exited during the startup grace period")
            process.pid = None
            self._transition(SupervisorState.STOPPED, pid=pid, note="exited during startup")

    def _next_signal(self, state: SupervisorState) -> Optional[int]:
        attempts = self.context.signal_attempts
        if self.config.max_signal_attempts and attempts >= self.config.max_signal_attempts:
            return None
        if self.config.escalate_after and attempts >= self.config.escalate_after:
            return self.config.escalation_signal
        return signal.SIGABRT if state == SupervisorState.ABORTING else signal.SIGTERM

    def _terminate(self, state: SupervisorState):
        """Send the stop or abort signal and confirm the process went away."""
        context = self.context
        pid = context.process.pid

        if context.state != state:
            context.signal_attempts = 0
            self._transition(state)

        sig = self._next_signal(state)
        if sig is not None:
            context.signal_attempts += 1
            logger.info(f"Sending signal {sig} to PID {pid} (attempt {context.signal_attempts})")
            self.launcher.send_signal(pid, sig)

        if self._wait(self.config.stop_grace):
            return

        if self._observe() == ProcessState.STOPPED:
            self._confirm_stopped(state)
            return

        logger.warning(
            f"PID {pid} still alive after {context.signal_attempts} signal(s), "
            f"{state.value.lower()} continues next tick"
        )
        if sig is not None and context.signal_attempts == self.config.max_signal_attempts:
            logger.error(f"Signal limit reached for PID {pid}, waiting for it to exit on its own")

    def _confirm_stopped(self, state: SupervisorState):
        process = self.context.process
        pid = process.pid
        process.pid = None
        process.started_at = None
        self.context.signal_attempts = 0
        self.store.clear_pid()

        if state == SupervisorState.ABORTING:
            self.channel.clear_abort_escalate_to_stop()
            self.counters.increment("abort")
        else:
            self.counters.increment("stop")

        self._transition(SupervisorState.STOPPED, pid=pid)
