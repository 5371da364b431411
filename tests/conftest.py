"""
Shared fixtures for procsentry tests.

The state machine tests run against in-memory collaborators: a fake
launcher and probe share one set of "alive" PIDs so a test can kill or
keep a process alive without touching the OS.
"""

import signal

import pytest

from procsentry.channel import MemoryCommandChannel
from procsentry.config import Config
from procsentry.hooks import ActionHook
from procsentry.probe import ProcessState
from procsentry.storage import MemoryContextStore
from procsentry.supervisor import SupervisorLoop


class FakeLauncher:
    """Hands out PIDs and records the signals it is asked to send."""

    def __init__(self, alive: set):
        self.alive = alive
        self.next_pid = 1000
        self.spawned: list[str] = []
        self.signals: list[tuple[int, int]] = []
        self.fail_spawn = False
        self.die_on_spawn = False
        self.lethal_signals = {signal.SIGTERM, signal.SIGABRT, signal.SIGKILL}

    def spawn(self, command_line: str) -> int:
        if self.fail_spawn:
            raise OSError("No such file or directory")
        self.next_pid += 1
        self.spawned.append(command_line)
        if not self.die_on_spawn:
            self.alive.add(self.next_pid)
        return self.next_pid

    def send_signal(self, pid: int, sig: int) -> bool:
        self.signals.append((pid, sig))
        if pid not in self.alive:
            return False
        if sig in self.lethal_signals:
            self.alive.discard(pid)
        return True

    def reap(self):
        return None


class FakeProbe:
    def __init__(self, alive: set):
        self.alive = alive

    def probe(self, pid):
        return ProcessState.RUNNING if pid in self.alive else ProcessState.STOPPED


class RecordingHook(ActionHook):
    def __init__(self):
        self.fired: list[str] = []

    def fire(self, state: str):
        self.fired.append(state)


@pytest.fixture()
def config(tmp_path):
    """Config with no waiting, rooted in a temporary directory."""
    return Config(base_dir=tmp_path, poll_interval=0, start_grace=0, stop_grace=0)


@pytest.fixture()
def alive():
    return set()


@pytest.fixture()
def launcher(alive):
    return FakeLauncher(alive)


@pytest.fixture()
def store():
    return MemoryContextStore(command_line="sleep 100")


@pytest.fixture()
def channel():
    return MemoryCommandChannel()


@pytest.fixture()
def hook():
    return RecordingHook()


@pytest.fixture()
def loop(config, store, channel, launcher, alive, hook):
    """A started supervisor loop wired to in-memory collaborators."""
    lp = SupervisorLoop(
        config=config,
        store=store,
        channel=channel,
        launcher=launcher,
        probe=FakeProbe(alive),
        hook=hook,
    )
    lp.startup()
    return lp
