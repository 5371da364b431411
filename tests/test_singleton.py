"""Tests for the per-directory singleton guard."""

import os
import subprocess

import pytest

from procsentry.errors import AlreadyRunning, CorruptRecord
from procsentry.singleton import SingletonGuard, entry_point


@pytest.fixture()
def other_process():
    process = subprocess.Popen(["sleep", "100"])
    yield process
    process.kill()
    process.wait()


@pytest.fixture()
def mentions_identity(tmp_path):
    """An unrelated process with the supervisor name among its arguments."""
    notes = tmp_path / "procsentry-notes.txt"
    notes.write_text("")
    process = subprocess.Popen(["tail", "-f", str(notes)])
    yield process
    process.kill()
    process.wait()


@pytest.fixture()
def dead_pid():
    process = subprocess.Popen(["true"])
    process.wait()
    return process.pid


class TestAcquire:
    def test_creates_record(self, tmp_path):
        guard = SingletonGuard(tmp_path / "lock", identity="procsentry")
        guard.acquire()

        assert (tmp_path / "lock").read_text().strip() == str(os.getpid())

    def test_own_record_is_kept(self, tmp_path):
        (tmp_path / "lock").write_text(f"{os.getpid()}\n")
        SingletonGuard(tmp_path / "lock", identity="procsentry").acquire()

        assert (tmp_path / "lock").read_text().strip() == str(os.getpid())

    def test_dead_owner_is_reclaimed(self, tmp_path, dead_pid):
        (tmp_path / "lock").write_text(f"{dead_pid}\n")
        SingletonGuard(tmp_path / "lock", identity="procsentry").acquire()

        assert (tmp_path / "lock").read_text().strip() == str(os.getpid())

    def test_reused_pid_is_reclaimed(self, tmp_path, other_process):
        (tmp_path / "lock").write_text(f"{other_process.pid}\n")
        SingletonGuard(tmp_path / "lock", identity="procsentry").acquire()

        assert (tmp_path / "lock").read_text().strip() == str(os.getpid())

    def test_identity_in_arguments_is_not_a_supervisor(self, tmp_path, mentions_identity):
        (tmp_path / "lock").write_text(f"{mentions_identity.pid}\n")
        guard = SingletonGuard(tmp_path / "lock", identity="procsentry")

        assert mentions_identity.poll() is None
        assert not guard.is_held()
        guard.acquire()

        assert (tmp_path / "lock").read_text().strip() == str(os.getpid())

    def test_live_supervisor_blocks(self, tmp_path, other_process):
        (tmp_path / "lock").write_text(f"{other_process.pid}\n")
        guard = SingletonGuard(tmp_path / "lock", identity="sleep")

        with pytest.raises(AlreadyRunning) as exc:
            guard.acquire()

        assert exc.value.pid == other_process.pid
        assert (tmp_path / "lock").read_text().strip() == str(other_process.pid)

    def test_empty_record_is_corrupt(self, tmp_path):
        (tmp_path / "lock").write_text("")
        with pytest.raises(CorruptRecord):
            SingletonGuard(tmp_path / "lock", identity="procsentry").acquire()


class TestRelease:
    def test_removes_own_record(self, tmp_path):
        guard = SingletonGuard(tmp_path / "lock", identity="procsentry")
        guard.acquire()
        guard.release()

        assert not (tmp_path / "lock").exists()

    def test_leaves_foreign_record(self, tmp_path, other_process):
        (tmp_path / "lock").write_text(f"{other_process.pid}\n")
        SingletonGuard(tmp_path / "lock", identity="procsentry").release()

        assert (tmp_path / "lock").exists()


class TestIsHeld:
    def test_no_record(self, tmp_path):
        assert not SingletonGuard(tmp_path / "lock", identity="sleep").is_held()

    def test_live_owner(self, tmp_path, other_process):
        (tmp_path / "lock").write_text(f"{other_process.pid}\n")
        assert SingletonGuard(tmp_path / "lock", identity="sleep").is_held()

    def test_dead_owner(self, tmp_path, dead_pid):
        (tmp_path / "lock").write_text(f"{dead_pid}\n")
        assert not SingletonGuard(tmp_path / "lock", identity="sleep").is_held()

    def test_corrupt_record(self, tmp_path):
        (tmp_path / "lock").write_text("garbage")
        assert not SingletonGuard(tmp_path / "lock", identity="sleep").is_held()


@pytest.mark.parametrize("cmdline, expected", [
    (["/venv/bin/procsentry", "/srv/app"], "procsentry"),
    (["/usr/bin/python3", "-m", "procsentry", "/srv/app"], "procsentry"),
    (["python3.12", "-u", "-X", "dev", "-m", "procsentry", "/srv/app", "status"], "procsentry"),
    (["/venv/bin/python", "/venv/bin/procsentry", "/srv/app"], "procsentry"),
    (["python", "-c", "import procsentry"], None),
    (["tail", "-f", "/srv/app/procsentry.log"], "tail"),
    (["vim", "procsentry/cli.py"], "vim"),
    ([], None),
])
def test_entry_point(cmdline, expected):
    assert entry_point(cmdline) == expected


def test_module_path_matches_package_identity(tmp_path, monkeypatch):
    class FakeProcess:
        def __init__(self, pid):
            pass

        def status(self):
            return "sleeping"

        def cmdline(self):
            return ["python", "-m", "procsentry.cli", "/srv/app"]

    monkeypatch.setattr("procsentry.singleton.psutil.Process", FakeProcess)

    assert SingletonGuard(tmp_path / "lock", identity="procsentry").is_supervisor(4242)
    assert not SingletonGuard(tmp_path / "lock", identity="sentry").is_supervisor(4242)
