"""Tests for executable action hooks."""

import logging
import os
import time

from procsentry.hooks import ExecutableActionHook, NullActionHook


def make_hook(path, body):
    path.write_text(f"#!/bin/sh\n{body}\n")
    os.chmod(path, 0o755)
    return path


def wait_for_file(path, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists() and path.read_text():
            return True
        time.sleep(0.05)
    return False


class TestExecutableActionHook:
    def test_runs_hook_for_state(self, config, tmp_path):
        marker = tmp_path / "fired"
        make_hook(config.hook_file("RUNNING"), f'echo "$1" > {marker}')

        ExecutableActionHook(config.hook_file, working_dir=tmp_path).fire("RUNNING")

        assert wait_for_file(marker)
        assert marker.read_text().strip() == "RUNNING"

    def test_hook_name_is_lower_case_state(self, config, tmp_path):
        assert config.hook_file("STOPPING") == tmp_path / "on_stopping"

    def test_missing_hook_is_skipped(self, config, caplog):
        with caplog.at_level(logging.WARNING):
            ExecutableActionHook(config.hook_file).fire("STOPPED")

        assert caplog.records == []

    def test_non_executable_hook_is_skipped(self, config, tmp_path):
        marker = tmp_path / "fired"
        path = config.hook_file("STOPPED")
        path.write_text(f"#!/bin/sh\necho x > {marker}\n")
        os.chmod(path, 0o644)

        ExecutableActionHook(config.hook_file).fire("STOPPED")
        time.sleep(0.2)

        assert not marker.exists()

    def test_slow_hook_does_not_block(self, config):
        make_hook(config.hook_file("STARTING"), "sleep 5")

        started = time.monotonic()
        ExecutableActionHook(config.hook_file).fire("STARTING")

        assert time.monotonic() - started < 2

    def test_failing_hook_is_not_an_error(self, config, tmp_path):
        make_hook(config.hook_file("ABORTING"), "exit 3")

        hook = ExecutableActionHook(config.hook_file)
        hook.fire("ABORTING")
        hook.fire("ABORTING")

    def test_unlaunchable_hook_logs_warning(self, config, caplog):
        path = config.hook_file("RUNNING")
        path.write_text("not a script")
        os.chmod(path, 0o755)

        with caplog.at_level(logging.WARNING, logger="procsentry.hooks"):
            ExecutableActionHook(config.hook_file).fire("RUNNING")

        assert "Failed to launch" in caplog.text


class TestNullActionHook:
    def test_does_nothing(self):
        NullActionHook().fire("RUNNING")
