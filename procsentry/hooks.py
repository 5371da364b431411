"""
Action hooks fired on state transitions.

A hook is an executable named after the state it is bound to. It is
launched detached and never awaited; a missing or failing hook is not an
error for the supervisor.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


class ActionHook:
    """Capability fired once per completed transition. The default does nothing."""

    def fire(self, state: str):
        pass


class NullActionHook(ActionHook):
    pass


class ExecutableActionHook(ActionHook):
    """Runs `on_<state>` executables from the working directory."""

    def __init__(self, resolve: Callable[[str], Path], working_dir: Path = None):
        self._resolve = resolve
        self.working_dir = working_dir
        self._launched: list[subprocess.Popen] = []

    def fire(self, state: str):
        self._reap()

        path = self._resolve(state)
        if not path.is_file() or not os.access(path, os.X_OK):
            logger.debug(f"No executable hook for {state} at {path}")
            return

        try:
            process = subprocess.Popen(
                [str(path), state],
                cwd=self.working_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(f"Failed to launch {state} hook {path}: {e}")
            return

        self._launched.append(process)
        logger.info(f"Launched {state} hook {path} (PID {process.pid})")

    def _reap(self):
        """Forget hooks that have finished."""
        self._launched = [p for p in self._launched if p.poll() is None]
