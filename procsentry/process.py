"""
Process launcher for the monitored command.

Starts the command in its own session with stdout/stderr appended to the
output capture file, delivers signals to its process group, and reaps it
once it exits so it does not linger as a zombie.
"""

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ProcessLauncher:
    """Spawns, signals and reaps the monitored process."""

    def __init__(self, output_file: Path, working_dir: Path = None):
        self.output_file = Path(output_file)
        self.working_dir = working_dir
        self._child: Optional[subprocess.Popen] = None

    def spawn(self, command_line: str) -> int:
        """Start the command and return its PID. Raises OSError on failure."""
        if command_line.startswith("cd "):
            # Handle "cd /path && command" pattern
            shell = True
            cmd = command_line
        else:
            shell = False
            cmd = shlex.split(command_line)
            if not cmd:
                raise OSError("Empty command line")

        with open(self.output_file, "a") as output:
            process = subprocess.Popen(
                cmd,
                shell=shell,
                stdin=subprocess.DEVNULL,
                stdout=output,
                stderr=subprocess.STDOUT,
                cwd=self.working_dir,
                env=os.environ.copy(),
                start_new_session=True,  # Create new process group
            )

        self._child = process
        logger.info(f"Spawned PID {process.pid}: {command_line}")
        return process.pid

    def send_signal(self, pid: int, sig: int) -> bool:
        """Signal the process group led by `pid`. Returns False if delivery failed."""
        try:
            os.killpg(os.getpgid(pid), sig)
            return True
        except (ProcessLookupError, PermissionError) as e:
            logger.warning(f"Failed to deliver signal {sig} to PID {pid}: {e}")
            return False

    def reap(self) -> Optional[int]:
        """Collect the exit status of our child if it has exited."""
        if self._child is None:
            return None
        returncode = self._child.poll()
        if returncode is not None:
            logger.info(f"PID {self._child.pid} exited with status {returncode}")
            self._child = None
        return returncode
