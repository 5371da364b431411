"""
Liveness probe for the monitored process.

Classifies a PID as RUNNING or STOPPED from the OS process table. A
missing PID, a zombie, or a dead process is the normal "process exited"
signal and never raises.
"""

import logging
from enum import Enum
from typing import Optional

import psutil

logger = logging.getLogger(__name__)

_EXITED = (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
_SUSPENDED = (psutil.STATUS_STOPPED, psutil.STATUS_TRACING_STOP)


class ProcessState(Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class ProcessProbe:
    """Queries psutil for the state of a single PID."""

    def probe(self, pid: Optional[int]) -> ProcessState:
        """Return RUNNING unless the process is absent or has exited."""
        if not pid:
            return ProcessState.STOPPED

        try:
            status = psutil.Process(pid).status()
        except psutil.NoSuchProcess:
            return ProcessState.STOPPED
        except psutil.AccessDenied:
            # The PID exists, we just cannot inspect it
            return ProcessState.RUNNING

        if status in _EXITED:
            return ProcessState.STOPPED

        if status in _SUSPENDED:
            logger.warning(f"Process {pid} is suspended ({status}), treating as running")

        return ProcessState.RUNNING
