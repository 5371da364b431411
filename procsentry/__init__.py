"""
procsentry - keeps a single process running.

Launches a configured command, restarts it when it exits unexpectedly, and
takes start/stop/abort/status/statistics commands from operators through
marker files in the process's working directory.
"""

__version__ = "0.1.0"
