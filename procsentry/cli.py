"""
Command line interface.

`procsentry <config_dir>` supervises the configured command until the
supervisor is signalled. `procsentry <config_dir> <command>` runs one
operator command and exits with status 0; problems are reported as text.
"""

import logging
import signal
from pathlib import Path
from typing import Annotated, Optional

import typer

from .commands import COMMANDS, OperatorCommands
from .config import Config
from .errors import ProcsentryError
from .logs import setup_logging
from .supervisor import SupervisorLoop

logger = logging.getLogger(__name__)

app = typer.Typer(help="procsentry: keep one process running", add_completion=False)


def run_daemon(config: Config):
    """Supervise until SIGTERM/SIGINT."""
    setup_logging(config)
    loop = SupervisorLoop.for_directory(config)

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        loop.shutdown()

    previous = {sig: signal.signal(sig, handle_signal) for sig in (signal.SIGTERM, signal.SIGINT)}

    try:
        loop.run()
    except ProcsentryError as e:
        logger.critical(str(e))
        raise typer.Exit(code=1)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@app.command()
def main(
    config_dir: Annotated[Path, typer.Argument(help="Working directory of the supervised process.")],
    command: Annotated[Optional[str], typer.Argument(
        help=f"One of {', '.join(COMMANDS)} (case-insensitive). Omit to run the supervisor.",
    )] = None,
):
    try:
        config = Config.from_env(config_dir)
    except ProcsentryError as e:
        typer.echo(f"CRITICAL: {e}", err=True)
        raise typer.Exit(code=0 if command else 1)

    if command is None:
        run_daemon(config)
        return

    setup_logging(config, console=False)
    try:
        typer.echo(OperatorCommands.for_directory(config).run(command))
    except ProcsentryError as e:
        logger.critical(str(e))
        typer.echo(f"CRITICAL: {e}")


if __name__ == "__main__":
    app()
