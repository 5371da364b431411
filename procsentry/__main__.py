"""
Entry point for running procsentry via `python -m procsentry`.
"""

from .cli import app


def main():
    """Run the procsentry command line."""
    app(prog_name="procsentry")


if __name__ == "__main__":
    main()
