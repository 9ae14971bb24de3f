"""CLI entry point for watchrun."""

import sys


def main() -> int:
    """Main entry point for watchrun CLI."""
    from watchrun.cli import run_cli

    return run_cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
