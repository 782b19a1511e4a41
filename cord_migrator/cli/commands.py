#!/usr/bin/env python3
"""
Command-line entry point for the Cord to Liveblocks migration tool.

Importing the subcommand modules registers their commands on the shared
``cli`` group.
"""

from cord_migrator.cli import migrate_cmd, serve_cmd  # noqa: F401
from cord_migrator.cli.common import cli


def main() -> None:
    """Run the ``cord-migrator`` command group."""
    cli()


if __name__ == "__main__":
    main()
