#!/usr/bin/env python3
"""
Main execution module for the Cord to Liveblocks migration tool
"""

from cord_migrator.cli.commands import main

if __name__ == "__main__":
    main()
