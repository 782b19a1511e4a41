#!/usr/bin/env python3
"""
Cord to Liveblocks comment migration tool
"""

__version__ = "0.1.0"

from cord_migrator.core.config import load_config

# Import the main classes and functions for easier access
from cord_migrator.core.migrator import (
    CordToLiveblocksMigrator,
    MigrationResult,
    run_migration,
)
from cord_migrator.services.liveblocks_adapter import LiveblocksAdapter
from cord_migrator.services.source import ExportSourceProvider
