"""Core migration logic including configuration and orchestration."""

__all__ = [
    "config",
    "context",
    "migration_logging",
    "migrator",
    "stats",
]
