"""CLI command handlers for the migrate and init-config workflows."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from cord_migrator.cli.common import cli, common_options, handle_exception
from cord_migrator.cli.report import create_output_directory, generate_report
from cord_migrator.core.config import MigrationConfig, create_default_config, load_config
from cord_migrator.core.migrator import run_migration
from cord_migrator.exceptions import ConfigError
from cord_migrator.services.source import ExportSourceProvider
from cord_migrator.utils.logging import log_with_context, setup_audit_log, setup_logger


def build_provider(config: MigrationConfig, export_path: str | None) -> ExportSourceProvider:
    """Create the export reader, preferring the command-line path."""
    path = export_path or config.export_path
    if not path:
        raise ConfigError("No export path given; pass --export_path or set export_path")
    return ExportSourceProvider(path, config)


def log_startup_info(config_path: str, config: MigrationConfig, export_path: str) -> None:
    """Log startup information."""
    log_with_context(logging.INFO, "Starting migration with the following parameters:")
    log_with_context(logging.INFO, f"- Export path: {export_path}")
    log_with_context(logging.INFO, f"- Config: {Path(config_path).resolve()}")
    log_with_context(
        logging.INFO, f"- Environment: {config.environment or 'derived from secret key'}"
    )
    log_with_context(logging.INFO, f"- API: {config.api_base_url}")
    log_with_context(
        logging.INFO, f"- Resolved threads: {config.resolved_threads.value}"
    )


# ---------------------------------------------------------------------------
# migrate subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
def migrate(config: str, export_path: str | None, verbose: bool, debug_api: bool) -> None:
    """Migrate Cord threads, messages and reactions into Liveblocks.

    Safe to run repeatedly: rooms are updated, and threads and comments that
    were already migrated are skipped.

    Args:
        config: Path to config YAML.
        export_path: Path to the Cord export directory.
        verbose: Enable verbose console logging.
        debug_api: Enable detailed API request/response logging.
    """
    output_dir = create_output_directory()
    setup_logger(verbose, debug_api, output_dir)
    setup_audit_log(output_dir)

    try:
        migration_config = load_config(Path(config))
        provider = build_provider(migration_config, export_path)
        log_startup_info(config, migration_config, str(provider.export_root))

        result = asyncio.run(run_migration(migration_config, provider))
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    generate_report(result, output_dir)
    if not result.success:
        sys.exit(1)
    log_with_context(logging.INFO, "Migration finished.")


# ---------------------------------------------------------------------------
# init-config subcommand
# ---------------------------------------------------------------------------


@cli.command("init-config")
@click.option(
    "--output",
    default="config.yaml",
    show_default=True,
    help="Where to write the config file",
)
def init_config(output: str) -> None:
    """Write a config file with the default settings."""
    setup_logger(False, False)
    if not create_default_config(Path(output)):
        sys.exit(1)
