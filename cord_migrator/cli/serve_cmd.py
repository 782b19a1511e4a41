"""CLI command handler for serving the migration HTTP API."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from cord_migrator.cli.common import cli, common_options, handle_exception
from cord_migrator.cli.migrate_cmd import build_provider
from cord_migrator.cli.report import create_output_directory
from cord_migrator.core.config import load_config
from cord_migrator.server import run_server
from cord_migrator.utils.logging import log_with_context, setup_audit_log, setup_logger


@cli.command()
@common_options
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind")
@click.option("--port", default=8080, show_default=True, type=int, help="Port to bind")
def serve(
    config: str,
    export_path: str | None,
    verbose: bool,
    debug_api: bool,
    host: str,
    port: int,
) -> None:
    """Serve POST /migrate, running one migration per request."""
    output_dir = create_output_directory()
    setup_logger(verbose, debug_api, output_dir)
    setup_audit_log(output_dir)

    try:
        migration_config = load_config(Path(config))
        provider = build_provider(migration_config, export_path)
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    run_server(migration_config, provider, host=host, port=port)
    log_with_context(logging.INFO, "Migration API stopped.")
