"""
HTTP entry point for the Cord to Liveblocks migration.

Exposes ``POST /migrate``, which runs one migration for the configured
environment and responds with its result. The environment is never taken
from the request.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from aiohttp import web
from aiohttp.web import Request, Response

from cord_migrator.core.config import MigrationConfig
from cord_migrator.core.migrator import MigrationResult, run_migration
from cord_migrator.services.source import SourceDataProvider
from cord_migrator.utils.logging import log_with_context

MigrationRunner = Callable[[MigrationConfig, SourceDataProvider], Awaitable[MigrationResult]]


async def _run_without_progress(
    config: MigrationConfig, provider: SourceDataProvider
) -> MigrationResult:
    return await run_migration(config, provider, show_progress=False)


class MigrationAPI:
    """Web API that triggers migrations."""

    def __init__(
        self,
        config: MigrationConfig,
        provider: SourceDataProvider,
        runner: Optional[MigrationRunner] = None,
    ):
        self.config = config
        self.provider = provider
        self.runner = runner or _run_without_progress
        self.app = web.Application()
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_post("/migrate", self.migrate)

    def get_app(self) -> web.Application:
        return self.app

    async def migrate(self, request: Request) -> Response:
        """Run a migration and report its result."""
        log_with_context(logging.INFO, f"Migration requested from {request.remote}")
        try:
            result = await self.runner(self.config, self.provider)
        except Exception as e:
            log_with_context(
                logging.ERROR,
                f"Migration endpoint error: {e}",
                exception_type=type(e).__name__,
            )
            return web.json_response(
                {
                    "success": False,
                    "error": "Migration failed",
                    "type": type(e).__name__,
                    "message": str(e),
                },
                status=500,
            )

        return web.json_response(result.to_dict(), status=200 if result.success else 500)


def create_app(
    config: MigrationConfig,
    provider: SourceDataProvider,
    runner: Optional[MigrationRunner] = None,
) -> web.Application:
    """Build the aiohttp application serving ``POST /migrate``."""
    return MigrationAPI(config, provider, runner).get_app()


def run_server(
    config: MigrationConfig,
    provider: SourceDataProvider,
    host: str = "127.0.0.1",
    port: int = 8080,
) -> None:
    """Serve the migration API until interrupted."""
    log_with_context(logging.INFO, f"Serving migration API on http://{host}:{port}")
    web.run_app(create_app(config, provider), host=host, port=port, print=None)
