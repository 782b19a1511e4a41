"""Tests for the POST /migrate HTTP entry point."""

from unittest.mock import AsyncMock, MagicMock

from aiohttp.test_utils import AioHTTPTestCase

from cord_migrator.core.config import MigrationConfig
from cord_migrator.core.migrator import MigrationResult
from cord_migrator.core.stats import MigrationStats
from cord_migrator.exceptions import APIError
from cord_migrator.server import create_app


class TestMigrateEndpoint(AioHTTPTestCase):
    async def get_application(self):
        self.config = MigrationConfig(environment="staging")
        self.provider = MagicMock()
        self.runner = AsyncMock(
            return_value=MigrationResult(
                success=True,
                environment="staging",
                source_stats={"orgs": 1, "threads": 2},
                destination_stats=MigrationStats(rooms_created=1, threads_created=2),
            )
        )
        return create_app(self.config, self.provider, runner=self.runner)

    async def test_success(self):
        resp = await self.client.request("POST", "/migrate")

        assert resp.status == 200
        data = await resp.json()
        assert data["success"] is True
        assert data["environment"] == "staging"
        assert data["sourceStats"] == {"orgs": 1, "threads": 2}
        assert data["destinationStats"]["threads_created"] == 2
        self.runner.assert_awaited_once_with(self.config, self.provider)

    async def test_failed_migration(self):
        self.runner.return_value = MigrationResult(
            success=False,
            environment="staging",
            error_type="MigrationAbortedError",
            error_message="No active organizations found",
        )

        resp = await self.client.request("POST", "/migrate")

        assert resp.status == 500
        assert await resp.json() == {
            "success": False,
            "environment": "staging",
            "error": "Migration failed",
            "type": "MigrationAbortedError",
            "message": "No active organizations found",
        }

    async def test_runner_exception(self):
        self.runner.side_effect = APIError("Unauthorized", status=401)

        resp = await self.client.request("POST", "/migrate")

        assert resp.status == 500
        data = await resp.json()
        assert data["type"] == "APIError"
        assert data["message"] == "Unauthorized"

    async def test_request_body_is_ignored(self):
        resp = await self.client.request(
            "POST", "/migrate", json={"environment": "production"}
        )

        assert resp.status == 200
        assert (await resp.json())["environment"] == "staging"

    async def test_only_post_is_allowed(self):
        resp = await self.client.request("GET", "/migrate")
        assert resp.status == 405
