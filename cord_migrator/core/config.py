"""
Configuration module for the Cord to Liveblocks migration tool.

This module provides functions for loading configuration settings from YAML
files, creating default configurations, and determining which Cord
organizations should be migrated based on the configuration.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from cord_migrator.constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_BATCH_DELAY_MS,
    DEFAULT_SECRET_ENV_VAR,
    ENVIRONMENT_PRODUCTION,
    ENVIRONMENT_STAGING,
)
from cord_migrator.exceptions import ConfigError
from cord_migrator.utils.api import environment_from_secret
from cord_migrator.utils.logging import log_with_context


class ResolvedThreadsPolicy(str, Enum):
    """What to do with Cord threads that were already resolved."""

    MIGRATE = "migrate"
    SKIP = "skip"


@dataclass
class BatchConfig:
    """Concurrency width per nesting level and the pause between batches."""

    room_width: int = 5
    thread_width: int = 5
    comment_width: int = 10
    reaction_width: int = 10
    delay_ms: int = DEFAULT_BATCH_DELAY_MS

    @property
    def delay(self) -> float:
        return self.delay_ms / 1000

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> BatchConfig:
        if not data:
            return cls()
        defaults = cls()
        config = cls(
            room_width=int(data.get("room_width", defaults.room_width)),
            thread_width=int(data.get("thread_width", defaults.thread_width)),
            comment_width=int(data.get("comment_width", defaults.comment_width)),
            reaction_width=int(data.get("reaction_width", defaults.reaction_width)),
            delay_ms=int(data.get("delay_ms", defaults.delay_ms)),
        )
        for name in ("room_width", "thread_width", "comment_width", "reaction_width"):
            if getattr(config, name) < 1:
                raise ConfigError(f"batching.{name} must be at least 1")
        if config.delay_ms < 0:
            raise ConfigError("batching.delay_ms must be non-negative")
        return config


@dataclass
class RoomAccessConfig:
    """Groups granted write access to every migrated room."""

    internal_group: str = "internal"
    org_group_prefix: str = "client_"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RoomAccessConfig:
        if not data:
            return cls()
        return cls(
            internal_group=data.get("internal_group", cls.internal_group),
            org_group_prefix=data.get("org_group_prefix", cls.org_group_prefix),
        )


@dataclass
class MigrationConfig:
    """Typed configuration for the migration tool."""

    # Deployment
    environment: str | None = None
    export_path: str | None = None

    # Liveblocks API
    api_base_url: str = DEFAULT_API_BASE_URL
    secret_env_var: str = DEFAULT_SECRET_ENV_VAR
    request_timeout: float = 30.0
    system_user_id: str = "system"

    # Retry
    max_retries: int = 3
    retry_delay: int = 2

    # Throttling
    batching: BatchConfig = field(default_factory=BatchConfig)

    # Behaviour
    resolved_threads: ResolvedThreadsPolicy = ResolvedThreadsPolicy.MIGRATE
    room_access: RoomAccessConfig = field(default_factory=RoomAccessConfig)

    # Organization filtering (by external id)
    include_orgs: list[str] = field(default_factory=list)
    exclude_orgs: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationConfig:
        """Create a MigrationConfig from a raw config dictionary."""
        policy = data.get("resolved_threads", ResolvedThreadsPolicy.MIGRATE.value)
        try:
            resolved_threads = ResolvedThreadsPolicy(policy)
        except ValueError:
            raise ConfigError(
                f"resolved_threads must be one of "
                f"{[p.value for p in ResolvedThreadsPolicy]}, got {policy!r}"
            ) from None

        environment = data.get("environment")
        if environment not in (None, ENVIRONMENT_PRODUCTION, ENVIRONMENT_STAGING):
            raise ConfigError(f"Unknown environment {environment!r}")

        return cls(
            environment=environment,
            export_path=data.get("export_path"),
            api_base_url=data.get("api_base_url", DEFAULT_API_BASE_URL),
            secret_env_var=data.get("secret_env_var", DEFAULT_SECRET_ENV_VAR),
            request_timeout=float(data.get("request_timeout", 30.0)),
            system_user_id=data.get("system_user_id", "system"),
            max_retries=data.get("max_retries", 3),
            retry_delay=data.get("retry_delay", 2),
            batching=BatchConfig.from_dict(data.get("batching")),
            resolved_threads=resolved_threads,
            room_access=RoomAccessConfig.from_dict(data.get("room_access")),
            include_orgs=data.get("include_orgs") or [],
            exclude_orgs=data.get("exclude_orgs") or [],
        )

    def get_secret(self) -> str:
        """Read the Liveblocks secret key from the configured env var."""
        secret = os.environ.get(self.secret_env_var, "")
        if not secret:
            raise ConfigError(
                f"Liveblocks secret key not found in ${self.secret_env_var}"
            )
        return secret

    def resolve_environment(self, secret: str | None = None) -> str:
        """Return the configured environment, or derive it from the secret key."""
        if self.environment:
            return self.environment
        return environment_from_secret(secret)


def load_config(config_path: Path) -> MigrationConfig:
    """
    Load configuration from YAML file and apply default values.

    If the file doesn't exist or cannot be read, a warning is logged and
    default settings are used. Values that are present but invalid raise
    :class:`ConfigError`.

    Args:
        config_path: Path to the config YAML file

    Returns:
        MigrationConfig with all necessary defaults applied
    """
    raw: dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path) as f:
                loaded_config = yaml.safe_load(f)
                if loaded_config is not None:
                    raw = loaded_config
            log_with_context(logging.INFO, f"Loaded configuration from {config_path}")
        except (yaml.YAMLError, OSError) as e:
            log_with_context(
                logging.WARNING, f"Failed to load config file {config_path}: {e}"
            )
    else:
        log_with_context(
            logging.WARNING,
            f"Config file {config_path} not found, using default settings",
        )

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    return MigrationConfig.from_dict(raw)


def create_default_config(output_path: Path) -> bool:
    """
    Create a default configuration file with recommended settings.

    Will not overwrite an existing configuration file.

    Args:
        output_path: Path where the default config should be saved

    Returns:
        True if the config file was created successfully, False otherwise
    """
    if output_path.exists():
        log_with_context(
            logging.WARNING,
            f"Config file {output_path} already exists, not overwriting",
        )
        return False

    default_config = {
        "environment": ENVIRONMENT_STAGING,
        "export_path": "cord_export",
        "secret_env_var": DEFAULT_SECRET_ENV_VAR,
        "request_timeout": 30,
        "system_user_id": "system",
        "max_retries": 3,
        "retry_delay": 2,
        "batching": {
            "room_width": 5,
            "thread_width": 5,
            "comment_width": 10,
            "reaction_width": 10,
            "delay_ms": DEFAULT_BATCH_DELAY_MS,
        },
        "resolved_threads": ResolvedThreadsPolicy.MIGRATE.value,
        "room_access": {"internal_group": "internal", "org_group_prefix": "client_"},
        "include_orgs": [],
        "exclude_orgs": [],
    }

    try:
        with open(output_path, "w") as f:
            yaml.safe_dump(default_config, f, default_flow_style=False)
        log_with_context(logging.INFO, f"Created default config file at {output_path}")
        return True
    except OSError as e:
        log_with_context(logging.ERROR, f"Failed to create default config file: {e}")
        return False


def should_process_org(external_id: str | None, config: MigrationConfig) -> bool:
    """
    Determine if a Cord organization should be migrated.

    1. Organizations without an external id are never migrated.
    2. If include_orgs is set, only those external ids are processed.
    3. Otherwise everything except exclude_orgs is processed.

    Args:
        external_id: The organization's external id
        config: The MigrationConfig instance

    Returns:
        True if the organization should be processed
    """
    if not external_id:
        return False

    if config.include_orgs:
        included = external_id in set(config.include_orgs)
        if not included:
            log_with_context(
                logging.DEBUG,
                f"ORG CHECK: Org '{external_id}' not in include list, skipping",
            )
        return included

    if external_id in set(config.exclude_orgs):
        log_with_context(
            logging.DEBUG,
            f"ORG CHECK: Org '{external_id}' is in exclude list, skipping",
        )
        return False

    return True
