"""Shared utilities for API access, logging, batching, and room keys."""

__all__ = [
    "api",
    "batching",
    "ledger",
    "location",
    "logging",
]
