"""Command-line interface for the migration tool."""
