"""
Report generation for Cord to Liveblocks migration runs
"""

import datetime
import logging
import os
from typing import Optional

import yaml

from cord_migrator.constants import OUTPUT_ROOT_DIR, REPORT_FILE
from cord_migrator.core.migrator import MigrationResult
from cord_migrator.utils.logging import log_with_context


def create_output_directory(root: str = OUTPUT_ROOT_DIR) -> str:
    """Create a timestamped output directory for this migration run."""
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    run_output_dir = os.path.join(root, f"run_{timestamp}")
    os.makedirs(run_output_dir, exist_ok=True)

    log_with_context(logging.INFO, f"Created output directory at {run_output_dir}")
    return run_output_dir


def generate_report(
    result: MigrationResult, output_dir: str, output_file: str = REPORT_FILE
) -> Optional[str]:
    """Write a YAML report of a migration run.

    Returns:
        The report path, or None if it could not be written.
    """
    report = {
        "migration_summary": {
            "timestamp": datetime.datetime.now().isoformat(),
            "environment": result.environment,
            "success": result.success,
            "duration_seconds": round(result.duration, 1),
        },
        "source": dict(result.source_stats),
        "destination": result.destination_stats.to_dict(),
    }
    if result.unresolved_users:
        report["unresolved_users"] = list(result.unresolved_users)
    if not result.success:
        report["error"] = {"type": result.error_type, "message": result.error_message}

    report_path = os.path.join(output_dir, output_file)
    try:
        with open(report_path, "w") as f:
            yaml.safe_dump(report, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        log_with_context(logging.ERROR, f"Failed to write migration report: {e}")
        return None

    log_with_context(logging.INFO, f"Migration report saved to {report_path}")
    return report_path
