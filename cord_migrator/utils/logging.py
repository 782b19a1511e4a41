"""
Logging module for the Cord to Liveblocks migration tool
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from cord_migrator.constants import AUDIT_LOG_FILE, MAIN_LOG_FILE

LOGGER_NAME = "cord_migrator"
AUDIT_LOGGER_NAME = "cord_migrator.audit"

# Module-level flag to track if API debug logging is enabled
_DEBUG_API_ENABLED = False

_STANDARD_RECORD_ATTRS = frozenset(
    (
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "id",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    )
)


class JsonFormatter(logging.Formatter):
    """Formats each record as one JSON object, including ``extra`` fields."""

    def format(self, record):
        data = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS:
                data[key] = value
        return json.dumps(data, default=str)


class EnhancedFormatter(logging.Formatter):
    """
    Custom formatter that supports both verbose mode (with additional context information)
    and API debug mode (with request/response data)
    """

    def __init__(
        self,
        fmt=None,
        datefmt=None,
        style="%",
        verbose=False,
        include_api_details=False,
    ):
        if verbose:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"
        elif not fmt:
            fmt = "%(asctime)s - %(levelname)s - %(message)s"

        super().__init__(fmt, datefmt, style)
        self.include_api_details = include_api_details

    def format(self, record):
        result = super().format(record)

        if self.include_api_details:
            if getattr(record, "api_data", None):
                result += f"\nAPI Data: {record.api_data}"
            if getattr(record, "response", None):
                result += f"\nResponse: {record.response}"

        return result


def setup_main_log_file(
    output_dir: str, debug_api: bool = False
) -> logging.FileHandler:
    """
    Set up a file handler for the main log file.

    Args:
        output_dir: The output directory path
        debug_api: If True, include API request/response data in the file

    Returns:
        The file handler for the main log file
    """
    os.makedirs(output_dir, exist_ok=True)
    log_file = os.path.join(output_dir, MAIN_LOG_FILE)

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        EnhancedFormatter(
            "%(asctime)s - %(levelname)s - %(message)s", include_api_details=debug_api
        )
    )

    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(file_handler)

    logger.info(f"Main log file created at: {log_file}")
    return file_handler


def setup_logger(
    verbose: bool = False, debug_api: bool = False, output_dir: Optional[str] = None
) -> logging.Logger:
    """
    Set up and return the logger with appropriate formatting.

    Args:
        verbose: If True, set console handler to DEBUG level; otherwise INFO level
        debug_api: If True, enable detailed API request/response logging
        output_dir: Optional output directory for the main log file

    Returns:
        Configured logger instance
    """
    global _DEBUG_API_ENABLED
    _DEBUG_API_ENABLED = debug_api

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to prevent duplicate messages
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(
        EnhancedFormatter(verbose=verbose, include_api_details=debug_api)
    )
    logger.addHandler(console_handler)

    if output_dir:
        setup_main_log_file(output_dir, debug_api)

    if debug_api:
        logger.info("API debug logging enabled")

    return logger


def setup_audit_log(output_dir: str) -> logging.FileHandler:
    """
    Attach the JSON-lines audit sink for messages that failed to migrate.

    The audit logger does not propagate, so its records never reach the
    console or the main log file.

    Args:
        output_dir: The output directory path

    Returns:
        The file handler writing the audit log
    """
    os.makedirs(output_dir, exist_ok=True)
    audit_file = os.path.join(output_dir, AUDIT_LOG_FILE)

    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    for handler in audit_logger.handlers[:]:
        audit_logger.removeHandler(handler)
        handler.close()
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False

    handler = logging.FileHandler(audit_file, mode="a")
    handler.setLevel(logging.INFO)
    handler.setFormatter(JsonFormatter())
    audit_logger.addHandler(handler)

    log_with_context(logging.INFO, f"Failed message audit log at: {audit_file}")
    return handler


def log_with_context(level: int, message: str, **kwargs: Any) -> None:
    """
    Log a message with additional context information.

    Args:
        level: The logging level (e.g., logging.INFO)
        message: The log message
        **kwargs: Additional context to include in the log record
    """
    filtered_kwargs = {k: v for k, v in kwargs.items() if v is not None}

    exc_info = filtered_kwargs.pop("exc_info", None)

    default_extras = {"api_data": "", "response": ""}
    if "api_data" in filtered_kwargs or "response" in filtered_kwargs:
        extras = {**default_extras, **filtered_kwargs}
    else:
        extras = filtered_kwargs

    logger = logging.getLogger(LOGGER_NAME)
    logger.log(level, message, extra=extras, exc_info=exc_info)


def log_api_request(
    method: str, url: str, data: Optional[Dict] = None, **kwargs: Any
) -> None:
    """
    Log an API request when API debugging is enabled.

    Args:
        method: HTTP method (GET, POST, etc.)
        url: The API endpoint URL
        data: Optional request payload
        **kwargs: Additional context to include in the log record
    """
    if not is_debug_api_enabled():
        return

    log_context = kwargs.copy()
    if data is not None:
        log_context["api_data"] = json.dumps(data, indent=2, default=str)

    log_with_context(logging.DEBUG, f"API Request: {method} {url}", **log_context)


def log_api_response(
    status_code: int, url: str, response_data: Any = None, **kwargs: Any
) -> None:
    """
    Log an API response when API debugging is enabled.

    Args:
        status_code: HTTP status code
        url: The API endpoint URL
        response_data: Optional response data
        **kwargs: Additional context to include in the log record
    """
    if not is_debug_api_enabled():
        return

    log_context = kwargs.copy()
    if response_data:
        if isinstance(response_data, (dict, list)):
            response_str = json.dumps(response_data, indent=2, default=str)
        else:
            response_str = str(response_data)
        if len(response_str) > 2000:
            response_str = response_str[:2000] + "... [truncated]"
        log_context["response"] = response_str

    log_with_context(
        logging.DEBUG, f"API Response: {status_code} from {url}", **log_context
    )


def log_failed_message(
    reason: str,
    *,
    message_id: str,
    thread_id: str,
    room_id: Optional[str] = None,
    org_external_id: Optional[str] = None,
    author_id: Optional[str] = None,
    content: Any = None,
    location: Optional[Dict[str, str]] = None,
    status: Optional[int] = None,
) -> None:
    """
    Record a message that failed to migrate in the audit sink.

    The record carries enough context to reprocess the message by hand.
    """
    logging.getLogger(AUDIT_LOGGER_NAME).error(
        reason,
        extra={
            "cord_message_id": message_id,
            "cord_thread_id": thread_id,
            "room_id": room_id,
            "client_external_id": org_external_id,
            "author_id": author_id,
            "content": content,
            "location": location,
            "status": status,
        },
    )
    log_with_context(
        logging.DEBUG,
        f"Failed to migrate message {message_id}: {reason}",
        cord_message_id=message_id,
        cord_thread_id=thread_id,
        room_id=room_id,
    )


def is_debug_api_enabled() -> bool:
    """Check if API debug logging is enabled."""
    return _DEBUG_API_ENABLED


def get_logger() -> logging.Logger:
    """Get the cord_migrator logger, creating it with defaults if needed."""
    migrator_logger = logging.getLogger(LOGGER_NAME)
    if not migrator_logger.handlers:
        migrator_logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(EnhancedFormatter())
        migrator_logger.addHandler(handler)
    return migrator_logger


# Module logger - will be properly initialized when setup_logger is called
logger = get_logger()
