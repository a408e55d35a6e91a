"""
logging_config.py — Centralized Logging Configuration for Order Desk

This module configures unified logging behavior for the entire application.
It ensures that all modules log messages consistently to both console and file.

Features:
    • Combined console and file logging output
    • Process ID tagging for multi-process visibility
    • Standardized log format for all modules
    • Reduced verbosity for external dependencies (httpx, httpcore)
"""

import logging
import sys

from .config import LOG_FILE


def setup_logging(log_file: str = LOG_FILE):
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: INFO (default)
        - Log format: timestamp, log level, process ID, and message
        - Output destinations:
            1. File: ``log_file`` (persistent log, skipped when empty)
            2. Console (stdout): real-time logs, Docker/Kubernetes compatible
        - Reduced verbosity for the HTTP client libraries

    Args:
        log_file (str): Path of the persistent log file. Defaults to
            ``ORDER_DESK_LOG_FILE`` or ``order_desk.log``.
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.INFO,
        format=log_format,
        handlers=handlers,
    )

    # Every request is already logged by the gateways
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a configured logger instance for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
