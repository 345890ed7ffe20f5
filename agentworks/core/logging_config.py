"""
Logging Configuration Module.

Centralized logging configuration for AgentWorks. Entry points (the CLI and the
HTTP app) call ``setup_logging``; library modules only ever call ``get_logger``.

Features:
- Configurable log levels per module
- Console and optional file logging
- Simple, detailed and JSON line formats
"""

import logging
from pathlib import Path
from typing import Optional

SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

LOG_FORMATS = {
    "simple": SIMPLE_FORMAT,
    "detailed": DETAILED_FORMAT,
    "json": JSON_FORMAT,
}

LOG_FILE_NAME = "agentworks.log"

# Module-specific log levels
MODULE_LOG_LEVELS = {
    # Core modules
    "agentworks.router": "DEBUG",
    "agentworks.lanes": "DEBUG",
    "agentworks.metering": "INFO",
    "agentworks.terminal": "INFO",
    "agentworks.repos": "INFO",
    "agentworks.onboarding": "INFO",
    "agentworks.llm": "DEBUG",
    # Surfaces
    "agentworks.server": "INFO",
    "agentworks.cli": "INFO",
    # Third-party libraries (reduce noise)
    "sqlalchemy": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "httpx": "WARNING",
    "asyncio": "WARNING",
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
}


def resolve_format(log_format: Optional[str]) -> str:
    return LOG_FORMATS.get((log_format or "detailed").lower(), DETAILED_FORMAT)


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    enable_file: bool = False,
    log_file_dir: Optional[str] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (simple, detailed, json)
        enable_file: Whether to also write every record to a log file
        log_file_dir: Directory for the log file, defaults to ``logs``
    """
    level = log_level.upper()
    formatter = logging.Formatter(resolve_format(log_format), datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels, filter at handler level

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if enable_file:
        directory = Path(log_file_dir or "logs")
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(directory / LOG_FILE_NAME)
        file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.debug(f"Logging configured: level={level}, format={log_format or 'detailed'}, file_logging={enable_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The module name (typically __name__)

    Returns:
        A configured logger instance
    """
    return logging.getLogger(name)
