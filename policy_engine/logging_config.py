"""
Logging configuration for the policy engine.

Provides centralized structured logging setup with JSON output for production
and human-readable output for development. The LogHandler developer channel
and every library module write through the structlog pipeline configured here.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import structlog


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_format: bool = True,
) -> None:
    """
    Configure structured logging for the policy engine.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to log file. If None, logs only to stderr.
        json_format: If True, use JSON format. If False, use human-readable format.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(numeric_level)
        stderr_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(stderr_handler)

    processors: list = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance for a specific module.

    Args:
        name: Logger name (typically __name__ of the module).

    Returns:
        Structured logger instance.
    """
    if name.startswith("policy_engine"):
        return structlog.get_logger(name)
    return structlog.get_logger(f"policy_engine.{name}")


# Convenience functions for common logging patterns

def log_storage_operation(
    logger: structlog.stdlib.BoundLogger,
    backend: str,
    operation: str,
    success: bool,
    policy_count: Optional[int] = None,
    location: Optional[str] = None,
    reason: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """
    Log a policy storage operation.

    Args:
        logger: Logger instance
        backend: Storage backend name ("memory", "file", "asset")
        operation: Operation performed ("load", "save", "clear")
        success: Whether the operation succeeded
        policy_count: Number of policies loaded or written
        location: File path or asset location, if any
        reason: Failure reason if not successful
        **kwargs: Additional context to log
    """
    log_data: Dict[str, Any] = {
        "event_type": "policy_storage_operation",
        "backend": backend,
        "operation": operation,
        "success": success,
    }

    if policy_count is not None:
        log_data["policy_count"] = policy_count
    if location is not None:
        log_data["location"] = location
    if reason is not None:
        log_data["reason"] = reason

    log_data.update(kwargs)

    if success:
        logger.debug(f"policy_storage_{operation}", **log_data)
    else:
        logger.error(f"policy_storage_{operation}_failed", **log_data)


def log_configuration_loaded(
    logger: structlog.stdlib.BoundLogger,
    source: str,
    debug_mode: bool,
    min_log_level: str,
    **kwargs: Any,
) -> None:
    """
    Log that engine configuration was loaded.

    Args:
        logger: Logger instance
        source: Where the configuration came from (file path or "defaults")
        debug_mode: Effective LogHandler debug mode
        min_log_level: Effective LogHandler minimum level name
        **kwargs: Additional context to log
    """
    log_data: Dict[str, Any] = {
        "event_type": "configuration_loaded",
        "source": source,
        "debug_mode": debug_mode,
        "min_log_level": min_log_level,
    }

    log_data.update(kwargs)

    logger.info("configuration_loaded", **log_data)
