"""
Utilities shared across the policy engine: diagnostic logging and JSON
conversion helpers.
"""

from policy_engine.utils.json_handler import JsonHandler, is_valid_json_map
from policy_engine.utils.log_handler import (
    DEFAULT_TAG,
    LogEntry,
    LogHandler,
    LogLevel,
    LogSink,
    LoggerConfig,
    StructlogSink,
    detect_debug_mode,
    get_log_handler,
    set_log_handler,
)

__all__ = [
    "JsonHandler",
    "is_valid_json_map",
    "DEFAULT_TAG",
    "LogEntry",
    "LogHandler",
    "LogLevel",
    "LogSink",
    "LoggerConfig",
    "StructlogSink",
    "detect_debug_mode",
    "get_log_handler",
    "set_log_handler",
]
