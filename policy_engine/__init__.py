"""
Policy Engine - policy storage contract and structured diagnostics.

Provides the storage abstraction used to persist policy definitions and the
LogHandler used throughout the engine for screen-aware, level-filtered,
timed diagnostic logging.
"""

from policy_engine._version import __version__
from policy_engine.core.storage import IPolicyStorage, MemoryPolicyStorage, PolicyMap
from policy_engine.exceptions import PolicyEngineError, StorageError
from policy_engine.utils.log_handler import (
    LogEntry,
    LogHandler,
    LogLevel,
    LoggerConfig,
    get_log_handler,
    set_log_handler,
)

__all__ = [
    "__version__",
    "IPolicyStorage",
    "MemoryPolicyStorage",
    "PolicyMap",
    "PolicyEngineError",
    "StorageError",
    "LogEntry",
    "LogHandler",
    "LogLevel",
    "LoggerConfig",
    "get_log_handler",
    "set_log_handler",
]
