"""
Configuration loading for the policy engine.

Configuration is read from a YAML file and merged over built-in defaults:

    storage:
      policy_store: ~/.policy_engine/policies.json
      backup_count: 3

    logging:
      level: INFO
      file: null
      json_format: false
      debug_mode: null        # null = auto-detect
      min_log_level: debug
      tag: "[PolicyEngine]"
      include_timestamp: true
      include_stack_trace: true
      include_system_info: false
      use_structured_logging: true
      use_developer_channel: true
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from policy_engine.exceptions import ConfigurationError
from policy_engine.logging_config import get_logger, log_configuration_loaded
from policy_engine.utils.log_handler import DEFAULT_TAG, LogHandler, LogLevel, LogSink

logger = get_logger(__name__)

DEFAULT_POLICY_STORE = "~/.policy_engine/policies.json"


@dataclass
class StorageSettings:
    """
    Storage settings.

    Attributes:
        policy_store: Path to the JSON policy file
        backup_count: Number of rolling backups to keep
    """
    policy_store: str = DEFAULT_POLICY_STORE
    backup_count: int = 3

    @property
    def policy_store_path(self) -> Path:
        return Path(self.policy_store).expanduser()


@dataclass
class LoggingSettings:
    """
    Logging settings.

    The first three attributes configure the structlog pipeline; the rest
    configure the LogHandler.

    Attributes:
        level: Root log level for the structlog pipeline
        file: Optional log file path
        json_format: Render JSON instead of console output
        debug_mode: Force LogHandler debug mode on/off (None = auto-detect)
        min_log_level: LogHandler severity floor
        tag: LogHandler default tag
    """
    level: str = "INFO"
    file: Optional[str] = None
    json_format: bool = False
    debug_mode: Optional[bool] = None
    min_log_level: str = "debug"
    tag: str = DEFAULT_TAG
    include_timestamp: bool = True
    include_stack_trace: bool = True
    include_system_info: bool = False
    use_structured_logging: bool = True
    use_developer_channel: bool = True


@dataclass
class PolicyEngineConfig:
    """Top-level policy engine configuration."""
    storage: StorageSettings = field(default_factory=StorageSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: str = "defaults"

    def build_log_handler(self, sink: Optional[LogSink] = None) -> LogHandler:
        """
        Create a LogHandler configured from the logging section.

        Args:
            sink: Optional developer channel sink

        Returns:
            Configured LogHandler
        """
        settings = self.logging
        handler = LogHandler(sink=sink)
        handler.configure(
            tag=settings.tag,
            is_debug_mode=settings.debug_mode,
            include_timestamp=settings.include_timestamp,
            include_stack_trace=settings.include_stack_trace,
            include_system_info=settings.include_system_info,
            min_log_level=LogLevel.parse(settings.min_log_level),
            use_structured_logging=settings.use_structured_logging,
            use_developer_channel=settings.use_developer_channel,
        )
        log_configuration_loaded(
            logger,
            source=self.source,
            debug_mode=handler.config.debug_mode_enabled,
            min_log_level=handler.config.min_level.label,
        )
        return handler


def _section(data: Dict[str, Any], name: str, settings_class: type) -> Any:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")

    known = {f.name for f in fields(settings_class)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown option(s) in '{name}' section: {', '.join(unknown)}"
        )
    return settings_class(**section)


def load_config(config_path: Optional[Union[str, Path]] = None) -> PolicyEngineConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file. If None, defaults are returned.

    Returns:
        PolicyEngineConfig with file values merged over defaults

    Raises:
        ConfigurationError: If the file cannot be read, is not valid YAML,
            or contains invalid options
    """
    if config_path is None:
        return PolicyEngineConfig()

    path = Path(config_path).expanduser()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Failed to read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    config = PolicyEngineConfig(
        storage=_section(data, "storage", StorageSettings),
        logging=_section(data, "logging", LoggingSettings),
        source=str(path),
    )

    try:
        LogLevel.parse(config.logging.min_log_level)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    logger.debug(f"Loaded configuration from {path}")
    return config
