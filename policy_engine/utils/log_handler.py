"""
Structured diagnostic logging for the policy engine.

LogHandler is the diagnostic sink used by every engine component. It provides:
- Level filtering with a configurable severity floor
- Screen-aware tagging ("[ScreenName]") with per-call overrides
- Timing helpers for synchronous and asynchronous operations
- A primary record plus an optional structured-data record per entry

A LogHandler owns its LoggerConfig. Handlers are ordinary objects that can be
created and injected independently; get_log_handler() returns the shared
default instance used when no handler is injected.
"""

import os
import platform
import sys
import threading
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import IntEnum
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import structlog

T = TypeVar("T")

DEFAULT_TAG = "[PolicyEngine]"
DEBUG_ENV_VAR = "POLICY_ENGINE_DEBUG"
STRUCTURED_CHANNEL_SUFFIX = "_structured"

# message, level and timestamp are always present in a structured log
MANDATORY_STRUCTURED_FIELDS = 3

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def detect_debug_mode() -> bool:
    """
    Detect whether diagnostic logging should be active by default.

    The POLICY_ENGINE_DEBUG environment variable takes precedence. Otherwise
    the interpreter's __debug__ flag is used, which is False when Python runs
    with optimizations enabled (-O).

    Returns:
        True if debug logging should be enabled
    """
    value = os.environ.get(DEBUG_ENV_VAR)
    if value is not None:
        normalized = value.strip().lower()
        if normalized in _TRUTHY:
            return True
        if normalized in _FALSY:
            return False
    return __debug__


class LogLevel(IntEnum):
    """Log severities, ordered from least to most severe."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> "LogLevel":
        """
        Resolve a LogLevel from a level, an integer severity or a name.

        Args:
            value: LogLevel, int severity, or case-insensitive name ("warn" is
                accepted as an alias for "warning")

        Returns:
            The matching LogLevel

        Raises:
            ValueError: If the value does not name a level
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        name = str(value).strip().upper()
        if name == "WARN":
            name = "WARNING"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown log level: {value!r}") from None


@dataclass(frozen=True)
class LogEntry:
    """
    A single diagnostic log entry.

    Entries are built once per log call, handed to the sink and discarded.

    Attributes:
        message: Log message
        level: Severity of the entry
        tag: Logical source of the entry (e.g. "[Home]")
        screen: Logical screen the entry was produced on
        operation: Name of the operation being measured
        duration: Elapsed time of the operation
        error: Attached failure object
        stack_trace: Captured stack trace text
        context: Structured extra data
        timestamp: Creation time of the entry
    """
    message: str
    level: LogLevel
    tag: Optional[str] = None
    screen: Optional[str] = None
    operation: Optional[str] = None
    duration: Optional[timedelta] = None
    error: Optional[Any] = None
    stack_trace: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_structured_log(self) -> Dict[str, Any]:
        """
        Convert to structured log format.

        Optional fields are included only when present; context is included
        only when it has entries.

        Returns:
            Dictionary with message, level and timestamp plus optional fields
        """
        data: Dict[str, Any] = {
            "message": self.message,
            "level": self.level.label,
            "timestamp": self.timestamp.isoformat(),
        }

        if self.tag is not None:
            data["tag"] = self.tag
        if self.screen is not None:
            data["screen"] = self.screen
        if self.operation is not None:
            data["operation"] = self.operation
        if self.duration is not None:
            data["duration_ms"] = self.duration // timedelta(milliseconds=1)
        if self.error is not None:
            data["error"] = str(self.error)
        if self.context:
            data["context"] = self.context

        return data


@dataclass(frozen=True)
class LoggerConfig:
    """
    LogHandler configuration.

    Instances are immutable; every configuration change produces a new
    LoggerConfig that replaces the previous one in a single assignment.

    Attributes:
        tag: Default tag for entries
        current_screen: Current logical screen ("" means none)
        debug_mode_enabled: Whether any output is produced at all
        min_level: Minimum severity that is emitted
        include_timestamp: Attach the entry timestamp to the primary record
        include_stack_trace: Attach stack traces to the primary record
        include_system_info: Attach interpreter/platform details to the primary record
        use_structured_logging: Emit the additional structured-data record
        use_developer_channel: Dispatch entries to the developer channel sink
    """
    tag: str = DEFAULT_TAG
    current_screen: str = ""
    debug_mode_enabled: bool = field(default_factory=detect_debug_mode)
    min_level: LogLevel = LogLevel.DEBUG
    include_timestamp: bool = True
    include_stack_trace: bool = True
    include_system_info: bool = False
    use_structured_logging: bool = True
    use_developer_channel: bool = True


class LogSink(ABC):
    """Destination for emitted log records (the developer channel)."""

    @abstractmethod
    def log(
        self,
        message: str,
        *,
        name: str,
        level: LogLevel,
        error: Optional[Any] = None,
        stack_trace: Optional[str] = None,
        time: Optional[datetime] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Emit a single record on the named channel.

        Args:
            message: Record message
            name: Channel name
            level: Record severity
            error: Attached failure object
            stack_trace: Stack trace text
            time: Record timestamp
            extra: Additional key/value data for the record
        """


class StructlogSink(LogSink):
    """Developer channel backed by structlog; one bound logger per channel name."""

    def log(
        self,
        message: str,
        *,
        name: str,
        level: LogLevel,
        error: Optional[Any] = None,
        stack_trace: Optional[str] = None,
        time: Optional[datetime] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        logger = structlog.get_logger(name).bind(channel=name)

        event_data: Dict[str, Any] = dict(extra or {})
        if time is not None:
            event_data["time"] = time.isoformat()
        if error is not None:
            event_data["error"] = str(error)
        if stack_trace is not None:
            event_data["stack_trace"] = stack_trace

        getattr(logger, level.label)(message, **event_data)


def _tag_for_screen(screen_name: str) -> str:
    return f"[{screen_name}]" if screen_name else DEFAULT_TAG


def _system_info() -> Dict[str, Any]:
    return {
        "python_version": platform.python_version(),
        "platform": sys.platform,
        "pid": os.getpid(),
    }


class LogHandler:
    """
    Screen-aware diagnostic logger with level filtering and timing helpers.

    Logging calls never raise: failures while building or emitting an entry
    are dropped so that diagnostics cannot break the caller.

    Usage::

        log = LogHandler()
        log.set_screen("Home")
        log.info("Policies loaded", context={"count": 3})
        policies = await log.time_async("load_policies", storage.load_policies)
    """

    def __init__(
        self,
        config: Optional[LoggerConfig] = None,
        sink: Optional[LogSink] = None,
    ) -> None:
        """
        Initialize LogHandler.

        Args:
            config: Initial configuration (defaults to LoggerConfig())
            sink: Developer channel sink (defaults to StructlogSink)
        """
        self._config = config if config is not None else LoggerConfig()
        self._sink = sink if sink is not None else StructlogSink()
        self._lock = threading.Lock()

    @property
    def config(self) -> LoggerConfig:
        """Current configuration snapshot."""
        return self._config

    @property
    def sink(self) -> LogSink:
        return self._sink

    @property
    def current_screen(self) -> str:
        return self._config.current_screen

    @property
    def current_tag(self) -> str:
        return self._config.tag

    def set_screen(self, screen_name: str) -> None:
        """
        Set the current screen and derive the tag from it.

        The tag becomes "[screen_name]", or the default tag when screen_name
        is empty. Any custom tag set earlier is overwritten.
        """
        with self._lock:
            self._config = replace(
                self._config,
                current_screen=screen_name,
                tag=_tag_for_screen(screen_name),
            )

    def set_screen_tag(self, screen_name: str, custom_tag: str) -> None:
        """Set the current screen together with a literal custom tag."""
        with self._lock:
            self._config = replace(
                self._config,
                current_screen=screen_name,
                tag=custom_tag,
            )

    def configure(
        self,
        tag: Optional[str] = None,
        screen: Optional[str] = None,
        is_debug_mode: Optional[bool] = None,
        include_timestamp: Optional[bool] = None,
        include_stack_trace: Optional[bool] = None,
        include_system_info: Optional[bool] = None,
        min_log_level: Optional[LogLevel] = None,
        use_structured_logging: Optional[bool] = None,
        use_developer_channel: Optional[bool] = None,
    ) -> None:
        """
        Replace the whole configuration.

        Every option that is omitted reverts to its default rather than
        keeping its previous value. When screen is given without tag, the
        tag is derived from the screen.

        Args:
            tag: Default tag (default "[PolicyEngine]")
            screen: Current screen (default "")
            is_debug_mode: Enable output (default detect_debug_mode())
            include_timestamp: Attach timestamps (default True)
            include_stack_trace: Attach stack traces (default True)
            include_system_info: Attach system info (default False)
            min_log_level: Severity floor (default LogLevel.DEBUG)
            use_structured_logging: Emit structured-data records (default True)
            use_developer_channel: Dispatch to the sink (default True)
        """
        current_screen = screen if screen is not None else ""
        if tag is not None:
            new_tag = tag
        elif screen is not None:
            new_tag = _tag_for_screen(current_screen)
        else:
            new_tag = DEFAULT_TAG

        config = LoggerConfig(
            tag=new_tag,
            current_screen=current_screen,
            debug_mode_enabled=(
                is_debug_mode if is_debug_mode is not None else detect_debug_mode()
            ),
            min_level=(
                LogLevel.parse(min_log_level) if min_log_level is not None else LogLevel.DEBUG
            ),
            include_timestamp=include_timestamp if include_timestamp is not None else True,
            include_stack_trace=include_stack_trace if include_stack_trace is not None else True,
            include_system_info=include_system_info if include_system_info is not None else False,
            use_structured_logging=(
                use_structured_logging if use_structured_logging is not None else True
            ),
            use_developer_channel=(
                use_developer_channel if use_developer_channel is not None else True
            ),
        )

        with self._lock:
            self._config = config

    def reset(self) -> None:
        """Restore the default configuration."""
        with self._lock:
            self._config = LoggerConfig()

    def output(
        self,
        message: str,
        level: LogLevel = LogLevel.DEBUG,
        error: Optional[Any] = None,
        stack_trace: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
        duration: Optional[timedelta] = None,
        screen_override: Optional[str] = None,
    ) -> None:
        """
        Log a message at the given level.

        Nothing happens when debug mode is disabled or the level is below the
        configured minimum. A screen_override applies to this entry only.

        Args:
            message: Log message
            level: Entry severity
            error: Attached failure object
            stack_trace: Stack trace text
            context: Structured extra data
            operation: Operation name
            duration: Operation duration
            screen_override: Screen to attribute this entry to
        """
        config = self._config
        if not config.debug_mode_enabled or level < config.min_level:
            return

        try:
            if screen_override is not None:
                tag = f"[{screen_override}]"
                screen = screen_override
            else:
                tag = config.tag
                screen = config.current_screen or None

            entry = LogEntry(
                message=message,
                level=level,
                tag=tag,
                screen=screen,
                operation=operation,
                duration=duration,
                error=error,
                stack_trace=stack_trace,
                context=context,
            )

            self._log_with_sink(entry, config)
        except Exception:
            # Diagnostics must never propagate into application code.
            return

    def _log_with_sink(self, entry: LogEntry, config: LoggerConfig) -> None:
        if not config.use_developer_channel:
            return

        channel = entry.tag or config.tag
        structured_data = entry.to_structured_log()

        stack_trace = None
        if config.include_stack_trace:
            stack_trace = entry.stack_trace
            if stack_trace is None and isinstance(entry.error, BaseException):
                if entry.error.__traceback__ is not None:
                    stack_trace = "".join(traceback.format_exception(
                        type(entry.error), entry.error, entry.error.__traceback__
                    ))

        self._sink.log(
            entry.message,
            name=channel,
            level=entry.level,
            error=entry.error,
            stack_trace=stack_trace,
            time=entry.timestamp if config.include_timestamp else None,
            extra=_system_info() if config.include_system_info else None,
        )

        if config.use_structured_logging and len(structured_data) > MANDATORY_STRUCTURED_FIELDS:
            self._sink.log(
                f"Structured Data: {structured_data}",
                name=f"{channel}{STRUCTURED_CHANNEL_SUFFIX}",
                level=entry.level,
                time=entry.timestamp if config.include_timestamp else None,
            )

    def debug(
        self,
        message: str,
        error: Optional[Any] = None,
        stack_trace: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
        duration: Optional[timedelta] = None,
        screen_override: Optional[str] = None,
    ) -> None:
        self.output(
            message,
            level=LogLevel.DEBUG,
            error=error,
            stack_trace=stack_trace,
            context=context,
            operation=operation,
            duration=duration,
            screen_override=screen_override,
        )

    def info(
        self,
        message: str,
        error: Optional[Any] = None,
        stack_trace: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
        duration: Optional[timedelta] = None,
        screen_override: Optional[str] = None,
    ) -> None:
        self.output(
            message,
            level=LogLevel.INFO,
            error=error,
            stack_trace=stack_trace,
            context=context,
            operation=operation,
            duration=duration,
            screen_override=screen_override,
        )

    def warning(
        self,
        message: str,
        error: Optional[Any] = None,
        stack_trace: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
        duration: Optional[timedelta] = None,
        screen_override: Optional[str] = None,
    ) -> None:
        self.output(
            message,
            level=LogLevel.WARNING,
            error=error,
            stack_trace=stack_trace,
            context=context,
            operation=operation,
            duration=duration,
            screen_override=screen_override,
        )

    def error(
        self,
        message: str,
        error: Optional[Any] = None,
        stack_trace: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
        duration: Optional[timedelta] = None,
        screen_override: Optional[str] = None,
    ) -> None:
        self.output(
            message,
            level=LogLevel.ERROR,
            error=error,
            stack_trace=stack_trace,
            context=context,
            operation=operation,
            duration=duration,
            screen_override=screen_override,
        )

    def show(
        self,
        message: str,
        error: Optional[Any] = None,
        stack_trace: Optional[str] = None,
    ) -> None:
        """Legacy entry point; equivalent to debug() without extra options."""
        self.debug(message, error=error, stack_trace=stack_trace)

    def time(self, operation: str, body: Callable[[], T]) -> T:
        """
        Run body and log how long it took.

        The completion entry is logged on every exit path. The body's result
        is returned and any exception it raises propagates unchanged.

        Args:
            operation: Operation name recorded on the entry
            body: Callable to execute

        Returns:
            Whatever body returns
        """
        start = perf_counter()
        try:
            return body()
        finally:
            elapsed = timedelta(seconds=perf_counter() - start)
            self.info(
                "Operation completed",
                operation=operation,
                duration=elapsed,
            )

    async def time_async(
        self,
        operation: str,
        body: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Await body and log how long it took.

        Same contract as time(). No timeout is applied: if body never
        completes, nothing is logged.

        Args:
            operation: Operation name recorded on the entry
            body: Coroutine function to await

        Returns:
            Whatever body resolves to
        """
        start = perf_counter()
        try:
            return await body()
        finally:
            elapsed = timedelta(seconds=perf_counter() - start)
            self.info(
                "Async operation completed",
                operation=operation,
                duration=elapsed,
            )


_default_handler: Optional[LogHandler] = None
_default_handler_lock = threading.Lock()


def get_log_handler() -> LogHandler:
    """
    Get the shared default LogHandler, creating it on first use.

    Returns:
        The process-wide default LogHandler
    """
    global _default_handler
    if _default_handler is None:
        with _default_handler_lock:
            if _default_handler is None:
                _default_handler = LogHandler()
    return _default_handler


def set_log_handler(handler: Optional[LogHandler]) -> None:
    """
    Replace the shared default LogHandler.

    Args:
        handler: New default handler, or None to recreate one lazily
    """
    global _default_handler
    with _default_handler_lock:
        _default_handler = handler
