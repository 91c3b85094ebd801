"""
Unit tests for LogHandler.

Tests the diagnostic logging functionality:
- Log levels and log entries
- Configuration lifecycle (configure, screen context, reset)
- Level filtering and developer channel dispatch
- Structured data records
- Timing helpers
"""

import asyncio
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

from policy_engine.utils.log_handler import (
    DEFAULT_TAG,
    DEBUG_ENV_VAR,
    LogEntry,
    LogHandler,
    LogLevel,
    LoggerConfig,
    StructlogSink,
    detect_debug_mode,
    get_log_handler,
    set_log_handler,
)


@pytest.fixture(autouse=True)
def debug_env(monkeypatch):
    """Make debug mode auto-detection deterministic."""
    monkeypatch.setenv(DEBUG_ENV_VAR, "1")


class TestLogLevel:
    """Tests for LogLevel."""

    def test_values(self):
        assert LogLevel.DEBUG == 0
        assert LogLevel.INFO == 1
        assert LogLevel.WARNING == 2
        assert LogLevel.ERROR == 3

    def test_ordering(self):
        assert LogLevel.DEBUG < LogLevel.INFO < LogLevel.WARNING < LogLevel.ERROR

    def test_labels(self):
        assert [level.label for level in LogLevel] == ["debug", "info", "warning", "error"]

    @pytest.mark.parametrize("value,expected", [
        ("debug", LogLevel.DEBUG),
        ("INFO", LogLevel.INFO),
        ("warn", LogLevel.WARNING),
        (" Error ", LogLevel.ERROR),
        (2, LogLevel.WARNING),
        (LogLevel.INFO, LogLevel.INFO),
    ])
    def test_parse(self, value, expected):
        assert LogLevel.parse(value) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            LogLevel.parse("verbose")


class TestLogEntry:
    """Tests for LogEntry."""

    def test_required_fields(self):
        before = datetime.now()
        entry = LogEntry(message="Test message", level=LogLevel.INFO)

        assert entry.message == "Test message"
        assert entry.level is LogLevel.INFO
        assert entry.tag is None
        assert entry.context is None
        assert before <= entry.timestamp <= datetime.now()

    def test_entry_is_immutable(self):
        entry = LogEntry(message="Test message", level=LogLevel.INFO)

        with pytest.raises(FrozenInstanceError):
            entry.message = "changed"

    def test_structured_log_with_all_fields(self):
        timestamp = datetime(2024, 1, 15, 10, 30, 0)
        entry = LogEntry(
            message="Test message",
            level=LogLevel.WARNING,
            tag="[CustomTag]",
            screen="TestScreen",
            operation="test_operation",
            duration=timedelta(milliseconds=100),
            error=ValueError("boom"),
            context={"key": "value"},
            timestamp=timestamp,
        )

        assert entry.to_structured_log() == {
            "message": "Test message",
            "level": "warning",
            "timestamp": "2024-01-15T10:30:00",
            "tag": "[CustomTag]",
            "screen": "TestScreen",
            "operation": "test_operation",
            "duration_ms": 100,
            "error": "boom",
            "context": {"key": "value"},
        }

    def test_structured_log_mandatory_fields_only(self):
        entry = LogEntry(message="Test message", level=LogLevel.DEBUG, context={})

        assert set(entry.to_structured_log()) == {"message", "level", "timestamp"}

    def test_duration_is_truncated_to_milliseconds(self):
        entry = LogEntry(
            message="m",
            level=LogLevel.INFO,
            duration=timedelta(microseconds=2999),
        )

        assert entry.to_structured_log()["duration_ms"] == 2


class TestDebugModeDetection:
    """Tests for debug mode auto-detection."""

    @pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
    def test_env_enables(self, monkeypatch, value):
        monkeypatch.setenv(DEBUG_ENV_VAR, value)
        assert detect_debug_mode() is True

    @pytest.mark.parametrize("value", ["0", "false", "No", "off"])
    def test_env_disables(self, monkeypatch, value):
        monkeypatch.setenv(DEBUG_ENV_VAR, value)
        assert detect_debug_mode() is False

    def test_falls_back_to_interpreter_flag(self, monkeypatch):
        monkeypatch.delenv(DEBUG_ENV_VAR, raising=False)
        assert detect_debug_mode() is __debug__

    def test_unrecognized_value_falls_back(self, monkeypatch):
        monkeypatch.setenv(DEBUG_ENV_VAR, "maybe")
        assert detect_debug_mode() is __debug__


class TestConfiguration:
    """Tests for configure, screen context and reset."""

    def test_defaults(self):
        config = LogHandler().config

        assert config.tag == DEFAULT_TAG
        assert config.current_screen == ""
        assert config.debug_mode_enabled is True
        assert config.min_level is LogLevel.DEBUG
        assert config.include_timestamp is True
        assert config.include_stack_trace is True
        assert config.include_system_info is False
        assert config.use_structured_logging is True
        assert config.use_developer_channel is True

    def test_set_screen(self, log_handler):
        log_handler.set_screen("Home")

        assert log_handler.current_screen == "Home"
        assert log_handler.current_tag == "[Home]"

    def test_set_empty_screen_restores_default_tag(self, log_handler):
        log_handler.set_screen("Home")
        log_handler.set_screen("")

        assert log_handler.current_screen == ""
        assert log_handler.current_tag == DEFAULT_TAG

    def test_set_screen_tag(self, log_handler):
        log_handler.set_screen_tag("Settings", "CustomTag")

        assert log_handler.current_screen == "Settings"
        assert log_handler.current_tag == "CustomTag"

    def test_set_screen_overwrites_custom_tag(self, log_handler):
        log_handler.set_screen_tag("Settings", "CustomTag")
        log_handler.set_screen("Profile")

        assert log_handler.current_tag == "[Profile]"

    def test_configure_sets_options(self, log_handler):
        log_handler.configure(
            tag="[Custom]",
            screen="Home",
            is_debug_mode=False,
            include_timestamp=False,
            include_stack_trace=False,
            include_system_info=True,
            min_log_level=LogLevel.ERROR,
            use_structured_logging=False,
            use_developer_channel=False,
        )

        assert log_handler.config == LoggerConfig(
            tag="[Custom]",
            current_screen="Home",
            debug_mode_enabled=False,
            min_level=LogLevel.ERROR,
            include_timestamp=False,
            include_stack_trace=False,
            include_system_info=True,
            use_structured_logging=False,
            use_developer_channel=False,
        )

    def test_configure_screen_without_tag_derives_tag(self, log_handler):
        log_handler.configure(screen="Dashboard")

        assert log_handler.current_screen == "Dashboard"
        assert log_handler.current_tag == "[Dashboard]"

    def test_configure_empty_screen_uses_default_tag(self, log_handler):
        log_handler.configure(screen="")

        assert log_handler.current_tag == DEFAULT_TAG

    def test_configure_omitted_options_revert_to_defaults(self, log_handler):
        log_handler.configure(
            tag="[Custom]",
            include_system_info=True,
            min_log_level=LogLevel.WARNING,
        )
        log_handler.configure(include_timestamp=False)

        config = log_handler.config
        assert config.tag == DEFAULT_TAG
        assert config.include_system_info is False
        assert config.min_level is LogLevel.DEBUG
        assert config.include_timestamp is False

    def test_configure_accepts_level_names(self, log_handler):
        log_handler.configure(min_log_level="warning")

        assert log_handler.config.min_level is LogLevel.WARNING

    def test_reset_restores_defaults(self, log_handler):
        log_handler.configure(
            tag="[Custom]",
            screen="Home",
            is_debug_mode=False,
            min_log_level=LogLevel.ERROR,
            use_developer_channel=False,
        )
        log_handler.set_screen_tag("Other", "Tag")

        log_handler.reset()

        assert log_handler.config == LoggerConfig()

    def test_reset_uses_detected_debug_mode(self, log_handler, monkeypatch):
        monkeypatch.setenv(DEBUG_ENV_VAR, "0")

        log_handler.reset()

        assert log_handler.config.debug_mode_enabled is False


class TestOutput:
    """Tests for level filtering and dispatch."""

    def test_emits_primary_and_structured_records(self, log_handler, sink):
        log_handler.info("Hello", context={"key": "value"})

        assert len(sink.primary) == 1
        assert len(sink.structured) == 1

        primary = sink.primary[0]
        assert primary.message == "Hello"
        assert primary.name == DEFAULT_TAG
        assert primary.level is LogLevel.INFO
        assert isinstance(primary.time, datetime)

        structured = sink.structured[0]
        assert structured.name == f"{DEFAULT_TAG}_structured"
        assert structured.message.startswith("Structured Data: ")
        assert "'key': 'value'" in structured.message
        assert structured.time == primary.time

    def test_disabled_debug_mode_emits_nothing(self, sink):
        handler = LogHandler(config=LoggerConfig(debug_mode_enabled=False), sink=sink)

        handler.error("Should not appear")

        assert sink.records == []

    @pytest.mark.parametrize("min_level", list(LogLevel))
    def test_levels_below_minimum_emit_nothing(self, log_handler, sink, min_level):
        log_handler.configure(is_debug_mode=True, min_log_level=min_level)

        for level in LogLevel:
            if level < min_level:
                log_handler.output("filtered", level=level)

        assert sink.records == []

    def test_minimum_level_scenario(self, log_handler, sink):
        log_handler.configure(is_debug_mode=True, min_log_level=LogLevel.WARNING)

        log_handler.debug("x")
        assert sink.records == []

        log_handler.error("y")
        assert [r.message for r in sink.primary] == ["y"]
        assert sink.primary[0].level is LogLevel.ERROR
        assert len(sink.structured) == 1

    def test_uses_current_screen_tag(self, log_handler, sink):
        log_handler.set_screen("Home")

        log_handler.debug("on home")

        assert sink.primary[0].name == "[Home]"
        assert "'screen': 'Home'" in sink.structured[0].message

    def test_empty_screen_is_not_recorded(self, log_handler, sink):
        log_handler.debug("no screen")

        assert "'screen'" not in sink.structured[0].message

    def test_screen_override_applies_to_single_entry(self, log_handler, sink):
        log_handler.set_screen("Home")

        log_handler.info("elsewhere", screen_override="Settings")
        log_handler.info("back home")

        assert [r.name for r in sink.primary] == ["[Settings]", "[Home]"]
        assert "'screen': 'Settings'" in sink.structured[0].message
        assert log_handler.current_screen == "Home"
        assert log_handler.current_tag == "[Home]"

    def test_developer_channel_disabled(self, log_handler, sink):
        log_handler.configure(is_debug_mode=True, use_developer_channel=False)

        log_handler.error("hidden")

        assert sink.records == []

    def test_structured_logging_disabled(self, log_handler, sink):
        log_handler.configure(is_debug_mode=True, use_structured_logging=False)

        log_handler.info("only primary", context={"key": "value"})

        assert len(sink.primary) == 1
        assert sink.structured == []

    def test_timestamp_omitted_when_disabled(self, log_handler, sink):
        log_handler.configure(is_debug_mode=True, include_timestamp=False)

        log_handler.info("no time")

        assert all(r.time is None for r in sink.records)

    def test_system_info_attached_when_enabled(self, log_handler, sink):
        log_handler.configure(is_debug_mode=True, include_system_info=True)

        log_handler.info("with system info")

        extra = sink.primary[0].extra
        assert set(extra) == {"python_version", "platform", "pid"}

    def test_error_and_explicit_stack_trace_forwarded(self, log_handler, sink):
        error = RuntimeError("failure")

        log_handler.error("failed", error=error, stack_trace="trace text")

        primary = sink.primary[0]
        assert primary.error is error
        assert primary.stack_trace == "trace text"
        assert "'error': 'failure'" in sink.structured[0].message

    def test_stack_trace_derived_from_raised_error(self, log_handler, sink):
        try:
            raise KeyError("missing")
        except KeyError as e:
            log_handler.error("lookup failed", error=e)

        stack_trace = sink.primary[0].stack_trace
        assert stack_trace is not None
        assert "KeyError" in stack_trace

    def test_stack_trace_omitted_when_disabled(self, log_handler, sink):
        log_handler.configure(is_debug_mode=True, include_stack_trace=False)

        log_handler.error("failed", error=RuntimeError("x"), stack_trace="trace text")

        assert sink.primary[0].stack_trace is None

    def test_sink_failure_does_not_propagate(self):
        class BrokenSink(StructlogSink):
            def log(self, message, **kwargs):
                raise RuntimeError("sink is broken")

        handler = LogHandler(config=LoggerConfig(debug_mode_enabled=True), sink=BrokenSink())

        handler.error("still fine")

    def test_unprintable_error_does_not_propagate(self, log_handler, sink):
        class Unprintable:
            def __str__(self):
                raise ValueError("cannot render")

        log_handler.error("odd error", error=Unprintable())

        assert sink.records == []

    @pytest.mark.parametrize("method,level", [
        ("debug", LogLevel.DEBUG),
        ("info", LogLevel.INFO),
        ("warning", LogLevel.WARNING),
        ("error", LogLevel.ERROR),
    ])
    def test_convenience_methods_forward_level(self, log_handler, method, level):
        with patch.object(log_handler, "output") as output:
            getattr(log_handler, method)("message", operation="op", screen_override="S")

        output.assert_called_once_with(
            "message",
            level=level,
            error=None,
            stack_trace=None,
            context=None,
            operation="op",
            duration=None,
            screen_override="S",
        )

    def test_show_forwards_to_debug(self, log_handler):
        error = ValueError("legacy")

        with patch.object(log_handler, "debug") as debug:
            log_handler.show("legacy message", error=error)

        debug.assert_called_once_with("legacy message", error=error, stack_trace=None)


class TestStructuredRecordCondition:
    """A structured record is emitted only when there is extra data to show."""

    def test_no_structured_record_without_extra_fields(self, log_handler, sink):
        entry = LogEntry(message="bare", level=LogLevel.INFO)

        log_handler._log_with_sink(entry, log_handler.config)

        assert len(sink.primary) == 1
        assert sink.structured == []

    @pytest.mark.parametrize("extra", [
        {"tag": "[T]"},
        {"screen": "S"},
        {"operation": "op"},
        {"duration": timedelta(seconds=1)},
        {"error": RuntimeError("e")},
        {"context": {"k": 1}},
    ])
    def test_structured_record_with_any_extra_field(self, log_handler, sink, extra):
        entry = LogEntry(message="rich", level=LogLevel.INFO, **extra)

        log_handler._log_with_sink(entry, log_handler.config)

        assert len(sink.structured) == 1


class TestTiming:
    """Tests for time and time_async."""

    def test_time_returns_result_and_logs(self, log_handler, sink):
        with patch.object(log_handler, "output", wraps=log_handler.output) as output:
            result = log_handler.time("compute", lambda: 42)

        assert result == 42
        output.assert_called_once()
        args, kwargs = output.call_args
        assert args == ("Operation completed",)
        assert kwargs["level"] is LogLevel.INFO
        assert kwargs["operation"] == "compute"
        assert isinstance(kwargs["duration"], timedelta)
        assert "'operation': 'compute'" in sink.structured[0].message

    def test_time_logs_and_reraises_on_failure(self, log_handler):
        error = RuntimeError("body failed")

        def body():
            raise error

        with patch.object(log_handler, "output", wraps=log_handler.output) as output:
            with pytest.raises(RuntimeError) as exc_info:
                log_handler.time("op", body)

        assert exc_info.value is error
        output.assert_called_once()
        _, kwargs = output.call_args
        assert kwargs["operation"] == "op"
        assert kwargs["duration"] is not None

    def test_time_measures_elapsed(self, log_handler):
        import time as time_module

        with patch.object(log_handler, "output") as output:
            log_handler.time("sleep", lambda: time_module.sleep(0.02))

        assert output.call_args.kwargs["duration"] >= timedelta(milliseconds=15)

    @pytest.mark.asyncio
    async def test_time_async_returns_result(self, log_handler):
        async def body():
            await asyncio.sleep(0)
            return {"policy": "value"}

        with patch.object(log_handler, "output", wraps=log_handler.output) as output:
            result = await log_handler.time_async("load", body)

        assert result == {"policy": "value"}
        output.assert_called_once()
        args, kwargs = output.call_args
        assert args == ("Async operation completed",)
        assert kwargs["operation"] == "load"
        assert isinstance(kwargs["duration"], timedelta)

    @pytest.mark.asyncio
    async def test_time_async_logs_and_reraises_on_failure(self, log_handler):
        async def body():
            await asyncio.sleep(0)
            raise ValueError("async failure")

        with patch.object(log_handler, "output", wraps=log_handler.output) as output:
            with pytest.raises(ValueError, match="async failure"):
                await log_handler.time_async("load", body)

        output.assert_called_once()
        assert output.call_args.kwargs["operation"] == "load"
        assert output.call_args.kwargs["duration"] is not None

    @pytest.mark.asyncio
    async def test_time_async_logs_after_body_completes(self, log_handler, sink):
        order = []

        async def body():
            await asyncio.sleep(0.01)
            order.append("body")

        class OrderSink(type(sink)):
            def log(self, message, **kwargs):
                order.append(message)

        log_handler._sink = OrderSink()
        await log_handler.time_async("ordered", body)

        assert order[0] == "body"
        assert order[1] == "Async operation completed"


class TestStructlogSink:
    """Tests for the structlog-backed developer channel."""

    def test_emits_bound_event(self):
        sink = StructlogSink()
        timestamp = datetime(2024, 1, 15, 10, 30, 0)

        with capture_logs() as logs:
            sink.log(
                "Hello",
                name="[Home]",
                level=LogLevel.WARNING,
                error=ValueError("bad"),
                stack_trace="trace",
                time=timestamp,
                extra={"pid": 1},
            )

        assert logs == [{
            "event": "Hello",
            "log_level": "warning",
            "channel": "[Home]",
            "time": "2024-01-15T10:30:00",
            "error": "bad",
            "stack_trace": "trace",
            "pid": 1,
        }]

    def test_handler_routes_through_structlog_by_default(self):
        handler = LogHandler(config=LoggerConfig(debug_mode_enabled=True))

        with capture_logs() as logs:
            handler.info("through structlog", operation="op")

        assert [entry["channel"] for entry in logs] == [DEFAULT_TAG, f"{DEFAULT_TAG}_structured"]
        assert logs[0]["event"] == "through structlog"
        assert logs[1]["event"].startswith("Structured Data: ")


class TestDefaultHandler:
    """Tests for the shared default handler."""

    def test_get_log_handler_returns_same_instance(self):
        assert get_log_handler() is get_log_handler()

    def test_set_log_handler_replaces_default(self, log_handler):
        set_log_handler(log_handler)

        assert get_log_handler() is log_handler

    def test_set_none_recreates_lazily(self, log_handler):
        set_log_handler(log_handler)
        set_log_handler(None)

        assert get_log_handler() is not log_handler
