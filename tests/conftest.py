"""
Shared fixtures for policy engine tests.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import structlog

from policy_engine.utils.log_handler import (
    LogHandler,
    LogLevel,
    LogSink,
    LoggerConfig,
    set_log_handler,
)


@dataclass
class SinkRecord:
    """A record captured by RecordingSink."""
    message: str
    name: str
    level: LogLevel
    error: Optional[Any] = None
    stack_trace: Optional[str] = None
    time: Optional[datetime] = None
    extra: Optional[Dict[str, Any]] = None


@dataclass
class RecordingSink(LogSink):
    """LogSink that keeps every record in memory."""
    records: List[SinkRecord] = field(default_factory=list)

    def log(self, message, *, name, level, error=None, stack_trace=None, time=None, extra=None):
        self.records.append(SinkRecord(
            message=message,
            name=name,
            level=level,
            error=error,
            stack_trace=stack_trace,
            time=time,
            extra=extra,
        ))

    @property
    def primary(self) -> List[SinkRecord]:
        return [r for r in self.records if not r.name.endswith("_structured")]

    @property
    def structured(self) -> List[SinkRecord]:
        return [r for r in self.records if r.name.endswith("_structured")]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sink():
    """Create a recording sink."""
    return RecordingSink()


@pytest.fixture
def log_handler(sink):
    """Create an isolated LogHandler with debug output enabled."""
    return LogHandler(config=LoggerConfig(debug_mode_enabled=True), sink=sink)


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Restore logging and the shared LogHandler after every test."""
    yield
    set_log_handler(None)
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
