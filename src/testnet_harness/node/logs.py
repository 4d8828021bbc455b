"""
Capture and query of node log output.

Nodes write one log record per line to stderr, as JSON when configured with
``format: json``::

    {"level": "INFO", "msg": "connection to peer failed", "error": "Block0Mismatch"}

Lines that are not JSON are kept as raw text with no level.

Tests query the buffer through the methods of `NodeLogBuffer` rather than
matching raw strings: filter by level, by a message pattern, or both.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import IO, Any

from testnet_harness.config import HARNESS_LOG_BUFFER_LINES

logger = logging.getLogger(__name__)


class LogLevel(IntEnum):
    """Severity of a node log record, ordered from least to most severe."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4

    @classmethod
    def parse(cls, value: Any) -> LogLevel | None:
        """Parse a level name, accepting common spellings. Unknown names give None."""
        name = str(value).upper()
        if name == "WARNING":
            name = "WARN"
        elif name in ("CRIT", "CRITICAL"):
            name = "ERROR"
        return cls.__members__.get(name)


@dataclass(frozen=True, slots=True)
class LogLine:
    """One parsed log record."""

    raw: str
    """The line exactly as written by the node, without the trailing newline."""

    level: LogLevel | None
    """Severity, or None for lines that are not structured records."""

    message: str
    """The record's message, or the raw line for unstructured output."""

    fields: Mapping[str, Any]
    """Remaining key/value pairs of a structured record."""

    @classmethod
    def parse(cls, raw: str) -> LogLine:
        """Parse a JSON record, falling back to raw text."""
        try:
            record = json.loads(raw)
        except ValueError:
            record = None

        if not isinstance(record, dict):
            return cls(raw=raw, level=None, message=raw, fields={})

        level = LogLevel.parse(record.pop("level", ""))
        message = str(record.pop("msg", record.pop("message", "")))
        return cls(raw=raw, level=level, message=message, fields=record)

    def _field_contains(self, name: str, text: str) -> bool:
        value = self.fields.get(name)
        return value is not None and text in str(value)

    def reason_contains(self, text: str) -> bool:
        """Check the ``reason`` field for a substring."""
        return self._field_contains("reason", text)

    def error_contains(self, text: str) -> bool:
        """Check the ``error`` field for a substring."""
        return self._field_contains("error", text)

    def __str__(self) -> str:
        return self.raw


@dataclass(slots=True)
class NodeLogBuffer:
    """
    Bounded buffer of one node's log lines.

    The capture thread appends; the controlling test thread reads. The oldest
    lines are dropped once ``max_lines`` is reached.
    """

    max_lines: int = HARNESS_LOG_BUFFER_LINES
    """Maximum number of retained lines."""

    _lines: deque[LogLine] = field(init=False, repr=False)
    """Retained lines, oldest first."""

    _dropped: int = field(default=0, init=False)
    """Number of lines evicted because the buffer was full."""

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    """Serializes the capture thread against readers."""

    def __post_init__(self) -> None:
        self._lines = deque(maxlen=self.max_lines)

    def append(self, raw: str) -> None:
        """Store one raw line."""
        line = LogLine.parse(raw)
        with self._lock:
            if len(self._lines) == self.max_lines:
                self._dropped += 1
            self._lines.append(line)

    @property
    def dropped(self) -> int:
        """Number of lines evicted because the buffer was full."""
        return self._dropped

    def lines(self) -> list[LogLine]:
        """Snapshot of all retained lines."""
        with self._lock:
            return list(self._lines)

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def tail(self, n: int = 50) -> list[str]:
        """The last ``n`` raw lines."""
        with self._lock:
            start = max(0, len(self._lines) - n)
            return [line.raw for i, line in enumerate(self._lines) if i >= start]

    def lines_as_strings(self) -> list[str]:
        """All retained raw lines."""
        return [line.raw for line in self.lines()]

    def content(self) -> str:
        """All retained raw lines joined with newlines."""
        return "\n".join(self.lines_as_strings())

    def lines_with_level(self, level: LogLevel) -> list[LogLine]:
        """Structured lines at exactly ``level``."""
        return [line for line in self.lines() if line.level is level]

    def lines_matching(
        self, pattern: str | re.Pattern[str], level: LogLevel | None = None
    ) -> list[LogLine]:
        """
        Lines whose message matches ``pattern``.

        Args:
            pattern: Regular expression searched in each message.
            level: When given, only lines at exactly this level are considered.
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        return [
            line
            for line in self.lines()
            if (level is None or line.level is level) and regex.search(line.message)
        ]

    def contains_errors(self) -> bool:
        """Check if any ERROR record was captured."""
        return any(line.level is LogLevel.ERROR for line in self.lines())


def capture_stream(stream: IO[str], buffer: NodeLogBuffer, name: str) -> threading.Thread:
    """
    Copy every line of ``stream`` into ``buffer`` on a daemon thread.

    The thread ends when the stream reaches end-of-file, i.e. when the process
    closes its side of the pipe.

    Args:
        stream: Text stream to read, typically a process's stderr.
        buffer: Destination buffer.
        name: Thread name, used in debugging output.

    Returns:
        The started thread.
    """

    def _pump() -> None:
        try:
            for raw in stream:
                buffer.append(raw.rstrip("\r\n"))
        except ValueError:
            # The stream was closed from the controlling thread during teardown.
            logger.debug("Log stream %s closed while reading", name)
        finally:
            stream.close()

    thread = threading.Thread(target=_pump, name=name, daemon=True)
    thread.start()
    return thread
