"""Record of the wire-protocol calls served by the mock peer."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from testnet_harness.wire import MethodType


@dataclass(frozen=True, slots=True)
class CallLogEntry:
    """One inbound call."""

    method: MethodType
    """The RPC that was called."""

    timestamp: float
    """Wall-clock time the call arrived, in seconds since the epoch."""

    ordinal: int
    """Position of the call in arrival order, starting at zero."""


@dataclass(slots=True)
class CallLog:
    """
    Append-only log shared by concurrent request handlers.

    Once closed, further calls are refused and the entries are final.
    """

    _entries: list[CallLogEntry] = field(default_factory=list)
    _closed: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, method: MethodType) -> CallLogEntry | None:
        """
        Append a call.

        Returns:
            The new entry, or None if the log is already closed.
        """
        with self._lock:
            if self._closed:
                return None
            entry = CallLogEntry(method=method, timestamp=time.time(), ordinal=len(self._entries))
            self._entries.append(entry)
            return entry

    def close(self) -> tuple[CallLogEntry, ...]:
        """Stop accepting calls and return the final entries."""
        with self._lock:
            self._closed = True
            return tuple(self._entries)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def entries(self) -> tuple[CallLogEntry, ...]:
        """Snapshot of the entries recorded so far."""
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
