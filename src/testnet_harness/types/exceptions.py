"""Root of the harness exception hierarchy."""

from __future__ import annotations

from collections.abc import Sequence


class HarnessError(Exception):
    """
    Base exception for all harness errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class LogCarryingError(HarnessError):
    """
    Base class for errors that carry the captured node log lines.

    Attributes:
        logs: Log lines captured from the node when the error was raised.
    """

    def __init__(self, message: str, logs: Sequence[str] = ()) -> None:
        self.logs = list(logs)
        super().__init__(message)

    def log_excerpt(self, limit: int = 20) -> str:
        """Render the last ``limit`` captured lines for an assertion message."""
        return "\n".join(self.logs[-limit:])
