"""Execution logger.

The only writer of LogEntry rows for an execution. Entries are appended to a
sink in order, with timestamps clamped so they never go backwards within one
execution, and mirrored to the module logger for diagnostics.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from .outcomes import LogEntry, LogLevel, StepOutcome, StepStatus

logger = logging.getLogger(__name__)

# domain level -> stdlib level for the diagnostic mirror
STDLIB_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.SENT: logging.INFO,
    LogLevel.RECV: logging.INFO,
    LogLevel.SSH_CMD: logging.INFO,
    LogLevel.SSH_OUT: logging.DEBUG,
    LogLevel.SSH_FAIL: logging.WARNING,
}


class LogSink(Protocol):
    def append_log(self, entry: LogEntry) -> None: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionLogger:
    """Appends structured log entries for one execution."""

    def __init__(
        self,
        execution_id: str,
        sink: Optional[LogSink] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the logger.

        Args:
            execution_id: Execution the entries belong to.
            sink: Where entries are appended. Entries are also kept in
                ``self.entries``.
            clock: Timestamp source (injectable for tests).
        """
        self.execution_id = execution_id
        self.sink = sink
        self.clock = clock
        self.entries: list[LogEntry] = []
        self._last: Optional[datetime] = None

    def log(self, level: LogLevel, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        timestamp = self.clock()
        if self._last is not None and timestamp < self._last:
            timestamp = self._last
        self._last = timestamp

        entry = LogEntry(
            id=str(uuid.uuid4()),
            execution_id=self.execution_id,
            timestamp=timestamp,
            level=level,
            message=message,
            raw_details=raw_details,
        )
        self.entries.append(entry)
        if self.sink is not None:
            self.sink.append_log(entry)

        logger.log(STDLIB_LEVELS[level], "[%s] %s %s", self.execution_id[:8], level.value, message)
        return entry

    def info(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.INFO, message, raw_details)

    def warn(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.WARN, message, raw_details)

    def error(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.ERROR, message, raw_details)

    def debug(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.DEBUG, message, raw_details)

    def sent(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.SENT, message, raw_details)

    def recv(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.RECV, message, raw_details)

    def ssh_cmd(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.SSH_CMD, message, raw_details)

    def ssh_out(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.SSH_OUT, message, raw_details)

    def ssh_fail(self, message: str, raw_details: Optional[Any] = None) -> LogEntry:
        return self.log(LogLevel.SSH_FAIL, message, raw_details)

    def unresolved(self, label: str, names: list[str]) -> None:
        """Warn about ``${name}`` tokens left verbatim in a step."""
        if names:
            tokens = ", ".join("${" + name + "}" for name in names)
            self.warn(f"Unresolved variables in {label}: {tokens}", {"unresolved": list(names)})

    def outcome(self, outcome: StepOutcome) -> None:
        """Record the final state of a step."""
        label = f'Step "{outcome.name}" ({outcome.kind})'
        details = outcome.to_dict()
        if outcome.status == StepStatus.SUCCESS:
            self.info(f"{label} succeeded.", details)
        elif outcome.status == StepStatus.SKIPPED:
            self.info(f"{label} skipped: {outcome.error}", details)
        else:
            self.error(f"{label} failed: {outcome.error}", details)
