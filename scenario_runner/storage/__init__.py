"""Storage module - log, result and execution record sinks."""

from .memory import ExecutionStore, ResultAlreadyWrittenError

__all__ = [
    "ExecutionStore",
    "ResultAlreadyWrittenError",
]
