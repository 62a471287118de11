"""
log_sink.py

Capacity-bounded, append-only event stream shared by the intake, the runner
and the form filler. Entries are what the polling client sees; each one is
also mirrored to the standard logging module.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 100


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    message: str
    severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'message': self.message,
            'type': self.severity.value,
        }


class LogSink:
    """Ring of LogEntry objects; the oldest entry is evicted once capacity is reached"""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY):
        if capacity < 1:
            raise ValueError("Log capacity must be at least 1")
        self.capacity = capacity
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def emit(self, message: str, severity: Severity = Severity.INFO) -> LogEntry:
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            message=message,
            severity=Severity(severity),
        )
        with self._lock:
            self._entries.append(entry)
        logger.log(_LEVELS[entry.severity], f"{entry.severity.value.upper()}: {message}")
        return entry

    def info(self, message: str) -> LogEntry:
        return self.emit(message, Severity.INFO)

    def success(self, message: str) -> LogEntry:
        return self.emit(message, Severity.SUCCESS)

    def warning(self, message: str) -> LogEntry:
        return self.emit(message, Severity.WARNING)

    def error(self, message: str) -> LogEntry:
        return self.emit(message, Severity.ERROR)

    def recent(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Most recent ``limit`` entries, oldest first"""
        with self._lock:
            entries = list(self._entries)
        if limit is None or limit >= len(entries):
            return entries
        if limit <= 0:
            return []
        return entries[-limit:]

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __bool__(self) -> bool:
        # An empty sink is still a sink
        return True
