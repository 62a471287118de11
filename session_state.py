"""
session_state.py

The single process-wide processing session and its read-only projection for
the polling boundary. The batch runner is the only writer while a batch is
active; upload and clear replace the session contents only when it is idle.
"""

import logging
import math
import weakref
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from log_sink import LogSink, DEFAULT_LOG_CAPACITY
from records import Record

logger = logging.getLogger(__name__)


class BatchPhase(str, Enum):
    IDLE = "idle"
    LOGGING_IN = "logging_in"
    PROCESSING = "processing"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ABORTED = "aborted"


class ProcessingSession:
    """Mutable state of the current (or last) batch"""

    def __init__(self, log_capacity: int = DEFAULT_LOG_CAPACITY):
        self.logs = LogSink(log_capacity)
        self.records: List[Record] = []
        self.is_processing = False
        self.stop_requested = False
        self.total_count = 0
        self.processed_count = 0
        self.phase = BatchPhase.IDLE
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self._current_ref: Optional[weakref.ref] = None

    @property
    def current_record(self) -> Optional[Record]:
        return self._current_ref() if self._current_ref is not None else None

    @current_record.setter
    def current_record(self, record: Optional[Record]):
        self._current_ref = weakref.ref(record) if record is not None else None

    def pending_records(self) -> List[Record]:
        return [r for r in self.records if not r.is_terminal]

    def load_records(self, records: List[Record]):
        """Replace the batch wholesale; counts and logs start over"""
        self.records = list(records)
        self.total_count = len(self.records)
        self.processed_count = 0
        self.current_record = None
        self.stop_requested = False
        self.phase = BatchPhase.IDLE
        self.started_at = None
        self.finished_at = None
        self.logs.clear()

    def reset(self):
        """Back to the empty state the session had at process start"""
        self.records = []
        self.total_count = 0
        self.processed_count = 0
        self.is_processing = False
        self.stop_requested = False
        self.current_record = None
        self.phase = BatchPhase.IDLE
        self.started_at = None
        self.finished_at = None
        self.logs.clear()

    def begin(self):
        """Check-and-set the processing flag; False when a batch is already active"""
        if self.is_processing:
            return False
        self.is_processing = True
        self.stop_requested = False
        self.phase = BatchPhase.LOGGING_IN
        self.started_at = datetime.now(timezone.utc)
        self.finished_at = None
        self.processed_count = sum(1 for r in self.records if r.is_terminal)
        return True

    def mark_processing(self, record: Record):
        record.mark_processing()
        self.current_record = record
        self.phase = BatchPhase.PROCESSING

    def mark_terminal(self, record: Record):
        """Count a record that has just reached its terminal status; counted once"""
        if not record.is_terminal:
            raise ValueError(f"Record {record.external_id} is not terminal ({record.status.value})")
        self.processed_count += 1
        if self.current_record is record:
            self.current_record = None

    def finish(self, phase: BatchPhase):
        self.phase = phase
        self.current_record = None
        self.finished_at = datetime.now(timezone.utc)
        self.is_processing = False
        logger.info(f"Session finished: {phase.value} ({self.processed_count}/{self.total_count} processed)")


def progress_percent(processed: int, total: int) -> int:
    """Rounded percentage, halves rounded up; 0 for an empty batch"""
    if total <= 0:
        return 0
    return int(math.floor(processed * 100 / total + 0.5))


class SessionStateAccessor:
    """Side-effect-free snapshots of a ProcessingSession"""

    def __init__(self, session: ProcessingSession):
        self.session = session

    def status(self) -> Dict[str, Any]:
        session = self.session
        current = session.current_record
        records = [r.to_dict() for r in list(session.records)]
        return {
            'isProcessing': session.is_processing,
            'currentRecord': current.to_dict() if current is not None else None,
            'totalCount': session.total_count,
            'processedCount': session.processed_count,
            'progressPercent': progress_percent(session.processed_count, session.total_count),
            'records': records,
            'phase': session.phase.value,
            'stopRequested': session.stop_requested,
            'startedAt': session.started_at.isoformat() if session.started_at else None,
            'finishedAt': session.finished_at.isoformat() if session.finished_at else None,
        }

    def logs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.session.logs.recent(limit)]
