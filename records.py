"""
records.py

Record model for incident batches: the parsed unit of work, its action
category and its status lifecycle.
"""

import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from base_exceptions import InvalidTransitionError


class ActionType(str, Enum):
    """Category of incident action; drives the status code submitted"""
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    REPLENISHMENT = "replenishment"
    INSPECTION = "inspection"
    OTHER = "other"


# Labels seen in uploaded workbooks, normalized (lowercase, no accents)
ACTION_ALIASES = {
    'maintenance': ActionType.MAINTENANCE,
    'mantenimiento': ActionType.MAINTENANCE,
    'repair': ActionType.REPAIR,
    'reparacion': ActionType.REPAIR,
    'replenishment': ActionType.REPLENISHMENT,
    'abastecimiento': ActionType.REPLENISHMENT,
    'inspection': ActionType.INSPECTION,
    'inspeccion': ActionType.INSPECTION,
    'other': ActionType.OTHER,
    'otro': ActionType.OTHER,
}


def _normalize_label(value: str) -> str:
    decomposed = unicodedata.normalize('NFKD', value)
    return ''.join(c for c in decomposed if not unicodedata.combining(c)).strip().lower()


def parse_action_type(value: Any, default: ActionType = ActionType.OTHER) -> ActionType:
    """Map a raw workbook value to an ActionType, falling back to ``default``"""
    if value is None:
        return default
    if isinstance(value, ActionType):
        return value
    return ACTION_ALIASES.get(_normalize_label(str(value)), default)


class RecordStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RecordStatus.COMPLETED, RecordStatus.FAILED)


ALLOWED_TRANSITIONS = {
    RecordStatus.PENDING: {RecordStatus.PROCESSING},
    RecordStatus.PROCESSING: {RecordStatus.COMPLETED, RecordStatus.FAILED},
    RecordStatus.COMPLETED: set(),
    RecordStatus.FAILED: set(),
}


@dataclass(eq=False)
class Record:
    """One incident to create on the portal, identified by its external id"""
    sequence_index: int
    external_id: str
    action_type: ActionType = ActionType.OTHER
    start_time: Any = ""
    end_time: Any = ""
    comment: str = ""
    status: RecordStatus = RecordStatus.PENDING
    error_detail: Optional[str] = None
    result: Optional[str] = None
    _frozen_index: int = field(default=0, init=False, repr=False)

    def __post_init__(self):
        if not self.external_id or not str(self.external_id).strip():
            raise ValueError("Record requires a non-empty external id")
        if self.sequence_index < 1:
            raise ValueError(f"sequence_index must be 1-based, got {self.sequence_index}")
        self.external_id = str(self.external_id).strip()
        self._frozen_index = self.sequence_index

    def __setattr__(self, name, value):
        if name == 'sequence_index' and getattr(self, '_frozen_index', 0):
            raise AttributeError("sequence_index is immutable")
        super().__setattr__(name, value)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _transition(self, new_status: RecordStatus):
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Record {self.external_id}: cannot move from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def mark_processing(self):
        self._transition(RecordStatus.PROCESSING)

    def mark_completed(self, result: str = "Event created"):
        self._transition(RecordStatus.COMPLETED)
        self.result = result
        self.error_detail = None

    def mark_failed(self, reason: str):
        self._transition(RecordStatus.FAILED)
        self.error_detail = reason
        self.result = reason

    def to_dict(self) -> Dict[str, Any]:
        """Projection served to the polling client"""
        return {
            'id': self.sequence_index,
            'action': self.action_type.value,
            'externalId': self.external_id,
            'startDate': _jsonable(self.start_time),
            'endDate': _jsonable(self.end_time),
            'comment': self.comment,
            'status': self.status.value,
            'errorDetail': self.error_detail,
            'result': self.result,
        }


def _jsonable(value: Any) -> Any:
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return value
