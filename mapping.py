"""
mapping.py

This module maps a parsed Record to the values the incident form expects.
It owns the status-code table and the conversion of workbook dates into the
portal's display format, and prepares the ordered list of fields to fill.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from records import ActionType, Record

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_FORMAT = "%d/%m/%Y %H:%M"
DEFAULT_ACTION_CODE = "CLOSE"

# Status codes offered by the portal's "Status Code" dropdown, per action category.
STATUS_CODE_MAPPINGS = {
    ActionType.MAINTENANCE: 'PREVENTIVE MAINTENANCE',
    ActionType.REPAIR: 'CORRECTIVE REPAIR',
    ActionType.REPLENISHMENT: 'CASH REPLENISHMENT',
    ActionType.INSPECTION: 'SITE INSPECTION',
    ActionType.OTHER: 'OTHER',
}

# Logical field names, in the order the form is filled
FIELD_STATUS_CODE = "Status Code"
FIELD_START_TIME = "Start Time"
FIELD_END_TIME = "End Time"
FIELD_COMMENT = "Comment"
FIELD_ACTION_CODE = "Action Code"

# Excel's 1900 date system counts days from 1899-12-30 (leap-year bug included)
EXCEL_EPOCH = datetime(1899, 12, 30)

_STRING_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%d-%m-%Y %H:%M",
    "%d-%m-%Y",
]


@dataclass
class MappedField:
    """A form field paired with the value to put into it"""
    field_name: str
    value: str


def _from_excel_serial(serial: Any, display_format: str) -> Optional[str]:
    """Excel serial day number to display text; None when it is not a usable date"""
    try:
        return (EXCEL_EPOCH + timedelta(days=float(serial))).strftime(display_format)
    except (OverflowError, ValueError):
        return None


def format_display_datetime(value: Any, display_format: str = DEFAULT_DISPLAY_FORMAT) -> str:
    """
    Convert a workbook date/time cell into the portal's display format.

    Accepts datetime/date objects, Excel serial numbers and the common string
    layouts. Strings that cannot be parsed are returned stripped, unchanged.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime(display_format)
    if isinstance(value, date):
        return datetime.combine(value, time()).strftime(display_format)
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (int, float)):
        formatted = _from_excel_serial(value, display_format)
        if formatted is not None:
            return formatted
        logger.debug(f"Serial date out of range left as-is: {value!r}")
        return str(value)

    text = str(value).strip()
    if not text:
        return ""
    if re.fullmatch(r"\d+(\.\d+)?", text):
        formatted = _from_excel_serial(text, display_format)
        if formatted is not None:
            return formatted
        logger.debug(f"Serial date out of range left as-is: {text!r}")
        return text
    # Drop fractional seconds and timezone suffixes before matching
    candidate = re.sub(r"(?<=\d:\d\d)(\.\d+)?(Z|[+-]\d{2}:?\d{2})?$", "", text)
    for fmt in _STRING_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).strftime(display_format)
        except ValueError:
            continue
    logger.debug(f"Unrecognized date value left as-is: {text!r}")
    return text


class IncidentValueMapper:
    """Maps a Record to the ordered field values for the incident form"""

    def __init__(self, status_codes: Optional[Dict[ActionType, str]] = None,
                 default_action_type: ActionType = ActionType.OTHER,
                 action_code: str = DEFAULT_ACTION_CODE,
                 display_format: str = DEFAULT_DISPLAY_FORMAT):
        self.status_codes = dict(STATUS_CODE_MAPPINGS)
        if status_codes:
            self.status_codes.update(status_codes)
        self.default_action_type = default_action_type
        self.action_code = action_code
        self.display_format = display_format

    def status_code_for(self, action_type: ActionType) -> str:
        code = self.status_codes.get(action_type)
        if code:
            return code
        return self.status_codes.get(self.default_action_type, STATUS_CODE_MAPPINGS[ActionType.OTHER])

    def map_record(self, record: Record) -> List[MappedField]:
        """
        Build the field list for one record. The comment is left out entirely
        when empty so the form's comment box is never touched.
        """
        mapped = [
            MappedField(FIELD_STATUS_CODE, self.status_code_for(record.action_type)),
            MappedField(FIELD_START_TIME, format_display_datetime(record.start_time, self.display_format)),
            MappedField(FIELD_END_TIME, format_display_datetime(record.end_time, self.display_format)),
        ]
        comment = (record.comment or "").strip()
        if comment:
            mapped.append(MappedField(FIELD_COMMENT, comment))
        mapped.append(MappedField(FIELD_ACTION_CODE, self.action_code))
        return mapped
