"""
intake.py

Turns an uploaded workbook into the ordered list of Records for a batch.
Columns of the first sheet, after a header row:
action, external id, start date, end date, comment.
Rows without an external id never enter the batch.
"""

import io
import logging
import zipfile
from pathlib import Path
from typing import Any, Iterable, List, Sequence, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from base_exceptions import SpreadsheetError
from records import ActionType, Record, parse_action_type

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

COLUMN_ACTION = 0
COLUMN_EXTERNAL_ID = 1
COLUMN_START = 2
COLUMN_END = 3
COLUMN_COMMENT = 4


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def records_from_rows(rows: Iterable[Sequence[Any]],
                      default_action: ActionType = ActionType.OTHER) -> List[Record]:
    """
    Build records from data rows (header already removed).
    Surviving rows are numbered 1..n in their original order.
    """
    records = []
    for row in rows:
        row = tuple(row or ())
        external_id = _text(_cell(row, COLUMN_EXTERNAL_ID))
        if not external_id:
            continue
        records.append(Record(
            sequence_index=len(records) + 1,
            external_id=external_id,
            action_type=parse_action_type(_cell(row, COLUMN_ACTION), default_action),
            start_time=_cell(row, COLUMN_START) or "",
            end_time=_cell(row, COLUMN_END) or "",
            comment=_text(_cell(row, COLUMN_COMMENT)),
        ))
    return records


def parse_workbook(source: Union[bytes, str, Path],
                   default_action: ActionType = ActionType.OTHER) -> List[Record]:
    """Parse the first sheet of an .xlsx workbook given as bytes or a path"""
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise SpreadsheetError("No file uploaded")
        if len(source) > MAX_UPLOAD_BYTES:
            raise SpreadsheetError(f"File exceeds the {MAX_UPLOAD_BYTES // (1024 * 1024)}MB upload limit")
        handle = io.BytesIO(source)
    else:
        path = Path(source)
        if not path.is_file():
            raise SpreadsheetError(f"Workbook not found: {path}")
        handle = path

    try:
        workbook = load_workbook(handle, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise SpreadsheetError(f"Could not read workbook: {e}") from e

    try:
        if not workbook.sheetnames:
            raise SpreadsheetError("Workbook has no sheets")
        sheet = workbook[workbook.sheetnames[0]]
        rows = sheet.iter_rows(min_row=2, values_only=True)
        records = records_from_rows(rows, default_action)
    finally:
        workbook.close()

    logger.info(f"Workbook parsed: {len(records)} records")
    return records
