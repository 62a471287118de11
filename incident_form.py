"""
incident_form.py

Fills and saves one incident event for a record that is already open on the
portal. Field misses are tolerated and reported;
failing to open the form or to save it fails the record.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from config_manager import FormLayoutConfig
from locator import LocatorResolver
from log_sink import LogSink
from mapping import IncidentValueMapper
from records import Record

logger = logging.getLogger(__name__)

REASON_FORM_NOT_FOUND = "New event form not found"
REASON_SAVE_NOT_FOUND = "Save control not found"
REASON_SAVE_REJECTED = "Save not confirmed by the portal"


@dataclass
class FillResult:
    """Outcome of filling and saving one incident event"""
    success: bool
    reason: Optional[str] = None
    missing_fields: List[str] = field(default_factory=list)

    @classmethod
    def failure(cls, reason: str, missing_fields: Optional[List[str]] = None) -> "FillResult":
        return cls(success=False, reason=reason, missing_fields=list(missing_fields or []))


class IncidentFormFiller:
    """Composes locator calls into the fixed incident-form sequence"""

    def __init__(self, driver, resolver: LocatorResolver, layout: FormLayoutConfig,
                 mapper: IncidentValueMapper, log_sink: LogSink):
        self.driver = driver
        self.resolver = resolver
        self.layout = layout
        self.mapper = mapper
        self.log_sink = log_sink
        self.logger = logging.getLogger(f"{__name__}.IncidentFormFiller")

    async def fill_and_submit(self, record: Record) -> FillResult:
        self.log_sink.info(f"📝 Creating event for {record.external_id}...")

        open_control = await self.resolver.locate("New Event", self.layout.open_form_strategies)
        if open_control is None or not await self.driver.click(open_control):
            return FillResult.failure(REASON_FORM_NOT_FOUND)

        missing_fields = []
        for mapped in self.mapper.map_record(record):
            field_locator = self.layout.fields.get(mapped.field_name)
            if field_locator is None:
                self.logger.warning(f"No locator configured for field '{mapped.field_name}'")
                missing_fields.append(mapped.field_name)
                continue
            if not await self.resolver.fill(field_locator, mapped.value):
                missing_fields.append(mapped.field_name)

        if missing_fields:
            self.log_sink.warning(
                f"⚠️ {record.external_id}: saving without {', '.join(missing_fields)}"
            )

        save_control = await self.resolver.locate("Save", self.layout.save_strategies)
        if save_control is None:
            return FillResult.failure(REASON_SAVE_NOT_FOUND, missing_fields)
        if not await self.driver.submit(save_control):
            return FillResult.failure(REASON_SAVE_REJECTED, missing_fields)

        return FillResult(success=True, missing_fields=missing_fields)
