#!/usr/bin/env python3
"""
Batch Runner - drives one batch of incident records through the portal
Description:
Logs in once, then walks the pending records in upload order, one at a time:
search by external id, fill and save the incident event, record the outcome.
A failing record never aborts the batch; a dead browser session does.
Stop requests are honoured between records only. The browser is always
released when the run ends, however it ends.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from base_exceptions import DriverSessionError
from config_manager import IncidentAutomationConfig
from incident_form import IncidentFormFiller
from locator import LocatorResolver
from mapping import IncidentValueMapper
from performance_monitor import PerformanceMonitor
from portal_driver import Credentials, PlaywrightPortalDriver, PortalDriver
from records import Record, RecordStatus
from session_state import BatchPhase, ProcessingSession

logger = logging.getLogger(__name__)


@dataclass
class BatchOptions:
    """Per-run settings supplied with the start request"""
    inter_record_delay_ms: int = 2000


@dataclass
class BatchOutcome:
    """Summary of a finished run"""
    phase: BatchPhase
    completed: int = 0
    failed: int = 0
    pending: int = 0
    error: Optional[str] = None


class BatchRunner:
    """
    Runs exactly one batch against one PortalDriver.

    The caller must have claimed the session (ProcessingSession.begin) before
    scheduling ``run``; the runner releases it in its cleanup.
    """

    def __init__(self, session: ProcessingSession, config: IncidentAutomationConfig,
                 driver_factory: Optional[Callable[[], PortalDriver]] = None,
                 performance_monitor: Optional[PerformanceMonitor] = None):
        self.session = session
        self.config = config
        self.driver_factory = driver_factory or (lambda: PlaywrightPortalDriver(config.driver))
        self.performance_monitor = performance_monitor or PerformanceMonitor(
            enable_monitoring=config.processing.enable_performance_monitoring
        )
        self.mapper = IncidentValueMapper(
            status_codes=config.status_code_table(),
            default_action_type=config.default_action_type,
            action_code=config.processing.action_code,
            display_format=config.processing.date_display_format,
        )
        self._stop_event = asyncio.Event()
        self.logger = logging.getLogger(f"{__name__}.BatchRunner")

    @property
    def stop_requested(self) -> bool:
        return self.session.stop_requested

    def request_stop(self):
        """Cooperative stop: the record in flight still finishes"""
        self.session.stop_requested = True
        self._stop_event.set()

    async def run(self, credentials: Credentials, options: BatchOptions) -> BatchOutcome:
        session = self.session
        log = session.logs
        driver: Optional[PortalDriver] = None
        phase = BatchPhase.ABORTED
        error = None

        try:
            pending = session.pending_records()
            log.info(f"🚀 Starting batch: {len(pending)} of {session.total_count} records pending")

            session.phase = BatchPhase.LOGGING_IN
            driver = self.driver_factory()
            await driver.launch()

            log.info("🔐 Logging in to the portal...")
            if not await driver.authenticate(credentials):
                error = "Authentication failed"
                log.error("❌ Authentication failed - batch aborted, no records were attempted")
                return self._outcome(phase, error)
            log.success("✅ Session started")

            resolver = LocatorResolver(driver, log)
            filler = IncidentFormFiller(driver, resolver, self.config.form_layout, self.mapper, log)
            session.phase = BatchPhase.PROCESSING

            for position, record in enumerate(pending):
                if self.stop_requested:
                    log.warning(f"⏹️ Stopped before {record.external_id}; "
                                f"{len(pending) - position} records left pending")
                    phase = BatchPhase.STOPPED
                    break

                await self._process_record(record, driver, filler)

                is_last = position == len(pending) - 1
                if not is_last and not self.stop_requested:
                    await self._inter_record_delay(options.inter_record_delay_ms)
            else:
                phase = BatchPhase.COMPLETED
                outcome = self._outcome(phase)
                log.success(f"🏁 Processing completed: {outcome.completed} completed, {outcome.failed} failed")

        except DriverSessionError as e:
            error = str(e)
            log.error(f"💥 Browser session lost, batch aborted: {e}")
        except Exception as e:
            error = str(e)
            self.logger.exception("Batch run failed")
            log.error(f"💥 General error, batch aborted: {e}")
        finally:
            if driver is not None:
                try:
                    await driver.close()
                except Exception as e:
                    self.logger.warning(f"Error releasing browser: {e}")
            self._log_performance_summary()
            session.finish(phase)

        return self._outcome(phase, error)

    async def _process_record(self, record: Record, driver: PortalDriver, filler: IncidentFormFiller):
        session = self.session
        log = session.logs
        session.mark_processing(record)
        log.info(f"🔍 Processing {record.external_id} ({record.sequence_index}/{session.total_count})...")

        async with self.performance_monitor.measure_async_operation(
                f"record_{record.sequence_index}", {'external_id': record.external_id}):
            try:
                if not await driver.search(record.external_id):
                    record.mark_failed(f"Target not found: {record.external_id}")
                    log.error(f"❌ {record.external_id} not found on the portal")
                else:
                    result = await filler.fill_and_submit(record)
                    if result.success:
                        summary = "Event created"
                        if result.missing_fields:
                            summary += f" (missing: {', '.join(result.missing_fields)})"
                        record.mark_completed(summary)
                        log.success(f"✅ Event created for {record.external_id}")
                    else:
                        record.mark_failed(result.reason)
                        log.error(f"❌ {record.external_id}: {result.reason}")
            except DriverSessionError as e:
                record.mark_failed(f"Browser session lost: {e}")
                session.mark_terminal(record)
                raise
            except Exception as e:
                self.logger.exception(f"Unexpected error processing {record.external_id}")
                record.mark_failed(str(e) or type(e).__name__)
                log.error(f"❌ Error with {record.external_id}: {e}")

        session.mark_terminal(record)

    async def _inter_record_delay(self, delay_ms: int):
        """Wait between records; a stop request cuts the wait short"""
        if delay_ms <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            pass

    def _outcome(self, phase: BatchPhase, error: Optional[str] = None) -> BatchOutcome:
        records = self.session.records
        return BatchOutcome(
            phase=phase,
            completed=sum(1 for r in records if r.status == RecordStatus.COMPLETED),
            failed=sum(1 for r in records if r.status == RecordStatus.FAILED),
            pending=sum(1 for r in records if r.status == RecordStatus.PENDING),
            error=error,
        )

    def _log_performance_summary(self):
        summary = self.performance_monitor.get_performance_summary()
        if summary:
            self.session.logs.info(
                f"⏱️ {summary['total_operations']} records in {summary['total_duration']:.1f}s "
                f"(avg {summary['average_duration']:.1f}s, max {summary['max_duration']:.1f}s)"
            )
