#!/usr/bin/env python3
"""
Automation Controller - boundary operations for the polling client
Description:
Upload, start, stop, status, logs, clear and health, as short non-blocking
calls. Intake problems raise IntakeError subclasses synchronously; everything
that happens after a batch starts is reported through the session log.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from base_exceptions import BatchActiveError, EmptyBatchError, IntakeError, MissingCredentialsError
from batch_runner import BatchOptions, BatchOutcome, BatchRunner
from config_manager import IncidentAutomationConfig
from intake import parse_workbook
from portal_driver import Credentials, PortalDriver
from session_state import BatchPhase, ProcessingSession, SessionStateAccessor

logger = logging.getLogger(__name__)


class AutomationController:
    """Owns the process-wide session and at most one running batch task"""

    def __init__(self, config: IncidentAutomationConfig,
                 driver_factory: Optional[Callable[[], PortalDriver]] = None):
        self.config = config
        self.driver_factory = driver_factory
        self.session = ProcessingSession(config.processing.log_capacity)
        self.accessor = SessionStateAccessor(self.session)
        self._runner: Optional[BatchRunner] = None
        self._task: Optional[asyncio.Task] = None
        self.logger = logging.getLogger(f"{__name__}.AutomationController")

    def upload_batch(self, source: Union[bytes, str, Path]) -> Dict[str, Any]:
        if self.session.is_processing:
            raise BatchActiveError("Cannot upload while a batch is being processed")
        try:
            records = parse_workbook(source, self.config.default_action_type)
        except IntakeError as e:
            self.session.logs.error(f"❌ Error processing workbook: {e}")
            raise

        self.session.load_records(records)
        self.session.logs.success(f"📂 Workbook processed: {len(records)} records")
        return {
            'success': True,
            'data': [r.to_dict() for r in records],
            'count': len(records),
        }

    def start_processing(self, credentials: Dict[str, Any], config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Validate, claim the session and schedule the batch; returns immediately"""
        config = config or {}
        creds = Credentials(
            username=str((credentials or {}).get('username') or ''),
            password=str((credentials or {}).get('password') or ''),
        )
        if self.session.is_processing:
            raise BatchActiveError()
        options = self._parse_options(config)
        if not creds.is_complete():
            raise MissingCredentialsError()
        if not self.session.pending_records():
            raise EmptyBatchError()

        # Raises RuntimeError outside an event loop, before the session is claimed
        loop = asyncio.get_running_loop()
        runner = BatchRunner(self.session, self.config, self.driver_factory)

        if not self.session.begin():
            raise BatchActiveError()
        try:
            task = loop.create_task(runner.run(creds, options))
        except Exception:
            self.session.finish(BatchPhase.IDLE)
            raise

        self._runner = runner
        self._task = task
        self._task.add_done_callback(self._on_batch_done)
        self.logger.info(f"Batch scheduled for {creds.masked()}")
        return {'success': True, 'message': 'Processing started'}

    def _parse_options(self, config: Dict[str, Any]) -> BatchOptions:
        delay = config.get('interRecordDelayMs', config.get('delayBetweenRecords'))
        if delay is None:
            return BatchOptions(self.config.processing.inter_record_delay_ms)
        try:
            delay = int(delay)
        except (TypeError, ValueError):
            raise IntakeError(f"interRecordDelayMs must be an integer, got {delay!r}")
        if delay < 0:
            raise IntakeError("interRecordDelayMs must be non-negative")
        return BatchOptions(delay)

    def _on_batch_done(self, task: asyncio.Task):
        if task.cancelled():
            self.logger.warning("Batch task cancelled")
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f"Batch task ended with an error: {exc}")
            return
        outcome: BatchOutcome = task.result()
        self.logger.info(f"Batch finished: {outcome.phase.value} "
                         f"({outcome.completed} completed, {outcome.failed} failed, {outcome.pending} pending)")

    def stop_processing(self) -> Dict[str, Any]:
        """Ask the running batch to stop after its current record; always succeeds"""
        if self.session.is_processing and self._runner is not None:
            self._runner.request_stop()
            self.session.logs.warning("⏹️ Processing stop requested by user")
            return {'success': True, 'message': 'Processing will stop after the current record'}
        return {'success': True, 'message': 'No batch is being processed'}

    def get_status(self) -> Dict[str, Any]:
        return self.accessor.status()

    def get_logs(self, limit: Optional[int] = None) -> Dict[str, Any]:
        return {'logs': self.accessor.logs(limit)}

    def clear_data(self) -> Dict[str, Any]:
        if self.session.is_processing:
            raise BatchActiveError("Cannot clear data while a batch is being processed; stop it first")
        self.session.reset()
        self._runner = None
        self._task = None
        return {'success': True, 'message': 'Data cleared'}

    def health(self) -> Dict[str, Any]:
        return {
            'message': 'Incident automation API running',
            'status': 'active',
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

    async def wait_until_idle(self) -> Optional[BatchOutcome]:
        """Await the running batch, if any, and return its outcome"""
        if self._task is None:
            return None
        return await asyncio.shield(self._task)
