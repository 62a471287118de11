"""Tests for controller.py — boundary operations, rejection order and the polling lifecycle."""

import asyncio

import pytest
from openpyxl import Workbook

from base_exceptions import (
    BatchActiveError,
    EmptyBatchError,
    IntakeError,
    MissingCredentialsError,
    SpreadsheetError,
)
from controller import AutomationController
from session_state import BatchPhase

from conftest import FakePortalDriver, make_records

CREDENTIALS = {"username": "operator", "password": "s3cret"}


def workbook_bytes(tmp_path, rows):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(("Accion", "NCR ID", "Fecha inicio", "Fecha fin", "Comentario"))
    for row in rows:
        sheet.append(row)
    path = tmp_path / "upload.xlsx"
    workbook.save(path)
    return path.read_bytes()


def loaded_controller(config, driver_factory=None, ids=("NCR-001", "NCR-002", "NCR-003")):
    controller = AutomationController(config, driver_factory or FakePortalDriver)
    controller.session.load_records(make_records(*ids))
    return controller


async def poll_until_idle(controller, timeout=2.0):
    async def _poll():
        while controller.get_status()["isProcessing"]:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)
    return controller.get_status()


class TestUpload:
    def test_upload_returns_parsed_records(self, config, tmp_path):
        controller = AutomationController(config, FakePortalDriver)
        data = workbook_bytes(tmp_path, [
            ("repair", "NCR-1", "2024-03-01 08:00", "2024-03-01 09:00", "a"),
            ("repair", None, "2024-03-01 08:00", "2024-03-01 09:00", "b"),
            ("inspection", "NCR-3", "2024-03-01 08:00", "2024-03-01 09:00", "c"),
        ])

        response = controller.upload_batch(data)

        assert response["success"] is True
        assert response["count"] == 2
        assert [r["id"] for r in response["data"]] == [1, 2]
        status = controller.get_status()
        assert status["totalCount"] == 2
        assert status["processedCount"] == 0
        assert status["isProcessing"] is False

    def test_bad_upload_is_logged_and_keeps_the_batch(self, config):
        controller = loaded_controller(config)
        with pytest.raises(SpreadsheetError):
            controller.upload_batch(b"not a workbook")

        assert controller.get_logs()["logs"][-1]["type"] == "error"
        status = controller.get_status()
        assert [r["externalId"] for r in status["records"]] == ["NCR-001", "NCR-002", "NCR-003"]
        assert status["totalCount"] == 3

    @pytest.mark.asyncio
    async def test_upload_rejected_while_processing(self, config, tmp_path):
        controller = loaded_controller(config, lambda: FakePortalDriver(step_delay=0.01))
        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})
        with pytest.raises(BatchActiveError):
            controller.upload_batch(workbook_bytes(tmp_path, [("repair", "X")]))
        controller.stop_processing()
        await controller.wait_until_idle()
        assert controller.get_status()["totalCount"] == 3


class TestStart:
    @pytest.mark.asyncio
    async def test_start_returns_before_the_batch_finishes(self, config):
        controller = loaded_controller(config, lambda: FakePortalDriver(step_delay=0.01))
        response = controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})

        assert response["success"] is True
        assert controller.get_status()["isProcessing"] is True

        status = await poll_until_idle(controller)
        assert status["processedCount"] == 3
        assert status["progressPercent"] == 100
        assert status["phase"] == BatchPhase.COMPLETED.value
        assert [r["status"] for r in status["records"]] == ["completed"] * 3

    @pytest.mark.asyncio
    async def test_second_start_is_rejected(self, config):
        controller = loaded_controller(config, lambda: FakePortalDriver(step_delay=0.01))
        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})
        with pytest.raises(BatchActiveError):
            controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})
        outcome = await controller.wait_until_idle()
        assert outcome.completed == 3

    @pytest.mark.asyncio
    async def test_missing_credentials(self, config):
        controller = loaded_controller(config)
        with pytest.raises(MissingCredentialsError):
            controller.start_processing({"username": "operator", "password": ""})
        assert controller.get_status()["isProcessing"] is False

    @pytest.mark.asyncio
    async def test_empty_batch(self, config):
        controller = AutomationController(config, FakePortalDriver)
        with pytest.raises(EmptyBatchError):
            controller.start_processing(CREDENTIALS)

    @pytest.mark.asyncio
    async def test_active_batch_checked_before_credentials(self, config):
        controller = loaded_controller(config, lambda: FakePortalDriver(step_delay=0.01))
        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})
        with pytest.raises(BatchActiveError):
            controller.start_processing({})
        await controller.wait_until_idle()

    @pytest.mark.asyncio
    async def test_active_batch_checked_before_delay(self, config):
        controller = loaded_controller(config, lambda: FakePortalDriver(step_delay=0.01))
        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})
        with pytest.raises(BatchActiveError):
            controller.start_processing(CREDENTIALS, {"interRecordDelayMs": -5})
        await controller.wait_until_idle()

    def test_start_without_event_loop_leaves_session_idle(self, config):
        controller = loaded_controller(config)
        with pytest.raises(RuntimeError):
            controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})

        status = controller.get_status()
        assert status["isProcessing"] is False
        assert [r["status"] for r in status["records"]] == ["pending"] * 3
        assert controller.clear_data()["success"] is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("delay", ["soon", -5])
    async def test_invalid_delay(self, config, delay):
        controller = loaded_controller(config)
        with pytest.raises(IntakeError):
            controller.start_processing(CREDENTIALS, {"interRecordDelayMs": delay})
        assert controller.get_status()["isProcessing"] is False

    @pytest.mark.asyncio
    async def test_legacy_delay_key(self, config):
        controller = loaded_controller(config)
        controller.start_processing(CREDENTIALS, {"delayBetweenRecords": "0"})
        outcome = await controller.wait_until_idle()
        assert outcome.phase == BatchPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_authentication_failure_scenario(self, config):
        controller = loaded_controller(config, lambda: FakePortalDriver(auth_ok=False))
        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})

        status = await poll_until_idle(controller)

        assert status["phase"] == BatchPhase.ABORTED.value
        assert status["processedCount"] == 0
        assert [r["status"] for r in status["records"]] == ["pending"] * 3
        assert any(entry["type"] == "error" for entry in controller.get_logs()["logs"])


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_then_poll_until_idle(self, config):
        controller = loaded_controller(config, lambda: FakePortalDriver(step_delay=0.01))
        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 60000})

        while controller.get_status()["processedCount"] < 1:
            await asyncio.sleep(0.005)
        response = controller.stop_processing()
        assert response["success"] is True
        assert controller.get_status()["stopRequested"] is True

        status = await poll_until_idle(controller)
        assert status["phase"] == BatchPhase.STOPPED.value
        assert status["processedCount"] == 1
        assert [r["status"] for r in status["records"]] == ["completed", "pending", "pending"]

    def test_stop_when_idle_is_a_no_op(self, config):
        controller = AutomationController(config, FakePortalDriver)
        assert controller.stop_processing()["success"] is True
        assert controller.get_status()["stopRequested"] is False

    @pytest.mark.asyncio
    async def test_start_after_stop_resumes_pending(self, config):
        controller = loaded_controller(config, lambda: FakePortalDriver(step_delay=0.01))
        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 60000})
        while controller.get_status()["processedCount"] < 1:
            await asyncio.sleep(0.005)
        controller.stop_processing()
        await controller.wait_until_idle()

        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})
        status = await poll_until_idle(controller)
        assert status["processedCount"] == 3
        assert status["phase"] == BatchPhase.COMPLETED.value


class TestClearAndLogs:
    def test_clear_resets_everything(self, config):
        controller = loaded_controller(config)
        controller.session.logs.info("hello")
        assert controller.clear_data()["success"] is True
        status = controller.get_status()
        assert status["records"] == []
        assert status["totalCount"] == 0
        assert controller.get_logs()["logs"] == []

    @pytest.mark.asyncio
    async def test_clear_rejected_while_processing(self, config):
        controller = loaded_controller(config, lambda: FakePortalDriver(step_delay=0.01))
        controller.start_processing(CREDENTIALS, {"interRecordDelayMs": 0})
        with pytest.raises(BatchActiveError):
            controller.clear_data()
        await controller.wait_until_idle()
        assert controller.clear_data()["success"] is True

    def test_logs_limit(self, config):
        controller = AutomationController(config, FakePortalDriver)
        for i in range(5):
            controller.session.logs.info(f"entry {i}")
        logs = controller.get_logs(2)["logs"]
        assert [e["message"] for e in logs] == ["entry 3", "entry 4"]
        assert set(logs[0]) == {"timestamp", "message", "type"}

    def test_health(self, config):
        health = AutomationController(config, FakePortalDriver).health()
        assert health["status"] == "active"
        assert health["message"]
        assert health["timestamp"]

    @pytest.mark.asyncio
    async def test_wait_until_idle_without_batch(self, config):
        assert await AutomationController(config, FakePortalDriver).wait_until_idle() is None
