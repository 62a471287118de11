"""Tests for session_state.py — session lifecycle and the status projection."""

import logging

import pytest

from records import RecordStatus
from session_state import BatchPhase, ProcessingSession, SessionStateAccessor, progress_percent

from conftest import make_records


class TestProgressPercent:
    @pytest.mark.parametrize("processed,total,expected", [
        (0, 0, 0),
        (0, 3, 0),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),  # 12.5 rounds up
        (3, 3, 100),
    ])
    def test_values(self, processed, total, expected):
        assert progress_percent(processed, total) == expected


class TestProcessingSession:
    def test_initial_state(self):
        session = ProcessingSession()
        assert session.is_processing is False
        assert session.current_record is None
        assert session.total_count == 0
        assert session.processed_count == 0
        assert session.phase == BatchPhase.IDLE

    def test_load_records_replaces_batch_and_clears_logs(self):
        session = ProcessingSession()
        session.load_records(make_records("A", "B"))
        session.logs.info("old entry")
        session.load_records(make_records("C"))
        assert [r.external_id for r in session.records] == ["C"]
        assert session.total_count == 1
        assert session.processed_count == 0
        assert len(session.logs) == 0

    def test_begin_is_check_and_set(self):
        session = ProcessingSession()
        session.load_records(make_records("A"))
        assert session.begin() is True
        assert session.begin() is False
        assert session.is_processing

    def test_mark_terminal_requires_terminal_record(self):
        session = ProcessingSession()
        session.load_records(make_records("A"))
        record = session.records[0]
        session.mark_processing(record)
        with pytest.raises(ValueError):
            session.mark_terminal(record)
        record.mark_completed()
        session.mark_terminal(record)
        assert session.processed_count == 1
        assert session.current_record is None

    def test_current_record_is_weak(self):
        session = ProcessingSession()
        session.load_records(make_records("A"))
        first = session.records[0]
        session.mark_processing(first)
        assert session.current_record is first
        del first
        session.records = []
        assert session.current_record is None

    def test_reset(self):
        session = ProcessingSession()
        session.load_records(make_records("A", "B"))
        session.begin()
        session.logs.info("x")
        session.reset()
        assert session.records == []
        assert session.total_count == 0
        assert session.is_processing is False
        assert len(session.logs) == 0

    def test_run_timestamps(self):
        session = ProcessingSession()
        session.load_records(make_records("A"))
        session.begin()
        assert session.started_at is not None
        assert session.finished_at is None
        session.finish(BatchPhase.COMPLETED)
        assert session.finished_at >= session.started_at
        assert SessionStateAccessor(session).status()["finishedAt"] is not None

    def test_begin_counts_already_terminal_records(self):
        session = ProcessingSession()
        session.load_records(make_records("A", "B"))
        session.records[0].mark_processing()
        session.records[0].mark_failed("x")
        session.begin()
        assert session.processed_count == 1
        assert [r.external_id for r in session.pending_records()] == ["B"]

    def test_finish_is_logged(self, caplog):
        session = ProcessingSession()
        session.load_records(make_records("A", "B"))
        session.begin()
        with caplog.at_level(logging.INFO, logger="session_state"):
            session.finish(BatchPhase.STOPPED)
        assert any("stopped" in r.getMessage() and "0/2" in r.getMessage() for r in caplog.records)


class TestSessionStateAccessor:
    def test_status_shape(self):
        session = ProcessingSession()
        session.load_records(make_records("A", "B", "C"))
        session.begin()
        session.mark_processing(session.records[0])
        status = SessionStateAccessor(session).status()

        assert status["isProcessing"] is True
        assert status["currentRecord"]["externalId"] == "A"
        assert status["totalCount"] == 3
        assert status["processedCount"] == 0
        assert status["progressPercent"] == 0
        assert [r["status"] for r in status["records"]] == ["processing", "pending", "pending"]

    def test_status_is_a_copy(self):
        session = ProcessingSession()
        session.load_records(make_records("A"))
        status = SessionStateAccessor(session).status()
        status["records"][0]["status"] = "completed"
        assert session.records[0].status == RecordStatus.PENDING

    def test_logs_window(self):
        session = ProcessingSession(log_capacity=5)
        for i in range(8):
            session.logs.info(f"m{i}")
        logs = SessionStateAccessor(session).logs(3)
        assert [e["message"] for e in logs] == ["m5", "m6", "m7"]
