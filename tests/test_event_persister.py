"""Unit tests for the ingestion write path."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import MagicMock
from datetime import datetime
from sqlalchemy.exc import OperationalError
from iot_presence.models.event_log import EventLog
from iot_presence.models.sensor_reading import SensorReading
from iot_presence.services.event_persister import EventPersister


class TestUnitOfWork:
    def test_commits_on_success(self):
        db = MagicMock()
        persister = EventPersister(lambda: db)
        with persister.unit_of_work() as session:
            assert session is db
        db.commit.assert_called_once()
        db.rollback.assert_not_called()
        db.close.assert_called_once()

    def test_rolls_back_and_reraises(self):
        db = MagicMock()
        persister = EventPersister(lambda: db)
        with pytest.raises(ValueError):
            with persister.unit_of_work():
                raise ValueError("boom")
        db.commit.assert_not_called()
        db.rollback.assert_called_once()
        db.close.assert_called_once()

    def test_partial_writes_are_discarded(self, session_factory):
        persister = EventPersister(session_factory)
        with pytest.raises(RuntimeError):
            with persister.unit_of_work() as db:
                persister.add_log(db, "half done", "info")
                raise RuntimeError("sensor write failed")

        db = session_factory()
        assert db.query(EventLog).count() == 0
        db.close()


class TestWrites:
    def test_add_reading(self, session_factory):
        persister = EventPersister(session_factory)
        now = datetime(2026, 3, 1, 8, 30)
        with persister.unit_of_work() as db:
            persister.add_reading(db, "esp32-a", "motion_detected", 3, '{"event":"motion_detected"}', now)

        db = session_factory()
        reading = db.query(SensorReading).one()
        assert reading.device_id == "esp32-a"
        assert reading.event_type == "motion_detected"
        assert reading.value == 3
        assert reading.timestamp == now
        assert reading.raw_data == '{"event":"motion_detected"}'
        db.close()

    def test_raw_payload_is_truncated(self, session_factory):
        persister = EventPersister(session_factory, raw_payload_max_length=10)
        with persister.unit_of_work() as db:
            persister.add_reading(db, "esp32-a", "unknown", None, "x" * 50)

        db = session_factory()
        assert db.query(SensorReading).one().raw_data == "x" * 10
        db.close()

    def test_add_log_truncates_message(self, session_factory):
        persister = EventPersister(session_factory)
        with persister.unit_of_work() as db:
            persister.add_log(db, "m" * 1500, "warning", "esp32-a")

        db = session_factory()
        entry = db.query(EventLog).one()
        assert len(entry.message) == 1000
        assert entry.level == "warning"
        db.close()

    def test_add_log_rejects_unknown_level(self):
        persister = EventPersister(MagicMock())
        with pytest.raises(ValueError):
            persister.add_log(MagicMock(), "hello", "debug")


class TestLogEvent:
    def test_standalone_entry_is_committed(self, session_factory):
        persister = EventPersister(session_factory)
        assert persister.log_event("Connection established with Azure IoT Hub", "info") is True

        db = session_factory()
        entry = db.query(EventLog).one()
        assert entry.device_id is None
        assert entry.message == "Connection established with Azure IoT Hub"
        db.close()

    def test_store_failure_is_reported_not_raised(self):
        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))
        persister = EventPersister(lambda: db)

        assert persister.log_event("Reconnecting", "warning") is False
        db.rollback.assert_called_once()

    def test_non_sqlalchemy_failure_is_reported_not_raised(self):
        def broken_factory():
            raise RuntimeError("driver not loaded")

        persister = EventPersister(broken_factory)
        assert persister.log_event("Reconnecting", "warning") is False
