"""
Write path for the ingestion listener.
Sensor readings and audit log entries are append-only. Each stream event is
written inside one short-lived unit of work so a failure rolls back only
that event.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session, sessionmaker
from iot_presence.models.sensor_reading import SensorReading
from iot_presence.models.event_log import EventLog
from iot_presence.utils.logger import get_logger

logger = get_logger(__name__)

LOG_LEVELS = ("info", "warning", "error")
MAX_MESSAGE_LENGTH = 1000


class EventPersister:
    def __init__(self, session_factory: sessionmaker, raw_payload_max_length: int = 2000):
        self.session_factory = session_factory
        self.raw_payload_max_length = raw_payload_max_length

    @contextmanager
    def unit_of_work(self):
        """Yields a fresh session. Commits on success, rolls back and re-raises on error."""
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def add_reading(self, db: Session, device_id: str, event_type: str,
                    value: Optional[float], raw_payload: Optional[str],
                    now: Optional[datetime] = None) -> SensorReading:
        if raw_payload is not None and len(raw_payload) > self.raw_payload_max_length:
            raw_payload = raw_payload[:self.raw_payload_max_length]
        reading = SensorReading(
            device_id=device_id,
            event_type=event_type,
            value=value,
            timestamp=now or datetime.utcnow(),
            raw_data=raw_payload,
        )
        db.add(reading)
        return reading

    def add_log(self, db: Session, message: str, level: str = "info",
                device_id: Optional[str] = None, now: Optional[datetime] = None) -> EventLog:
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        entry = EventLog(
            timestamp=now or datetime.utcnow(),
            level=level,
            message=message[:MAX_MESSAGE_LENGTH],
            device_id=device_id,
        )
        db.add(entry)
        return entry

    def log_event(self, message: str, level: str = "info", device_id: Optional[str] = None) -> bool:
        """
        Write a standalone audit entry (connection established, reconnecting, give-up).
        Store failures are logged and reported as False, never raised.
        """
        try:
            with self.unit_of_work() as db:
                self.add_log(db, message, level, device_id)
            return True
        except Exception as e:
            logger.error(f"Failed to write audit log entry '{message}': {e}", exc_info=True)
            return False
