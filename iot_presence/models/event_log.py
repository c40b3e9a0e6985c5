# iot_presence/models/event_log.py
"""
Audit log table. Lifecycle events of the ingestion listener
(connection, discovery, motion, reconnects, give-up) land here.
"""

from sqlalchemy import Column, Integer, String, DateTime
from iot_presence.database import Base


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    level = Column(String(20), nullable=False, default="info", index=True)   # info | warning | error
    message = Column(String(1000), nullable=False)
    device_id = Column(String(100))

    def __repr__(self):
        return f"<EventLog {self.id} level={self.level} device={self.device_id}>"
