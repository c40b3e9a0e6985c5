# iot_presence/models/sensor_reading.py
"""
Sensor readings table. Append-only: one row per processed stream event,
duplicates included when the stream redelivers.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, Index
from iot_presence.database import Base


class SensorReading(Base):
    __tablename__ = "sensor_data"
    __table_args__ = (
        Index("ix_sensor_data_device_id_timestamp", "device_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(100), nullable=False, index=True)
    event_type = Column(String(50), nullable=False, index=True)    # motion_detected | heartbeat | unknown ...
    value = Column(Float)
    timestamp = Column(DateTime, nullable=False, index=True)
    raw_data = Column(String(2000))

    def __repr__(self):
        return f"<SensorReading {self.id} device={self.device_id} type={self.event_type}>"
