# iot_presence/models/device.py
"""
Devices table: one row per logical device seen on the stream.
Created by presence_tracker on the first event from an unknown id.
Ingestion only ever touches status and last_seen afterwards.
"""

from sqlalchemy import Column, String, DateTime
from iot_presence.database import Base


class Device(Base):
    __tablename__ = "devices"

    id = Column(String(100), primary_key=True)
    name = Column(String(200), nullable=False)
    type = Column(String(50), nullable=False, index=True)              # ESP32 | Photon2 | Unknown
    status = Column(String(50), nullable=False, default="inactive", index=True)  # active | inactive
    last_seen = Column(DateTime, index=True)
    last_signal = Column(String(100))
    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<Device {self.id} type={self.type} status={self.status}>"
