"""
Device presence: every observed event marks its device active and refreshes
last_seen. Unknown ids are registered on the fly.
"""

from datetime import datetime
from typing import Tuple
from sqlalchemy.orm import Session
from iot_presence.models.device import Device
from iot_presence.services.event_persister import EventPersister
from iot_presence.utils.logger import get_logger

logger = get_logger(__name__)

# Substring of the device id → hardware family
DEVICE_TYPE_RULES = (
    ("esp32", "ESP32"),
    ("photon", "Photon2"),
)
UNKNOWN_DEVICE_TYPE = "Unknown"


def infer_device_type(device_id: str) -> str:
    for needle, device_type in DEVICE_TYPE_RULES:
        if needle in device_id:
            return device_type
    return UNKNOWN_DEVICE_TYPE


def touch_device(db: Session, device_id: str, now: datetime,
                 persister: EventPersister) -> Tuple[Device, bool]:
    """Returns (device, created). Store errors propagate to the caller."""
    device = db.get(Device, device_id)
    if device:
        # Processing time, not device time: reordered events can move this back
        device.status = "active"
        device.last_seen = now
        return device, False

    logger.info(f"🆕 New device discovered: {device_id}")
    device = Device(
        id=device_id,
        name=device_id,
        type=infer_device_type(device_id),
        status="active",
        last_seen=now,
        created_at=now,
    )
    db.add(device)
    persister.add_log(db, f"New device detected: {device_id}", "info", device_id, now)
    return device, True
