"""
Per-event pipeline: resolve device id → classify payload → update presence → persist.

process() never raises. Every outcome comes back as a ProcessingResult so the
ingestion listener can keep consuming no matter what a single device sends.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Mapping, Optional
from iot_presence.services.device_mapper import map_device_id, resolve_physical_id
from iot_presence.services.event_persister import EventPersister
from iot_presence.services.payload_classifier import classify_payload, MalformedPayload
from iot_presence.services.presence_tracker import touch_device
from iot_presence.services.stream_source import StreamEvent
from iot_presence.utils.logger import get_logger

logger = get_logger(__name__)


class ProcessingStatus(str, Enum):
    PROCESSED = "processed"
    MALFORMED = "malformed"
    FAILED = "failed"


@dataclass
class ProcessingResult:
    status: ProcessingStatus
    device_id: str
    event_type: Optional[str] = None
    value: Optional[float] = None
    device_created: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ProcessingStatus.PROCESSED


class EventPipeline:
    def __init__(self, persister: EventPersister,
                 device_map: Optional[Mapping[str, str]] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.persister = persister
        self.device_map = device_map
        self.clock = clock

    def process(self, event: StreamEvent) -> ProcessingResult:
        device_id = map_device_id(resolve_physical_id(event.system_properties), self.device_map)
        body_text = event.body.decode("utf-8", errors="replace")
        logger.info(f"📥 Received message from {device_id}: {body_text}")

        try:
            payload = classify_payload(event.body)
        except MalformedPayload as e:
            logger.warning(f"⚠️  Skipping malformed payload from {device_id}: {e} | {body_text!r}")
            return ProcessingResult(ProcessingStatus.MALFORMED, device_id, error=str(e))

        now = self.clock()
        try:
            with self.persister.unit_of_work() as db:
                _, created = touch_device(db, device_id, now, self.persister)
                if payload.is_motion:
                    self.persister.add_log(
                        db, f"Motion detected by {device_id} (count: {payload.value:g})",
                        "info", device_id, now,
                    )
                self.persister.add_reading(db, device_id, payload.event_type,
                                           payload.value, body_text, now)
        except Exception as e:
            logger.error(f"❌ Error processing event from device {device_id}: {e}", exc_info=True)
            return ProcessingResult(ProcessingStatus.FAILED, device_id, payload.event_type,
                                    payload.value, error=str(e))

        logger.info(f"💾 Saved sensor data: {device_id} - {payload.event_type}")
        return ProcessingResult(ProcessingStatus.PROCESSED, device_id, payload.event_type,
                                payload.value, device_created=created)
