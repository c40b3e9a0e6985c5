"""
Classifies device telemetry payloads into an event type and optional value.

Payload shapes seen in the field:
  {"event": "motion_detected", "count": 3}
  {"data": "{\\"event\\":\\"motion_detected\\",\\"count\\":5}", ...}   (Particle webhook, double-encoded)
  {"event": "heartbeat"}
Nested "data" fields win over outer fields when both are present.
"""

from dataclasses import dataclass
from typing import Optional, Union
from iot_presence.utils.json_parser import safe_parse_json, parse_embedded_object, get_non_empty_str

UNKNOWN_EVENT = "unknown"
MOTION_EVENTS = {"motion", "motion_detected"}


class MalformedPayload(ValueError):
    """Raised when a message body cannot be interpreted as a JSON object."""


@dataclass
class ClassifiedPayload:
    event_type: str
    value: Optional[float] = None
    has_nested_data: bool = False

    @property
    def is_motion(self) -> bool:
        return self.event_type in MOTION_EVENTS


def _coerce_count(count) -> float:
    # bool is an int subclass, but "count": true is not a count
    if isinstance(count, bool) or not isinstance(count, (int, float)):
        raise MalformedPayload(f"count must be numeric, got {count!r}")
    try:
        float(count)
    except OverflowError:
        raise MalformedPayload("count is out of range")
    return count


def classify_payload(raw_body: Union[bytes, str]) -> ClassifiedPayload:
    root = safe_parse_json(raw_body)
    if not isinstance(root, dict):
        raise MalformedPayload("message body is not a JSON object")

    nested = parse_embedded_object(root.get("data"))

    event_type = (
        get_non_empty_str(nested, "event")
        or get_non_empty_str(root, "event")
        or UNKNOWN_EVENT
    )
    result = ClassifiedPayload(event_type=event_type, has_nested_data=nested is not None)

    if result.is_motion:
        result.value = 1
        if nested is not None and "count" in nested:
            result.value = _coerce_count(nested["count"])
        elif "count" in root:
            result.value = _coerce_count(root["count"])

    return result
