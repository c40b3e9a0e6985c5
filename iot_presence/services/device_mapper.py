"""
Maps the physical device id reported by IoT Hub to the logical id used
everywhere in the database. Unmapped ids pass through unchanged.
"""

from typing import Mapping, Optional

DEVICE_ID_PROPERTY = "iothub-connection-device-id"
UNKNOWN_DEVICE_ID = "unknown"

# Boards flashed before the naming convention existed
KNOWN_DEVICE_IDS = {
    "0a10aced202194944a044df4": "photon2-pir-01",
}


def map_device_id(physical_id: str, mapping: Optional[Mapping[str, str]] = None) -> str:
    table = KNOWN_DEVICE_IDS if mapping is None else {**KNOWN_DEVICE_IDS, **mapping}
    return table.get(physical_id, physical_id)


def resolve_physical_id(system_properties: Optional[Mapping]) -> str:
    """
    Pull the connection device id out of the event's system properties.
    The AMQP layer may hand keys and values back as bytes.
    """
    if not system_properties:
        return UNKNOWN_DEVICE_ID

    value = system_properties.get(DEVICE_ID_PROPERTY)
    if value is None:
        value = system_properties.get(DEVICE_ID_PROPERTY.encode())
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if value is None or not str(value).strip():
        return UNKNOWN_DEVICE_ID
    return str(value)
