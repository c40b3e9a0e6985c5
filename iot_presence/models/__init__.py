# IoT Presence — Database Models
# Import all models here for SQLAlchemy discovery

from iot_presence.models.device import Device                  # noqa
from iot_presence.models.sensor_reading import SensorReading   # noqa
from iot_presence.models.event_log import EventLog             # noqa
