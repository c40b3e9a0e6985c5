"""
Azure IoT Hub ingestion listener, run as a long-lived background task.

Pulls telemetry from the hub's partitioned event stream and feeds each event
through the EventPipeline. Connection problems drive a reconnect loop with
exponential backoff and a hard retry limit; a single bad event never stops it.

States:
    idle → disabled                      (feature off / no connection string)
    idle → connecting → consuming        (connection established, retries reset)
    consuming → backoff → connecting     (connection fault, retries left)
    backoff → failed                     (retries exhausted, terminal)
    any → stopped                        (stop requested / task cancelled)
"""

import asyncio
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Callable, Optional
from iot_presence.services.event_persister import EventPersister
from iot_presence.services.event_pipeline import EventPipeline, ProcessingResult, ProcessingStatus
from iot_presence.services.retry_policy import RetryPolicy
from iot_presence.services.stream_source import EventStreamSource, StreamEvent, ConnectionFault
from iot_presence.utils.logger import get_logger

logger = get_logger(__name__)


class ConfigurationMissing(Exception):
    """Ingestion is enabled but the stream connection string is not set."""


class ListenerState(str, Enum):
    IDLE = "idle"
    DISABLED = "disabled"
    CONNECTING = "connecting"
    CONSUMING = "consuming"
    BACKOFF = "backoff"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class ListenerStats:
    processed: int = 0
    malformed: int = 0
    failed: int = 0
    last_event_at: Optional[datetime] = None
    connected_since: Optional[datetime] = None
    last_error: Optional[str] = None

    def record(self, result: ProcessingResult):
        self.last_event_at = datetime.utcnow()
        if result.status == ProcessingStatus.PROCESSED:
            self.processed += 1
        elif result.status == ProcessingStatus.MALFORMED:
            self.malformed += 1
        else:
            self.failed += 1


class IngestionListener:
    def __init__(self, pipeline: EventPipeline, persister: EventPersister,
                 source_factory: Optional[Callable[[], EventStreamSource]],
                 retry_policy: RetryPolicy = RetryPolicy(), enabled: bool = True):
        self.pipeline = pipeline
        self.persister = persister
        self.source_factory = source_factory
        self.retry_policy = retry_policy
        self.enabled = enabled

        self.state = ListenerState.IDLE
        self.retry_count = 0
        self.stats = ListenerStats()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    # ── Hosting ───────────────────────────────────────────────────────────
    def start(self) -> asyncio.Task:
        """Schedule run() on the current event loop. Called from the app startup hook."""
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event), name="iothub-listener")
        return self._task

    async def stop(self, timeout: float = 10.0):
        """Signal the loop and wait for it; cancel it if it does not exit in time."""
        logger.info("🛑 Stopping Azure IoT Hub listener...")
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is None:
            return
        _, pending = await asyncio.wait({self._task}, timeout=timeout)
        if pending:
            self._task.cancel()
        result, = await asyncio.gather(self._task, return_exceptions=True)
        if isinstance(result, Exception):
            logger.error(f"❌ IoT Hub listener ended with an error: {result}")

    def snapshot(self) -> dict:
        return {"state": self.state.value, "retry_count": self.retry_count, **asdict(self.stats)}

    # ── State machine ─────────────────────────────────────────────────────
    async def run(self, stop_event: Optional[asyncio.Event] = None) -> ListenerState:
        """Runs until stopped, failed or disabled. Returns the terminal state."""
        self._stop_event = stop_event or self._stop_event or asyncio.Event()

        if not self.enabled:
            logger.info("Azure IoT Hub listener is disabled")
            self.state = ListenerState.DISABLED
            return self.state
        if self.source_factory is None:
            logger.warning("Azure Event Hub connection string not configured — listener not started")
            self.state = ListenerState.DISABLED
            return self.state

        logger.info("🚀 Starting Azure IoT Hub listener...")
        try:
            while True:
                if self._stop_event.is_set():
                    return self._stopped("stop requested")

                error = await self._connect_and_consume()
                if error is None:
                    return self._stopped("stopped gracefully")

                if await self._backoff(error):
                    return self.state
        except asyncio.CancelledError:
            self._stopped("task cancelled")
            raise

    async def _connect_and_consume(self) -> Optional[BaseException]:
        """Returns None on a requested stop, else the error that ended the connection."""
        self.state = ListenerState.CONNECTING
        try:
            source = self.source_factory()
        except Exception as e:
            return e

        try:
            await source.connect()

            self.retry_count = 0
            self.state = ListenerState.CONSUMING
            self.stats.connected_since = datetime.utcnow()
            logger.info(f"✅ Connected to {source.description} — listening for events...")
            await self._log("Connection established with Azure IoT Hub", "info")

            if await self._consume(source):
                return None
            return ConnectionFault("event stream ended unexpectedly")
        except Exception as e:
            return e
        finally:
            self.stats.connected_since = None
            await self._close_source(source)

    async def _consume(self, source: EventStreamSource) -> bool:
        """Returns True when a stop was requested, False when the stream ran dry."""
        iterator = source.events().__aiter__()
        stop_wait = asyncio.ensure_future(self._stop_event.wait())
        next_event = None
        try:
            while True:
                next_event = asyncio.ensure_future(iterator.__anext__())
                done, _ = await asyncio.wait({next_event, stop_wait},
                                             return_when=asyncio.FIRST_COMPLETED)
                if next_event not in done:
                    return True

                try:
                    event = next_event.result()
                except StopAsyncIteration:
                    return False

                if event is not None:
                    await self._handle(event)
                if self._stop_event.is_set():
                    return True
        finally:
            stop_wait.cancel()
            # The generator must be idle before it can be closed
            if next_event is not None and not next_event.done():
                next_event.cancel()
                await asyncio.gather(next_event, return_exceptions=True)
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _handle(self, event: StreamEvent):
        try:
            # SQLAlchemy sessions block; run them off the event loop
            result = await asyncio.to_thread(self.pipeline.process, event)
        except Exception as e:
            logger.error(f"❌ Event pipeline crashed: {e}", exc_info=True)
            result = ProcessingResult(ProcessingStatus.FAILED, "unknown", error=str(e))
        self.stats.record(result)

    async def _backoff(self, error: BaseException) -> bool:
        """Returns True when the listener reached a terminal state."""
        self.retry_count += 1
        self.state = ListenerState.BACKOFF
        self.stats.last_error = str(error) or type(error).__name__
        policy = self.retry_policy
        delay = policy.delay_for(self.retry_count)

        logger.error(
            f"❌ Error in IoT Hub listener (attempt {self.retry_count}/{policy.max_retries}). "
            f"Reconnecting in {delay:g}s: {self.stats.last_error}",
            exc_info=(type(error), error, error.__traceback__),
        )
        await self._log(
            f"Connection error (attempt {self.retry_count}/{policy.max_retries}): {self.stats.last_error}",
            "warning",
        )

        if policy.is_exhausted(self.retry_count):
            logger.critical("Max retry attempts reached. Stopping IoT Hub listener.")
            await self._log("Maximum number of reconnection attempts reached. Service stopped.", "error")
            self.state = ListenerState.FAILED
            return True

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        self._stopped("stopped during reconnection delay")
        return True

    # ── Helpers ───────────────────────────────────────────────────────────
    def _stopped(self, reason: str) -> ListenerState:
        logger.info(f"IoT Hub listener {reason}")
        self.state = ListenerState.STOPPED
        return self.state

    async def _log(self, message: str, level: str):
        # Audit entries are best effort: a broken store must not end the listener
        try:
            await asyncio.to_thread(self.persister.log_event, message, level)
        except Exception as e:
            logger.error(f"❌ Could not write audit entry '{message}': {e}", exc_info=True)

    @staticmethod
    async def _close_source(source: EventStreamSource):
        try:
            await source.close()
        except Exception as e:
            logger.warning(f"⚠️  Error while closing stream source: {e}")


def make_source_factory(settings) -> Callable[[], EventStreamSource]:
    if not settings.IOTHUB_EVENTHUB_CONNECTION_STRING:
        raise ConfigurationMissing("IOTHUB_EVENTHUB_CONNECTION_STRING is not set")

    from iot_presence.services.eventhub_source import EventHubStreamSource

    def factory() -> EventStreamSource:
        return EventHubStreamSource(
            connection_string=settings.IOTHUB_EVENTHUB_CONNECTION_STRING,
            consumer_group=settings.IOTHUB_CONSUMER_GROUP,
            eventhub_name=settings.IOTHUB_EVENTHUB_NAME,
        )
    return factory


def build_listener(settings, session_factory) -> IngestionListener:
    """Wire the listener from settings. A missing connection string yields a disabled listener."""
    persister = EventPersister(session_factory, settings.RAW_PAYLOAD_MAX_LENGTH)
    pipeline = EventPipeline(persister, device_map=settings.DEVICE_ID_MAP)

    source_factory = None
    if settings.IOTHUB_ENABLED:
        try:
            source_factory = make_source_factory(settings)
        except ConfigurationMissing as e:
            logger.warning(f"⚠️  {e}")

    return IngestionListener(
        pipeline=pipeline,
        persister=persister,
        source_factory=source_factory,
        retry_policy=RetryPolicy.from_settings(settings),
        enabled=settings.IOTHUB_ENABLED,
    )
