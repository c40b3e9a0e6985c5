"""
Azure IoT Hub stream source, read through the hub's Event Hub-compatible
endpoint with the asyncio EventHubConsumerClient.

The SDK's receive() is callback driven and balances all partitions itself;
callbacks push into an asyncio.Queue so the listener can pull events one by one.
"""

import asyncio
from typing import AsyncIterator, Optional
from azure.eventhub.aio import EventHubConsumerClient
from iot_presence.services.stream_source import EventStreamSource, StreamEvent, ConnectionFault
from iot_presence.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONSUMER_GROUP = "$Default"
_QUEUE_SIZE = 1000


class EventHubStreamSource(EventStreamSource):
    def __init__(self, connection_string: str, consumer_group: Optional[str] = None,
                 eventhub_name: Optional[str] = None, starting_position: str = "@latest"):
        self.connection_string = connection_string
        self.consumer_group = consumer_group or DEFAULT_CONSUMER_GROUP
        self.eventhub_name = eventhub_name
        self.starting_position = starting_position
        self._client: Optional[EventHubConsumerClient] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_SIZE)
        self._closing = False

    @property
    def description(self) -> str:
        return f"Event Hub (consumer group {self.consumer_group})"

    async def connect(self) -> None:
        self._closing = False
        self._queue = asyncio.Queue(maxsize=_QUEUE_SIZE)
        kwargs = {"consumer_group": self.consumer_group}
        if self.eventhub_name:
            kwargs["eventhub_name"] = self.eventhub_name
        self._client = EventHubConsumerClient.from_connection_string(self.connection_string, **kwargs)

        # Fails fast on bad credentials or unreachable namespace
        partition_ids = await self._client.get_partition_ids()
        logger.info(f"📡 Event Hub partitions: {partition_ids}")

        self._receive_task = asyncio.create_task(
            self._client.receive(
                on_event=self._on_event,
                on_error=self._on_error,
                starting_position=self.starting_position,
            ),
            name="eventhub-receive",
        )

    async def _on_event(self, partition_context, event) -> None:
        if event is None:
            return
        body = event.body
        if not isinstance(body, (bytes, bytearray)):
            body = b"".join(body)
        # Backpressure: receive callbacks wait while the listener catches up
        await self._queue.put(StreamEvent(
            body=bytes(body),
            system_properties=dict(event.system_properties or {}),
            partition_id=partition_context.partition_id,
        ))

    async def _on_error(self, partition_context, error) -> None:
        if partition_context is None:
            # Client-level failure (load balancing, auth, network)
            logger.error(f"❌ Event Hub client error: {error}")
            await self._queue.put(ConnectionFault(str(error)))
        else:
            # The SDK retries partition receivers on its own
            logger.warning(f"⚠️  Event Hub partition {partition_context.partition_id} error: {error}")

    async def events(self) -> AsyncIterator[StreamEvent]:
        receive_task = self._receive_task
        if receive_task is None:
            raise ConnectionFault("events() called before connect()")

        while True:
            getter = asyncio.ensure_future(self._queue.get())
            try:
                done, _ = await asyncio.wait(
                    {getter, receive_task}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                if not getter.done():
                    getter.cancel()

            if getter in done:
                item = getter.result()
                if isinstance(item, BaseException):
                    raise ConnectionFault(str(item)) from item
                yield item
                continue

            if self._closing:
                return
            error = None if receive_task.cancelled() else receive_task.exception()
            raise ConnectionFault(f"Event Hub receive loop ended: {error or 'stream closed'}") from error

    async def close(self) -> None:
        self._closing = True
        if self._client is not None:
            await self._client.close()
            self._client = None
        if self._receive_task is not None:
            if not self._receive_task.done():
                self._receive_task.cancel()
            await asyncio.gather(self._receive_task, return_exceptions=True)
            self._receive_task = None
