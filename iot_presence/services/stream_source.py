"""
Contract for a partitioned, at-least-once event stream.

Implementations fan all partitions into one async iterator. Order is kept
within a partition only. Transport problems must surface as ConnectionFault
(or any other exception) from connect() or from the iterator, which the
ingestion listener turns into a reconnect with backoff.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional


class ConnectionFault(Exception):
    """Stream-level disconnect or transport error."""


@dataclass
class StreamEvent:
    body: bytes
    system_properties: dict = field(default_factory=dict)
    partition_id: Optional[str] = None


class EventStreamSource(ABC):

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection. Raises on failure."""

    @abstractmethod
    def events(self) -> AsyncIterator[StreamEvent]:
        """Events from all partitions, until close() or a transport fault."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Must be safe to call more than once."""

    @property
    def description(self) -> str:
        return type(self).__name__
