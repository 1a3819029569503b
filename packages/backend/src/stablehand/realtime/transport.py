"""Per-connection transports — where the broker writes frames.

Learn: The broker never awaits. publish() must reach every subscriber
without letting one slow browser stall the others, so a write is just a
non-blocking put into that connection's queue. The HTTP response generator
drains the queue at whatever pace the client reads.

If a client stops reading, its queue fills up. Rather than buffer without
bound we raise TransportOverflowError and the broker drops the connection,
exactly as if the socket had broken. The browser's EventSource reconnects
and backfills from history.
"""

import asyncio
from typing import AsyncIterator, Optional, Protocol


class TransportError(Exception):
    """A frame could not be written to a connection."""


class TransportClosedError(TransportError):
    """Write attempted after the transport was closed."""


class TransportOverflowError(TransportError):
    """The consumer fell too far behind."""


class Transport(Protocol):
    """What the broker needs from a connection's underlying stream."""

    def write(self, frame: str) -> None:
        """Queue one frame. Must not block; raise on failure."""
        ...

    def close(self) -> None:
        """Close the stream. Calling it twice is harmless."""
        ...


class QueueTransport:
    """Buffered in-memory transport drained by the SSE response."""

    def __init__(self, max_pending: int = 256):
        self.max_pending = max_pending
        # Unbounded queue so the close sentinel always fits; max_pending
        # is enforced in write()
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def write(self, frame: str) -> None:
        if self._closed:
            raise TransportClosedError("transport is closed")
        if self._queue.qsize() >= self.max_pending:
            raise TransportOverflowError(
                f"{self._queue.qsize()} frames pending, consumer is not reading"
            )
        self._queue.put_nowait(frame)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames in order until the transport closes."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame
