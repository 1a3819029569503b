"""Realtime broker — connection registry, channel fan-out, replay history.

Learn: One broker instance lives for the whole process (created in
create_app(), reachable through app.state). It owns two pieces of state:

1. _connections: connection id → Connection (owner, channels, transport)
2. _history: channel → deque of the most recent events (bounded)

Every public method is synchronous and never awaits. On a single asyncio
loop that makes each call atomic: an event is in the history ring before
any connection sees it live, and no other publish can interleave with its
fan-out. Per connection, delivery is FIFO because the transport is a queue.

Routing: a connection receives a channel it subscribed to, and through
"global" every other shared channel. Owner channels (user:<id>) are never
reached through "global"; they need an explicit subscription.

Failure model: a write that raises (closed transport, slow consumer, broken
pipe) removes that one connection and fan-out continues. Publishers never
see transport errors.
"""

import asyncio
import itertools
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Optional

import structlog

from stablehand.events.types import SYSTEM_CONNECTED
from stablehand.realtime.sse import HEARTBEAT_FRAME, format_event
from stablehand.realtime.transport import QueueTransport, Transport

logger = structlog.get_logger()

GLOBAL_CHANNEL = "global"
SYSTEM_CHANNEL = "system"
USER_CHANNEL_PREFIX = "user:"


def user_channel(owner: int) -> str:
    """Channel every connection of `owner` listens on."""
    return f"{USER_CHANNEL_PREFIX}{owner}"


class InvalidEventError(ValueError):
    """Raised for malformed channel or event names."""


def validate_name(value: Any, what: str = "channel") -> None:
    """Raise InvalidEventError unless `value` is usable as a channel or event name."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidEventError(f"{what} must be a non-empty string, got {value!r}")
    if "\n" in value or "\r" in value:
        raise InvalidEventError(f"{what} must not contain line breaks: {value!r}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RealtimeEvent:
    """An immutable published fact. The payload is never inspected."""

    channel: str
    name: str
    payload: Any
    timestamp: datetime = field(default_factory=_now)
    sequence: int = 0  # process-wide publish order

    def to_frame(self) -> str:
        return format_event(self.name, self.payload)

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "event": self.name,
            "data": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(eq=False)
class Connection:
    """One live streaming session."""

    id: str
    owner: int
    transport: Transport
    channels: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=_now)

    @property
    def default_channels(self) -> frozenset[str]:
        return frozenset({GLOBAL_CHANNEL, user_channel(self.owner)})

    def wants(self, channel: str) -> bool:
        """Global subscribers receive every channel except other users' private ones."""
        if channel in self.channels:
            return True
        return GLOBAL_CHANNEL in self.channels and not channel.startswith(USER_CHANNEL_PREFIX)

    def stream(self) -> AsyncIterator[str]:
        """Async iterator of frames, ending when the transport closes."""
        if not isinstance(self.transport, QueueTransport):
            raise TypeError(
                f"{type(self.transport).__name__} cannot be streamed; "
                "use QueueTransport for HTTP responses"
            )
        return self.transport.frames()


class RealtimeBroker:
    """In-memory pub/sub over server-sent events."""

    def __init__(
        self,
        history_size: int = 50,
        max_pending_frames: int = 256,
        heartbeat_interval: float = 30.0,
    ):
        self.history_size = history_size
        self.max_pending_frames = max_pending_frames
        self.heartbeat_interval = heartbeat_interval
        self._connections: dict[str, Connection] = {}
        self._history: dict[str, deque[RealtimeEvent]] = {}
        self._sequence = itertools.count(1)
        self._running = False

    # ─── Connections ─────────────────────────────────────

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def connection_ids(self) -> list[str]:
        return list(self._connections)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def register(
        self,
        owner: int,
        transport: Optional[Transport] = None,
    ) -> tuple[str, Connection]:
        """Register a new connection for an already-authenticated owner.

        The first frame on the stream is a `connected` event carrying the
        new connection id, so the browser can use it for subscribe calls.
        """
        connection_id = uuid.uuid4().hex
        connection = Connection(
            id=connection_id,
            owner=owner,
            transport=transport or QueueTransport(self.max_pending_frames),
        )
        connection.channels.update(connection.default_channels)
        self._connections[connection_id] = connection

        hello = RealtimeEvent(
            channel=SYSTEM_CHANNEL,
            name=SYSTEM_CONNECTED,
            payload={"connectionId": connection_id, "timestamp": _now().isoformat()},
        )
        self._deliver(connection, hello.to_frame())

        logger.info(
            "realtime.client_connected",
            connection_id=connection_id,
            owner=owner,
            connections=len(self._connections),
        )
        return connection_id, connection

    def remove_connection(self, connection_id: str) -> bool:
        """Drop a connection and close its transport.

        Idempotent: returns False if the id is already gone.
        """
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return False
        try:
            connection.transport.close()
        except Exception as e:
            logger.warning(
                "realtime.close_failed", connection_id=connection_id, error=str(e)
            )
        logger.info(
            "realtime.client_disconnected",
            connection_id=connection_id,
            owner=connection.owner,
            connections=len(self._connections),
        )
        return True

    def close_all(self) -> None:
        for connection_id in list(self._connections):
            self.remove_connection(connection_id)

    # ─── Subscriptions ───────────────────────────────────

    def subscribe(self, connection_id: str, channels: Iterable[str]) -> None:
        """Add channels. Unknown connection ids are ignored."""
        channels = list(channels)
        for channel in channels:
            validate_name(channel, "channel")
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        connection.channels.update(channels)

    def unsubscribe(self, connection_id: str, channels: Iterable[str]) -> None:
        """Remove channels. The global and owner channels always stay."""
        channels = list(channels)
        for channel in channels:
            validate_name(channel, "channel")
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        connection.channels.difference_update(
            set(channels) - connection.default_channels
        )

    # ─── Publishing ──────────────────────────────────────

    def publish(self, channel: str, event_name: str, payload: Any) -> RealtimeEvent:
        """Record an event in the channel history and push it to subscribers."""
        validate_name(channel, "channel")
        validate_name(event_name, "event name")

        event = RealtimeEvent(
            channel=channel,
            name=event_name,
            payload=payload,
            sequence=next(self._sequence),
        )
        ring = self._history.get(channel)
        if ring is None:
            ring = self._history[channel] = deque(maxlen=self.history_size)
        ring.append(event)

        frame = event.to_frame()
        sent = 0
        # Copy: failed deliveries remove entries while we iterate
        for connection in list(self._connections.values()):
            if connection.wants(channel) and self._deliver(connection, frame):
                sent += 1

        logger.info(
            "realtime.published", channel=channel, event_name=event_name, recipients=sent
        )
        return event

    def publish_to_owner(self, owner: int, event_name: str, payload: Any) -> RealtimeEvent:
        return self.publish(user_channel(owner), event_name, payload)

    def _deliver(self, connection: Connection, frame: str) -> bool:
        try:
            connection.transport.write(frame)
        except Exception as e:
            logger.warning(
                "realtime.delivery_failed",
                connection_id=connection.id,
                error=f"{type(e).__name__}: {e}",
            )
            self.remove_connection(connection.id)
            return False
        return True

    # ─── History ─────────────────────────────────────────

    def get_history(self, channel: str, limit: int = 10) -> list[RealtimeEvent]:
        """Up to `limit` most recent events of a channel, oldest first."""
        ring = self._history.get(channel)
        if not ring or limit <= 0:
            return []
        return list(ring)[-limit:]

    def replay(self, connection_id: str, channels: Iterable[str], limit: int = 10) -> int:
        """Write recent history of `channels` down one connection.

        Events from all channels are merged in publish order. At most half of
        max_pending_frames are written (the most recent ones), leaving room
        for live events published before the client starts reading. Returns
        how many frames were written (0 if the connection is unknown or broke).
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return 0
        events: list[RealtimeEvent] = []
        for channel in dict.fromkeys(channels):
            events.extend(self.get_history(channel, limit))
        events.sort(key=lambda e: e.sequence)
        cap = self.max_pending_frames // 2
        if len(events) > cap:
            logger.info(
                "realtime.replay_truncated",
                connection_id=connection_id,
                requested=len(events),
                sent=cap,
            )
            events = events[-cap:] if cap else []

        written = 0
        for event in events:
            if not self._deliver(connection, event.to_frame()):
                break
            written += 1
        return written

    # ─── Heartbeat ───────────────────────────────────────

    def send_heartbeats(self) -> int:
        """Write a keep-alive comment to every connection.

        Returns the number of connections still alive afterwards.
        """
        alive = 0
        for connection in list(self._connections.values()):
            if self._deliver(connection, HEARTBEAT_FRAME):
                alive += 1
        return alive

    async def run_heartbeat_loop(self) -> None:
        """Background loop — heartbeat every interval until stop()."""
        self._running = True
        logger.info("realtime.heartbeat_started", interval=self.heartbeat_interval)

        while self._running:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                self.send_heartbeats()
            except Exception:
                logger.exception("realtime.heartbeat_error")

    def stop(self) -> None:
        """Signal the heartbeat loop to stop."""
        self._running = False
        logger.info("realtime.heartbeat_stopping")

    # ─── Introspection ───────────────────────────────────

    def stats(self) -> dict:
        channels = set()
        for connection in self._connections.values():
            channels.update(connection.channels)
        return {
            "connected_clients": len(self._connections),
            "channels": sorted(channels),
            "event_history_size": len(self._history),
            "history_events": sum(len(ring) for ring in self._history.values()),
        }
