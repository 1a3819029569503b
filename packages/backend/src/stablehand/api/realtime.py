"""Realtime API routes — the SSE stream and its management endpoints.

Learn: A browser opens GET /api/realtime/events?token=JWT with EventSource.
The handler:
1. Registers a connection for the token's user (default channels
   "global" and "user:<id>")
2. Subscribes any extra ?channels=horses,documents
3. Optionally replays the last ?replay=N events of those channels
4. Streams frames until the browser goes away, then unregisters

The first frame is a `connected` event with the connection id. The
browser passes that id to /connections/{id}/subscribe to change channels
later without reconnecting.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import StreamingResponse

from stablehand.api.deps import get_broker, get_rate_limiter
from stablehand.auth.dependencies import CurrentIdentity, get_current_user, require_admin
from stablehand.ratelimit import RateLimiter
from stablehand.realtime.broker import (
    Connection,
    InvalidEventError,
    RealtimeBroker,
    USER_CHANNEL_PREFIX,
    user_channel,
    validate_name,
)
from stablehand.realtime.sse import STREAM_HEADERS
from stablehand.schemas.realtime import (
    ChannelsUpdate,
    HistoryEventRead,
    SubscriptionRead,
)

router = APIRouter()


def _check_channels(channels: list[str], identity: CurrentIdentity) -> None:
    """422 for malformed names, 403 for other users' private channels."""
    for channel in channels:
        try:
            validate_name(channel, "channel")
        except InvalidEventError as e:
            raise HTTPException(status_code=422, detail=str(e))
        if (
            channel.startswith(USER_CHANNEL_PREFIX)
            and channel != user_channel(identity.user_id)
            and not identity.is_admin
        ):
            raise HTTPException(
                status_code=403, detail=f"Cannot subscribe to {channel}"
            )


def _own_connection(
    broker: RealtimeBroker, connection_id: str, identity: CurrentIdentity
) -> Connection:
    connection = broker.get_connection(connection_id)
    if connection is None or connection.owner != identity.user_id:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


async def _event_stream(broker: RealtimeBroker, connection: Connection):
    """Drain the connection's queue; unregister however the stream ends."""
    try:
        async for frame in connection.stream():
            yield frame
    finally:
        broker.remove_connection(connection.id)


# ═══════════════════════════════════════════════════════════
# Stream
# ═══════════════════════════════════════════════════════════


@router.get("/realtime/events")
async def stream_events(
    channels: Optional[str] = Query(None, description="Comma-separated extra channels"),
    replay: int = Query(0, ge=0, le=50, description="Recent events to backfill per channel"),
    identity: CurrentIdentity = Depends(get_current_user),
    broker: RealtimeBroker = Depends(get_broker),
):
    """Open a server-sent events stream for the current user.

    `replay` backfills only channels the connection holds: global, the
    user's own channel and whatever `channels` names. Module channels such
    as "horses" arrive live through global but are backfilled only when
    listed in `channels`. At most half the pending-frame bound is replayed,
    newest events kept.
    """
    extra = [c.strip() for c in (channels or "").split(",") if c.strip()]
    _check_channels(extra, identity)

    connection_id, connection = broker.register(identity.user_id)
    broker.subscribe(connection_id, extra)
    if replay:
        broker.replay(connection_id, sorted(connection.channels), replay)

    return StreamingResponse(
        _event_stream(broker, connection),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


# ═══════════════════════════════════════════════════════════
# Connection management
# ═══════════════════════════════════════════════════════════


@router.post(
    "/realtime/connections/{connection_id}/subscribe",
    response_model=SubscriptionRead,
)
async def subscribe(
    connection_id: str,
    body: ChannelsUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    broker: RealtimeBroker = Depends(get_broker),
):
    """Add channels to one of the caller's live connections."""
    _check_channels(body.channels, identity)
    connection = _own_connection(broker, connection_id, identity)
    broker.subscribe(connection_id, body.channels)
    return SubscriptionRead(connection_id=connection_id, channels=sorted(connection.channels))


@router.post(
    "/realtime/connections/{connection_id}/unsubscribe",
    response_model=SubscriptionRead,
)
async def unsubscribe(
    connection_id: str,
    body: ChannelsUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    broker: RealtimeBroker = Depends(get_broker),
):
    """Remove channels. "global" and the caller's own channel always stay."""
    _check_channels(body.channels, identity)
    connection = _own_connection(broker, connection_id, identity)
    broker.unsubscribe(connection_id, body.channels)
    return SubscriptionRead(connection_id=connection_id, channels=sorted(connection.channels))


@router.delete("/realtime/connections/{connection_id}", status_code=204)
async def disconnect(
    connection_id: str,
    identity: CurrentIdentity = Depends(get_current_user),
    broker: RealtimeBroker = Depends(get_broker),
):
    """Close a connection. Already-closed ids are fine."""
    connection = broker.get_connection(connection_id)
    if connection is not None and connection.owner != identity.user_id:
        raise HTTPException(status_code=404, detail="Connection not found")
    broker.remove_connection(connection_id)
    return Response(status_code=204)


# ═══════════════════════════════════════════════════════════
# History + stats
# ═══════════════════════════════════════════════════════════


@router.get("/realtime/history/{channel}", response_model=list[HistoryEventRead])
async def get_history(
    channel: str,
    limit: int = Query(10, ge=1, le=50),
    identity: CurrentIdentity = Depends(get_current_user),
    broker: RealtimeBroker = Depends(get_broker),
):
    """Recent events of one channel, oldest first (for reconnect backfill)."""
    _check_channels([channel], identity)
    return [event.to_dict() for event in broker.get_history(channel, limit)]


@router.get("/realtime/stats")
async def get_stats(
    _admin: CurrentIdentity = Depends(require_admin),
    broker: RealtimeBroker = Depends(get_broker),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Connection and limiter gauges for the admin panel."""
    return {"realtime": broker.stats(), "rate_limit": limiter.stats()}
