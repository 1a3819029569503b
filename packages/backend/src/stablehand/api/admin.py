"""Admin API routes — broadcasts to every connected dashboard.

Learn: Broadcasts go to the "global" channel, which every connection
listens on. They are throttled with the "admin" preset on top of the
app-wide middleware.
"""

from fastapi import APIRouter, Depends, HTTPException

from stablehand.api.deps import RateLimit, get_broker
from stablehand.realtime.broker import InvalidEventError, RealtimeBroker
from stablehand.realtime.publisher import publish_global
from stablehand.schemas.realtime import BroadcastCreate, HistoryEventRead

router = APIRouter()


@router.post(
    "/admin/broadcast",
    response_model=HistoryEventRead,
    status_code=201,
    dependencies=[Depends(RateLimit("admin", "broadcast"))],
)
async def broadcast(
    body: BroadcastCreate,
    broker: RealtimeBroker = Depends(get_broker),
):
    """Publish an event to all connected clients."""
    try:
        event = publish_global(broker, body.event, body.payload)
    except InvalidEventError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return event.to_dict()
